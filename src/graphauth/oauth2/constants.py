"""Microsoft identity platform endpoints, OAuth2 parameter names and Graph scopes."""

# Endpoints
LOGIN_BASE_URL = "https://login.microsoftonline.com"
AUTHORIZE_URL = f"{LOGIN_BASE_URL}/common/oauth2/v2.0/authorize"
COMMON_TOKEN_URL = f"{LOGIN_BASE_URL}/common/oauth2/v2.0/token"
TENANT_TOKEN_URL = LOGIN_BASE_URL + "/{tenant_id}/oauth2/v2.0/token"
ADMIN_CONSENT_URL = LOGIN_BASE_URL + "/{tenant_id}/adminconsent"
LOGOUT_URL = f"{LOGIN_BASE_URL}/common/oauth2/logout"
LOGOUT_REDIRECT_URL = "http://localhost"
NATIVE_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"

# Request/response parameter names
ACCESS_TOKEN = "access_token"
ADMIN_CONSENT = "admin_consent"
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
CODE = "code"
ERROR = "error"
ERROR_DESCRIPTION = "error_description"
EXPIRES_IN = "expires_in"
GRANT_TYPE = "grant_type"
POST_LOGOUT_REDIRECT_URI = "post_logout_redirect_uri"
REDIRECT_URI = "redirect_uri"
REFRESH_TOKEN = "refresh_token"
RESPONSE_TYPE = "response_type"
SCOPE = "scope"
STATE = "state"
TOKEN_TYPE = "token_type"

# Parameter values
CONSENT_STATE = "consent"
BEARER = "Bearer"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
AUTHORIZATION_HEADER = "Authorization"

# Graph scopes
GRAPH_BASE = "https://graph.microsoft.com"
SCOPE_DEFAULT = f"{GRAPH_BASE}/.default"
SCOPE_OPENID = "openid"
SCOPE_OFFLINE_ACCESS = "offline_access"
SCOPE_USER_READ = f"{GRAPH_BASE}/User.Read"
SCOPE_FILES_READ = f"{GRAPH_BASE}/Files.Read"
SCOPE_FILES_READ_ALL = f"{GRAPH_BASE}/Files.Read.All"
SCOPE_FILES_READ_WRITE = f"{GRAPH_BASE}/Files.ReadWrite"
SCOPE_FILES_READ_WRITE_ALL = f"{GRAPH_BASE}/Files.ReadWrite.All"
SCOPE_FILES_READ_WRITE_APP_FOLDER = f"{GRAPH_BASE}/Files.ReadWrite.AppFolder"
SCOPE_GROUP_READ_WRITE_ALL = f"{GRAPH_BASE}/Group.ReadWrite.All"
SCOPE_DIRECTORY_READ_WRITE_ALL = f"{GRAPH_BASE}/Directory.ReadWrite.All"
SCOPE_DIRECTORY_ACCESS_AS_USER_ALL = f"{GRAPH_BASE}/Directory.AccessAsUser.All"
SCOPE_SITES_READ_WRITE_ALL = f"{GRAPH_BASE}/Sites.ReadWrite.All"

# Scopes requested by default for a delegated drive session
DEFAULT_DELEGATED_SCOPES = [
    SCOPE_OFFLINE_ACCESS,
    SCOPE_FILES_READ_WRITE,
    SCOPE_USER_READ,
]

# Service messages
MSG_NO_STORE = "An authentication store is required when using the authentication provider."
MSG_NO_CONSENT = "A consent collaborator is required for interactive authentication."
MSG_NO_CLIENT_ID = "The client id is required to authenticate using the authentication provider."
MSG_NO_CLIENT_SECRET = (
    "The client secret is required to authenticate using the authentication provider."
)
MSG_NO_TENANT_ID = "The tenant id is required to authenticate using the authentication provider."
MSG_NO_REDIRECT_URI = (
    "The redirect uri is required to authenticate using the authentication provider."
)
MSG_NO_SCOPES = "No scopes have been requested for authentication."
MSG_NO_TOKEN_RETURNED = (
    "Authentication failure: no response values returned from the token authentication flow."
)
MSG_NO_TOKEN = "Authentication failure: failed to retrieve a valid authentication token."
MSG_USER_CANCEL = "Authentication failure: the user cancelled authentication."
MSG_SCOPES_LOCKED = "Scopes cannot be changed after the session has authenticated."
