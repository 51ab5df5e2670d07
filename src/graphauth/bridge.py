"""
Synchronous execution bridge.

Lets a blocking, single-threaded caller (a GUI main thread, a script, a
message-loop host) run the async session API without deadlocking:

- LoopThread runs a private asyncio event loop on a daemon thread.
- Dispatcher is the caller's message queue. Work posted to it from other
  threads runs on the owner thread while the owner waits.
- SynchronousBridge submits a coroutine to the loop thread and pumps the
  dispatcher until the result is in, then normalizes the outcome into the
  ServiceError hierarchy.

Usage:
    dispatcher = Dispatcher(pump_hook=root.update)   # e.g. a tkinter root
    bridge = SynchronousBridge(dispatcher)

    bridge.execute(manager.authenticate())
"""

import asyncio
import concurrent.futures
import logging
import queue
import threading
from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from typing import Any

from graphauth.errors import OperationCanceledError, ServiceError, wrap_exception

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "The task was cancelled."
DEFAULT_POLL_INTERVAL_SECONDS = 0.05

_CANCELLED = (concurrent.futures.CancelledError, asyncio.CancelledError)
_WAKE = object()


class LoopThread:
    """Private asyncio event loop running on a daemon thread."""

    def __init__(self, name: str = "graphauth-loop"):
        self.name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        self.start()
        return self._loop

    def start(self) -> None:
        """Start the loop thread if it is not running."""
        with self._lock:
            if self.running:
                return

            loop = asyncio.new_event_loop()
            ready = threading.Event()
            thread = threading.Thread(
                target=self._run, args=(loop, ready), name=self.name, daemon=True
            )
            thread.start()
            ready.wait()

            self._loop = loop
            self._thread = thread
            logger.debug(f"Started event loop thread '{self.name}'")

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            try:
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                loop.close()

    def in_loop_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def submit(self, coro) -> Future:
        """Schedule a coroutine on the loop; returns a concurrent future."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop and wait for the thread to exit."""
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None

        if loop is None or thread is None:
            return
        if thread.is_alive():
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout)
        logger.debug(f"Stopped event loop thread '{self.name}'")


class Dispatcher:
    """
    Single-threaded message queue owned by the thread that created it.

    Args:
        pump_hook: Called on every pump cycle while waiting, e.g. a GUI
            toolkit's ``update`` so the host stays responsive
        poll_interval: Longest time a waiting owner blocks between pump cycles
    """

    def __init__(
        self,
        pump_hook: Callable[[], Any] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self.owner_thread_id = threading.get_ident()
        self.pump_hook = pump_hook
        self.poll_interval = poll_interval
        self._queue: queue.SimpleQueue = queue.SimpleQueue()

    def is_owner(self) -> bool:
        return threading.get_ident() == self.owner_thread_id

    def post(self, callback: Callable[[], Any]) -> None:
        """Queue a callback to run on the owner thread."""
        self._queue.put(callback)

    def invoke(self, fn: Callable[[], Any]) -> Future:
        """
        Run ``fn`` on the owner thread.

        Runs inline when called from the owner thread; otherwise the call is
        queued and the returned future completes once the owner pumps it.
        """
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn()
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        if self.is_owner():
            run()
        else:
            self.post(run)
        return future

    def pump(self) -> int:
        """Run every queued callback, then the host hook. Returns callbacks run."""
        count = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            count += self._dispatch(item)
        self._call_hook()
        return count

    def wait(self, future: Future) -> Any:
        """
        Pump until ``future`` completes, then return its result.

        From any thread but the owner this is a plain blocking wait.
        """
        if not self.is_owner():
            return future.result()

        future.add_done_callback(lambda _: self._queue.put(_WAKE))
        while not future.done():
            try:
                item = self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                pass
            else:
                self._dispatch(item)
            self._call_hook()
        return future.result()

    def _dispatch(self, item: Any) -> int:
        if item is _WAKE:
            return 0
        try:
            item()
        except Exception:
            logger.exception("Dispatcher callback failed")
        return 1

    def _call_hook(self) -> None:
        if self.pump_hook is not None:
            self.pump_hook()


async def _await(awaitable: Awaitable) -> Any:
    return await awaitable


class SynchronousBridge:
    """
    Runs async operations to completion for a blocking caller.

    Faults come back as ServiceError: a ServiceError (raised directly or
    found in the cause chain) is re-raised as is, anything else is wrapped
    with code ``generalException``. A cancelled operation raises
    OperationCanceledError.
    """

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        loop_thread: LoopThread | None = None,
    ):
        self.dispatcher = dispatcher
        self.loop_thread = loop_thread or LoopThread()
        self._owns_loop = loop_thread is None

    def execute(self, awaitable: Awaitable) -> Any:
        """
        Run ``awaitable`` on the loop thread and block until it completes.

        Raises:
            ServiceError: On failure, normalized as described on the class
            OperationCanceledError: If the operation was cancelled
        """
        if self.loop_thread.in_loop_thread():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ServiceError("Cannot block on the bridge's own event loop thread")
        return self.wait(self.loop_thread.submit(_await(awaitable)))

    def wait(self, future: Future) -> Any:
        """Wait on a future the same way ``execute`` does, pumping if owner."""
        try:
            if self.dispatcher is not None:
                return self.dispatcher.wait(future)
            return future.result()
        except _CANCELLED as e:
            raise OperationCanceledError(CANCELLED_MESSAGE) from e
        except ServiceError:
            raise
        except Exception as e:
            failure = e

        # Raised outside the handler so a ServiceError found in the chain
        # keeps its own cause
        error = wrap_exception(failure)
        if error.cause is failure:
            raise error from failure
        raise error

    def close(self) -> None:
        """Stop the loop thread if this bridge created it."""
        if self._owns_loop:
            self.loop_thread.stop()


__all__ = [
    "CANCELLED_MESSAGE",
    "LoopThread",
    "Dispatcher",
    "SynchronousBridge",
]
