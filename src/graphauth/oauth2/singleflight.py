"""Single-flight execution: concurrent callers share one in-flight call."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Collapses concurrent calls into one.

    The first caller (the leader) runs the function. Callers arriving while
    it is in flight wait on the leader's future and observe the same result
    or the same exception. Once the call settles, the next caller starts a
    fresh one.

    Usage:
        flight = SingleFlight()
        result = flight.do(lambda: bridge.execute(manager.authenticate()))
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._inflight: Future | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._inflight is not None

    def do(
        self,
        fn: Callable[[], Any],
        wait: Callable[[Future], Any] | None = None,
    ) -> Any:
        """
        Run ``fn`` or join the call already in flight.

        Args:
            fn: Zero-argument callable run by the leader
            wait: How a follower blocks on the shared future. Defaults to
                ``future.result()``; pass a pumping wait when the follower
                owns a message queue.

        Returns:
            The leader's result

        Raises:
            Whatever ``fn`` raised, re-raised in every caller
        """
        with self._lock:
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                future.set_running_or_notify_cancel()
                self._inflight = future

        if not leader:
            logger.debug("Joining in-flight call")
            return wait(future) if wait else future.result()

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight = None


__all__ = ["SingleFlight"]
