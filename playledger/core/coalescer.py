"""Collapse concurrent calls with the same key into one execution."""
import logging
import threading
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Call(Generic[T]):
    """One in-flight execution and everyone waiting on it."""

    __slots__ = ("event", "result", "error", "waiters")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.result: Optional[T] = None
        self.error: Optional[BaseException] = None
        self.waiters = 1


class Coalescer(Generic[T]):
    """Per-key execution gate.

    While ``fn`` runs for a key, other ``do`` calls with that key wait and get
    the same result or exception. Nothing is cached once the call finishes.
    Different keys never wait on each other.
    """

    def __init__(self, name: str = "coalescer") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, _Call[T]] = {}

    def _claim(self, key: Hashable) -> "tuple[_Call[T], bool]":
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.waiters += 1
                return call, False
            call = _Call()
            self._calls[key] = call
            return call, True

    def _release(self, key: Hashable) -> None:
        with self._lock:
            self._calls.pop(key, None)

    def waiting(self, key: Hashable) -> int:
        """Callers attached to the in-flight call for key, 0 when idle."""
        with self._lock:
            call = self._calls.get(key)
            return call.waiters if call is not None else 0

    def do(self, key: Hashable, fn: Callable[[], T], timeout: Optional[float] = None) -> T:
        """Run fn for key, or join the run already in flight.

        ``timeout`` only bounds how long a joining caller waits; it raises
        TimeoutError and leaves the in-flight run alone.
        """
        call, leader = self._claim(key)
        if not leader:
            logger.debug("%s: joining in-flight call for %s", self.name, key)
            if not call.event.wait(timeout):
                raise TimeoutError(f"{self.name}: timed out waiting for {key}")
            if call.error is not None:
                raise call.error
            return call.result  # type: ignore[return-value]

        try:
            call.result = fn()
            return call.result
        except BaseException as e:
            call.error = e
            raise
        finally:
            # Release before waking waiters so a caller arriving afterwards starts fresh.
            self._release(key)
            call.event.set()
