"""Background loops that run a function on a fixed interval until stopped."""
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``fn`` every ``interval`` seconds on a daemon thread.

    With ``run_immediately`` the first run happens at start. Errors from
    ``fn`` are logged and the loop carries on. ``stop()`` wakes the loop and
    waits for it to exit.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        fn: Callable[[], None],
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.interval = interval
        self._fn = fn
        self._run_immediately = run_immediately
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_once(self) -> None:
        try:
            self._fn()
        except Exception as e:
            logger.warning("%s: %s", self.name, e)

    def _loop(self) -> None:
        if self._run_immediately and not self._stop.is_set():
            self._run_once()
        while not self._stop.wait(timeout=self.interval):
            self._run_once()
        logger.debug("%s: stopped", self.name)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (interval %.1fs)", self.name, self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("%s: still running after %.1fs", self.name, timeout)
            self._thread = None
