import logging
import threading
import time
from typing import Callable

from driving_booking import config

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def format_remaining(remaining_ms: int) -> str:
    """Formats milliseconds as 'm:ss'."""
    remaining_ms = max(0, remaining_ms)
    minutes = remaining_ms // 60000
    seconds = (remaining_ms % 60000) // 1000
    return f"{minutes}:{seconds:02d}"


class Countdown:
    """
    Ticks once per interval until `expires_at` (epoch ms) has passed or it is stopped.

    `on_tick` receives the formatted remaining time; `on_expire` is called
    exactly once when the deadline is reached. After `stop()` neither fires.
    """

    def __init__(
        self,
        expires_at: int,
        on_tick: Callable[[str], None] | None = None,
        on_expire: Callable[[], None] | None = None,
        clock: Callable[[], int] = now_ms,
        interval: float = config.COUNTDOWN_TICK_SECONDS,
    ):
        self.expires_at = expires_at
        self.display = ""
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._clock = clock
        self._interval = interval
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def remaining(self) -> int:
        return self.expires_at - self._clock()

    def tick(self) -> bool:
        """Runs one tick. Returns False once the countdown is over."""
        if self._stopped.is_set():
            return False

        remaining = self.remaining()
        if remaining <= 0:
            self._stopped.set()
            self.display = format_remaining(0)
            logger.info("Reservation countdown reached zero.")
            if self._on_expire:
                self._on_expire()
            return False

        self.display = format_remaining(remaining)
        if self._on_tick:
            self._on_tick(self.display)
        return True

    def start(self):
        if self._thread is not None:
            raise RuntimeError("Countdown already started")
        self._thread = threading.Thread(target=self._run, name="lock-countdown", daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stopped.wait(self._interval):
            if not self.tick():
                break

    def stop(self):
        # Not joined: the tick thread may be waiting on the caller's own lock.
        self._stopped.set()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
