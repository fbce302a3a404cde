import logging
from typing import Callable, List

from pydantic import ValidationError

from driving_booking import api
from driving_booking.countdown import Countdown, format_remaining, now_ms
from driving_booking.exceptions import ApiError, LockAlreadyHeldError, LockConflictError
from driving_booking.models import LockGrant, SelectedSlot

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Could not lock the selected slots, they may already be taken."


class ReservationLock:
    """
    Server-granted temporary hold on a set of slots, plus the local countdown
    that mirrors its expiry.

    The countdown only starts on `acquire` and is cancelled by `release`,
    `consume` and expiry alike.
    """

    def __init__(
        self,
        on_expire: Callable[[str], None] | None = None,
        on_tick: Callable[[str], None] | None = None,
        clock: Callable[[], int] = now_ms,
        start_timer: bool = True,
    ):
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._clock = clock
        self._start_timer = start_timer
        self.token: str | None = None
        self.expires_at: int | None = None
        self.session_duration: int | None = None
        self.slots: List[SelectedSlot] = []
        self.time_left = ""
        self.countdown: Countdown | None = None

    @property
    def is_held(self) -> bool:
        return self.token is not None

    def remaining_ms(self) -> int:
        if self.expires_at is None:
            return 0
        return max(0, self.expires_at - self._clock())

    def acquire(self, slots: List[SelectedSlot]) -> LockGrant:
        if self.is_held:
            raise LockAlreadyHeldError("A reservation lock is already held. Release it before locking again.")
        if not slots:
            raise ValueError("Cannot lock an empty selection")

        try:
            grant = api.lock_slots(slots)
        except (ApiError, ValidationError) as e:
            message = getattr(e, "message", None) or CONFLICT_MESSAGE
            logger.warning(f"Locking {len(slots)} slot(s) failed: {message}")
            raise LockConflictError(message) from e

        self.token = grant.token
        self.expires_at = grant.expires_at
        self.session_duration = grant.session_duration
        self.slots = list(slots)
        self.time_left = format_remaining(grant.session_duration * 1000)
        logger.info(f"Locked {len(slots)} slot(s) until {grant.expires_at} ({self.time_left} left)")

        token = grant.token
        self.countdown = Countdown(
            grant.expires_at,
            on_tick=lambda display: self._handle_tick(token, display),
            on_expire=lambda: self._handle_expire(token),
            clock=self._clock,
        )
        if self._start_timer:
            self.countdown.start()
        return grant

    def release(self) -> bool:
        """Best-effort unlock of the held slots. Returns False if the API call failed."""
        if not self.is_held:
            return True
        token, slots = self.token, self.slots
        self._clear()

        if not slots:
            return True
        try:
            api.unlock_slots(slots, token)
        except ApiError as e:
            logger.error(f"Failed to unlock slots: {e}")
            return False
        logger.info(f"Released lock on {len(slots)} slot(s)")
        return True

    def consume(self):
        """Drops the lock after a booking was created; the API releases it itself."""
        if self.is_held:
            logger.info("Reservation lock consumed by booking")
        self._clear()

    def _clear(self):
        if self.countdown is not None:
            self.countdown.stop()
        self.countdown = None
        self.token = None
        self.expires_at = None
        self.session_duration = None
        self.slots = []
        self.time_left = ""

    def _handle_tick(self, token: str, display: str):
        if token != self.token:
            return
        self.time_left = display
        if self._on_tick:
            self._on_tick(display)

    def _handle_expire(self, token: str):
        if token != self.token:
            return
        self.time_left = format_remaining(0)
        if self._on_expire:
            self._on_expire(token)
        else:
            self.release()
