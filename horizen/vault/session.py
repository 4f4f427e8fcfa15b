"""Session management for password-derived keys.

Holds the derived key in memory while the session is unlocked so the user
only enters their password once, and expires it after a period of
inactivity. Nothing here is ever persisted.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from .crypto import DerivedKey
from ..utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass
class SessionState:
    """In-memory session state.

    Invariant: ``derived_key`` is set if and only if ``unlocked`` is True.
    """

    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    derived_key: Optional[DerivedKey] = field(default=None, repr=False)


class SessionManager:
    """
    Thread-safe holder of one session's derived key.

    Instances are independent: a host creates one per window/process and
    injects it where needed, and tests create as many as they like.
    Expiry is evaluated lazily on each check; the host calls ``refresh()``
    on user activity to turn the timeout into an idle timeout.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._state = SessionState()
        self._lock = threading.RLock()
        self._clock: Clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def unlock(self, key: DerivedKey) -> None:
        """Mark the session unlocked with ``key``, replacing any previous key."""
        with self._lock:
            previous = self._state.derived_key
            if previous is not None and previous is not key:
                previous.wipe()
            self._state = SessionState(
                unlocked=True,
                unlocked_at=self.now(),
                derived_key=key,
            )
        logger.debug("Session unlocked")

    def lock(self) -> None:
        """Wipe the derived key and mark the session locked. Idempotent."""
        with self._lock:
            if self._state.derived_key is not None:
                self._state.derived_key.wipe()
            was_unlocked = self._state.unlocked
            self._state = SessionState()
        if was_unlocked:
            logger.debug("Session locked")

    def is_expired(self, timeout_minutes: int) -> bool:
        """Check if the unlocked session has outlived its idle timeout."""
        with self._lock:
            if not self._state.unlocked or self._state.unlocked_at is None:
                return False
            if timeout_minutes <= 0:  # No timeout
                return False
            elapsed = self.now() - self._state.unlocked_at
            return elapsed > timedelta(minutes=timeout_minutes)

    def is_unlocked(self, timeout_minutes: int) -> bool:
        """
        Check whether a key is available, expiring the session if it timed out.

        Args:
            timeout_minutes: Idle timeout (0 = never expire)

        Returns:
            True if the session is unlocked and not expired
        """
        with self._lock:
            if not self._state.unlocked or self._state.derived_key is None:
                return False

            if self.is_expired(timeout_minutes):
                logger.info("Session expired after %d minutes of inactivity", timeout_minutes)
                self.lock()
                return False

            return True

    def get_derived_key(self, timeout_minutes: int) -> Optional[DerivedKey]:
        """Get the active key, or None if locked or expired."""
        with self._lock:
            if not self.is_unlocked(timeout_minutes):
                return None
            return self._state.derived_key

    def refresh(self) -> None:
        """Bump the last-activity time. No-op when locked."""
        with self._lock:
            if self._state.unlocked:
                self._state.unlocked_at = self.now()

    def time_remaining(self, timeout_minutes: int) -> Optional[timedelta]:
        """Get time remaining before the session expires (None = no timeout or locked)."""
        with self._lock:
            if not self._state.unlocked or self._state.unlocked_at is None:
                return None
            if timeout_minutes <= 0:
                return None
            elapsed = self.now() - self._state.unlocked_at
            remaining = timedelta(minutes=timeout_minutes) - elapsed
            return max(remaining, timedelta(0))

    @property
    def unlocked_at(self) -> Optional[datetime]:
        return self._state.unlocked_at

    @property
    def has_key(self) -> bool:
        return self._state.derived_key is not None
