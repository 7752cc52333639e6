"""Sliding-window inactivity timer for terminal sessions."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class InactivityTimer:
    """A resettable one-shot deadline backed by at most one pending timer.

    ``reset()`` replaces the deadline; it never schedules a second timer
    alongside the pending one. When the pending ``threading.Timer`` fires
    early because the deadline moved, it reschedules itself for the
    remainder instead of expiring.

    Each reset or cancel bumps a generation token. The expiry callback
    receives the token current at expiry; the owner must check
    ``is_current(token)`` before acting, because a reset can land between
    the timer firing and the owner handling it. The owner must call
    ``reset()``/``cancel()`` and ``is_current()`` under the same lock so
    that a reset and an expiry cannot interleave.
    """

    def __init__(
        self,
        timeout: float,
        on_expire: Callable[[int], None],
        name: str = "inactivity",
    ) -> None:
        self.timeout = timeout
        self._on_expire = on_expire
        self._name = name
        self._timer: threading.Timer | None = None
        self._deadline = 0.0
        self._fires_at = 0.0
        self._generation = 0
        self._lock = threading.Lock()

    def reset(self, timeout: float | None = None) -> int:
        """Push the deadline to ``timeout`` seconds from now.

        Returns:
            The generation token for the new deadline.
        """
        with self._lock:
            if timeout is not None:
                self.timeout = timeout
            self._deadline = time.monotonic() + self.timeout
            self._generation += 1
            if self._timer is None or self._deadline < self._fires_at:
                self._schedule(self.timeout)
            return self._generation

    def cancel(self) -> None:
        """Cancel the pending deadline, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def is_current(self, token: int) -> bool:
        """Whether no reset or cancel happened since ``token`` was issued."""
        with self._lock:
            return token == self._generation

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def remaining(self) -> float | None:
        """Seconds until expiry, or None when nothing is pending."""
        with self._lock:
            if self._timer is None:
                return None
            return max(0.0, self._deadline - time.monotonic())

    def _schedule(self, delay: float) -> None:
        # Caller holds the lock
        if self._timer is not None:
            self._timer.cancel()
        timer = threading.Timer(delay, self._fire)
        timer.daemon = True
        timer.name = f"{self._name}-timer"
        self._timer = timer
        self._fires_at = time.monotonic() + delay
        timer.start()

    def _fire(self) -> None:
        with self._lock:
            if threading.current_thread() is not self._timer:
                logger.debug("Replaced %s timer fired, ignoring", self._name)
                return
            remaining = self._deadline - time.monotonic()
            if remaining > 0:
                self._schedule(remaining)
                return
            self._timer = None
            token = self._generation
        try:
            self._on_expire(token)
        except Exception:
            logger.exception("Error in %s timer callback", self._name)
