"""
Call admission control for the reasoning backend and per-vault action cooldowns.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict

from app.rebalancer.logging_config import setup_logger

logger = setup_logger()

WINDOW_SECONDS = 60.0
SAFETY_MARGIN_SECONDS = 0.1


class RateLimiter:
    """
    Sliding one-minute window limiter for a single named caller.

    Each instance owns an independent window; callers sharing a name should
    share the instance.
    """

    def __init__(
        self,
        name: str,
        max_calls_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.max_calls_per_minute = max_calls_per_minute
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        window_start = now - WINDOW_SECONDS
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

    def wait_for_slot(self) -> None:
        """
        Block until a call slot is free, then reserve it.

        If the window is full, sleeps until the oldest recorded call leaves the
        window and checks again, repeating until a slot opens.
        """
        if self.max_calls_per_minute <= 0:
            return

        while True:
            now = self._clock()
            self._prune(now)

            if len(self._calls) < self.max_calls_per_minute:
                self._calls.append(now)
                return

            wait_time = self._calls[0] + WINDOW_SECONDS - now + SAFETY_MARGIN_SECONDS
            logger.warning("%s: Rate limit reached, waiting %.1fs", self.name, wait_time)
            self._sleep(max(wait_time, 0.0))

    def can_call(self) -> bool:
        return self.get_remaining_calls() > 0

    def get_remaining_calls(self) -> int:
        if self.max_calls_per_minute <= 0:
            return 1
        window_start = self._clock() - WINDOW_SECONDS
        recent = sum(1 for t in self._calls if t > window_start)
        return max(0, self.max_calls_per_minute - recent)

    @property
    def recorded_calls(self):
        return list(self._calls)


class VaultCooldown:
    """
    Tracks the last action per vault and blocks repeats within the cooldown.

    The tracker does not lock; callers serialize access for a given vault.
    """

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.time):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self.last_actions: Dict[str, float] = {}

    def can_act(self, vault_id: str) -> bool:
        last_action = self.last_actions.get(vault_id)
        if last_action is None:
            return True
        return self._clock() - last_action >= self.cooldown_seconds

    def record_action(self, vault_id: str) -> None:
        self.last_actions[vault_id] = self._clock()

    def get_time_until_ready(self, vault_id: str) -> float:
        last_action = self.last_actions.get(vault_id)
        if last_action is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last_action))

    def cleanup(self) -> int:
        """
        Drop records older than twice the cooldown.

        Returns:
            int: Number of records removed.
        """
        now = self._clock()
        threshold = self.cooldown_seconds * 2
        stale = [vault_id for vault_id, last in self.last_actions.items() if now - last > threshold]
        for vault_id in stale:
            del self.last_actions[vault_id]

        if stale:
            logger.debug("VaultCooldown: Removed %s expired cooldown records", len(stale))
        return len(stale)
