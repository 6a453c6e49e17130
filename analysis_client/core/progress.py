"""Synthetic progress shown while a job is queued or processing.

The percentage is decorative. It says nothing about real completion and the
job state machine never reads it.
"""
from __future__ import annotations

import asyncio
import random

MAX_FAKE_PROGRESS = 90.0
INCREMENT_MAX = 5.0
UPDATE_INTERVAL = 0.8
COMPLETED_PROGRESS = 100.0
FAILED_PROGRESS = 0.0


class ProgressProjection:
    """Random, non-decreasing progress capped below 100 while running."""

    def __init__(
        self,
        *,
        interval: float = UPDATE_INTERVAL,
        increment_max: float = INCREMENT_MAX,
        ceiling: float = MAX_FAKE_PROGRESS,
        rng: random.Random | None = None,
    ) -> None:
        self._interval = interval
        self._increment_max = increment_max
        self._ceiling = ceiling
        self._rng = rng or random.Random()
        self._value = 0.0
        self._task: asyncio.Task | None = None

    @property
    def value(self) -> float:
        return self._value

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._tick())

    def tick(self) -> float:
        """Advance by one random increment, never past the ceiling."""

        step = self._rng.random() * self._increment_max
        self._value = min(self._value + step, self._ceiling)
        return self._value

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.tick()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def reset(self) -> None:
        self.stop()
        self._value = 0.0

    def complete(self) -> None:
        self.stop()
        self._value = COMPLETED_PROGRESS

    def fail(self) -> None:
        self.stop()
        self._value = FAILED_PROGRESS
