"""Local speaking detection from analyser magnitudes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Sequence

import numpy as np

from .interfaces import FrequencyAnalyser

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 10.0
DEFAULT_SAMPLE_INTERVAL = 1 / 60


def mean_magnitude(data: Sequence[int]) -> float:
    if len(data) == 0:
        return 0.0
    return float(np.mean(np.asarray(data, dtype=np.float64)))


class SpeakingDetector:
    """Edge-triggered speaking detector.

    ``on_change`` fires only when the state flips, never for repeated
    samples on the same side of the threshold.
    """

    def __init__(
        self,
        analyser: FrequencyAnalyser,
        on_change: Callable[[bool], None],
        *,
        threshold: float = DEFAULT_THRESHOLD,
        interval: float = DEFAULT_SAMPLE_INTERVAL,
    ) -> None:
        self._analyser = analyser
        self._on_change = on_change
        self._threshold = threshold
        self._interval = interval
        self._speaking = False
        self._task: asyncio.Task[None] | None = None

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sample(self, data: Sequence[int]) -> bool:
        """Feed one analyser window; return True if the state changed."""

        speaking = mean_magnitude(data) > self._threshold
        if speaking == self._speaking:
            return False
        self._speaking = speaking
        self._on_change(speaking)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._speaking = False

    async def _run(self) -> None:
        while True:
            try:
                data = await self._analyser.read_frequency_data()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Speaking detection stopped: analyser read failed")
                return
            self.sample(data)
            await asyncio.sleep(self._interval)


__all__ = ["DEFAULT_THRESHOLD", "SpeakingDetector", "mean_magnitude"]
