"""Advisory progress reporting for pipeline runs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from dnd_forge.core.logging import get_logger


logger = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class ProgressUpdate:
    percent: int
    message: str


class ProgressReporter:
    """Forwards stage progress to an optional callback.

    Percentages never decrease within a run: a report below the last one is
    raised to the last value. Values are clamped to 0..100.

    Attributes:
        history: Every update delivered, in order.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._percent = 0
        self.history: list[ProgressUpdate] = []

    @property
    def percent(self) -> int:
        return self._percent

    def report(self, percent: int, message: str) -> None:
        self._percent = max(self._percent, min(100, max(0, int(percent))))
        update = ProgressUpdate(self._percent, message)
        self.history.append(update)
        logger.debug("Progress", percent=update.percent, stage_message=message)

        if self._callback is None:
            return
        try:
            self._callback(update.percent, update.message)
        except Exception as exc:
            # Progress is advisory; a broken listener must not fail the run.
            logger.warning("Progress callback failed", error=str(exc))


__all__ = ["ProgressReporter", "ProgressUpdate", "ProgressCallback"]
