import time
from datetime import timedelta
from typing import Callable, Optional
from core.results import SchedulingProgressReport, SchedulingStage
from utils.constants import PROGRESS_THROTTLE_MS

ProgressCallback = Callable[[SchedulingProgressReport], None]


class ProgressReporter:
    """
    One-way progress channel from the engine to an optional observer.

    Reports within the throttle window are dropped unless the stage changed
    or the caller forces them. A reporter can be scaled so a sub-stage fills
    only part of the overall range (hybrid runs map greedy to 0-50 % and the
    genetic pass to 50-100 %).
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        throttle_ms: int = PROGRESS_THROTTLE_MS,
        offset: float = 0.0,
        factor: float = 1.0,
        prefix: str = "",
        started: Optional[float] = None,
    ):
        self.callback = callback
        self.throttle_ms = throttle_ms
        self.offset = offset
        self.factor = factor
        self.prefix = prefix
        self.started = started if started is not None else time.monotonic()
        self._last_sent = 0.0
        self._last_stage: Optional[SchedulingStage] = None

    @property
    def enabled(self) -> bool:
        return self.callback is not None

    def elapsed(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self.started)

    def scaled(self, offset: float, factor: float, prefix: str = "") -> "ProgressReporter":
        """A child reporter sharing the observer and clock but mapped onto [offset, offset + 100 * factor]."""
        return ProgressReporter(
            self.callback,
            self.throttle_ms,
            offset=self.offset + offset * self.factor,
            factor=self.factor * factor,
            prefix=prefix,
            started=self.started,
        )

    def report(self, stage: SchedulingStage, percentage: float, description: str = "", force: bool = False, **fields):
        if self.callback is None:
            return
        now = time.monotonic()
        stage_changed = stage != self._last_stage
        if not (force or stage_changed) and (now - self._last_sent) * 1000 < self.throttle_ms:
            return
        self._last_sent = now
        self._last_stage = stage
        text = f"{self.prefix}{description}" if self.prefix else description
        report = SchedulingProgressReport(
            progress_percentage=self.offset + percentage * self.factor,
            current_stage=stage,
            stage_description=text,
            elapsed_time=self.elapsed(),
            **fields,
        )
        self.callback(report)

    def fail(self, message: str):
        if self.callback is None:
            return
        report = SchedulingProgressReport(
            progress_percentage=0.0,
            current_stage=SchedulingStage.FAILED,
            stage_description=message,
            elapsed_time=self.elapsed(),
            has_errors=True,
            error_message=message,
        )
        self.callback(report)
