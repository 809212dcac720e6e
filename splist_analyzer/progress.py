"""Progress reporting for long analysis runs."""
from typing import Callable, Optional

from .config import safe_print

# (phase, message, current, total)
ProgressCallback = Callable[[str, str, int, int], None]


class AnalysisProgress:
    """Tracks an overall range and a range for the current phase.

    Every update is forwarded to ``callback`` when one is given. Progress is
    informational only and never affects analysis results.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.overall_total = 0
        self.overall_position = 0
        self.overall_status = ""
        self.current_total = 0
        self.current_position = 0
        self.current_status = ""

    def _notify(self, phase: str, message: str, current: int, total: int) -> None:
        if self.callback:
            self.callback(phase, message, current, total)

    def set_overall_range(self, low: int, high: int) -> None:
        self.overall_total = high - low
        self.overall_position = low

    def set_overall(self, position: int, status: str) -> None:
        self.overall_position = position
        self.overall_status = status
        self._notify("overall", status, position, self.overall_total)

    def set_current_range(self, low: int, high: int) -> None:
        self.current_total = high - low
        self.current_position = low

    def set_current(self, position: int, status: str) -> None:
        self.current_position = position
        self.current_status = status
        self._notify("current", status, position, self.current_total)


def console_progress(phase: str, message: str, current: int, total: int) -> None:
    """Progress callback printing phase changes and every 50th thread."""
    if phase == "overall":
        safe_print(f"[SPLIST] {message} ({current}/{total})")
    elif total and (current == total or current % 50 == 0):
        safe_print(f"[SPLIST]   {message} ({current}/{total})")
