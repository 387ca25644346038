from typing import Callable, Optional

OverallProgressCallback = Callable[[int], None]

PRE_COMPLETION_CAP = 99


class ProgressTracker:
    """Folds per-part progress into one overall percentage.

    The reported value never goes backwards and stays at or below 99 until
    ``finish`` is called after the store finalized the object.
    """

    def __init__(self, total_parts: int, callback: Optional[OverallProgressCallback] = None):
        self.total_parts = total_parts
        self.callback = callback
        self.percent = 0

    def part_progress(self, part_index: int, part_percent: float) -> None:
        if self.total_parts <= 0:
            return
        fraction = min(max(part_percent, 0.0), 100.0) / 100
        overall = (part_index + fraction) / self.total_parts * 100
        self._report(min(round(overall), PRE_COMPLETION_CAP))

    def for_part(self, part_index: int) -> Callable[[float], None]:
        return lambda percent: self.part_progress(part_index, percent)

    def finish(self) -> None:
        self._report(100)

    def _report(self, percent: int) -> None:
        if percent <= self.percent:
            return
        self.percent = percent
        if self.callback:
            self.callback(percent)
