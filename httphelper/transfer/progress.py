# httphelper/transfer/progress.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ProgressSnapshot:
    """
    Timing and download-progress bookkeeping for the most recent transfer.

    Timestamps are wall-clock seconds (time.time()). Everything is None until
    the first execute(); reset() runs at the start of every execute().
    The download counters are only filled while a progress callback is wired.
    """

    start_time: float | None = None
    end_time: float | None = None
    downloaded_bytes: int | None = None
    # wall-clock time at which the last chunk was counted
    download_time_check: float | None = None

    def reset(self) -> None:
        self.start_time = None
        self.end_time = None
        self.downloaded_bytes = None
        self.download_time_check = None

    @property
    def elapsed(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return self.end_time - self.start_time
