# dubmedia/domain/dataclasses/dubbing_config.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DubbingConfig:
    """
    Per-client request options, applied to every submission.
    start_time/end_time are seconds; 0 means unset.
    """
    test_mode: bool = False  # watermark + normal resolution, lower API cost
    start_time: int = 0
    end_time: int = 0
    num_speakers: int = 0
    drop_background_audio: bool = False

    @property
    def effective_num_speakers(self) -> int:
        return self.num_speakers if self.num_speakers > 0 else 1
