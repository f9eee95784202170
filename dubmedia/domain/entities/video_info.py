# dubmedia/domain/entities/video_info.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class VideoInfo:
    """
    Technical facts about a local video, produced fresh by every probe.
    Width/height stay 0 when no stream exposes dimensions.
    `size_bytes` comes from the filesystem, not from the probe report.
    """
    path: Path
    duration_sec: float = 0.0
    size_bytes: int = 0
    width: int = 0
    height: int = 0

    @property
    def has_video_stream(self) -> bool:
        return self.width > 0 and self.height > 0
