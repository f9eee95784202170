from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CompressionParams:
    video_bitrate: int  # bits per second
    use_1080p: bool     # downscale/letterbox into 1920x1080
