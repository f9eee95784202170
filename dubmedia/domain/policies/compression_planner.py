# dubmedia/domain/policies/compression_planner.py
from __future__ import annotations

import math

from dubmedia.domain.dataclasses.compression import CompressionParams
from dubmedia.domain.errors import InvalidDurationError

# Remote upload ceiling (1 GiB) and the size we aim for below it (900 MiB).
MAX_FILE_SIZE_BYTES = 1024 * 1024 * 1024
TARGET_SIZE_BYTES = 900 * 1024 * 1024

AUDIO_BITRATE = 128_000        # bps, matches the "-b:a 128k" of the final pass
MIN_VIDEO_BITRATE = 500_000    # below this we always downscale
MIN_4K_BITRATE = 2_000_000     # below this 1080p looks better than low-bitrate 4K


def plan_compression(duration_sec: float, target_size_bytes: int = TARGET_SIZE_BYTES) -> CompressionParams:
    """
    Pick the video bitrate and resolution that land a re-encode on
    `target_size_bytes` for a clip of `duration_sec` seconds.

        total = floor(target * 8 / duration)
        video = total - AUDIO_BITRATE
        use_1080p = video < MIN_4K_BITRATE

    Original resolution is kept unless the bitrate gets too thin for it.
    Raises InvalidDurationError for a zero, negative or non-finite duration,
    and for one so small that the bitrate overflows.
    """
    if not math.isfinite(duration_sec) or duration_sec <= 0:
        raise InvalidDurationError(f"cannot plan compression for duration {duration_sec!r}s")

    quotient = target_size_bytes * 8 / duration_sec
    if not math.isfinite(quotient):
        raise InvalidDurationError(f"duration {duration_sec!r}s is too small to plan a bitrate")
    total_bitrate = math.floor(quotient)
    video_bitrate = total_bitrate - AUDIO_BITRATE

    if video_bitrate < MIN_VIDEO_BITRATE:
        return CompressionParams(video_bitrate=video_bitrate, use_1080p=True)
    return CompressionParams(video_bitrate=video_bitrate, use_1080p=video_bitrate < MIN_4K_BITRATE)
