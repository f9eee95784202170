from __future__ import annotations
from enum import StrEnum


class DubbingStatus(StrEnum):
    dubbing = "dubbing"  # accepted, still processing
    dubbed = "dubbed"
    failed = "failed"
