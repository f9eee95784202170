# dubmedia/domain/entities/dubbing_job.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from dubmedia.domain.enums import DubbingStatus


@dataclass(frozen=True)
class DubbingJob:
    """
    Snapshot of a remote dubbing job. Never cached: every read is a new fetch.
    `status` is the remote string verbatim; compare against DubbingStatus.
    Transitions: dubbing -> dubbed | failed (both terminal).
    """
    id: str
    status: str
    target_languages: List[str] = field(default_factory=list)
    error: Optional[str] = None
    expected_duration_sec: Optional[float] = None
    name: Optional[str] = None

    @property
    def in_progress(self) -> bool:
        return self.status == DubbingStatus.dubbing

    @property
    def succeeded(self) -> bool:
        return self.status == DubbingStatus.dubbed

    @property
    def failed(self) -> bool:
        return self.status == DubbingStatus.failed

    @property
    def is_terminal(self) -> bool:
        return self.succeeded or self.failed
