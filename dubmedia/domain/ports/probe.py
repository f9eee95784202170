from __future__ import annotations
import threading
from pathlib import Path
from typing import Optional, Protocol
from dubmedia.domain.entities.video_info import VideoInfo

class VideoProbePort(Protocol):
    def probe(self, path: Path, *, cancel: Optional[threading.Event] = None) -> VideoInfo: ...
