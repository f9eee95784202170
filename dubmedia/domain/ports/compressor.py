from __future__ import annotations
import threading
from pathlib import Path
from typing import Optional, Protocol

class CompressorPort(Protocol):
    # Returns the path to upload: the source itself, or a new compressed file.
    def compress_for_dubbing(self, path: Path, *, cancel: Optional[threading.Event] = None) -> Path: ...
