# dubmedia/services/dubbing/multipart.py
from __future__ import annotations

import secrets
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

from dubmedia.domain.errors import OperationCancelledError

_MIME_BY_EXT = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
}


def video_mime_type(path: str | Path) -> str:
    """Upload Content-Type by extension; unknown extensions are sent as mp4."""
    return _MIME_BY_EXT.get(Path(path).suffix.lower(), "video/mp4")


class _Sink(Protocol):
    def write(self, data: bytes) -> int: ...


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\r", "%0D").replace("\n", "%0A")


class MultipartWriter:
    """
    Incremental multipart/form-data encoder writing into any `.write(bytes)` sink
    (BytesIO for small forms, a BytePipe for streamed uploads).
    """

    def __init__(self, sink: _Sink, boundary: Optional[str] = None) -> None:
        self._sink = sink
        self.boundary = boundary or secrets.token_hex(16)
        self._closed = False

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def write_field(self, name: str, value: str) -> None:
        self._part_header(f'form-data; name="{_quote(name)}"')
        self._sink.write(str(value).encode("utf-8"))
        self._sink.write(b"\r\n")

    def write_file(
        self,
        name: str,
        fh: BinaryIO,
        filename: str,
        content_type: str,
        *,
        chunk_size: int = 1024 * 1024,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        """Copy `fh` into a file part chunk by chunk. Returns bytes copied."""
        self._part_header(
            f'form-data; name="{_quote(name)}"; filename="{_quote(filename)}"',
            content_type,
        )
        copied = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError("upload cancelled")
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            self._sink.write(chunk)
            copied += len(chunk)
        self._sink.write(b"\r\n")
        return copied

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sink.write(f"--{self.boundary}--\r\n".encode("ascii"))

    def _part_header(self, disposition: str, content_type: Optional[str] = None) -> None:
        if self._closed:
            raise ValueError("multipart writer already closed")
        lines = [f"--{self.boundary}", f"Content-Disposition: {disposition}"]
        if content_type:
            lines.append(f"Content-Type: {content_type}")
        self._sink.write(("\r\n".join(lines) + "\r\n\r\n").encode("utf-8"))
