# dubmedia/domain/errors.py
from __future__ import annotations

from typing import Optional, Sequence


class DubMediaError(Exception):
    """Base error for the dubbing submission pipeline."""


class OperationCancelledError(DubMediaError):
    """Raised when a caller-supplied cancel event aborts in-flight work."""


class SourceFileNotFoundError(DubMediaError, FileNotFoundError):
    """Raised when the local video to probe/compress/upload does not exist."""

    def __init__(self, path) -> None:
        super().__init__(f"video file not found: {path}")
        self.path = path


class ToolNotFoundError(DubMediaError):
    """Raised when an external binary (ffmpeg/ffprobe) cannot be spawned."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"{tool} not found in PATH")
        self.tool = tool


class CommandFailedError(DubMediaError):
    """A child process exited non-zero. Carries captured stderr."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: bytes | str = b"") -> None:
        self.cmd = list(args)
        self.returncode = returncode
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", "replace")
        self.stderr = stderr
        tool = self.cmd[0] if self.cmd else "command"
        super().__init__(f"{tool} exited with code {returncode}")


class ProbeError(DubMediaError):
    """ffprobe ran but its report could not be used."""


class InvalidDurationError(DubMediaError, ValueError):
    """Duration is zero, negative or not finite; no bitrate can be planned."""


class CompressionFailedError(DubMediaError):
    """An encode step failed. `pass_name` is "1", "2" or "plan"."""

    def __init__(self, pass_name: str, stderr: str = "", message: Optional[str] = None) -> None:
        self.pass_name = pass_name
        self.stderr = stderr
        text = message or f"video compression failed (pass {pass_name})"
        if stderr:
            text = f"{text}: {stderr.strip()}"
        super().__init__(text)


class CompressionOutputError(DubMediaError, OSError):
    """Encoder reported success but the compressed file is missing."""


class InvalidAPIKeyError(DubMediaError):
    """Remote API answered 401."""

    def __init__(self, message: str = "invalid API key") -> None:
        super().__init__(message)


class DubbingNotFoundError(DubMediaError):
    """Remote API answered 404 for the dubbing resource."""

    def __init__(self, dubbing_id: Optional[str] = None) -> None:
        msg = "dubbing job not found" if not dubbing_id else f"dubbing job not found: {dubbing_id}"
        super().__init__(msg)
        self.dubbing_id = dubbing_id


class DubbingInProgressError(DubMediaError):
    """Download attempted while the job is still dubbing."""

    def __init__(self, dubbing_id: Optional[str] = None) -> None:
        super().__init__("dubbing still in progress")
        self.dubbing_id = dubbing_id


class DubbingFailedError(DubMediaError):
    """The job reached the terminal failed state."""

    def __init__(self, remote_message: Optional[str] = None) -> None:
        self.remote_message = remote_message or None
        text = "dubbing job failed"
        if self.remote_message:
            text = f"{text}: {self.remote_message}"
        super().__init__(text)


class DubbingAPIError(DubMediaError):
    """Any other failed round trip to the dubbing API, tagged with the step."""

    def __init__(self, step: str, message: str, status_code: Optional[int] = None) -> None:
        self.step = step
        self.message = message
        self.status_code = status_code
        if status_code is not None:
            text = f"{step} failed (status {status_code}): {message}"
        else:
            text = f"{step} failed: {message}"
        super().__init__(text)
