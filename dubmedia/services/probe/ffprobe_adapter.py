# dubmedia/services/probe/ffprobe_adapter.py
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional

from dubmedia.common.logging import get_logger
from dubmedia.domain.entities.video_info import VideoInfo
from dubmedia.domain.errors import CommandFailedError, ProbeError, SourceFileNotFoundError
from dubmedia.domain.ports.probe import VideoProbePort
from dubmedia.domain.ports.process import CommandRunnerPort

logger = get_logger(__name__)


def build_ffprobe_cmd(path: str | Path, ffprobe_bin: str = "ffprobe") -> list[str]:
    """Quiet JSON report with container format and all streams."""
    return [
        ffprobe_bin,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]


class FFprobeVideoProbe(VideoProbePort):
    """
    Infrastructure adapter implementing VideoProbePort using `ffprobe`.
    Duration and dimensions come from the report; size comes from stat().
    """

    def __init__(self, runner: CommandRunnerPort, ffprobe_bin: str = "ffprobe"):
        self.runner = runner
        self.ffprobe_bin = ffprobe_bin

    # ---- Port API -------------------------------------------------------------
    def probe(self, path: Path, *, cancel: Optional[threading.Event] = None) -> VideoInfo:
        path = Path(path)
        try:
            st = path.stat()
        except FileNotFoundError as e:
            raise SourceFileNotFoundError(path) from e

        try:
            out = self.runner.execute(build_ffprobe_cmd(path, self.ffprobe_bin), cancel=cancel)
        except CommandFailedError as e:
            raise ProbeError(f"ffprobe failed for {path}: {e.stderr.strip() or e}") from e

        try:
            data = json.loads(out or b"{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"failed to parse ffprobe output for {path}") from e

        info = self._parse_ffprobe_json(data, path, st.st_size)
        logger.debug(
            "probe %s: %.2fs %dx%d %d bytes",
            path, info.duration_sec, info.width, info.height, info.size_bytes,
        )
        return info

    # ---- Parsing helpers ------------------------------------------------------
    @staticmethod
    def _parse_ffprobe_json(data: dict, path: Path, size_bytes: int) -> VideoInfo:
        fmt = (data or {}).get("format") or {}
        streams = list((data or {}).get("streams") or [])

        duration = 0.0
        raw = fmt.get("duration")
        if raw not in (None, ""):
            try:
                duration = float(raw)
            except (TypeError, ValueError) as e:
                raise ProbeError(f"failed to parse duration: {raw}") from e

        # first stream that exposes both dimensions is "the" video stream
        width = height = 0
        for s in streams:
            w, h = _parse_int(s.get("width")), _parse_int(s.get("height"))
            if w > 0 and h > 0:
                width, height = w, h
                break

        return VideoInfo(
            path=path,
            duration_sec=duration,
            size_bytes=size_bytes,
            width=width,
            height=height,
        )


def _parse_int(x) -> int:
    try:
        if x is None:
            return 0
        return int(x)
    except (TypeError, ValueError):
        return 0
