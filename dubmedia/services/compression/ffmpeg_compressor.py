# dubmedia/services/compression/ffmpeg_compressor.py
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import List, Optional

from dubmedia.common.logging import get_logger
from dubmedia.domain.dataclasses.compression import CompressionParams
from dubmedia.domain.errors import (
    CommandFailedError,
    CompressionFailedError,
    CompressionOutputError,
    SourceFileNotFoundError,
)
from dubmedia.domain.policies.compression_planner import (
    MAX_FILE_SIZE_BYTES,
    TARGET_SIZE_BYTES,
    plan_compression,
)
from dubmedia.domain.ports.compressor import CompressorPort
from dubmedia.domain.ports.probe import VideoProbePort
from dubmedia.domain.ports.process import CommandRunnerPort

logger = get_logger(__name__)

COMPRESSED_SUFFIX = "_compressed"
PASSLOG_PREFIX = "ffmpeg2pass"
# Fit into 1920x1080 keeping aspect ratio, pad the rest with bars.
SCALE_1080P_FILTER = (
    "scale=1920:1080:force_original_aspect_ratio=decrease,"
    "pad=1920:1080:(ow-iw)/2:(oh-ih)/2"
)


def needs_compression(path: str | Path, max_size_bytes: int = MAX_FILE_SIZE_BYTES) -> bool:
    """True when the file is strictly larger than the upload ceiling."""
    p = Path(path)
    try:
        return p.stat().st_size > max_size_bytes
    except FileNotFoundError as e:
        raise SourceFileNotFoundError(p) from e


def compressed_output_path(source: Path) -> Path:
    return source.parent / f"{source.stem}{COMPRESSED_SUFFIX}.mp4"


def passlog_files(source: Path) -> List[Path]:
    """The two artifacts ffmpeg/libx264 leave next to the source in pass 1."""
    prefix = source.parent / PASSLOG_PREFIX
    return [Path(f"{prefix}-0.log"), Path(f"{prefix}-0.log.mbtree")]


class FFmpegCompressor(CompressorPort):
    """
    Shrinks a video under the upload ceiling with a two-pass libx264 encode.

    Files at or under `max_size_bytes` are returned untouched and no encoder
    runs. Larger files are probed, planned, and encoded to
    `<dir>/<stem>_compressed.mp4`. Pass-log artifacts are removed after every
    attempt. The source is never modified.

    Not safe to run concurrently for the same source path: both runs would
    share the output and pass-log filenames.
    """

    def __init__(
        self,
        runner: CommandRunnerPort,
        probe: VideoProbePort,
        ffmpeg_bin: str = "ffmpeg",
        max_size_bytes: int = MAX_FILE_SIZE_BYTES,
        target_size_bytes: int = TARGET_SIZE_BYTES,
    ):
        self.runner = runner
        self.probe = probe
        self.ffmpeg_bin = ffmpeg_bin
        self.max_size_bytes = max_size_bytes
        self.target_size_bytes = target_size_bytes

    def needs_compression(self, path: str | Path) -> bool:
        return needs_compression(path, self.max_size_bytes)

    def compress_for_dubbing(self, path: str | Path, *, cancel: Optional[threading.Event] = None) -> Path:
        source = Path(path)
        if not self.needs_compression(source):
            return source

        info = self.probe.probe(source, cancel=cancel)
        params = plan_compression(info.duration_sec, self.target_size_bytes)
        if params.video_bitrate <= 0:
            raise CompressionFailedError(
                "plan",
                message=f"video too long to fit {self.target_size_bytes} bytes ({info.duration_sec:.0f}s)",
            )

        output = compressed_output_path(source)
        logger.info(
            "Compressing %s (%d bytes, %.1fs) -> %s at %d bps%s",
            source, info.size_bytes, info.duration_sec, output,
            params.video_bitrate, " scaled to 1080p" if params.use_1080p else "",
        )

        try:
            self._run_pass("1", self._pass1_args(source, params), cancel)
            try:
                self._run_pass("2", self._pass2_args(source, output, params), cancel)
            except Exception:
                self._remove_partial(output)
                raise
        finally:
            self._cleanup_passlogs(source)

        if not output.is_file():
            raise CompressionOutputError(f"compressed file not created: {output}")
        return output

    # ---- command lines --------------------------------------------------------
    def _common_args(self, source: Path, params: CompressionParams, pass_no: str) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-y",
            "-i", str(source),
            "-c:v", "libx264",
            "-b:v", str(params.video_bitrate),
            "-preset", "medium",
            "-pass", pass_no,
            "-passlogfile", str(source.parent / PASSLOG_PREFIX),
        ]

    def _pass1_args(self, source: Path, params: CompressionParams) -> List[str]:
        args = self._common_args(source, params, "1")
        args.append("-an")
        if params.use_1080p:
            args += ["-vf", SCALE_1080P_FILTER]
        args += ["-f", "null", os.devnull]
        return args

    def _pass2_args(self, source: Path, output: Path, params: CompressionParams) -> List[str]:
        args = self._common_args(source, params, "2")
        args += ["-c:a", "aac", "-b:a", "128k"]
        if params.use_1080p:
            args += ["-vf", SCALE_1080P_FILTER]
        args.append(str(output))
        return args

    # ---- internals ------------------------------------------------------------
    def _run_pass(self, pass_no: str, args: List[str], cancel: Optional[threading.Event]) -> None:
        try:
            self.runner.execute_with_stderr(args, cancel=cancel)
        except CommandFailedError as e:
            raise CompressionFailedError(pass_no, e.stderr) from e

    @staticmethod
    def _remove_partial(output: Path) -> None:
        try:
            output.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial output %s: %s", output, e)

    @staticmethod
    def _cleanup_passlogs(source: Path) -> None:
        for p in passlog_files(source):
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove pass log %s: %s", p, e)
