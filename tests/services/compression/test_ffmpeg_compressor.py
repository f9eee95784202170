# tests/services/compression/test_ffmpeg_compressor.py
from __future__ import annotations

import os
import threading

import pytest

from conftest import ONE_GIB, FakeRunner, ffmpeg_fail_on, ffmpeg_ok, ffprobe_json, make_sparse
from dubmedia.domain.errors import (
    CommandFailedError,
    CompressionFailedError,
    CompressionOutputError,
    InvalidDurationError,
    OperationCancelledError,
    SourceFileNotFoundError,
    ToolNotFoundError,
)
from dubmedia.services.compression.ffmpeg_compressor import (
    SCALE_1080P_FILTER,
    FFmpegCompressor,
    compressed_output_path,
    needs_compression,
    passlog_files,
)
from dubmedia.services.probe.ffprobe_adapter import FFprobeVideoProbe


def _compressor(runner: FakeRunner) -> FFmpegCompressor:
    return FFmpegCompressor(runner, FFprobeVideoProbe(runner))


def _runner(duration: str = "600.0", ffmpeg=ffmpeg_ok) -> FakeRunner:
    handlers = {"ffprobe": lambda argv: (ffprobe_json(duration), b"")}
    if ffmpeg is not None:
        handlers["ffmpeg"] = ffmpeg
    return FakeRunner(handlers)


# -------------------------
# size checks
# -------------------------

def test_needs_compression_boundary(tmp_path):
    assert needs_compression(make_sparse(tmp_path / "exact.mp4", ONE_GIB)) is False
    assert needs_compression(make_sparse(tmp_path / "over.mp4", ONE_GIB + 1)) is True
    assert needs_compression(make_sparse(tmp_path / "tiny.mp4", 10)) is False


def test_needs_compression_missing_file(tmp_path):
    with pytest.raises(SourceFileNotFoundError):
        needs_compression(tmp_path / "missing.mp4")


def test_output_path_sits_beside_source(tmp_path):
    src = tmp_path / "sub" / "My Talk.final.mov"
    assert compressed_output_path(src) == tmp_path / "sub" / "My Talk.final_compressed.mp4"


# -------------------------
# fast path
# -------------------------

def test_small_file_is_returned_untouched(small_video):
    runner = _runner()
    assert _compressor(runner).compress_for_dubbing(small_video) == small_video
    assert runner.calls == []
    assert sorted(p.name for p in small_video.parent.iterdir()) == [small_video.name]


def test_exactly_one_gib_is_not_compressed(tmp_path):
    src = make_sparse(tmp_path / "edge.mp4", ONE_GIB)
    runner = _runner()
    assert _compressor(runner).compress_for_dubbing(src) == src
    assert runner.calls_for("ffmpeg") == []


# -------------------------
# two-pass encode
# -------------------------

def test_two_pass_encode_at_planned_bitrate(big_video):
    runner = _runner("600.0")
    out = _compressor(runner).compress_for_dubbing(big_video)

    assert out == big_video.parent / "talk_compressed.mp4"
    assert out.read_bytes() == b"compressed"

    probe_call, pass1, pass2 = runner.calls
    assert probe_call[0] == "ffprobe"

    assert pass1[pass1.index("-pass") + 1] == "1"
    assert pass1[pass1.index("-b:v") + 1] == "12454912"
    assert "-an" in pass1
    assert pass1[-3:] == ["-f", "null", os.devnull]
    assert "-vf" not in pass1

    assert pass2[pass2.index("-pass") + 1] == "2"
    assert pass2[pass2.index("-b:v") + 1] == "12454912"
    assert pass2[pass2.index("-b:a") + 1] == "128k"
    assert pass2[pass2.index("-c:a") + 1] == "aac"
    assert pass2[-1] == str(out)

    prefix = str(big_video.parent / "ffmpeg2pass")
    assert pass1[pass1.index("-passlogfile") + 1] == prefix
    assert pass2[pass2.index("-passlogfile") + 1] == prefix


def test_long_video_gets_letterbox_filter_on_both_passes(big_video):
    runner = _runner("7200")
    _compressor(runner).compress_for_dubbing(big_video)
    pass1, pass2 = runner.calls_for("ffmpeg")
    for argv in (pass1, pass2):
        assert argv[argv.index("-vf") + 1] == SCALE_1080P_FILTER
        assert argv[argv.index("-b:v") + 1] == "920576"
    assert SCALE_1080P_FILTER.startswith("scale=1920:1080:force_original_aspect_ratio=decrease,pad=1920:1080:")


def test_pass_logs_removed_after_success(big_video):
    _compressor(_runner()).compress_for_dubbing(big_video)
    assert not any(p.exists() for p in passlog_files(big_video))


def test_source_is_never_modified(big_video):
    before = big_video.stat()
    _compressor(_runner()).compress_for_dubbing(big_video)
    after = big_video.stat()
    assert (before.st_size, before.st_mtime_ns) == (after.st_size, after.st_mtime_ns)


def test_repeated_calls_rerun_both_passes(big_video):
    runner = _runner()
    comp = _compressor(runner)
    first = comp.compress_for_dubbing(big_video)
    second = comp.compress_for_dubbing(big_video)
    assert first == second
    assert len(runner.calls_for("ffmpeg")) == 4
    assert len(runner.calls_for("ffprobe")) == 2


# -------------------------
# failures
# -------------------------

def test_pass1_failure_tags_pass_and_cleans_up(big_video):
    runner = _runner(ffmpeg=ffmpeg_fail_on("1", b"Unknown encoder 'libx264'"))
    with pytest.raises(CompressionFailedError) as ei:
        _compressor(runner).compress_for_dubbing(big_video)
    assert ei.value.pass_name == "1"
    assert "Unknown encoder" in ei.value.stderr
    assert len(runner.calls_for("ffmpeg")) == 1
    assert not any(p.exists() for p in passlog_files(big_video))


def test_pass2_failure_tags_pass_and_cleans_up(big_video):
    runner = _runner(ffmpeg=ffmpeg_fail_on("2", b"No space left on device"))
    with pytest.raises(CompressionFailedError) as ei:
        _compressor(runner).compress_for_dubbing(big_video)
    assert ei.value.pass_name == "2"
    assert "No space left" in str(ei.value)
    assert not any(p.exists() for p in passlog_files(big_video))


def test_missing_ffmpeg_is_tool_not_found(big_video):
    with pytest.raises(ToolNotFoundError) as ei:
        _compressor(_runner(ffmpeg=None)).compress_for_dubbing(big_video)
    assert ei.value.tool == "ffmpeg"


def test_missing_output_after_success(big_video):
    runner = _runner(ffmpeg=lambda argv: (b"", b""))
    with pytest.raises(CompressionOutputError):
        _compressor(runner).compress_for_dubbing(big_video)


def test_zero_duration_is_rejected_before_encoding(big_video):
    runner = _runner("0")
    with pytest.raises(InvalidDurationError):
        _compressor(runner).compress_for_dubbing(big_video)
    assert runner.calls_for("ffmpeg") == []


def test_too_long_video_is_rejected_before_encoding(big_video):
    runner = _runner("100000")
    with pytest.raises(CompressionFailedError) as ei:
        _compressor(runner).compress_for_dubbing(big_video)
    assert ei.value.pass_name == "plan"
    assert runner.calls_for("ffmpeg") == []


def test_missing_source(tmp_path):
    with pytest.raises(SourceFileNotFoundError):
        _compressor(_runner()).compress_for_dubbing(tmp_path / "gone.mp4")


def test_pass2_failure_removes_partial_output(big_video):
    def _dies_mid_write(argv):
        if argv[argv.index("-pass") + 1] == "2":
            with open(argv[-1], "wb") as fh:
                fh.write(b"half an mp4")
            raise CommandFailedError(argv, 1, b"Conversion failed!")
        return ffmpeg_ok(argv)

    with pytest.raises(CompressionFailedError) as ei:
        _compressor(_runner(ffmpeg=_dies_mid_write)).compress_for_dubbing(big_video)
    assert ei.value.pass_name == "2"
    assert not compressed_output_path(big_video).exists()
    assert sorted(p.name for p in big_video.parent.iterdir()) == [big_video.name]


# -------------------------
# cancellation
# -------------------------

def _cancelled_on(pass_no: str, ev: threading.Event):
    """ffmpeg stand-in that gets killed during `pass_no` after leaving its files behind."""
    def _handler(argv):
        ffmpeg_ok(argv)
        if argv[argv.index("-pass") + 1] == pass_no:
            ev.set()
            raise OperationCancelledError(f"ffmpeg pass {pass_no} cancelled")
        return b"", b""
    return _handler


@pytest.mark.parametrize("pass_no", ["1", "2"])
def test_cancel_mid_pass_propagates_and_cleans_up(big_video, pass_no):
    ev = threading.Event()
    runner = _runner(ffmpeg=_cancelled_on(pass_no, ev))

    with pytest.raises(OperationCancelledError):
        _compressor(runner).compress_for_dubbing(big_video, cancel=ev)

    assert len(runner.calls_for("ffmpeg")) == int(pass_no)
    assert not any(p.exists() for p in passlog_files(big_video))
    assert not compressed_output_path(big_video).exists()


def test_cancel_event_reaches_every_process(big_video):
    ev = threading.Event()
    runner = _runner()
    _compressor(runner).compress_for_dubbing(big_video, cancel=ev)
    assert len(runner.cancels) == 3  # ffprobe + two ffmpeg passes
    assert all(c is ev for c in runner.cancels)
