# tests/conftest.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from dubmedia.domain.errors import CommandFailedError, ToolNotFoundError

ONE_GIB = 1024 * 1024 * 1024


def make_sparse(path: Path, size: int) -> Path:
    """Create a file of `size` bytes without writing them (sparse on most filesystems)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        f.truncate(size)
    return path


def ffprobe_json(duration: str = "600.0", streams: Optional[list] = None) -> bytes:
    if streams is None:
        streams = [
            {"codec_type": "audio", "codec_name": "aac"},
            {"codec_type": "video", "codec_name": "h264", "width": 3840, "height": 2160},
        ]
    return json.dumps({"format": {"duration": duration, "size": "1"}, "streams": streams}).encode()


class FakeRunner:
    """
    Recording CommandRunnerPort. `handlers` maps a tool name to a callable
    receiving the full argv and returning (stdout, stderr) or raising.
    """

    def __init__(self, handlers: Optional[Dict[str, Callable[[List[str]], Tuple[bytes, bytes]]]] = None):
        self.handlers = dict(handlers or {})
        self.calls: List[List[str]] = []
        self.cancels: list = []

    def _dispatch(self, args: Sequence[str], cancel=None) -> Tuple[bytes, bytes]:
        argv = [str(a) for a in args]
        self.calls.append(argv)
        self.cancels.append(cancel)
        tool = Path(argv[0]).name
        handler = self.handlers.get(tool)
        if handler is None:
            raise ToolNotFoundError(tool)
        return handler(argv)

    def execute(self, args, *, cancel=None) -> bytes:
        return self._dispatch(args, cancel)[0]

    def execute_with_stderr(self, args, *, cancel=None) -> Tuple[bytes, bytes]:
        return self._dispatch(args, cancel)

    def calls_for(self, tool: str) -> List[List[str]]:
        return [c for c in self.calls if Path(c[0]).name == tool]


def ffmpeg_ok(argv: List[str]) -> Tuple[bytes, bytes]:
    """Mimic ffmpeg: pass 1 leaves pass logs, pass 2 writes the output file."""
    prefix = argv[argv.index("-passlogfile") + 1]
    if argv[argv.index("-pass") + 1] == "1":
        Path(f"{prefix}-0.log").write_text("stats")
        Path(f"{prefix}-0.log.mbtree").write_bytes(b"\x00")
    else:
        Path(argv[-1]).write_bytes(b"compressed")
    return b"", b""


def ffmpeg_fail_on(pass_no: str, stderr: bytes = b"encoder exploded"):
    def _handler(argv: List[str]) -> Tuple[bytes, bytes]:
        if argv[argv.index("-pass") + 1] == pass_no:
            if pass_no == "1":
                ffmpeg_ok(argv)  # pass logs exist even when pass 1 dies
            raise CommandFailedError(argv, 1, stderr)
        return ffmpeg_ok(argv)
    return _handler


class FakeResponse:
    def __init__(self, status_code: int = 200, body: bytes | str | dict = b"", chunks: Optional[List[bytes]] = None):
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode()
        self.status_code = status_code
        self.content = body
        self._chunks = chunks
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", "replace")

    def iter_content(self, chunk_size: int = 1):
        if self._chunks is not None:
            yield from self._chunks
            return
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class FakeSession:
    """
    Minimal requests.Session stand-in. Responses are queued per (METHOD, path)
    and popped in order; request bodies (including generators) are drained and
    recorded.
    """

    def __init__(self, base_url: str = "https://api.test"):
        self.base_url = base_url
        self.routes: Dict[Tuple[str, str], List[object]] = {}
        self.requests: List[dict] = []

    def add(self, method: str, path: str, response) -> None:
        self.routes.setdefault((method.upper(), path), []).append(response)

    def _handle(self, method: str, url: str, data=None, headers=None, **kwargs):
        path = url[len(self.base_url):] if url.startswith(self.base_url) else url
        body = b""
        if isinstance(data, (bytes, bytearray)):
            body = bytes(data)
        elif data is not None:
            body = b"".join(data)
        self.requests.append({"method": method, "path": path, "headers": dict(headers or {}), "body": body, **kwargs})
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        resp = queue.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def post(self, url, data=None, headers=None, **kwargs):
        return self._handle("POST", url, data=data, headers=headers, **kwargs)

    def get(self, url, headers=None, **kwargs):
        return self._handle("GET", url, headers=headers, **kwargs)

    def paths(self) -> List[str]:
        return [f"{r['method']} {r['path']}" for r in self.requests]


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def big_video(tmp_path) -> Path:
    return make_sparse(tmp_path / "talk.mov", ONE_GIB + 1)


@pytest.fixture()
def small_video(tmp_path) -> Path:
    p = tmp_path / "clip.mp4"
    p.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1024)
    return p
