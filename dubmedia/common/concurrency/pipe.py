from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Callable, Iterator, Optional, TypeVar

R = TypeVar("R")

log = logging.getLogger(__name__)

_EOF = object()


class PipeAbortedError(Exception):
    """Raised on the reader side when the writer aborted the stream."""


class _Abort:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class BytePipe:
    """
    In-memory, bounded byte channel between one writer and one reader thread.

    - write(data) blocks while `max_chunks` chunks are waiting to be read
    - close_writer() ends the stream; the reader's iterator then stops
    - close_writer(error) aborts it; the reader's iterator raises PipeAbortedError
    - close_reader() makes any further write() raise BrokenPipeError, so a
      producer never blocks forever on a reader that went away
    - iterating the pipe yields chunks in write order (usable as a
      streaming request body)
    """

    def __init__(self, max_chunks: int = 8, put_timeout_sec: float = 0.1) -> None:
        self._q: "queue.Queue[object]" = queue.Queue(maxsize=max(1, max_chunks))
        self._put_timeout = put_timeout_sec
        self._reader_closed = threading.Event()
        self._writer_closed = False

    # -------------------------
    # Writer side
    # -------------------------
    def write(self, data: bytes) -> int:
        if self._writer_closed:
            raise ValueError("write to closed pipe")
        if not data:
            return 0
        self._put(bytes(data))
        return len(data)

    def close_writer(self, error: Optional[BaseException] = None) -> None:
        """Signal end-of-stream (or abort with `error`). Safe to call multiple times."""
        if self._writer_closed:
            return
        self._writer_closed = True
        try:
            self._put(_EOF if error is None else _Abort(error))
        except BrokenPipeError:
            pass  # nobody is reading anymore

    def _put(self, item: object) -> None:
        while True:
            if self._reader_closed.is_set():
                raise BrokenPipeError("pipe reader closed")
            try:
                self._q.put(item, timeout=self._put_timeout)
            except queue.Full:
                continue
            if self._reader_closed.is_set():
                raise BrokenPipeError("pipe reader closed")
            return

    # -------------------------
    # Reader side
    # -------------------------
    def close_reader(self) -> None:
        self._reader_closed.set()
        # unblock a writer waiting on a full queue
        while True:
            try:
                self._q.get_nowait()
            except queue.Empty:
                break

    def __iter__(self) -> Iterator[bytes]:
        while not self._reader_closed.is_set():
            item = self._q.get()
            if item is _EOF:
                return
            if isinstance(item, _Abort):
                raise PipeAbortedError(str(item.error) or type(item.error).__name__) from item.error
            yield item  # type: ignore[misc]


def start_producer(fn: Callable[[], R], *, name: Optional[str] = None) -> "Future[R]":
    """
    Run `fn` on a daemon thread. The returned Future is the single-slot
    completion signal: it holds fn's result or the exception it raised.
    """
    fut: "Future[R]" = Future()
    fut.set_running_or_notify_cancel()

    def _target() -> None:
        try:
            fut.set_result(fn())
        except Exception as e:
            log.debug("producer %s failed: %s", name or "producer", e)
            fut.set_exception(e)

    t = threading.Thread(target=_target, name=name or "producer", daemon=True)
    t.start()
    return fut
