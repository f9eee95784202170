# dubmedia/services/process/subprocess_runner.py
from __future__ import annotations

import errno
import shlex
import subprocess
import threading
from pathlib import Path
from typing import Optional, Sequence, Tuple

from dubmedia.common.logging import get_logger
from dubmedia.domain.errors import CommandFailedError, OperationCancelledError, ToolNotFoundError
from dubmedia.domain.ports.process import CommandRunnerPort

logger = get_logger(__name__)

# Fallback markers for spawn errors that don't arrive as FileNotFoundError.
_NOT_FOUND_MARKERS = (
    "executable file not found",
    "not found",
    "no such file or directory",
)


def is_tool_not_found(err: BaseException) -> bool:
    """
    Classify a spawn failure as "binary missing".
    Prefers the platform error kind; substring matching is the last resort.
    """
    if isinstance(err, FileNotFoundError):
        return True
    if isinstance(err, OSError) and err.errno == errno.ENOENT:
        return True
    text = str(err).lower()
    return any(m in text for m in _NOT_FOUND_MARKERS)


class SubprocessRunner(CommandRunnerPort):
    """
    Infrastructure adapter implementing CommandRunnerPort with `subprocess`.
    Children run in the calling thread; a set cancel event kills the child.
    """

    def __init__(self, timeout_sec: Optional[float] = None, poll_interval_sec: float = 0.2):
        self.timeout_sec = timeout_sec
        self.poll_interval_sec = poll_interval_sec

    # ---- Port API -------------------------------------------------------------
    def execute(self, args: Sequence[str], *, cancel: Optional[threading.Event] = None) -> bytes:
        stdout, _ = self._run(args, cancel)
        return stdout

    def execute_with_stderr(
        self, args: Sequence[str], *, cancel: Optional[threading.Event] = None
    ) -> Tuple[bytes, bytes]:
        return self._run(args, cancel)

    # ---- internals ------------------------------------------------------------
    def _run(self, args: Sequence[str], cancel: Optional[threading.Event]) -> Tuple[bytes, bytes]:
        cmd = [str(a) for a in args]
        if not cmd:
            raise ValueError("empty command")
        tool = Path(cmd[0]).name
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(f"{tool} cancelled before start")

        logger.debug("exec: %s", " ".join(shlex.quote(p) for p in cmd))
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            if is_tool_not_found(e):
                raise ToolNotFoundError(tool) from e
            raise

        waited = 0.0
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval_sec)
                break
            except subprocess.TimeoutExpired:
                waited += self.poll_interval_sec
                if cancel is not None and cancel.is_set():
                    self._kill(proc)
                    raise OperationCancelledError(f"{tool} cancelled")
                if self.timeout_sec is not None and waited >= self.timeout_sec:
                    self._kill(proc)
                    raise CommandFailedError(cmd, -1, f"timed out after {self.timeout_sec}s")

        if proc.returncode != 0:
            raise CommandFailedError(cmd, proc.returncode, stderr)
        return stdout, stderr

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        proc.kill()
        # reap and close pipes
        proc.communicate()
