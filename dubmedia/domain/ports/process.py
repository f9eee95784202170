from __future__ import annotations
import threading
from typing import Optional, Protocol, Sequence, Tuple


class CommandRunnerPort(Protocol):
    """
    Capability object for spawning external tools.
    Both calls raise ToolNotFoundError when the binary is missing,
    CommandFailedError on a non-zero exit and OperationCancelledError
    when `cancel` is set while the child runs.
    """

    def execute(self, args: Sequence[str], *, cancel: Optional[threading.Event] = None) -> bytes: ...

    def execute_with_stderr(
        self, args: Sequence[str], *, cancel: Optional[threading.Event] = None
    ) -> Tuple[bytes, bytes]: ...
