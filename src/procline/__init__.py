"""procline - subprocess output as async line sequences.

Usage:
    import procline

    lines = await procline.start("git status -s")
    print(await lines.to_list())

    handle, stdout, stderr = await procline.start_dual("make test")
    payload = await procline.read_binary("cat logo.png")
"""

__version__ = "0.1.0"

from .config import get_acceptable_exit_codes, set_acceptable_exit_codes
from .errors import ProcessError, ProcessExecutionError, ProcessStartError
from .runtime import (
    DualLaunch,
    LaunchOptions,
    LineSequence,
    MergedPolicy,
    Ownership,
    ProcessHandle,
    ProcessLauncher,
    SequenceState,
    read_binary,
    start,
    start_dual,
    start_read_binary,
)

__all__ = [
    "__version__",
    "DualLaunch",
    "LaunchOptions",
    "LineSequence",
    "MergedPolicy",
    "Ownership",
    "ProcessError",
    "ProcessExecutionError",
    "ProcessHandle",
    "ProcessLauncher",
    "ProcessStartError",
    "SequenceState",
    "get_acceptable_exit_codes",
    "read_binary",
    "set_acceptable_exit_codes",
    "start",
    "start_dual",
    "start_read_binary",
]
