"""Runtime module: process launching and line sequences.

This module spawns a single external process and exposes its output as
pull-based sequences of decoded lines (or the raw stdout payload), with exit
code validation and cancellation that reliably kills the process.
"""

from __future__ import annotations

from .channel import CapturedLines, LineChannel
from .handle import ProcessHandle
from .launcher import (
    DualLaunch,
    LaunchOptions,
    MergedPolicy,
    ProcessLauncher,
    parse_command,
    read_binary,
    start,
    start_dual,
    start_read_binary,
)
from .sequence import LineSequence, Ownership, SequenceState

__all__ = [
    "CapturedLines",
    "DualLaunch",
    "LaunchOptions",
    "LineChannel",
    "LineSequence",
    "MergedPolicy",
    "Ownership",
    "ProcessHandle",
    "ProcessLauncher",
    "SequenceState",
    "parse_command",
    "read_binary",
    "start",
    "start_dual",
    "start_read_binary",
]
