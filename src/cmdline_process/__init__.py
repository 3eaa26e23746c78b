"""Thread-safe control of long-running command lines with an inactivity watchdog."""

from __future__ import annotations

__version__ = "1.0.0"

from cmdline_process.command_line import CommandLine, parse_command_line
from cmdline_process.errors import (
    AlreadyRunningError,
    CmdlineError,
    InactivityTimeoutError,
    InvalidCommandLineError,
    KillFailedError,
    NotRunningError,
    PipeRunningError,
    PipeUnavailableError,
)
from cmdline_process.process_handle import ProcessHandle, ProcessInfo, ProcessState, Stream
from cmdline_process.process_utils import get_process_tree_info, kill_process_tree

__all__ = [
    "AlreadyRunningError",
    "CmdlineError",
    "CommandLine",
    "InactivityTimeoutError",
    "InvalidCommandLineError",
    "KillFailedError",
    "NotRunningError",
    "PipeRunningError",
    "PipeUnavailableError",
    "ProcessHandle",
    "ProcessInfo",
    "ProcessState",
    "Stream",
    "get_process_tree_info",
    "kill_process_tree",
    "parse_command_line",
]
