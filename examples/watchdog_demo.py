#!/usr/bin/env python3
"""Watchdog Demo - Shows a stalled process being killed for inactivity."""

import logging
import sys

from cmdline_process import InactivityTimeoutError, ProcessHandle, ProcessInfo

# Prints a few progress lines, then hangs like a stalled encoder
STALLING_SCRIPT = "import time\nfor i in range(3):\n    print(f'frame {i}', flush=True)\n    time.sleep(0.5)\ntime.sleep(60)\n"


def report_stall(info: ProcessInfo) -> None:
    print(f"  pid {info.pid} silent for {info.idle_seconds:.1f}s, killing")


def demo_inactivity_timeout() -> None:
    """Run a process that stalls and let the watchdog kill it."""
    print("Inactivity Watchdog Demo")
    print("=" * 50)

    handle = ProcessHandle([sys.executable, "-c", STALLING_SCRIPT])
    print(f"Command: {handle.command_line}")
    print()

    try:
        handle.run_with_inactivity_timeout(
            2,
            on_output=lambda segment: print(f"  output: {segment.decode().rstrip()}"),
            on_inactivity=report_stall,
        )
    except InactivityTimeoutError as e:
        print(f"Stalled: {e}")
    else:
        print("Process finished on its own")

    print(f"Running: {handle.is_running()}  Exit code: {handle.returncode}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    demo_inactivity_timeout()
