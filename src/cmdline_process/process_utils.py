#!/usr/bin/env python3
"""Process utilities for managing process trees."""

from __future__ import annotations

import contextlib

import psutil


def get_process_tree_info(pid: int) -> str:
    """Get information about a process and its children."""
    try:
        process = psutil.Process(pid)
        info = [f"Process {pid} ({process.name()})"]
        info.append(f"Status: {process.status()}")
        info.append(f"CPU Times: {process.cpu_times()}")

        children = process.children(recursive=True)
        if children:
            info.append("\nChild processes:")
            for child in children:
                info.append(f"  Child {child.pid} ({child.name()})")
                info.append(f"    Status: {child.status()}")

        return "\n".join(info)
    except Exception:  # noqa: BLE001
        return f"Could not get process info for PID {pid}"


def kill_process_tree(pid: int) -> int:
    """Forcefully kill every descendant of a process.

    The root process itself is left alone so that its owner can kill and
    reap it through its own Popen object.

    Returns:
        Number of descendants a kill was sent to.
    """
    try:
        children = psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return 0

    killed = 0
    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()
            killed += 1
    return killed
