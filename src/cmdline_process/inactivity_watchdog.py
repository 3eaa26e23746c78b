"""Inactivity watchdog module.

This module contains the InactivityWatchdog class that kills a process
whose watched output stream has gone quiet for too long.
"""

import _thread
import logging
import threading
import time
import traceback
from collections.abc import Callable
from typing import TYPE_CHECKING

import psutil

from cmdline_process.process_utils import get_process_tree_info

if TYPE_CHECKING:
    import subprocess

    from cmdline_process.process_handle import ProcessHandle, ProcessInfo
    from cmdline_process.stream_reader import DelimitedStreamReader

logger = logging.getLogger(__name__)


class InactivityWatchdog:
    """Background thread that polls the reader's last activity time.

    The watchdog only arms once the reader has seen a first segment, so a
    process that is slow to produce output is never killed for it. It exits
    once the handle no longer runs the process it was started for, or when
    stop() is called. Kills are only sent to that process, never to a later
    launch of the same handle.
    """

    def __init__(
        self,
        handle: "ProcessHandle",
        proc: "subprocess.Popen[bytes]",
        reader: "DelimitedStreamReader",
        timeout: float,
        interval: float,
        on_inactivity: Callable[["ProcessInfo"], None] | None = None,
    ) -> None:
        self._handle = handle
        self._proc = proc
        self._reader = reader
        self._timeout = timeout
        self._interval = interval
        self._on_inactivity = on_inactivity
        self._finished = threading.Event()
        self._thread: threading.Thread | None = None
        self.fired: bool = False

    def start(self) -> None:
        name = f"InactivityWatchdog-{self._proc.pid}"
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Wake the watchdog and wait for it to exit."""
        self._finished.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def idle_seconds(self) -> float | None:
        """Seconds since the last segment, or None if nothing was read yet."""
        last_activity = self._reader.last_activity
        if last_activity is None:
            return None
        return time.monotonic() - last_activity

    def _notify_inactivity(self, idle: float) -> None:
        if self._on_inactivity is None:
            return
        try:
            process_info = self._handle._create_process_info(self._proc.pid, idle)  # noqa: SLF001
            self._on_inactivity(process_info)
        except Exception:
            # The kill must happen whatever the callback does
            logger.exception("Inactivity callback failed")

    def _fire(self, idle: float) -> None:
        logger.warning(
            "No output for %.1f seconds (limit %s), killing: %s",
            idle,
            self._timeout,
            self._handle.command_line,
        )
        logger.warning("Process tree at kill time:\n%s", get_process_tree_info(self._proc.pid))
        self._notify_inactivity(idle)
        try:
            killed = self._handle._kill_if_running(self._proc)  # noqa: SLF001
        except (OSError, psutil.Error) as e:
            # Left unfired so the next poll tries again
            logger.warning("Watchdog failed to kill %s: %s", self._handle.command_line, e)
            return
        # False when another thread stopped the process first
        self.fired = killed

    def _run(self) -> None:
        thread_id = threading.current_thread().ident
        thread_name = threading.current_thread().name
        try:
            while True:
                idle = self.idle_seconds()
                if not self.fired and idle is not None and idle > self._timeout:
                    self._fire(idle)

                if self._finished.wait(self._interval):
                    break
                if not self._handle._owns_running(self._proc):  # noqa: SLF001
                    break
        except KeyboardInterrupt:
            logger.warning("Thread %s (%s) caught KeyboardInterrupt", thread_id, thread_name)
            logger.warning("Stack trace for thread %s:", thread_id)
            traceback.print_exc()
            _thread.interrupt_main()
            raise
        except RuntimeError as e:
            logger.warning("Watchdog thread error in %s: %s", thread_name, e)
            traceback.print_exc()

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread
