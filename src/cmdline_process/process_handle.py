"""Thread-safe lifecycle control of one long-running command line.

## Basic Usage

### Run to completion
```python
player = ProcessHandle("mpv --no-video stream.m3u")
exit_code = player.run()
```

### Capture output through a pipe
```python
handle = ProcessHandle("echo hello")
stdout = handle.stdout_pipe()  # must be acquired before the launch
handle.run()
print(stdout.read())  # b"hello\\n"
```

### Start from a UI thread, stop from another
```python
encoder = ProcessHandle("ffmpeg -i input.ts -f null -")
encoder.start()
...
if encoder.is_running():
    encoder.stop()  # always call stop() after start(), even if it exited
```

### Kill a process that stops talking
```python
handle = ProcessHandle("ffmpeg -progress pipe:2 -i rtmp://host/live out.mkv")
try:
    handle.run_with_inactivity_timeout(10, delimiter=b"\\r", stream=Stream.STDERR)
except InactivityTimeoutError:
    print("encoder stalled and was killed")
```

## Key Features

- **One lock, one state machine**: every launch, stop, signal and pipe request is
  checked against the handle's state under a single lock
- **Pipes before launch**: standard streams are handed out as file objects before
  the process exists, wired in when it spawns
- **Inactivity watchdog**: kills the process tree when the watched stream stays
  silent, arming only after the first output
- **Exit notification**: ``exited`` is a Future resolved with the exit code
"""

import contextlib
import logging
import os
import signal
import subprocess
import sys
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO

import psutil

from cmdline_process.command_line import parse_command_line
from cmdline_process.errors import (
    AlreadyRunningError,
    InactivityTimeoutError,
    KillFailedError,
    NotRunningError,
    PipeRunningError,
    PipeUnavailableError,
)
from cmdline_process.inactivity_watchdog import InactivityWatchdog
from cmdline_process.process_utils import kill_process_tree
from cmdline_process.stream_reader import DelimitedStreamReader

# Create module-level logger
logger = logging.getLogger(__name__)

DEFAULT_WATCHDOG_INTERVAL = 1.0

IS_WINDOWS = sys.platform == "win32"

# Windows children get their own process group so the break event reaches only them
INTERRUPT_SIGNAL = signal.CTRL_BREAK_EVENT if IS_WINDOWS else signal.SIGINT  # type: ignore[attr-defined]


class ProcessState(str, Enum):
    """Lifecycle state of a ProcessHandle."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    ZOMBIE = "zombie"


class Stream(str, Enum):
    """Standard streams of the child process."""

    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass
class ProcessInfo:
    """Information about a process passed to inactivity callbacks."""

    pid: int
    command: str
    idle_seconds: float


def _resolve_exited(exited: "Future[int]", returncode: int) -> None:
    # Several paths may reap the same process; the first result wins
    with contextlib.suppress(InvalidStateError):
        exited.set_result(returncode)


class ProcessHandle:
    """
    Guarded state machine around a single external process.

    All state transitions and every use of the underlying Popen object are
    serialized by one lock. Blocking calls (waiting for exit, reading output)
    happen outside of it, so a monitoring thread can always stop or interrupt
    a process another thread is blocked on.

    A handle is one-shot by contract: after stop() succeeds, construct a new
    handle before launching the command again.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        watchdog_interval: float = DEFAULT_WATCHDOG_INTERVAL,
    ) -> None:
        """
        Initialize the ProcessHandle instance. Nothing is spawned yet.

        Args:
            command: Whitespace-delimited command line, or an argument list.
            cwd: Working directory to execute the command in.
            env: Extra environment variables layered over the current environment.
            watchdog_interval: Seconds between inactivity watchdog polls.

        Raises:
            InvalidCommandLineError: If the command line is empty.
            ValueError: If watchdog_interval is not positive.
        """
        if watchdog_interval <= 0:
            error_message = f"watchdog_interval must be positive, got {watchdog_interval}"
            raise ValueError(error_message)

        self._command_line = parse_command_line(command)
        self.cwd = str(cwd) if cwd is not None else None
        self.env: dict[str, str] = dict(env) if env is not None else {}
        self.watchdog_interval = watchdog_interval
        self._lock = threading.Lock()
        self._state = ProcessState.IDLE
        self._proc: subprocess.Popen[bytes] | None = None
        self._child_fds: dict[Stream, int] = {}
        self._exited: Future[int] = Future()
        # The initial future belongs to the first launch; every later launch gets a fresh one
        self._exited_claimed = False

    def __repr__(self) -> str:
        return f"ProcessHandle({self._command_line.text!r}, state={self._state.value})"

    def __enter__(self) -> "ProcessHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any | None,
    ) -> bool:
        if self.is_running():
            self.stop()
        self.close()
        # Do not suppress exceptions
        return False

    def close(self) -> None:
        """Release pipe ends acquired for a launch that never happened.

        The parent-side file objects returned by the pipe accessors belong to
        the caller and are not touched; readers of them see EOF afterwards.
        """
        with self._lock:
            child_fds = self._child_fds
            self._child_fds = {}
        self._close_child_fds(child_fds)

    @property
    def command_line(self) -> str:
        return self._command_line.text

    @property
    def executable(self) -> str:
        return self._command_line.executable

    @property
    def args(self) -> tuple[str, ...]:
        return self._command_line.args

    @property
    def state(self) -> ProcessState:
        with self._lock:
            return self._state

    @property
    def pid(self) -> int | None:
        """PID of the most recently spawned process, None before the first launch."""
        with self._lock:
            return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> int | None:
        with self._lock:
            return self._proc.returncode if self._proc is not None else None

    @property
    def exited(self) -> "Future[int]":
        """Future resolved with the exit code once the launched process is reaped."""
        with self._lock:
            return self._exited

    def is_running(self) -> bool:
        with self._lock:
            return self._is_running_locked()

    def _is_running_locked(self) -> bool:
        return self._state in (ProcessState.RUNNING, ProcessState.ZOMBIE)

    def _ensure_not_running_locked(self) -> None:
        if self._is_running_locked():
            error_message = f"Process is already running: {self.command_line}"
            raise AlreadyRunningError(error_message)

    def _create_process_info(self, pid: int, idle_seconds: float) -> ProcessInfo:
        """Create ProcessInfo for inactivity callbacks."""
        return ProcessInfo(pid=pid, command=self.command_line, idle_seconds=idle_seconds)

    def _build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        # Force unbuffered output for Python children writing into our pipes
        env["PYTHONUNBUFFERED"] = "1"
        return env

    # Pipes

    def _open_pipe_locked(self, stream: Stream) -> BinaryIO:
        """Create an OS pipe now and keep the child end for the next spawn."""
        if stream in self._child_fds:
            error_message = f"{stream.value} pipe already acquired for the next launch"
            raise PipeUnavailableError(error_message)
        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            error_message = f"Could not create {stream.value} pipe: {e}"
            raise PipeUnavailableError(error_message) from e

        logger.debug("Created %s pipe for %s", stream.value, self.command_line)
        if stream is Stream.STDIN:
            self._child_fds[stream] = read_fd
            return os.fdopen(write_fd, "wb")
        self._child_fds[stream] = write_fd
        return os.fdopen(read_fd, "rb")

    def _acquire_pipe(self, stream: Stream) -> BinaryIO:
        with self._lock:
            if self._is_running_locked():
                error_message = f"Cannot acquire {stream.value} pipe while running: {self.command_line}"
                raise PipeRunningError(error_message)
            return self._open_pipe_locked(stream)

    def stdout_pipe(self) -> BinaryIO:
        """Return a readable stream connected to the process's stdout.

        Must be called before the process is launched.

        Raises:
            PipeRunningError: If the process is running.
            PipeUnavailableError: If the pipe could not be created.
        """
        return self._acquire_pipe(Stream.STDOUT)

    def stderr_pipe(self) -> BinaryIO:
        """Return a readable stream connected to the process's stderr.

        Must be called before the process is launched.
        """
        return self._acquire_pipe(Stream.STDERR)

    def stdin_pipe(self) -> BinaryIO:
        """Return a writable stream connected to the process's stdin.

        Must be called before the process is launched. Close it to send EOF.
        """
        return self._acquire_pipe(Stream.STDIN)

    # Launching

    def _close_child_fds(self, child_fds: dict[Stream, int]) -> None:
        for stream, fd in child_fds.items():
            try:
                os.close(fd)
            except OSError as err:
                logger.warning("Failed to close child end of %s pipe: %s", stream.value, err)

    def _spawn_locked(self) -> "subprocess.Popen[bytes]":
        """Spawn the process with any acquired pipes and mark the handle running.

        Spawn errors propagate unchanged and leave the state untouched.
        """
        child_fds = self._child_fds
        self._child_fds = {}

        kwargs: dict[str, Any] = {}
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]

        try:
            proc = subprocess.Popen(  # noqa: S603
                list(self._command_line.args),
                cwd=self.cwd,
                env=self._build_env(),
                stdin=child_fds.get(Stream.STDIN),
                stdout=child_fds.get(Stream.STDOUT),
                stderr=child_fds.get(Stream.STDERR),
                **kwargs,
            )
        finally:
            # The child holds its own copies now; ours would keep the pipes from reaching EOF
            self._close_child_fds(child_fds)

        if self._exited_claimed:
            self._exited = Future()
        self._exited_claimed = True
        self._proc = proc
        self._state = ProcessState.RUNNING
        logger.debug("Spawned pid %s: %s", proc.pid, self.command_line)
        return proc

    def _mark_finished(self, proc: "subprocess.Popen[bytes]", exited: "Future[int]") -> None:
        with self._lock:
            if self._proc is proc:
                self._state = ProcessState.STOPPED
        if proc.returncode is not None:
            _resolve_exited(exited, proc.returncode)

    def _check_returncode(self, returncode: int, check: bool) -> None:
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode=returncode, cmd=list(self.args))

    def run(self, check: bool = False) -> int:
        """
        Launch the process and block until it exits.

        Standard streams are the pipes acquired beforehand, otherwise inherited
        from this process.

        Args:
            check: If True, raise CalledProcessError on a non-zero exit code.

        Returns:
            Process exit code.

        Raises:
            AlreadyRunningError: If the process is already running.
            OSError: If the process could not be spawned.
            subprocess.CalledProcessError: If check is set and the exit code is non-zero.
        """
        with self._lock:
            self._ensure_not_running_locked()
            proc = self._spawn_locked()
            exited = self._exited

        try:
            returncode = proc.wait()
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt while waiting, killing: %s", self.command_line)
            with contextlib.suppress(OSError, psutil.Error):
                self._kill_if_running(proc)
            proc.wait()
            raise
        finally:
            self._mark_finished(proc, exited)

        self._check_returncode(returncode, check)
        return returncode

    def run_with_inactivity_timeout(
        self,
        timeout: float,
        delimiter: bytes = b"\n",
        stream: Stream | str = Stream.STDOUT,
        on_output: Callable[[bytes], None] | None = None,
        on_inactivity: Callable[[ProcessInfo], None] | None = None,
        check: bool = False,
    ) -> int:
        """
        Launch the process and read one of its output streams until it exits,
        killing it if the stream goes quiet for longer than ``timeout``.

        The watchdog arms on the first delimited segment; a process that never
        writes anything is left to finish on its own.

        Args:
            timeout: Seconds of silence tolerated after the first segment.
            delimiter: Single byte ending a segment, usually b"\\n" or b"\\r".
            stream: Stream.STDOUT or Stream.STDERR (or their names).
            on_output: Called with every segment read, delimiter included.
            on_inactivity: Called with a ProcessInfo right before the watchdog kills.
            check: If True, raise CalledProcessError on a non-zero exit code.

        Returns:
            Process exit code.

        Raises:
            ValueError: If an argument is out of range.
            AlreadyRunningError: If the process is already running.
            PipeUnavailableError: If the watched pipe could not be created.
            InactivityTimeoutError: If the watchdog killed the process.
            OSError: If spawning or reading failed.
        """
        stream = Stream(stream)
        if stream is Stream.STDIN:
            error_message = "stdin cannot be watched for output"
            raise ValueError(error_message)
        if timeout <= 0:
            error_message = f"timeout must be positive, got {timeout}"
            raise ValueError(error_message)
        if len(delimiter) != 1:
            error_message = f"delimiter must be a single byte, got {delimiter!r}"
            raise ValueError(error_message)

        with self._lock:
            self._ensure_not_running_locked()
            pipe = self._open_pipe_locked(stream)
            try:
                proc = self._spawn_locked()
            except BaseException:
                pipe.close()
                raise
            exited = self._exited

        reader = DelimitedStreamReader(pipe, delimiter, on_output)
        watchdog = InactivityWatchdog(self, proc, reader, timeout, self.watchdog_interval, on_inactivity)
        watchdog.start()
        try:
            returncode, read_error = self._read_until_exit(proc, reader)
        finally:
            reader.close()
            self._mark_finished(proc, exited)
            watchdog.stop()

        if watchdog.fired:
            timeout_error_msg = f"No {stream.value} output for {timeout} seconds, process killed: {self.command_line}"
            raise InactivityTimeoutError(timeout_error_msg)
        if read_error is not None:
            raise read_error
        self._check_returncode(returncode, check)
        return returncode

    def _read_until_exit(
        self, proc: "subprocess.Popen[bytes]", reader: DelimitedStreamReader
    ) -> tuple[int, OSError | None]:
        """Drain the watched stream, then reap the process."""
        read_error: OSError | None = None
        try:
            reader.run()
        except OSError as e:
            logger.warning("Reading output of %s failed: %s", self.command_line, e)
            read_error = e
        except BaseException:
            # Callback failure or interrupt: kill and reap before propagating
            with contextlib.suppress(OSError, psutil.Error):
                self._kill_if_running(proc)
            proc.wait()
            raise
        return proc.wait(), read_error

    def start(self) -> None:
        """
        Launch the process without waiting for it.

        ``exited`` resolves when the process ends. stop() must still be called
        afterwards, even if the process exited on its own, to bring the handle
        out of the running state.

        Raises:
            AlreadyRunningError: If the process is already running.
            OSError: If the process could not be spawned.
        """
        with self._lock:
            self._ensure_not_running_locked()
            proc = self._spawn_locked()
            exited = self._exited

        self._start_exit_waiter(proc, exited)

    def _start_exit_waiter(self, proc: "subprocess.Popen[bytes]", exited: "Future[int]") -> None:
        def _wait_for_exit() -> None:
            try:
                returncode = proc.wait()
            except OSError as e:
                logger.warning("Exit waiter for pid %s failed: %s", proc.pid, e)
                with contextlib.suppress(InvalidStateError):
                    exited.set_exception(e)
                return
            logger.debug("Process %s exited with %s", proc.pid, returncode)
            _resolve_exited(exited, returncode)

        thread = threading.Thread(target=_wait_for_exit, name=f"ExitWaiter-{proc.pid}", daemon=True)
        thread.start()

    # Termination

    def _kill_locked(self, proc: "subprocess.Popen[bytes]") -> None:
        """Kill the process and its descendants. poll() reaps it if it already exited."""
        if proc.poll() is None:
            kill_process_tree(proc.pid)
        proc.kill()

    def _owns_running(self, proc: "subprocess.Popen[bytes]") -> bool:
        with self._lock:
            return self._proc is proc and self._is_running_locked()

    def _kill_if_running(self, proc: "subprocess.Popen[bytes]") -> bool:
        """Kill proc only while it is still this handle's running process.

        Returns:
            True if the kill was sent.
        """
        with self._lock:
            if self._proc is not proc or not self._is_running_locked():
                return False
            self._kill_locked(proc)
            return True

    def stop(self) -> None:
        """
        Forcefully kill the process tree and wait until the process is reaped.

        Raises:
            NotRunningError: If the process is not running.
            KillFailedError: If the kill was refused; the handle becomes ZOMBIE.
            OSError: If waiting failed; the handle becomes ZOMBIE.
        """
        with self._lock:
            if not self._is_running_locked():
                error_message = f"Process is not running: {self.command_line}"
                raise NotRunningError(error_message)
            proc = self._proc
            assert proc is not None
            self._state = ProcessState.STOPPED
            try:
                self._kill_locked(proc)
            except (OSError, psutil.Error) as e:
                self._state = ProcessState.ZOMBIE
                logger.warning("Failed to kill pid %s (%s): %s", proc.pid, self.command_line, e)
                kill_error_msg = f"Could not kill process {proc.pid}: {e}"
                raise KillFailedError(kill_error_msg) from e
            exited = self._exited

        try:
            returncode = proc.wait()
        except OSError as e:
            logger.warning("Failed to reap pid %s (%s): %s", proc.pid, self.command_line, e)
            with self._lock:
                if self._proc is proc:
                    self._state = ProcessState.ZOMBIE
            raise

        logger.debug("Stopped pid %s with exit code %s", proc.pid, returncode)
        _resolve_exited(exited, returncode)

    def send_interrupt(self) -> None:
        """
        Ask the process to terminate (SIGINT, or CTRL_BREAK_EVENT on Windows).

        The handle is marked as not running whatever its prior state, and the
        call returns without waiting for the process to exit.

        Raises:
            NotRunningError: If no process was ever spawned by this handle.
            OSError: If the signal could not be delivered.
        """
        with self._lock:
            proc = self._proc
            if proc is None:
                error_message = f"Process was never started: {self.command_line}"
                raise NotRunningError(error_message)
            self._state = ProcessState.STOPPED
            logger.debug("Sending interrupt to pid %s", proc.pid)
            proc.send_signal(INTERRUPT_SIGNAL)
