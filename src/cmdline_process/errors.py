"""Exceptions raised by ProcessHandle.

Every wrong-state precondition has its own class so callers can branch on
the cause. Spawn and wait failures are not wrapped: they surface as the
OSError subclasses raised by subprocess.
"""


class CmdlineError(Exception):
    """Base class for all errors raised by this package."""


class InvalidCommandLineError(CmdlineError, ValueError):
    """Raised when a command line is empty or holds only whitespace."""


class AlreadyRunningError(CmdlineError):
    """Raised when a launch is attempted while the process is running."""


class NotRunningError(CmdlineError):
    """Raised when stop or interrupt targets a process that is not running."""


class PipeRunningError(CmdlineError):
    """Raised when a pipe is requested after the process has been started."""


class PipeUnavailableError(CmdlineError, OSError):
    """Raised when a pipe for a standard stream cannot be provided."""


class KillFailedError(CmdlineError, OSError):
    """Raised when the OS refuses to kill the process.

    The handle is left in the ZOMBIE state: the process may still be alive
    or unreaped and the handle should be discarded once stop() succeeds.
    """


class InactivityTimeoutError(CmdlineError, TimeoutError):
    """Raised when the inactivity watchdog killed a timed run."""
