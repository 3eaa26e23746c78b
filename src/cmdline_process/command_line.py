"""Command line parsing.

Splitting is plain whitespace splitting; quotes and escapes carry no
meaning. Pass a list of arguments instead when a token contains spaces.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from cmdline_process.errors import InvalidCommandLineError


@dataclass(frozen=True)
class CommandLine:
    """An immutable, parsed command line.

    Attributes:
        text: The command line as given (or rendered, for argument lists).
        executable: Path or name of the program, the first token.
        args: Every token including the executable as args[0].
    """

    text: str
    executable: str
    args: tuple[str, ...]

    def __str__(self) -> str:
        return self.text


def parse_command_line(command: str | Sequence[str]) -> CommandLine:
    """Parse a command string or argument list into a CommandLine.

    Args:
        command: Whitespace-delimited command string, or an argv-style
            sequence whose first element is the executable.

    Returns:
        The parsed command line.

    Raises:
        InvalidCommandLineError: If the command holds no tokens.
    """
    if isinstance(command, str):
        tokens = tuple(command.split())
        text = command
    else:
        tokens = tuple(command)
        text = subprocess.list2cmdline(tokens)

    if not tokens or not tokens[0]:
        error_message = f"Command line has no executable: {command!r}"
        raise InvalidCommandLineError(error_message)

    return CommandLine(text=text, executable=tokens[0], args=tokens)
