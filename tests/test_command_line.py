"""Unit tests for command line parsing."""

import unittest

from cmdline_process import CommandLine, InvalidCommandLineError, ProcessHandle, parse_command_line


class TestParseCommandLine(unittest.TestCase):
    """Test whitespace splitting into executable and argv."""

    def test_simple_command(self):
        """First token is the executable and also args[0]."""
        parsed = parse_command_line("echo hello")

        self.assertEqual(parsed.executable, "echo")
        self.assertEqual(parsed.args, ("echo", "hello"))
        self.assertEqual(parsed.text, "echo hello")

    def test_collapses_runs_of_whitespace(self):
        """Tabs, newlines and repeated spaces all separate tokens."""
        parsed = parse_command_line("  ffmpeg \t-i   input.ts\n-f null - ")

        self.assertEqual(parsed.args, ("ffmpeg", "-i", "input.ts", "-f", "null", "-"))
        # The original text is kept untouched
        self.assertEqual(parsed.text, "  ffmpeg \t-i   input.ts\n-f null - ")

    def test_quotes_are_not_special(self):
        """Quoting is not interpreted."""
        parsed = parse_command_line('echo "two words"')
        self.assertEqual(parsed.args, ("echo", '"two', 'words"'))

    def test_argument_list(self):
        """A list keeps tokens containing spaces intact."""
        parsed = parse_command_line(["/opt/my player/mpv", "a file.mkv"])

        self.assertEqual(parsed.executable, "/opt/my player/mpv")
        self.assertEqual(parsed.args, ("/opt/my player/mpv", "a file.mkv"))
        self.assertIn("a file.mkv", parsed.text)
        self.assertEqual(str(parsed), parsed.text)

    def test_empty_string(self):
        """Empty command lines are rejected with a named error."""
        with self.assertRaises(InvalidCommandLineError):
            parse_command_line("")

    def test_whitespace_only(self):
        with self.assertRaises(InvalidCommandLineError):
            parse_command_line(" \t\n ")

    def test_empty_list(self):
        with self.assertRaises(InvalidCommandLineError):
            parse_command_line([])

    def test_invalid_command_line_is_value_error(self):
        """Callers catching ValueError also see InvalidCommandLineError."""
        with self.assertRaises(ValueError):
            parse_command_line("")

    def test_command_line_is_frozen(self):
        parsed = parse_command_line("ls -la")
        self.assertIsInstance(parsed, CommandLine)
        with self.assertRaises(AttributeError):
            parsed.text = "rm -rf /"  # type: ignore[misc]


class TestHandleConstruction(unittest.TestCase):
    """Test that ProcessHandle exposes the parsed command line."""

    def test_handle_properties(self):
        handle = ProcessHandle("sleep 10")

        self.assertEqual(handle.command_line, "sleep 10")
        self.assertEqual(handle.executable, "sleep")
        self.assertEqual(handle.args, ("sleep", "10"))
        self.assertFalse(handle.is_running())
        self.assertIsNone(handle.pid)
        self.assertIsNone(handle.returncode)

    def test_empty_command_does_not_crash(self):
        """Constructing with an empty command raises instead of crashing."""
        with self.assertRaises(InvalidCommandLineError):
            ProcessHandle("")

    def test_watchdog_interval_must_be_positive(self):
        with self.assertRaises(ValueError):
            ProcessHandle("sleep 1", watchdog_interval=0)

    def test_nonexistent_executable_is_accepted(self):
        """Existence of the executable is only checked when launching."""
        handle = ProcessHandle("this_command_does_not_exist_12345 --flag")
        self.assertEqual(handle.executable, "this_command_does_not_exist_12345")


if __name__ == "__main__":
    unittest.main()
