"""Unit tests for DelimitedStreamReader using in-memory streams."""

import io
import os
import sys
import unittest

from cmdline_process.stream_reader import DelimitedStreamReader


class TestDelimitedStreamReader(unittest.TestCase):
    """Test segment splitting and activity tracking."""

    def test_segments_and_trailing_bytes(self):
        forwarded: list[bytes] = []
        reader = DelimitedStreamReader(io.BytesIO(b"a\nbb\nc"), b"\n", forwarded.append)

        reader.run()

        self.assertEqual(forwarded, [b"a\n", b"bb\n", b"c"])
        # The unterminated tail is not activity
        self.assertEqual(reader.segments_read, 2)
        self.assertIsNotNone(reader.last_activity)

    def test_no_output_means_no_activity(self):
        reader = DelimitedStreamReader(io.BytesIO(b""))
        reader.run()

        self.assertIsNone(reader.last_activity)
        self.assertEqual(reader.segments_read, 0)

    def test_output_without_delimiter_is_not_activity(self):
        forwarded: list[bytes] = []
        reader = DelimitedStreamReader(io.BytesIO(b"no newline here"), b"\n", forwarded.append)
        reader.run()

        self.assertIsNone(reader.last_activity)
        self.assertEqual(forwarded, [b"no newline here"])

    @unittest.skipIf(sys.platform == "win32", "relies on a pipe buffer larger than the payload")
    def test_segments_split_across_reads(self):
        """Segments spanning several pipe reads are reassembled."""
        read_fd, write_fd = os.pipe()
        with os.fdopen(write_fd, "wb") as writer:
            writer.write(b"x" * 10000 + b"\r" + b"tail\r")
        forwarded: list[bytes] = []
        with os.fdopen(read_fd, "rb") as stream:
            DelimitedStreamReader(stream, b"\r", forwarded.append).run()

        self.assertEqual(forwarded, [b"x" * 10000 + b"\r", b"tail\r"])

    def test_invalid_delimiter(self):
        with self.assertRaises(ValueError):
            DelimitedStreamReader(io.BytesIO(b""), b"\r\n")

    def test_close_is_idempotent(self):
        stream = io.BytesIO(b"data\n")
        reader = DelimitedStreamReader(stream)

        reader.close()
        reader.close()
        self.assertTrue(stream.closed)


if __name__ == "__main__":
    unittest.main()
