#!/usr/bin/env python3
"""
Test the main function and command line interface of normalize.py.
"""

import io
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

# Add parent directory to path to import normalize module
sys.path.insert(0, str(Path(__file__).parent.parent))
import normalize  # pylint: disable=wrong-import-position


class TestMain(unittest.TestCase):
    def setUp(self) -> None:
        # Create a temporary directory
        self.test_dir = tempfile.mkdtemp()

        self.test_file = os.path.join(self.test_dir, "test.txt")
        with open(self.test_file, "wb") as f:
            f.write(b"Line 1\r\nLine 2\r\n")

    def tearDown(self) -> None:
        # Release the log file handler before the directory goes away
        normalize.setup_logging()
        shutil.rmtree(self.test_dir)

    def _content(self) -> bytes:
        with open(self.test_file, "rb") as f:
            return f.read()

    def test_main_directory(self) -> None:
        result = normalize.main([self.test_dir, "--patterns", ".txt"])

        self.assertEqual(result, 0)
        self.assertEqual(self._content(), b"Line 1\nLine 2\n")

    def test_main_single_file_crlf(self) -> None:
        with open(self.test_file, "wb") as f:
            f.write(b"Line 1\nLine 2\r")

        result = normalize.main([self.test_file, "--format", "crlf"])

        self.assertEqual(result, 0)
        self.assertEqual(self._content(), b"Line 1\r\nLine 2\r\n")

    def test_main_reads_sys_argv(self) -> None:
        test_args = ["normalize.py", self.test_dir, "--workers", "1"]

        with patch("sys.argv", test_args):
            self.assertEqual(normalize.main(), 0)
        self.assertEqual(self._content(), b"Line 1\nLine 2\n")

    def test_main_stdin_to_stdout(self) -> None:
        stdin = SimpleNamespace(buffer=io.BytesIO(b"a\r\nb\n\rc\r"))
        stdout = SimpleNamespace(buffer=io.BytesIO())

        with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
            result = normalize.main([])

        self.assertEqual(result, 0)
        self.assertEqual(stdout.buffer.getvalue(), b"a\nb\nc\n")

    def test_main_dash_with_paths(self) -> None:
        self.assertEqual(normalize.main(["-", self.test_dir]), 1)

    def test_main_no_files_found(self) -> None:
        result = normalize.main([self.test_dir, "--patterns", ".nonexistent"])
        self.assertEqual(result, 0)

    def test_main_invalid_path(self) -> None:
        result = normalize.main(["/nonexistent/directory"])
        self.assertEqual(result, 1)

    def test_main_invalid_workers_count(self) -> None:
        """A non-positive worker count falls back to auto-detection."""
        result = normalize.main([self.test_dir, "--workers", "0"])

        self.assertEqual(result, 0)
        self.assertEqual(self._content(), b"Line 1\nLine 2\n")

    def test_main_invalid_chunk_size(self) -> None:
        result = normalize.main([self.test_dir, "--chunk-size", "0"])

        self.assertEqual(result, 1)
        self.assertEqual(self._content(), b"Line 1\r\nLine 2\r\n")

    def test_main_ignore_dirs(self) -> None:
        sub_dir = os.path.join(self.test_dir, "keep")
        os.makedirs(sub_dir)
        sub_file = os.path.join(sub_dir, "inner.txt")
        with open(sub_file, "wb") as f:
            f.write(b"x\r\n")

        result = normalize.main([self.test_dir, "--ignore-dirs", "keep"])

        self.assertEqual(result, 0)
        with open(sub_file, "rb") as f:
            self.assertEqual(f.read(), b"x\r\n")
        self.assertEqual(self._content(), b"Line 1\nLine 2\n")

    def test_main_log_file(self) -> None:
        log_path = os.path.join(self.test_dir, "run.log")

        result = normalize.main(
            [self.test_file, "--verbose", "--log-file", log_path]
        )

        self.assertEqual(result, 0)
        with open(log_path, "r", encoding="utf-8") as f:
            log = f.read()
        self.assertIn("Line Ending Normalizer", log)
        self.assertIn("DEBUG", log)

    def test_main_keyboard_interrupt(self) -> None:
        with patch("normalize.collect_files", side_effect=KeyboardInterrupt()):
            self.assertEqual(normalize.main([self.test_dir]), 130)

    def test_main_exception_handling(self) -> None:
        with patch("normalize.collect_files", side_effect=RuntimeError("Test error")):
            self.assertEqual(normalize.main([self.test_dir]), 1)

    def test_main_version(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO) as fake_out:
            with self.assertRaises(SystemExit) as ctx:
                normalize.main(["--version"])
        self.assertEqual(ctx.exception.code, 0)
        self.assertIn(normalize.__version__, fake_out.getvalue())


if __name__ == "__main__":
    unittest.main()
