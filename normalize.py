#!/usr/bin/env python3
"""
LFNormalizer

Normalize line endings of files or stdin by streaming them through LFNormalizer.
"""

import argparse
import concurrent.futures
import filecmp
import logging
import os
import shutil
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, Set

from tqdm import tqdm

from lfnormalizer import DEFAULT_CHUNK_SIZE, LFNormalizer

# Define version
__version__ = "1.0.0"
__author__ = "tboy1337"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_IGNORE_DIRS: List[str] = [
    ".git",
    ".github",
    "__pycache__",
    "node_modules",
    "venv",
    ".venv",
]

MAX_WORKERS = 32

BINARY_EXTENSIONS: Set[str] = {
    ".bin",
    ".exe",
    ".dll",
    ".so",
    ".dylib",
    ".o",
    ".a",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".ico",
    ".zip",
    ".gz",
    ".bz2",
    ".xz",
    ".7z",
    ".pdf",
    ".pyc",
    ".mp3",
    ".mp4",
}

BINARY_SIGNATURES = (b"\x89PNG", b"GIF8", b"\xff\xd8\xff", b"%PDF", b"PK\x03\x04")

logger = logging.getLogger("LFNormalizer")
# Worker threads share the handlers
log_lock = threading.Lock()


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Attach stderr and optional file handlers to the LFNormalizer logger."""
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def is_binary_file(file_path: str) -> bool:
    """
    Guess whether a file is binary from its extension and first bytes.
    CR and LF bytes inside a binary file are data, so these files are skipped.
    """
    if os.path.splitext(file_path)[1].lower() in BINARY_EXTENSIONS:
        return True

    try:
        with open(file_path, "rb") as f:
            chunk: bytes = f.read(8192)
    except OSError as e:
        with log_lock:
            logger.error("Error checking if file is binary %s: %s", file_path, str(e))
        return True  # Assume binary on error

    return b"\x00" in chunk or chunk.startswith(BINARY_SIGNATURES)


def normalize_stream(
    src: BinaryIO,
    dst: BinaryIO,
    newline_format: str = "lf",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy src to dst with normalized line endings and return the bytes written."""
    if newline_format not in ("lf", "crlf"):
        raise ValueError(f"Unknown newline format: {newline_format}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, not {chunk_size}")

    reader = LFNormalizer(src)
    buf = bytearray(chunk_size)
    written = 0
    while True:
        n = reader.readinto(buf)
        if n is None:
            continue
        if n == 0:
            break
        data = bytes(buf[:n])
        if newline_format == "crlf":
            data = data.replace(b"\n", b"\r\n")
        dst.write(data)
        written += len(data)
    dst.flush()
    return written


def process_file(  # pylint: disable=too-many-return-statements
    file_path: str, newline_format: str, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> bool:
    """Normalize a file in place. Returns True only if its content changed."""
    try:
        if not os.path.exists(file_path):
            with log_lock:
                logger.error("File not found: %s", file_path)
            return False

        if os.path.getsize(file_path) == 0:
            with log_lock:
                logger.debug("Skipping empty file: %s", file_path)
            return False

        if is_binary_file(file_path):
            with log_lock:
                logger.debug("Skipping binary file: %s", file_path)
            return False

        if not os.access(file_path, os.R_OK | os.W_OK):
            with log_lock:
                logger.error("File is not readable and writable: %s", file_path)
            return False

        # Write next to the original so os.replace stays on one filesystem
        fd, temp_path = tempfile.mkstemp(
            prefix=".lfnormalize-", dir=os.path.dirname(os.path.abspath(file_path))
        )
        try:
            with os.fdopen(fd, "wb") as dst, open(file_path, "rb") as src:
                normalize_stream(src, dst, newline_format, chunk_size)

            if filecmp.cmp(file_path, temp_path, shallow=False):
                with log_lock:
                    logger.debug("No changes needed for file: %s", file_path)
                return False

            shutil.copymode(file_path, temp_path)
            os.replace(temp_path, file_path)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

        with log_lock:
            logger.debug("Updated file: %s", file_path)
        return True
    except PermissionError as e:
        with log_lock:
            logger.error("Permission denied accessing %s: %s", file_path, str(e))
        return False
    except Exception as e:  # pylint: disable=broad-exception-caught
        with log_lock:
            logger.error("Error processing %s: %s", file_path, str(e))
        return False


def find_files(
    root_dir: str,
    file_patterns: Optional[List[str]],
    ignore_dirs: Optional[List[str]] = None,
) -> List[str]:
    """Find all files matching the given patterns recursively."""
    if ignore_dirs is None:
        ignore_dirs = DEFAULT_IGNORE_DIRS
    ignore_dirs_set: Set[str] = set(ignore_dirs)

    if not file_patterns:
        file_patterns = [".txt"]

    glob_patterns: List[str] = []
    for pattern in file_patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        # A bare extension becomes a glob
        if pattern.startswith(".") and "/" not in pattern and "\\" not in pattern:
            pattern = f"*{pattern}"
        glob_patterns.append(pattern)

    all_files: List[str] = []
    for root, dirs, files in os.walk(root_dir):
        dirs[:] = [d for d in dirs if d not in ignore_dirs_set]
        for filename in files:
            if any(Path(filename).match(p) for p in glob_patterns):
                all_files.append(os.path.join(root, filename))

    return sorted(all_files)


def process_files_parallel(
    files: List[str],
    newline_format: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: Optional[int] = None,
) -> int:
    """Normalize files on a thread pool. Returns the number of changed files."""
    if not files:
        return 0

    processed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    if max_workers is None:
        max_workers = (os.cpu_count() or 2) * 2
    max_workers = min(max_workers, MAX_WORKERS, len(files))

    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files", max_workers, len(files)
        )

    with tqdm(total=len(files), desc="Normalizing files", unit="file") as pbar:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_file = {
                executor.submit(
                    process_file, file_path, newline_format, chunk_size
                ): file_path
                for file_path in files
            }

            for future in concurrent.futures.as_completed(future_to_file):
                file_path = future_to_file[future]
                try:
                    if future.result():
                        processed_count += 1
                    else:
                        skipped_count += 1
                except Exception as e:  # pylint: disable=broad-exception-caught
                    error_count += 1
                    with log_lock:
                        logger.error(
                            "Unhandled error processing %s: %s", file_path, str(e)
                        )
                finally:
                    pbar.update(1)

    with log_lock:
        if error_count > 0:
            logger.warning("Encountered errors while processing %d files", error_count)
        logger.info(
            "Processed: %d, Skipped: %d, Errors: %d",
            processed_count,
            skipped_count,
            error_count,
        )

    return processed_count


def collect_files(
    paths: List[str], file_patterns: List[str], ignore_dirs: List[str]
) -> List[str]:
    """Expand directories into matching files; plain files are taken as given."""
    files: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            files.extend(find_files(path, file_patterns, ignore_dirs))
        elif os.path.isfile(path):
            files.append(path)
        else:
            raise FileNotFoundError(f"'{path}' is not a file or directory")
    return files


def build_parser(version: str) -> argparse.ArgumentParser:
    """Build the command line parser for the given program version."""
    parser = argparse.ArgumentParser(
        description="Normalize \\r, \\r\\n and \\n\\r line endings to \\n"
    )
    parser.add_argument(
        "paths",
        nargs="*",
        default=["-"],
        help="Files or directories to normalize in place, '-' for stdin to "
        "stdout (default: -)",
    )
    parser.add_argument(
        "--patterns",
        nargs="+",
        default=[".txt"],
        help="File patterns to match inside directories (default: .txt)",
    )
    parser.add_argument(
        "--format",
        choices=["lf", "crlf"],
        default="lf",
        help="Target line ending format (default: lf)",
    )
    parser.add_argument(
        "--ignore-dirs",
        nargs="+",
        default=None,
        help="Directories to ignore during processing "
        "(default: .git, .github, __pycache__, node_modules, venv, .venv)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads (default: auto-detect based on CPU count)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Read size in bytes (default: {DEFAULT_CHUNK_SIZE})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--log-file", default=None, help="Also append logs to a file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"LFNormalizer v{version}",
        help="Show program version and exit",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser(__version__).parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        if args.chunk_size <= 0:
            logger.error("Error: --chunk-size must be positive, got %d", args.chunk_size)
            return 1

        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None

        if args.paths == ["-"]:
            normalize_stream(
                sys.stdin.buffer, sys.stdout.buffer, args.format, args.chunk_size
            )
            return 0
        if "-" in args.paths:
            logger.error("Error: '-' cannot be combined with other paths.")
            return 1

        ignore_dirs: List[str] = (
            args.ignore_dirs if args.ignore_dirs else DEFAULT_IGNORE_DIRS
        )
        logger.info("LFNormalizer v%s - Line Ending Normalizer", __version__)
        logger.info("Target line ending format: %s", args.format.upper())
        logger.info("Ignoring directories: %s", ", ".join(ignore_dirs))

        start_time: float = time.time()

        try:
            files = collect_files(args.paths, args.patterns, ignore_dirs)
        except FileNotFoundError as e:
            logger.error("Error: %s", str(e))
            return 1

        if not files:
            logger.warning("No matching files found.")
            return 0

        logger.info("Found %d files to process.", len(files))

        processed_count: int = process_files_parallel(
            files, args.format, args.chunk_size, max_workers=args.workers
        )

        logger.info(
            "Done! Processed %d of %d files in %.2f seconds.",
            processed_count,
            len(files),
            time.time() - start_time,
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.level <= logging.DEBUG:
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
