"""
Streaming line feed normalizer.

LFNormalizer wraps a binary stream and converts every "\\r", "\\r\\n" and
"\\n\\r" into a single "\\n" while the data is being read. A two byte line
ending that arrives split over two reads is still collapsed into one line feed.
"""

import io
import logging
from typing import Iterator, Optional, Tuple

CR: int = 0x0D
LF: int = 0x0A

DEFAULT_CHUNK_SIZE: int = 64 * 1024

logger = logging.getLogger("LFNormalizer")


class LFNormalizer(io.RawIOBase):
    """Raw stream that normalizes the line endings of an upstream stream.

    The upstream is anything with ``readinto`` or ``read``. It stays owned by
    the caller: closing the normalizer does not close it.
    """

    def __init__(self, upstream, pending: Optional[int] = None) -> None:
        super().__init__()
        if pending not in (None, CR, LF):
            raise ValueError(f"pending must be None, CR or LF, not {pending!r}")
        self._upstream = upstream
        # kind of the last line feed emitted, None if the last byte was not
        # a line feed or carriage return
        self.pending: Optional[int] = pending

    @property
    def upstream(self):
        return self._upstream

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> Optional[int]:
        """Read into ``b`` and normalize it in place.

        Returns the number of normalized bytes, 0 at end of stream, or None
        when a non-blocking upstream has no data yet.
        """
        self._checkClosed()
        view = memoryview(b).cast("B")
        if len(view) == 0:
            return 0

        raw, n = self._fill(view)
        if raw is None or (raw and not n):
            # Every byte was eaten as the second half of a line ending, or
            # the upstream had nothing yet. Try once more so a zero count
            # keeps meaning end of stream.
            logger.debug("Empty normalized read, retrying once")
            raw, n = self._fill(view)
        return n

    def _fill(self, view: memoryview) -> Tuple[Optional[int], Optional[int]]:
        raw = self._read_upstream(view)
        if not raw:
            return raw, raw
        return raw, self.normalize(view[:raw])

    def _read_upstream(self, view: memoryview) -> Optional[int]:
        readinto = getattr(self._upstream, "readinto", None)
        if readinto is not None:
            return readinto(view)

        data = self._upstream.read(len(view))
        if data is None:
            return None
        n = len(data)
        view[:n] = data
        return n

    def normalize(self, view: memoryview) -> int:
        """Rewrite line endings in ``view`` in place and return the new length.

        Same kind repeats ("\\r\\r", "\\n\\n") are separate line endings. Only
        a switch of kind right after an emitted line feed is dropped.
        """
        pending = self.pending
        out = 0

        for b in bytes(view):
            if b == CR or b == LF:
                if pending is not None and pending != b:
                    # second half of "\r\n" or "\n\r", already emitted
                    pending = None
                    continue
                view[out] = LF
                pending = b
            else:
                view[out] = b
                pending = None
            out += 1

        self.pending = pending
        return out


def new_lf_normalizer(upstream) -> LFNormalizer:
    """Create a normalizer reading from ``upstream`` with no pending line feed."""
    return LFNormalizer(upstream)


def open_normalized(
    upstream, buffer_size: int = io.DEFAULT_BUFFER_SIZE
) -> io.BufferedReader:
    """Wrap ``upstream`` in a buffered, line-iterable normalizing reader."""
    return io.BufferedReader(new_lf_normalizer(upstream), buffer_size=buffer_size)


def iter_normalized(
    upstream, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield normalized chunks of ``upstream`` until it is exhausted."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, not {chunk_size}")

    reader = new_lf_normalizer(upstream)
    buf = bytearray(chunk_size)
    while True:
        n = reader.readinto(buf)
        if n is None:
            # non-blocking upstream with nothing yet
            continue
        if n == 0:
            return
        yield bytes(buf[:n])


def normalize_bytes(data: bytes) -> bytes:
    """Normalize the line endings of an in-memory byte string."""
    return b"".join(iter_normalized(io.BytesIO(data)))
