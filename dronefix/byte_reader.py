"""
Byte Reader: sequential, forward-only reads over the damaged input file.

APPROACH
────────
1. Memory-mapped I/O (mmap) when the source is a real file; the OS handles
   paging and single-byte reads become cheap slices.
2. Fallback to plain seek()+read() for anything mmap refuses (pipes,
   in-memory buffers, special files).
3. End of input is signalled by a ``None`` return, never by an exception.
4. No pushback: callers that need to re-read take a ``checkpoint()`` and
   ``restore()`` it explicitly.

All multi-byte words are big-endian, matching both the ISO BMFF atom headers
and the NAL length prefixes the camera writes.
"""

import os
import mmap
import logging
from typing import Optional, BinaryIO

logger = logging.getLogger(__name__)

# Block size for the bulk pass-through copy
COPY_BLOCK_SIZE = 1024 * 1024


def _stream_size(fd: BinaryIO) -> int:
    """Size of a seekable stream, leaving its position untouched."""
    here = fd.tell()
    fd.seek(0, os.SEEK_END)
    size = fd.tell()
    fd.seek(here)
    return size


class ByteReader:
    """
    Sequential big-endian reader with explicit end-of-input signalling.

    Usage:
        reader = ByteReader(file_handle)
        word = reader.read_u32_be()        # None at end of input
        mark = reader.checkpoint()
        ...
        reader.restore(mark)
        for chunk in reader.iter_chunks():
            sink.write(chunk)
        reader.close()
    """

    def __init__(
        self,
        fd: BinaryIO,
        total_size: Optional[int] = None,
        use_mmap: bool = True,
    ):
        self._fd = fd
        self._size = _stream_size(fd) if total_size is None else total_size
        self._pos = fd.tell()
        self._mmap: Optional[mmap.mmap] = None
        self._using_mmap = False

        if use_mmap and self._size > 0:
            self._try_mmap()

    def _try_mmap(self):
        """Attempt to memory-map the input file."""
        try:
            self._mmap = mmap.mmap(
                self._fd.fileno(),
                0,
                access=mmap.ACCESS_READ,
            )
            self._using_mmap = True
            logger.debug("mmap enabled: %d bytes", self._size)
        except (OSError, ValueError, OverflowError) as e:
            # io.BytesIO has no fileno(); empty files can't be mapped
            logger.debug("mmap unavailable (%s), using buffered reads", e)
            self._mmap = None
            self._using_mmap = False

    @property
    def is_mmap(self) -> bool:
        return self._using_mmap

    @property
    def size(self) -> int:
        return self._size

    @property
    def at_eof(self) -> bool:
        return self._pos >= self._size

    def tell(self) -> int:
        """Current read position (the recovery cursor)."""
        return self._pos

    # ── Raw reads ──

    def _read_at(self, offset: int, size: int) -> bytes:
        if offset < 0 or offset >= self._size or size <= 0:
            return b""
        size = min(size, self._size - offset)

        if self._using_mmap and self._mmap is not None:
            return self._mmap[offset:offset + size]

        self._fd.seek(offset)
        return self._fd.read(size)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; short (or empty) at end of input."""
        data = self._read_at(self._pos, size)
        self._pos += len(data)
        return data

    def read_u8(self) -> Optional[int]:
        """One byte, or None at end of input."""
        data = self.read(1)
        if not data:
            return None
        return data[0]

    def read_u16_be(self) -> Optional[int]:
        """Two bytes, MSB first, or None if either read fails."""
        hi = self.read_u8()
        if hi is None:
            return None
        lo = self.read_u8()
        if lo is None:
            return None
        return (hi << 8) | lo

    def read_u32_be(self) -> Optional[int]:
        """Four sequential bytes, MSB first, or None if any read fails."""
        value = 0
        for _ in range(4):
            c = self.read_u8()
            if c is None:
                return None
            value = (value << 8) | c
        return value

    # ── Positioning ──

    def checkpoint(self) -> int:
        """Remember the current position for a later ``restore()``."""
        return self._pos

    def restore(self, mark: int):
        """Seek back (or forward) to a position returned by ``checkpoint()``."""
        if mark < 0 or mark > self._size:
            raise ValueError(f"checkpoint {mark} outside input (size {self._size})")
        self._pos = mark

    def skip(self, count: int) -> bool:
        """
        Advance by ``count`` bytes without reading them.

        Returns False (and does not move) when that would run past the end of
        input; callers treat this as the input being truncated.
        """
        if count < 0 or self._pos + count > self._size:
            return False
        self._pos += count
        return True

    # ── Bulk copy ──

    def iter_chunks(self, block_size: int = COPY_BLOCK_SIZE):
        """
        Yield the rest of the input, from the cursor to the end, in blocks.

        The cursor advances as blocks are yielded, so a partially consumed
        iterator leaves the reader positioned after the last block.
        """
        while self._pos < self._size:
            chunk = self.read(block_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        """Release mmap resources (the file handle belongs to the caller)."""
        if self._mmap is not None:
            try:
                self._mmap.close()
            except (OSError, ValueError) as e:
                logger.debug("mmap close failed: %s", e)
            self._mmap = None
            self._using_mmap = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
