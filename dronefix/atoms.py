"""
Atom Probe: read one ISO BMFF atom header and check it is the one expected.

This is deliberately not a parser.  The repair only needs to confirm a short,
known chain of atoms ('ftyp' → 'moov' → 'free' → 'mdat' → 'ftyp') and learn
their sizes, so a probe reads exactly 8 bytes and answers "matched, with N
payload bytes following" or "not found".  It never restores the cursor;
callers take a checkpoint first when they want to retry at the same offset.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .byte_reader import ByteReader

logger = logging.getLogger(__name__)

ATOM_HEADER_SIZE = 8

TAG_FTYP = b"ftyp"     # wrapper
TAG_MOOV = b"moov"     # movie metadata
TAG_FREE = b"free"     # padding
TAG_MDAT = b"mdat"     # media data


def fourcc(tag: bytes) -> int:
    """A 4-character tag as the big-endian word it appears as on disk."""
    return int.from_bytes(tag, "big")


FOURCC_FTYP = fourcc(TAG_FTYP)


@dataclass(frozen=True)
class AtomHeader:
    """Size + tag of one atom.  ``size`` counts the 8 header bytes."""
    offset: int
    size: int
    tag: bytes

    @property
    def payload_size(self) -> int:
        return self.size - ATOM_HEADER_SIZE

    @property
    def tag_text(self) -> str:
        return self.tag.decode("ascii", errors="replace")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of ``probe_atom``: Matched(payload_size) or NotFound."""
    matched: bool
    payload_size: int = 0
    header: Optional[AtomHeader] = None

    @classmethod
    def found(cls, header: AtomHeader) -> "ProbeResult":
        return cls(True, header.payload_size, header)

    @classmethod
    def not_found(cls, header: Optional[AtomHeader] = None) -> "ProbeResult":
        return cls(False, 0, header)

    @property
    def atom_size(self) -> int:
        return self.payload_size + ATOM_HEADER_SIZE

    def __bool__(self) -> bool:
        return self.matched


def read_atom_header(reader: ByteReader) -> Optional[AtomHeader]:
    """Read 4-byte size + 4-byte tag at the cursor; None at end of input."""
    offset = reader.tell()
    size = reader.read_u32_be()
    if size is None:
        return None
    tag = reader.read(4)
    if len(tag) < 4:
        return None
    return AtomHeader(offset=offset, size=size, tag=tag)


def probe_atom(reader: ByteReader, expected_tag: bytes) -> ProbeResult:
    """
    Read one atom header and validate it against ``expected_tag``.

    NotFound on end of input, tag mismatch, or a size below 8.  On a match the
    cursor is left immediately after the header, payload unread.
    """
    header = read_atom_header(reader)
    if header is None:
        return ProbeResult.not_found()
    if header.tag != expected_tag:
        logger.debug("Expected '%s' at 0x%x, saw %r",
                     expected_tag.decode("ascii"), header.offset, header.tag)
        return ProbeResult.not_found(header)
    if header.size < ATOM_HEADER_SIZE:
        logger.debug("'%s' at 0x%x has impossible size %d",
                     header.tag_text, header.offset, header.size)
        return ProbeResult.not_found(header)
    return ProbeResult.found(header)
