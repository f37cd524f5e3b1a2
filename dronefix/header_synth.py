"""
Container-Header Synthesizer (repair path A).

A "type 1" damaged file looks like this on disk:

    ftyp  moov  [free]  mdat( ftyp ... the real movie ... )

The outer atoms are left over from the aborted recording; the real movie is
nested inside 'mdat', but the 8-byte header of its 'ftyp' atom sits where a
player doesn't expect it.  The repair walks the outer chain, finds the inner
'ftyp', and writes a fresh 'ftyp' header followed by every byte after the
inner header, verbatim.

On rare occasions the camera restarts the sequence once more, so the inner
'ftyp' is itself followed by 'moov' and an 'mdat' that begins with yet
another 'ftyp'.  The walk follows as many such repetitions as validate and
uses the innermost one.
"""

import struct
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .atoms import (
    ATOM_HEADER_SIZE, TAG_FREE, TAG_FTYP, TAG_MDAT, TAG_MOOV,
    ProbeResult, probe_atom,
)
from .byte_reader import ByteReader
from .errors import Truncated

logger = logging.getLogger(__name__)


@dataclass
class HeaderLocation:
    """Where the recoverable movie starts, and the header to give it."""
    ftyp_size: int                  # size written into the synthesized header
    ftyp_offset: int                # file offset of the innermost 'ftyp' header
    nested_repetitions: int = 0     # extra ftyp/moov/mdat/ftyp rounds followed
    moov_size: int = 0              # outer 'moov' (0 if absent)
    free_size: int = 0              # outer 'free' (0 if absent)
    mdat_offset: int = -1

    @property
    def copy_offset(self) -> int:
        """First input byte copied verbatim after the new header."""
        return self.ftyp_offset + ATOM_HEADER_SIZE


def _probe_and_skip(reader: ByteReader, tag: bytes) -> ProbeResult:
    """
    Probe for an optional atom and skip its payload if it is there.

    Not finding it is fine: the cursor goes back to where it was.  Finding it
    with a payload that runs past the end of input is not.
    """
    mark = reader.checkpoint()
    probe = probe_atom(reader, tag)
    if not probe:
        reader.restore(mark)
        logger.info("Didn't see a '%s' atom", tag.decode("ascii"))
        return probe
    logger.info("Saw '%s' (size %d == 0x%08x)",
                tag.decode("ascii"), probe.atom_size, probe.atom_size)
    if not reader.skip(probe.payload_size):
        raise Truncated(
            f"Input file was truncated before end of '{tag.decode('ascii')}'",
            offset=probe.header.offset)
    return probe


def _follow_repetitions(reader: ByteReader, inner: ProbeResult) -> tuple[ProbeResult, int]:
    """
    Follow repeated 'ftyp' → 'moov' → 'mdat' → 'ftyp' rounds.

    Starts with the cursor just past ``inner``'s header.  Returns the
    innermost matched 'ftyp' probe and the number of extra rounds, with the
    cursor just past that probe's header.
    """
    rounds = 0
    while True:
        resume = reader.checkpoint()
        if not reader.skip(inner.payload_size):
            break
        moov = probe_atom(reader, TAG_MOOV)
        if not moov or not reader.skip(moov.payload_size):
            break
        if not probe_atom(reader, TAG_MDAT):
            break
        again = probe_atom(reader, TAG_FTYP)
        if not again:
            break
        logger.info("Saw nested 'ftyp' within 'mdat' at 0x%x", again.header.offset)
        inner = again
        rounds += 1
    reader.restore(resume)
    return inner, rounds


def locate_header(reader: ByteReader) -> Optional[HeaderLocation]:
    """
    Walk the atom chain that follows the leading 'ftyp'.

    Returns the location of the embedded 'ftyp' with the cursor right after
    its header, ready for ``synthesize``.  Returns None when the chain shows
    this is really a raw NAL stream ('mdat' missing, or 'mdat' not starting
    with 'ftyp'); the cursor is then where a 0x00000002 scan should begin.

    Raises Truncated if a validated 'moov' or 'free' runs past end of input.
    """
    moov = _probe_and_skip(reader, TAG_MOOV)
    free = _probe_and_skip(reader, TAG_FREE)

    mark = reader.checkpoint()
    mdat = probe_atom(reader, TAG_MDAT)
    if not mdat:
        logger.info("Didn't see a 'mdat' atom")
        reader.restore(mark)
        return None
    logger.info("Saw 'mdat' at 0x%x", mdat.header.offset)

    payload_start = reader.checkpoint()
    inner = probe_atom(reader, TAG_FTYP)
    if not inner:
        logger.info("Didn't see a 'ftyp' atom inside the 'mdat' data")
        reader.restore(payload_start)
        return None

    inner, rounds = _follow_repetitions(reader, inner)
    logger.info("Saw a 'ftyp' within the 'mdat' data (size %d); "
                "we can repair this file", inner.atom_size)
    return HeaderLocation(
        ftyp_size=inner.atom_size,
        ftyp_offset=inner.header.offset,
        nested_repetitions=rounds,
        moov_size=moov.atom_size if moov else 0,
        free_size=free.atom_size if free else 0,
        mdat_offset=mdat.header.offset,
    )


def build_header(ftyp_size: int) -> bytes:
    """The 8 bytes that replace the lost 'ftyp' header."""
    return struct.pack(">I4s", ftyp_size, TAG_FTYP)


def synthesize(reader: ByteReader, sink: BinaryIO, ftyp_size: int) -> int:
    """
    Write the reconstructed header, then copy the rest of the input verbatim.

    Returns the number of bytes written to ``sink``.
    """
    header = build_header(ftyp_size)
    sink.write(header)
    written = len(header)
    for chunk in reader.iter_chunks():
        sink.write(chunk)
        written += len(chunk)
    logger.debug("Path A wrote %d bytes (%d copied)", written, written - len(header))
    return written
