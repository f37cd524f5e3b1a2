"""
NAL Restream Engine (repair path B).

Inside an MP4, H.264 NAL units are stored length-prefixed (AVCC framing):

    [u32 length][payload] [u32 length][payload] ...

A "type 2" damaged file is just that stream with no container around it, and
without the SPS/PPS the camera only ever wrote into 'moov'.  This module
rewrites it as an Annex-B elementary stream (.h264):

    00 00 00 01 SPS  00 00 00 01 PPS  00 00 00 01 NAL  00 00 00 01 NAL ...

The parameter sets come from the user-selected format profile.

The stream always opens with a 2-byte access unit delimiter, which is why
its first length word reads 0x00000002.  The classifier has already consumed
that word plus the next one ("carry"): the carry's high half is the
delimiter's payload, its low half is the high half of the next length.

Length recovery
───────────────
A length of 0 or above 0x00FFFFFF means the length field itself is damaged,
usually by a long run of filler.  Bytes are then shifted one at a time into a
32-bit accumulator until it reads exactly 2: the next access unit delimiter,
where sane data resumes.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .byte_reader import COPY_BLOCK_SIZE, ByteReader
from .classifier import NAL_MARKER
from .profiles import FormatProfile

logger = logging.getLogger(__name__)

START_CODE = b"\x00\x00\x00\x01"

# Anything larger cannot be a real NAL unit from these cameras
MAX_NAL_SIZE = 0x00FFFFFF

_U32_MASK = 0xFFFFFFFF


class LengthAccumulator:
    """
    32-bit shift register used to resynchronise on a corrupted length field.

    Each pushed byte enters at the low end; the oldest byte falls off the top.
    """

    def __init__(self, value: int = 0):
        self.value = value & _U32_MASK

    def push(self, byte: int):
        self.value = ((self.value << 8) | byte) & _U32_MASK

    @property
    def at_marker(self) -> bool:
        return self.value == NAL_MARKER


@dataclass
class RestreamStats:
    """What the restream engine did."""
    bytes_written: int = 0
    units_written: int = 0          # NAL units after the two parameter sets
    payload_bytes: int = 0          # NAL payload bytes taken from input
    anomalies_recovered: int = 0
    resync_bytes_skipped: int = 0
    truncated_final_unit: bool = False
    ended_in_resync: bool = False


def is_plausible_length(length: int) -> bool:
    return 0 < length <= MAX_NAL_SIZE


def find_nal_marker(reader: ByteReader) -> Optional[tuple[int, int]]:
    """
    Scan forward, word by word, for 0x00000002 on a 4-byte boundary.

    Returns (offset of the marker, the word after it) with the cursor past
    both, or None if the input ends first.
    """
    logger.info("Looking for 0x%08X...", NAL_MARKER)
    while True:
        offset = reader.tell()
        word = reader.read_u32_be()
        if word is None:
            return None
        if word == NAL_MARKER:
            carry = reader.read_u32_be()
            if carry is None:
                return None
            logger.info("Found 0x%08X at file position 0x%x", NAL_MARKER, offset)
            return offset, carry


class Restreamer:
    """Writes one Annex-B stream; one instance per repair."""

    def __init__(self, reader: ByteReader, sink: BinaryIO, profile: FormatProfile,
                 max_resync_bytes: Optional[int] = None):
        self.reader = reader
        self.sink = sink
        self.profile = profile
        # None: resync may scan to end of input
        self.max_resync_bytes = max_resync_bytes
        self.stats = RestreamStats()

    def _write(self, data: bytes):
        self.sink.write(data)
        self.stats.bytes_written += len(data)

    def _write_unit_start(self):
        self._write(START_CODE)

    def _copy_unit(self, length: int) -> Optional[int]:
        """
        Write one start code + ``length`` payload bytes.

        Returns the number of payload bytes that were missing at end of input
        (0 for a complete unit).  Returns None if the input ended before any
        payload byte; nothing is written then, not even the start code.
        A zero-length unit writes nothing and counts as complete.
        """
        remaining = length
        started = False
        while remaining > 0:
            chunk = self.reader.read(min(remaining, COPY_BLOCK_SIZE))
            if not chunk:
                break
            if not started:
                self._write_unit_start()
                self.stats.units_written += 1
                started = True
            self._write(chunk)
            self.stats.payload_bytes += len(chunk)
            remaining -= len(chunk)
        if remaining and not started:
            return None
        return remaining

    def _resync(self, bad_length: int) -> Optional[int]:
        """Shift bytes in until the accumulator reads 2; None at end of input."""
        start = self.reader.tell()
        logger.warning("Anomalous NAL size 0x%08X at 0x%x; skipping over "
                       "anomalous bytes", bad_length, start - 4)
        acc = LengthAccumulator(bad_length)
        skipped = 0
        while not acc.at_marker:
            if self.max_resync_bytes is not None and skipped >= self.max_resync_bytes:
                logger.warning("Gave up resynchronising after %d bytes", skipped)
                self.stats.resync_bytes_skipped += skipped
                self.stats.ended_in_resync = True
                return None
            c = self.reader.read_u8()
            if c is None:
                self.stats.resync_bytes_skipped += skipped
                self.stats.ended_in_resync = True
                return None
            acc.push(c)
            skipped += 1
        self.stats.resync_bytes_skipped += skipped
        self.stats.anomalies_recovered += 1
        logger.info("Resynchronised at 0x%x after skipping %d bytes",
                    self.reader.tell() - 4, skipped)
        return acc.value

    def run(self, carry_word: int) -> RestreamStats:
        # SPS and PPS first: the decoder can't start without them
        self._write_unit_start()
        self._write(self.profile.parameter_set_a)
        self._write_unit_start()
        self._write(self.profile.parameter_set_b)

        # The 2-byte first unit was read along with the marker
        self._write_unit_start()
        self._write(((carry_word >> 16) & 0xFFFF).to_bytes(2, "big"))
        self.stats.units_written += 1
        self.stats.payload_bytes += 2

        low = self.reader.read_u16_be()
        if low is None:
            return self.stats
        length = ((carry_word & 0xFFFF) << 16) | low

        while True:
            missing = self._copy_unit(length)
            if missing is None:
                logger.info("Input ends right after a NAL size; nothing left to copy")
                break
            if missing:
                self.stats.truncated_final_unit = True
                logger.info("Input ends inside the last NAL unit; keeping what was read")
                break

            length = self.reader.read_u32_be()
            if length is None:
                break
            if not is_plausible_length(length):
                length = self._resync(length)
                if length is None:
                    break

        logger.debug("Restream wrote %d units, %d bytes",
                     self.stats.units_written, self.stats.bytes_written)
        return self.stats


def restream(reader: ByteReader, sink: BinaryIO, profile: FormatProfile,
             carry_word: int, max_resync_bytes: Optional[int] = None) -> RestreamStats:
    """Convert the rest of ``reader`` into an Annex-B stream on ``sink``."""
    logger.info("Injecting parameter sets for %s", profile.label)
    return Restreamer(reader, sink, profile, max_resync_bytes).run(carry_word)
