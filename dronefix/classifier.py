"""
Signature Classifier: decide which repair path a damaged file needs.

Two corruption patterns are seen in the field:

  • "Type 1": a clean file that only lost its outer wrapper.  Somewhere near
    the start there is an 'ftyp' atom and the rest of the atom chain is
    intact.  → CONTAINER_HEADER_SYNTHESIS (repair path A)

  • "Type 2": the container is gone and what is left is the raw
    length-prefixed H.264 stream.  Its first NAL unit is a 2-byte access
    unit delimiter, so the stream starts with the length word 0x00000002.
    → NAL_RESTREAM (repair path B)

Either may be preceded by junk the camera's storage layer left behind:
whole words of 0x00000000 / 0xFFFFFFFF filler, or arbitrary garbage that
need not be 4-byte aligned.  Filler is skipped a word at a time; garbage is
skipped a byte at a time until a known signature lines up.
"""

import enum
import logging
from collections import deque
from dataclasses import dataclass

from .atoms import ATOM_HEADER_SIZE, FOURCC_FTYP
from .byte_reader import ByteReader
from .errors import StructuralMismatch, Truncated, UnreadableInput, UnrecognizedSignature

logger = logging.getLogger(__name__)

# The length word of the 2-byte first NAL unit
NAL_MARKER = 0x00000002

FILLER_WORDS = (0x00000000, 0xFFFFFFFF)


class RepairPath(enum.Enum):
    CONTAINER_HEADER_SYNTHESIS = "container_header_synthesis"
    NAL_RESTREAM = "nal_restream"

    @property
    def extension(self) -> str:
        return "mp4" if self is RepairPath.CONTAINER_HEADER_SYNTHESIS else "h264"


class SignatureWindow:
    """
    The 8 most recently read bytes, viewed as (first_word, next_word).

    Pushing a byte evicts the oldest one; pushing a word evicts four.
    """
    SIZE = 8

    def __init__(self, seed: bytes):
        if len(seed) != self.SIZE:
            raise ValueError(f"window needs {self.SIZE} bytes, got {len(seed)}")
        self._bytes = deque(seed, maxlen=self.SIZE)

    def _word(self, start: int) -> int:
        window = bytes(self._bytes)
        return int.from_bytes(window[start:start + 4], "big")

    @property
    def first_word(self) -> int:
        return self._word(0)

    @property
    def next_word(self) -> int:
        return self._word(4)

    def push_byte(self, value: int):
        self._bytes.append(value)

    def push_word(self, word: int):
        self._bytes.extend(word.to_bytes(4, "big"))

    def __bytes__(self) -> bytes:
        return bytes(self._bytes)


@dataclass
class Classification:
    """Where the recognisable data starts, and what it looks like."""
    path: RepairPath
    signature_offset: int           # file offset of first_word
    first_word: int
    next_word: int
    filler_bytes_skipped: int = 0
    garbage_bytes_skipped: int = 0

    @property
    def junk_bytes_skipped(self) -> int:
        return self.filler_bytes_skipped + self.garbage_bytes_skipped

    @property
    def ftyp_size(self) -> int:
        """Declared size of the leading 'ftyp' atom (path A only)."""
        return self.first_word

    @property
    def carry_word(self) -> int:
        """The word after 0x00000002 (path B only)."""
        return self.next_word


def classify(reader: ByteReader) -> Classification:
    """
    Scan the start of the input for a known signature.

    On return the cursor is positioned where the chosen repair path expects
    it: just past the whole leading 'ftyp' atom for path A, or just past the
    0x00000002 marker and the word after it for path B.

    Raises UnreadableInput, UnrecognizedSignature, StructuralMismatch or
    Truncated; all are fatal.
    """
    start = reader.tell()
    seed = reader.read(SignatureWindow.SIZE)
    if len(seed) < SignatureWindow.SIZE:
        raise UnreadableInput("Unable to read the start of the file", offset=start)

    window = SignatureWindow(seed)
    window_offset = start
    filler = 0
    garbage = 0

    while True:
        first_word = window.first_word
        next_word = window.next_word

        if next_word == FOURCC_FTYP:
            if first_word < ATOM_HEADER_SIZE:
                raise StructuralMismatch(
                    f"Bad length ({first_word}) for initial 'ftyp' atom",
                    offset=window_offset)
            if not reader.skip(first_word - ATOM_HEADER_SIZE):
                raise Truncated(
                    f"Input ends inside the initial 'ftyp' atom (size {first_word})",
                    offset=window_offset)
            if window_offset == start:
                logger.info("Saw initial 'ftyp'")
            else:
                logger.info("Found 'ftyp' at file position 0x%x", window_offset)
            return Classification(
                RepairPath.CONTAINER_HEADER_SYNTHESIS, window_offset,
                first_word, next_word, filler, garbage)

        if first_word == NAL_MARKER:
            if window_offset != start:
                logger.info("Found 0x%08X at file position 0x%x",
                            NAL_MARKER, window_offset)
            else:
                logger.info("File starts with 0x%08X (raw H.264 stream)", NAL_MARKER)
            return Classification(
                RepairPath.NAL_RESTREAM, window_offset,
                first_word, next_word, filler, garbage)

        if first_word in FILLER_WORDS:
            if filler == 0 and garbage == 0:
                logger.info("Skipping initial junk 0x%08X words at the start of the file",
                            first_word)
            word = reader.read_u32_be()
            if word is None:
                raise UnrecognizedSignature(
                    "File appears to contain nothing but zeros or 0xFF",
                    offset=reader.tell())
            window.push_word(word)
            window_offset += 4
            filler += 4
            continue

        # Garbage: slide the window one byte and try again
        if filler == 0 and garbage == 0:
            logger.info("No initial 'ftyp' atom or 0x%08X; looking for data "
                        "that we understand", NAL_MARKER)
        c = reader.read_u8()
        if c is None:
            raise UnrecognizedSignature(
                "Unable to find sane initial data", offset=reader.tell())
        window.push_byte(c)
        window_offset += 1
        garbage += 1
