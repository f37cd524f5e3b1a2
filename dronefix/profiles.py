"""
Format Profile Table — SPS/PPS parameter sets per camera video format.

WHY THIS EXISTS
───────────────
The camera writes the H.264 Sequence Parameter Set (SPS) and Picture
Parameter Set (PPS) exactly once, inside the 'moov' atom.  When recording is
interrupted, 'moov' is never written, so a salvaged raw bitstream has no
parameter sets at all and no decoder can interpret it.  The restream engine
re-injects them from this catalog, keyed by the video format the user says
the file was recorded in.

Each blob is stored terminator-delimited (trailing 0xFF), exactly as captured
from known-good files.  The terminator is never written to the output.

Selector codes:  0-9, then A-E  (15 formats, integer selectors 0..14).
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

PARAMETER_SET_TERMINATOR = 0xFF

# Used when a selector is missing or out of range (Phantom 2 Vision+ default)
DEFAULT_PROFILE_CODE = "8"

PROFILE_CODES = "0123456789ABCDE"


def _until_terminator(blob: bytes) -> bytes:
    """Return ``blob`` up to (not including) its first terminator byte."""
    idx = blob.find(bytes([PARAMETER_SET_TERMINATOR]))
    return blob if idx < 0 else blob[:idx]


@dataclass(frozen=True)
class FormatProfile:
    """One supported resolution/frame-rate combination."""
    code: str                   # "0".."9", "A".."E"
    label: str                  # e.g. "1080p, 30fps"
    sps_blob: bytes             # terminator-delimited SPS NAL unit
    pps_blob: bytes             # terminator-delimited PPS NAL unit

    @property
    def index(self) -> int:
        return PROFILE_CODES.index(self.code)

    @property
    def parameter_set_a(self) -> bytes:
        """SPS payload as written to the output (no terminator)."""
        return _until_terminator(self.sps_blob)

    @property
    def parameter_set_b(self) -> bytes:
        """PPS payload as written to the output (no terminator)."""
        return _until_terminator(self.pps_blob)


# ══════════════════════════════════════════════════════════════
#  P A R A M E T E R   S E T S
# ══════════════════════════════════════════════════════════════

# ── PPS ── (two camera families)
PPS_P2VP = bytes.fromhex("28 ee 3c 80 ff")
PPS_INSPIRE = bytes.fromhex("28 ee 38 30 ff")

# ── SPS ── (one per video format)
SPS_2160P30 = bytes.fromhex(
    "27 64 00 33 ac 34 c8 03 c0 04 3e c0 5a 80 80 80 a0 00 00 7d 20 00 1d 4c"
    " 1d 0c 00 07 27 08 00 01 c9 c3 97 79 71 a1 80 00 e4 e1 00 00 39 38 72 ef"
    " 2e 1f 08 84 53 80 ff")
SPS_2160P25 = bytes.fromhex(
    "27 64 00 33 ac 34 c8 03 c0 04 3e c0 5a 80 80 80 a0 00 00 7d 00 00 18 6a"
    " 1d 0c 00 07 27 08 00 01 c9 c3 97 79 71 a1 80 00 e4 e1 00 00 39 38 72 ef"
    " 2e 1f 08 84 53 80 ff")
SPS_2160P24 = bytes.fromhex(
    "27 64 00 33 ac 34 c8 01 00 01 0f b0 16 a0 20 20 28 00 00 1f 48 00 05 dc"
    " 07 43 00 01 c9 c2 00 00 72 70 e5 de 5c 68 60 00 39 38 40 00 0e 4e 1c bb"
    " ff")
SPS_1520P30 = bytes.fromhex(
    "27 64 00 29 ac 34 c8 02 a4 0b fb 01 6a 02 02 02 80 00 01 f4 80 00 75 30"
    " 74 30 00 13 12 c0 00 04 c4 b4 5d e5 c6 86 00 02 62 58 00 00 98 96 8b bc"
    " b8 7c 22 11 4e 00 00 00 ff")
SPS_1520P25 = bytes.fromhex(
    "27 64 00 29 ac 34 c8 02 a4 0b fb 01 6a 02 02 02 80 00 00 03 00 80 00 00"
    " 19 74 30 00 13 12 c0 00 04 c4 b4 5d e5 c6 86 00 02 62 58 00 00 98 96 8b"
    " bc b8 7c 22 11 4e ff")
SPS_1080P60 = bytes.fromhex(
    "27 64 00 2a ac 34 c8 07 80 22 7e 5c 05 a8 08 08 0a 00 00 07 d2 00 03 a9"
    " 81 d0 c0 00 4c 4b 00 00 13 12 d1 77 97 1a 18 00 09 89 60 00 02 62 5a 2e"
    " f2 e1 f0 88 45 16 ff")
SPS_1080I60 = bytes.fromhex(
    "27 4d 00 2a 9a 66 03 c0 22 3e f0 16 c8 00 00 1f 48 00 07 53 07 43 00 02"
    " 36 78 00 02 36 78 5d e5 c6 86 00 04 6c f0 00 04 6c f0 bb cb 87 c2 21 14"
    " 58 ff")
SPS_1080P50 = bytes.fromhex(
    "27 64 00 29 ac 34 c8 07 80 22 7e 5c 05 a8 08 08 0a 00 00 07 d0 00 03 0d"
    " 41 d0 c0 00 4c 4b 00 00 13 12 d1 77 97 1a 18 00 09 89 60 00 02 62 5a 2e"
    " f2 e1 f0 88 45 16 ff")
SPS_1080P30 = bytes.fromhex(
    "27 4d 00 28 9a 66 03 c0 11 3f 2e 02 d9 00 00 03 03 e9 00 00 ea 60 e8 60"
    " 00 e2 98 00 03 8a 60 bb cb 8d 0c 00 1c 53 00 00 71 4c 17 79 70 f8 44 22"
    " 8b ff")
SPS_1080P25 = bytes.fromhex(
    "27 4d 00 28 9a 66 03 c0 11 3f 2e 02 d9 00 00 03 03 e8 00 00 c3 50 e8 60"
    " 00 dc f0 00 03 73 b8 bb cb 8d 0c 00 1b 9e 00 00 6e 77 17 79 70 f8 44 22"
    " 8b ff")
SPS_1080P24 = bytes.fromhex(
    "27 64 00 29 ac 34 c8 07 80 22 7e 5c 05 a8 08 08 0a 00 00 07 d2 00 01 77"
    " 01 d0 c0 00 be bc 00 00 be bc 17 79 71 a1 80 01 7d 78 00 01 7d 78 2e f2"
    " e1 f0 88 45 16 00 00 00 ff")
SPS_720P60 = bytes.fromhex(
    "27 4d 00 20 9a 66 02 80 2d d8 0b 64 00 00 0f a4 00 07 53 03 a1 80 03 8a"
    " 60 00 0e 29 82 ef 2e 34 30 00 71 4c 00 01 c5 30 5d e5 c3 e1 10 8a 34 ff")
SPS_720P30 = bytes.fromhex(
    "27 4d 00 1f 9a 66 02 80 2d d8 0b 64 00 00 0f a4 00 03 a9 83 a1 80 02 5c"
    " 40 00 09 71 02 ef 2e 34 30 00 4b 88 00 01 2e 20 5d e5 c3 e1 10 8a 34 ff")
SPS_720P25 = bytes.fromhex(
    "27 64 00 28 ac 34 c8 05 00 5b b0 16 a0 20 20 28 00 00 1f 40 00 06 1a 87"
    " 43 00 0f d4 80 00 fd 4b 5d e5 c6 86 00 1f a9 00 01 fa 96 bb cb 87 c2 21"
    " 14 78 ff")
SPS_480P30 = bytes.fromhex(
    "27 4d 40 1e 9a 66 05 01 ed 80 b6 40 00 00 fa 40 00 3a 98 3a 10 00 5e 68"
    " 00 02 f3 40 bb cb 8d 08 00 2f 34 00 01 79 a0 5d e5 c3 e1 10 8a 3c ff")


# ══════════════════════════════════════════════════════════════
#  C A T A L O G
# ══════════════════════════════════════════════════════════════

FORMAT_PROFILES: tuple[FormatProfile, ...] = (
    FormatProfile("0", "2160p(4k), 30fps", SPS_2160P30, PPS_INSPIRE),
    FormatProfile("1", "2160p(4k), 25fps", SPS_2160P25, PPS_INSPIRE),
    FormatProfile("2", "2160p(4k), 24fps", SPS_2160P24, PPS_INSPIRE),
    FormatProfile("3", "1520p, 30fps", SPS_1520P30, PPS_INSPIRE),
    FormatProfile("4", "1520p, 25fps", SPS_1520P25, PPS_INSPIRE),
    FormatProfile("5", "1080p, 60fps", SPS_1080P60, PPS_INSPIRE),
    FormatProfile("6", "1080i, 60fps", SPS_1080I60, PPS_P2VP),
    FormatProfile("7", "1080p, 50fps", SPS_1080P50, PPS_INSPIRE),
    FormatProfile("8", "1080p, 30fps", SPS_1080P30, PPS_P2VP),
    FormatProfile("9", "1080p, 25fps", SPS_1080P25, PPS_P2VP),
    FormatProfile("A", "1080p, 24fps", SPS_1080P24, PPS_INSPIRE),
    FormatProfile("B", "720p, 60fps", SPS_720P60, PPS_P2VP),
    FormatProfile("C", "720p, 30fps", SPS_720P30, PPS_P2VP),
    FormatProfile("D", "720p, 25fps", SPS_720P25, PPS_INSPIRE),
    FormatProfile("E", "480p, 30fps", SPS_480P30, PPS_P2VP),
)

# Best guesses when the user doesn't know the recording format
CAMERA_HINTS = (
    ("Phantom 2 Vision+", "8"),
    ("Inspire", "2"),
)


def parse_selector(value: Union[str, int, None]) -> Optional[int]:
    """Turn a user-typed format code ("0".."9", "a".."e") into an index.

    Integers are accepted as-is.  Returns None for anything unrecognised;
    the caller decides whether to re-prompt or fall back to the default.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value if 0 <= value < len(FORMAT_PROFILES) else None
    text = value.strip().upper()
    if len(text) != 1 or text not in PROFILE_CODES:
        return None
    return PROFILE_CODES.index(text)


def get_profile(selector: Union[str, int, None]) -> FormatProfile:
    """Look up a profile; unknown selectors fall back to the default profile."""
    idx = parse_selector(selector)
    if idx is None:
        default = FORMAT_PROFILES[PROFILE_CODES.index(DEFAULT_PROFILE_CODE)]
        logger.warning("Unknown video format selector %r, using %s (%s)",
                       selector, default.code, default.label)
        return default
    return FORMAT_PROFILES[idx]


def describe_profiles() -> list[str]:
    """Prompt lines, one per format."""
    return [f"If the video format was {p.label}: type {p.code}"
            for p in FORMAT_PROFILES]
