"""
Post-repair verification: is the output file sound, and does it play?

Performs:
  1. Existence / readability check
  2. Size + MD5 of what actually landed on disk
  3. Structural check of the first bytes ('ftyp' header, or a start code)
  4. ffmpeg decode test of the first frames

ffmpeg is located through the ``imageio-ffmpeg`` bundle first, then on PATH.
Without ffmpeg the check still passes on structure alone; the report says so.
"""

from __future__ import annotations

import os
import shutil
import hashlib
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Optional

import imageio_ffmpeg

from .atoms import TAG_FTYP
from .classifier import RepairPath
from .restream import START_CODE

logger = logging.getLogger(__name__)

FFMPEG_TIMEOUT = 60

# ffmpeg stderr fragments that mean the stream is junk
_HARD_ERRORS = (
    "invalid data", "error while decoding",
    "no such file", "could not open",
    "invalid return value", "could not find codec",
)


@dataclass
class IntegrityCheck:
    """Result of post-repair verification."""
    passed: bool = False
    file_path: str = ""
    actual_size: int = 0
    actual_md5: str = ""
    is_readable: bool = False
    format_valid: bool = False
    ffmpeg_available: bool = False
    playable: Optional[bool] = None     # None: not tested
    issues: list[str] = field(default_factory=list)

    @property
    def status_icon(self) -> str:
        return "✅" if self.passed else "❌"

    @property
    def summary(self) -> str:
        if not self.passed:
            return f"FAILED: {', '.join(self.issues)}"
        if self.playable:
            return f"Verified OK, ffmpeg decodes it (MD5: {self.actual_md5[:12]}…)"
        return f"Structure OK (MD5: {self.actual_md5[:12]}…); not decoded"


def get_ffmpeg_path() -> Optional[str]:
    """Find an ffmpeg binary: imageio-ffmpeg bundle, or system PATH."""
    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        logger.debug("imageio-ffmpeg has no ffmpeg for us: %s", e)
    return shutil.which("ffmpeg")


def _file_md5(path: str, block_size: int = 1024 * 1024) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(block_size), b""):
            digest.update(block)
    return digest.hexdigest()


def _check_structure(head: bytes, extension: str,
                     expected_header: Optional[bytes]) -> Optional[str]:
    """Return an issue string, or None if the leading bytes look right."""
    if extension == "h264":
        if not head.startswith(START_CODE):
            return "Output does not start with an H.264 start code"
        return None
    if len(head) < 8 or head[4:8] != TAG_FTYP:
        return "Output does not start with an 'ftyp' atom"
    if expected_header is not None and head[:8] != expected_header:
        return "Output 'ftyp' header differs from the one synthesized"
    return None


def ffmpeg_decode_test(path: str, extension: str,
                       ffmpeg: Optional[str] = None,
                       timeout: int = FFMPEG_TIMEOUT) -> tuple[Optional[bool], str]:
    """Decode a few frames with ffmpeg.

    Returns (playable, reason); playable is None when ffmpeg isn't available.
    """
    ffmpeg = ffmpeg or get_ffmpeg_path()
    if not ffmpeg:
        return None, "ffmpeg not available (header-only check)"

    cmd = [ffmpeg, "-v", "error"]
    if extension == "h264":
        # Raw Annex-B has no container for ffmpeg to sniff reliably
        cmd += ["-f", "h264"]
    cmd += ["-i", path, "-frames:v", "5", "-f", "null", "-"]

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        return False, "ffmpeg: decode timed out (likely corrupt)"
    except OSError as e:
        logger.warning("ffmpeg could not be run: %s", e)
        return None, f"ffmpeg could not be run: {e}"

    stderr = proc.stderr.strip()
    for pattern in _HARD_ERRORS:
        if pattern in stderr.lower():
            return False, f"ffmpeg decode error: {stderr[:100]}"
    if proc.returncode != 0:
        return False, f"ffmpeg exited with status {proc.returncode}"
    return True, "ffmpeg: media file playable"


def verify_repaired_file(file_path: str,
                         expected_header: Optional[bytes] = None,
                         decode: bool = True,
                         path: Optional[RepairPath] = None) -> IntegrityCheck:
    """Verify a repaired file after it was written.

    Args:
        file_path: The repaired .mp4 or .h264
        expected_header: The 8 synthesized header bytes (path A), if known
        decode: Run the ffmpeg decode test
        path: The repair path that produced the file; the file name's
            extension is only a guess, used when this is not given

    Returns:
        IntegrityCheck; ``passed`` needs readable + structurally valid +
        (if ffmpeg ran) decodable
    """
    check = IntegrityCheck(file_path=file_path)
    if path is not None:
        extension = path.extension
    else:
        extension = os.path.splitext(file_path)[1].lstrip(".").lower()

    if not os.path.exists(file_path):
        check.issues.append("File does not exist")
        return check

    try:
        check.actual_size = os.path.getsize(file_path)
        with open(file_path, "rb") as f:
            head = f.read(16)
        check.actual_md5 = _file_md5(file_path)
        check.is_readable = True
    except OSError as e:
        check.issues.append(f"Cannot read repaired file: {e}")
        return check

    issue = _check_structure(head, extension, expected_header)
    check.format_valid = issue is None
    if issue:
        check.issues.append(issue)

    if decode:
        ffmpeg = get_ffmpeg_path()
        check.ffmpeg_available = ffmpeg is not None
        if ffmpeg:
            check.playable, reason = ffmpeg_decode_test(file_path, extension, ffmpeg)
            logger.info(reason)
            if check.playable is False:
                check.issues.append(reason)

    check.passed = (
        check.is_readable
        and check.format_valid
        and check.playable is not False
    )
    return check
