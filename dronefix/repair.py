"""
Repair Orchestrator: classify the damage, pick a repair path, run it.

A repair happens in two steps so that nothing is written until we know the
file can be repaired:

  1. plan_repair():   classify the leading bytes and, for path A, walk the
                      atom chain.  May demote path A to path B.  All fatal
                      detection errors surface here.
  2. execute_plan():  write the output, either synthesized header + copy
                      (path A) or Annex-B restream (path B).

Errors from the core (``RepairError`` subclasses) are caught here and
reported through ``RepairResult``; they never reach the caller as exceptions.
I/O errors opening files do propagate: they are the caller's business.
"""

from __future__ import annotations

import os
import logging
from dataclasses import asdict, dataclass, field
from typing import BinaryIO, Callable, Optional, Union

from .byte_reader import ByteReader
from .classifier import Classification, RepairPath, classify
from .errors import RepairError, StructuralMismatch
from .header_synth import HeaderLocation, locate_header, synthesize
from .profiles import FormatProfile, get_profile
from .restream import find_nal_marker, restream

logger = logging.getLogger(__name__)

REPAIRED_SUFFIX = "-repaired"

ProfileSelector = Union[str, int, None]


@dataclass
class RepairPlan:
    """Everything decided before the output file is opened."""
    path: RepairPath
    classification: Classification
    header: Optional[HeaderLocation] = None     # path A
    carry_word: int = 0                         # path B
    stream_offset: int = 0                      # path B: where 0x00000002 was
    fell_back: bool = False                     # path A demoted to path B

    @property
    def needs_profile(self) -> bool:
        return self.path is RepairPath.NAL_RESTREAM

    def describe(self) -> list[str]:
        c = self.classification
        lines = []
        if c.junk_bytes_skipped:
            lines.append(f"Skipped {c.junk_bytes_skipped} junk bytes "
                         f"({c.filler_bytes_skipped} filler, "
                         f"{c.garbage_bytes_skipped} garbage)")
        if self.path is RepairPath.CONTAINER_HEADER_SYNTHESIS:
            h = self.header
            lines.append(f"'ftyp' at 0x{c.signature_offset:x}; embedded 'ftyp' "
                         f"(size {h.ftyp_size}) at 0x{h.ftyp_offset:x}")
            outer = [f"'{tag}' ({size} bytes)" for tag, size in
                     (("moov", h.moov_size), ("free", h.free_size)) if size]
            if outer:
                lines.append(f"Outer atoms: {', '.join(outer)}")
            lines.append(f"'mdat' at 0x{h.mdat_offset:x}")
            if h.nested_repetitions:
                lines.append(f"Followed {h.nested_repetitions} nested "
                             f"'ftyp'/'moov'/'mdat' repetition(s)")
            lines.append("Repair: rebuild 'ftyp' header → .mp4")
        else:
            if self.fell_back:
                lines.append("Container chain has no embedded 'ftyp'; "
                             "treating the data as a raw H.264 stream")
            lines.append(f"Raw H.264 stream at 0x{self.stream_offset:x}")
            lines.append("Repair: inject SPS/PPS, restream → .h264 "
                         "(playable by VLC)")
        return lines


@dataclass
class RepairResult:
    """Result of a repair attempt."""
    success: bool = False
    path: str = ""
    input_path: str = ""
    output_path: str = ""
    input_size: int = 0
    bytes_written: int = 0
    actions_taken: list[str] = field(default_factory=list)
    # Detection
    signature_offset: int = -1
    junk_bytes_skipped: int = 0
    fell_back_to_restream: bool = False
    # Path A
    ftyp_size: int = 0
    nested_repetitions: int = 0
    # Path B
    profile_code: str = ""
    profile_label: str = ""
    units_written: int = 0
    payload_bytes: int = 0
    anomalies_recovered: int = 0
    resync_bytes_skipped: int = 0
    truncated_final_unit: bool = False
    # Failure
    error: str = ""
    error_kind: str = ""
    error_offset: Optional[int] = None

    @property
    def size_change(self) -> int:
        return self.bytes_written - self.input_size

    @property
    def summary(self) -> str:
        if not self.success:
            return f"Repair failed: {self.error}" if self.error else "Repair failed"
        parts = []
        if self.actions_taken:
            parts.append(f"Fixed: {', '.join(self.actions_taken)}")
        if self.size_change != 0:
            sign = "+" if self.size_change > 0 else ""
            parts.append(f"Size: {sign}{self.size_change} bytes")
        return " | ".join(parts) if parts else "No changes needed"

    def fail(self, err: RepairError):
        self.success = False
        self.error = str(err)
        self.error_kind = err.kind
        self.error_offset = err.offset

    def to_dict(self) -> dict:
        return asdict(self)


# ══════════════════════════════════════════════════════════════
#  Planning
# ══════════════════════════════════════════════════════════════

def plan_repair(reader: ByteReader) -> RepairPlan:
    """
    Decide how to repair the input, leaving the cursor ready for execution.

    Raises RepairError subclasses on any fatal condition.
    """
    classification = classify(reader)

    if classification.path is RepairPath.NAL_RESTREAM:
        return RepairPlan(
            RepairPath.NAL_RESTREAM, classification,
            carry_word=classification.carry_word,
            stream_offset=classification.signature_offset,
        )

    location = locate_header(reader)
    if location is not None:
        return RepairPlan(RepairPath.CONTAINER_HEADER_SYNTHESIS, classification,
                          header=location)

    # The 'mdat' data may itself be a raw stream starting with 0x00000002
    found = find_nal_marker(reader)
    if found is None:
        raise StructuralMismatch("Didn't see 0x00000002", offset=reader.tell())
    offset, carry = found
    return RepairPlan(RepairPath.NAL_RESTREAM, classification,
                      carry_word=carry, stream_offset=offset, fell_back=True)


# ══════════════════════════════════════════════════════════════
#  Execution
# ══════════════════════════════════════════════════════════════

def _record_plan(result: RepairResult, plan: RepairPlan):
    c = plan.classification
    result.path = plan.path.value
    result.signature_offset = c.signature_offset
    result.junk_bytes_skipped = c.junk_bytes_skipped
    result.fell_back_to_restream = plan.fell_back
    if plan.header is not None:
        result.ftyp_size = plan.header.ftyp_size
        result.nested_repetitions = plan.header.nested_repetitions


def execute_plan(plan: RepairPlan, reader: ByteReader, sink: BinaryIO,
                 profile: Optional[FormatProfile] = None,
                 result: Optional[RepairResult] = None) -> RepairResult:
    """Write the repaired output for ``plan``; the reader must not have moved."""
    if result is None:
        result = RepairResult(input_size=reader.size)
    _record_plan(result, plan)

    if result.junk_bytes_skipped:
        result.actions_taken.append(
            f"Skipped {result.junk_bytes_skipped} leading junk bytes")
    if plan.fell_back:
        result.actions_taken.append("Fell back to raw H.264 restream")

    if plan.path is RepairPath.CONTAINER_HEADER_SYNTHESIS:
        logger.info("Repairing the file (please wait)...")
        result.bytes_written = synthesize(reader, sink, plan.header.ftyp_size)
        result.actions_taken.append(
            f"Rebuilt 'ftyp' header (size {plan.header.ftyp_size})")
    else:
        if profile is None:
            profile = get_profile(None)
        result.profile_code = profile.code
        result.profile_label = profile.label
        logger.info("Repairing the file (please wait)...")
        stats = restream(reader, sink, profile, plan.carry_word)
        result.bytes_written = stats.bytes_written
        result.units_written = stats.units_written
        result.payload_bytes = stats.payload_bytes
        result.anomalies_recovered = stats.anomalies_recovered
        result.resync_bytes_skipped = stats.resync_bytes_skipped
        result.truncated_final_unit = stats.truncated_final_unit
        result.actions_taken.append(f"Injected SPS/PPS for {profile.label}")
        result.actions_taken.append(
            f"Restreamed {stats.units_written} NAL units "
            f"({stats.payload_bytes:,} payload bytes)")
        if stats.anomalies_recovered:
            result.actions_taken.append(
                f"Recovered from {stats.anomalies_recovered} bad NAL size(s)")

    result.success = True
    logger.info("...done (%d bytes written)", result.bytes_written)
    return result


def output_path_for(input_path: str, path: RepairPath) -> str:
    """``clip.MP4`` → ``clip-repaired.mp4`` / ``clip-repaired.h264``."""
    root, _ext = os.path.splitext(input_path)
    return f"{root}{REPAIRED_SUFFIX}.{path.extension}"


# ══════════════════════════════════════════════════════════════
#  Main Repair Entry Points
# ══════════════════════════════════════════════════════════════

def repair_stream(src: BinaryIO, sink: BinaryIO,
                  profile_selector: ProfileSelector = None) -> RepairResult:
    """Repair an already-open input into an already-open output.

    Args:
        src: Readable, seekable binary stream positioned at the file start
        sink: Writable binary stream
        profile_selector: Format code for path B ("0".."9", "A".."E");
            unknown or missing selects the default profile

    Returns:
        RepairResult; ``success`` is False if the file can't be repaired
    """
    with ByteReader(src) as reader:
        result = RepairResult(input_size=reader.size)
        try:
            plan = plan_repair(reader)
            profile = get_profile(profile_selector) if plan.needs_profile else None
            return execute_plan(plan, reader, sink, profile, result)
        except RepairError as e:
            logger.error("%s. We cannot repair this file!", e)
            result.fail(e)
            return result


def repair_file(input_path: str,
                output_path: Optional[str] = None,
                profile_selector: ProfileSelector = None,
                choose_profile: Optional[Callable[[RepairPlan], ProfileSelector]] = None,
                on_plan: Optional[Callable[[RepairPlan], None]] = None,
                diagnose_only: bool = False) -> RepairResult:
    """Repair the file at ``input_path``.

    Args:
        input_path: Damaged video file
        output_path: Where to write (derived from ``input_path`` if None)
        profile_selector: Format code for path B; if None, ``choose_profile``
            is asked (after planning, only when path B applies)
        choose_profile: Callback returning a format code, e.g. a prompt
        on_plan: Called with the plan before anything is written
        diagnose_only: Plan and report, but write nothing

    Returns:
        RepairResult with what was found and done

    Raises:
        OSError if the input can't be opened or the output can't be created
    """
    result = RepairResult(input_path=input_path)

    with open(input_path, "rb") as fd, ByteReader(fd) as reader:
        result.input_size = reader.size
        try:
            plan = plan_repair(reader)
        except RepairError as e:
            logger.error("%s. We cannot repair this file!", e)
            result.fail(e)
            return result

        _record_plan(result, plan)
        for line in plan.describe():
            logger.info(line)
        if on_plan is not None:
            on_plan(plan)

        if diagnose_only:
            result.success = True
            result.actions_taken.append("Diagnosed only (nothing written)")
            return result

        profile = None
        if plan.needs_profile:
            selector = profile_selector
            if selector is None and choose_profile is not None:
                selector = choose_profile(plan)
            profile = get_profile(selector)

        result.output_path = output_path or output_path_for(input_path, plan.path)
        with open(result.output_path, "wb") as sink:
            return execute_plan(plan, reader, sink, profile, result)
