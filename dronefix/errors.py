"""
Repair error taxonomy.

Every fatal condition the core can hit maps to one of these.  They are raised
inside the detection/repair components and caught once, by the orchestrator
in ``repair.py``, which turns them into a failed ``RepairResult``.
"""

from typing import Optional


class RepairError(Exception):
    """Base class: a condition that makes this file unrepairable."""
    kind = "repair_error"

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.offset = offset

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (at file position 0x{self.offset:x})"


class UnreadableInput(RepairError):
    """The input ended (or failed) at a read we could not do without."""
    kind = "unreadable_input"


class UnrecognizedSignature(RepairError):
    """No 'ftyp' atom or 0x00000002 marker before end of input."""
    kind = "unrecognized_signature"


class StructuralMismatch(RepairError):
    """A required atom failed its tag/size check and no fallback applies."""
    kind = "structural_mismatch"


class Truncated(RepairError):
    """The input ends before the declared extent of a validated atom."""
    kind = "truncated"
