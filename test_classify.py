"""
Tests for the signature classifier: filler skipping, byte-granular resync,
and the fatal cases.
"""
import io
import struct

from dronefix.byte_reader import ByteReader
from dronefix.classifier import RepairPath, SignatureWindow, classify
from dronefix.errors import StructuralMismatch, Truncated, UnreadableInput, UnrecognizedSignature


def atom(tag: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", 8 + len(payload)) + tag + payload


FTYP = atom(b"ftyp", b"isom\x00\x00\x02\x00isomiso2avc1mp41")
MOOV = atom(b"moov", b"\x00" * 64)
# 0x00000002 + a 2-byte access unit delimiter, then a 5-byte NAL
RAW = b"\x00\x00\x00\x02\x09\x10" + struct.pack(">I", 5) + b"\x65\x88\x84\x00\x21"


def _classify(data: bytes):
    reader = ByteReader(io.BytesIO(data))
    return classify(reader), reader


def _expect(exc_type, data: bytes):
    try:
        _classify(data)
    except exc_type as e:
        return e
    raise AssertionError(f"expected {exc_type.__name__}")


def main():
    print("=" * 60)
    print("  Signature Classifier — Test Suite")
    print("=" * 60)
    print()

    test_window()
    test_clean_ftyp()
    test_clean_raw_stream()
    test_zero_filler_before_ftyp()
    test_ff_filler_before_raw_stream()
    test_unaligned_garbage()
    test_garbage_then_filler()
    test_ftyp_beats_marker()
    test_fatal_cases()

    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


def test_window():
    """The window evicts one byte per push_byte and four per push_word."""
    print("── Test: signature window ──")
    w = SignatureWindow(b"\x01\x02\x03\x04\x05\x06\x07\x08")
    assert w.first_word == 0x01020304
    assert w.next_word == 0x05060708
    w.push_byte(0x09)
    assert w.first_word == 0x02030405
    assert w.next_word == 0x06070809
    w.push_word(0xAABBCCDD)
    assert bytes(w) == b"\x06\x07\x08\x09\xAA\xBB\xCC\xDD"
    try:
        SignatureWindow(b"\x00" * 7)
        assert False, "short seed should be rejected"
    except ValueError:
        pass
    print("  ✅ signature window: PASS")


def test_clean_ftyp():
    """A file starting with 'ftyp' is path A; cursor lands after the atom."""
    print("── Test: clean ftyp ──")
    result, reader = _classify(FTYP + MOOV)
    assert result.path is RepairPath.CONTAINER_HEADER_SYNTHESIS
    assert result.signature_offset == 0
    assert result.ftyp_size == len(FTYP)
    assert result.junk_bytes_skipped == 0
    assert reader.tell() == len(FTYP)
    print("  ✅ clean ftyp: PASS")


def test_clean_raw_stream():
    """0x00000002 at the start is path B; the next word is the carry."""
    print("── Test: clean raw stream ──")
    result, reader = _classify(RAW)
    assert result.path is RepairPath.NAL_RESTREAM
    assert result.signature_offset == 0
    assert result.carry_word == 0x09100000
    assert reader.tell() == 8
    print("  ✅ clean raw stream: PASS")


def test_zero_filler_before_ftyp():
    """8 and 40 zero bytes of filler are skipped a word at a time."""
    print("── Test: zero filler ──")
    result, _ = _classify(b"\x00" * 8 + FTYP + MOOV)
    assert result.path is RepairPath.CONTAINER_HEADER_SYNTHESIS
    assert result.signature_offset == 8

    result, reader = _classify(b"\x00" * 40 + FTYP + MOOV)
    assert result.path is RepairPath.CONTAINER_HEADER_SYNTHESIS
    assert result.signature_offset == 40
    assert result.filler_bytes_skipped == 40
    assert result.garbage_bytes_skipped == 0
    assert reader.tell() == 40 + len(FTYP)
    print("  ✅ zero filler: PASS")


def test_ff_filler_before_raw_stream():
    """0xFFFFFFFF words are filler too."""
    print("── Test: 0xFF filler ──")
    result, reader = _classify(b"\xFF" * 12 + RAW)
    assert result.path is RepairPath.NAL_RESTREAM
    assert result.signature_offset == 12
    assert result.filler_bytes_skipped == 12
    assert reader.tell() == 12 + 8
    print("  ✅ 0xFF filler: PASS")


def test_unaligned_garbage():
    """The signature is found at its exact offset whatever the alignment."""
    print("── Test: unaligned garbage ──")
    for k in range(1, 12):
        junk = bytes((0x30 + i) for i in range(k))
        result, _ = _classify(junk + RAW)
        assert result.path is RepairPath.NAL_RESTREAM, k
        assert result.signature_offset == k, (k, result.signature_offset)

        result, reader = _classify(junk + FTYP + MOOV)
        assert result.path is RepairPath.CONTAINER_HEADER_SYNTHESIS, k
        assert result.signature_offset == k
        assert reader.tell() == k + len(FTYP)
    print("  ✅ unaligned garbage: PASS")


def test_garbage_then_filler():
    """Garbage followed by word filler: both kinds are counted."""
    print("── Test: garbage then filler ──")
    data = b"\x5A" * 4 + b"\x00" * 8 + FTYP
    result, _ = _classify(data + MOOV)
    assert result.path is RepairPath.CONTAINER_HEADER_SYNTHESIS
    assert result.signature_offset == 12
    assert result.garbage_bytes_skipped == 4
    assert result.filler_bytes_skipped == 8
    assert result.junk_bytes_skipped == 12
    print("  ✅ garbage then filler: PASS")


def test_ftyp_beats_marker():
    """An 'ftyp' tag in next_word wins even if first_word is 2."""
    print("── Test: ftyp priority ──")
    # size 2 is impossible for an atom, so this is fatal, not path B
    e = _expect(StructuralMismatch, b"\x00\x00\x00\x02ftyp" + b"\x00" * 16)
    assert e.offset == 0
    print("  ✅ ftyp priority: PASS")


def test_fatal_cases():
    """Too short, all filler, no signature, truncated 'ftyp'."""
    print("── Test: fatal cases ──")
    _expect(UnreadableInput, b"")
    _expect(UnreadableInput, b"\x00\x00\x00\x02\x09\x10\x00")

    e = _expect(UnrecognizedSignature, b"\x00" * 64)
    assert "zeros" in str(e)
    _expect(UnrecognizedSignature, b"\xFF" * 30)
    _expect(UnrecognizedSignature, b"\xAB" * 100)

    e = _expect(Truncated, b"\x00" * 4 + struct.pack(">I", 5000) + b"ftyp" + b"x" * 20)
    assert e.offset == 4
    assert "0x4" in str(e)
    print("  ✅ fatal cases: PASS")


if __name__ == "__main__":
    main()
