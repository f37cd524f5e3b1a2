"""
Tests for the low-level pieces: byte reader, atom probe, format profiles.
"""
import io
import os
import struct
import tempfile
import shutil

from dronefix.byte_reader import ByteReader
from dronefix.atoms import TAG_FTYP, TAG_MDAT, TAG_MOOV, fourcc, probe_atom, read_atom_header
from dronefix.profiles import (
    DEFAULT_PROFILE_CODE, FORMAT_PROFILES, PARAMETER_SET_TERMINATOR,
    PPS_INSPIRE, PPS_P2VP, SPS_1080P30, SPS_1080P24, get_profile, parse_selector,
)


def atom(tag: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", 8 + len(payload)) + tag + payload


def main():
    print("=" * 60)
    print("  Byte Reader / Atom Probe / Profiles — Test Suite")
    print("=" * 60)
    print()

    test_reader_words()
    test_reader_end_of_input()
    test_reader_checkpoint_and_skip()
    test_reader_mmap_file()
    test_reader_chunks()
    test_probe_match()
    test_probe_mismatch_and_bad_size()
    test_profile_catalog()
    test_profile_selectors()

    print()
    print("=" * 60)
    print("  ALL TESTS PASSED ✅")
    print("=" * 60)


def test_reader_words():
    """Big-endian byte and word reads."""
    print("── Test: reader words ──")
    reader = ByteReader(io.BytesIO(b"\x01\x02\x03\x04\x05\x06\x07"))
    assert reader.is_mmap is False
    assert reader.size == 7
    assert reader.read_u8() == 0x01
    assert reader.read_u32_be() == 0x02030405
    assert reader.read_u16_be() == 0x0607
    assert reader.tell() == 7
    assert reader.at_eof
    print("  ✅ reader words: PASS")


def test_reader_end_of_input():
    """Short reads at the end give None, never a partial word."""
    print("── Test: reader end of input ──")
    reader = ByteReader(io.BytesIO(b"\xAA\xBB\xCC"))
    assert reader.read_u32_be() is None
    assert reader.read_u8() is None
    assert reader.read(10) == b""

    empty = ByteReader(io.BytesIO(b""))
    assert empty.size == 0
    assert empty.read_u8() is None
    assert list(empty.iter_chunks()) == []
    print("  ✅ reader end of input: PASS")


def test_reader_checkpoint_and_skip():
    """Checkpoint/restore re-reads; skip refuses to run past the end."""
    print("── Test: checkpoint + skip ──")
    reader = ByteReader(io.BytesIO(bytes(range(16))))
    reader.read(4)
    mark = reader.checkpoint()
    assert reader.read_u32_be() == 0x04050607
    reader.restore(mark)
    assert reader.read_u8() == 4

    assert reader.skip(3) is True
    assert reader.tell() == 8
    assert reader.skip(100) is False
    assert reader.tell() == 8        # unchanged after a failed skip
    assert reader.skip(8) is True    # landing exactly on the end is fine
    assert reader.at_eof

    try:
        reader.restore(17)
        assert False, "restore outside the input should fail"
    except ValueError:
        pass
    print("  ✅ checkpoint + skip: PASS")


def test_reader_mmap_file():
    """A real file is memory-mapped and reads the same."""
    print("── Test: mmap file ──")
    tmpdir = tempfile.mkdtemp(prefix="test_reader_")
    try:
        path = os.path.join(tmpdir, "input.bin")
        data = b"\x00\x00\x00\x02" + b"\x09\x10" + b"Z" * 4096
        with open(path, "wb") as f:
            f.write(data)

        with open(path, "rb") as f, ByteReader(f) as reader:
            assert reader.is_mmap is True
            assert reader.size == len(data)
            assert reader.read_u32_be() == 2
            assert reader.read_u16_be() == 0x0910
            assert reader.read(4) == b"ZZZZ"
        print("  ✅ mmap file: PASS")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_reader_chunks():
    """iter_chunks yields everything from the cursor onward."""
    print("── Test: iter_chunks ──")
    data = os.urandom(10_000)
    reader = ByteReader(io.BytesIO(data))
    reader.read(123)
    chunks = list(reader.iter_chunks(block_size=4096))
    assert b"".join(chunks) == data[123:]
    assert [len(c) for c in chunks] == [4096, 4096, 10_000 - 123 - 8192]
    assert reader.at_eof
    print("  ✅ iter_chunks: PASS")


def test_probe_match():
    """A matching atom returns its payload size and leaves the payload unread."""
    print("── Test: probe match ──")
    data = atom(TAG_MOOV, b"m" * 20) + atom(TAG_MDAT, b"")
    reader = ByteReader(io.BytesIO(data))
    probe = probe_atom(reader, TAG_MOOV)
    assert probe
    assert probe.payload_size == 20
    assert probe.atom_size == 28
    assert probe.header.offset == 0
    assert reader.tell() == 8

    assert reader.skip(probe.payload_size)
    empty_mdat = probe_atom(reader, TAG_MDAT)
    assert empty_mdat.matched and empty_mdat.payload_size == 0
    assert fourcc(TAG_FTYP) == 0x66747970
    print("  ✅ probe match: PASS")


def test_probe_mismatch_and_bad_size():
    """Wrong tag, size < 8 and end of input are all NotFound."""
    print("── Test: probe mismatch ──")
    reader = ByteReader(io.BytesIO(atom(TAG_MDAT, b"x" * 4)))
    mark = reader.checkpoint()
    probe = probe_atom(reader, TAG_MOOV)
    assert not probe
    assert probe.header.tag == TAG_MDAT    # what was there instead
    assert reader.tell() == 8              # probe does not rewind
    reader.restore(mark)
    assert probe_atom(reader, TAG_MDAT)

    bad = ByteReader(io.BytesIO(b"\x00\x00\x00\x07moov"))
    assert not probe_atom(bad, TAG_MOOV)

    short = ByteReader(io.BytesIO(b"\x00\x00\x00\x10mo"))
    assert read_atom_header(short) is None
    assert not probe_atom(ByteReader(io.BytesIO(b"")), TAG_MOOV)
    print("  ✅ probe mismatch: PASS")


def test_profile_catalog():
    """15 profiles, unique codes, terminator stripped from the payloads."""
    print("── Test: profile catalog ──")
    assert len(FORMAT_PROFILES) == 15
    codes = [p.code for p in FORMAT_PROFILES]
    assert len(set(codes)) == 15
    for i, p in enumerate(FORMAT_PROFILES):
        assert p.index == i
        assert p.sps_blob[-1] == PARAMETER_SET_TERMINATOR
        assert p.parameter_set_a == p.sps_blob[:-1]
        assert p.parameter_set_b == p.pps_blob[:-1]
        assert PARAMETER_SET_TERMINATOR not in p.parameter_set_a
        assert p.parameter_set_a[0] == 0x27    # nal_unit_type 7: SPS
        assert p.parameter_set_b[0] == 0x28    # nal_unit_type 8: PPS

    p8 = FORMAT_PROFILES[8]
    assert p8.label == "1080p, 30fps"
    assert p8.sps_blob == SPS_1080P30
    assert p8.pps_blob == PPS_P2VP
    assert FORMAT_PROFILES[10].sps_blob == SPS_1080P24
    assert FORMAT_PROFILES[10].pps_blob == PPS_INSPIRE
    # trailing zero bytes inside an SPS are payload, not terminator
    assert FORMAT_PROFILES[10].parameter_set_a.endswith(b"\x16\x00\x00\x00")
    print("  ✅ profile catalog: PASS")


def test_profile_selectors():
    """Codes parse case-insensitively; bad selectors fall back to the default."""
    print("── Test: profile selectors ──")
    assert parse_selector("0") == 0
    assert parse_selector("9") == 9
    assert parse_selector("a") == 10
    assert parse_selector(" E ") == 14
    assert parse_selector(8) == 8
    assert parse_selector("F") is None
    assert parse_selector("10") is None
    assert parse_selector(15) is None
    assert parse_selector(-1) is None
    assert parse_selector(None) is None

    assert get_profile("c").code == "C"
    assert get_profile(14).label == "480p, 30fps"
    for bad in (None, "Z", 99, ""):
        assert get_profile(bad).code == DEFAULT_PROFILE_CODE
    print("  ✅ profile selectors: PASS")


if __name__ == "__main__":
    main()
