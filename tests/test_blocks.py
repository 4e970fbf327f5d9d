from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.blocks import (  # noqa: E402
    BLOCK_HEADER_SIZE,
    NAME_SIZE,
    Block,
    BlockType,
    PayloadReader,
    PayloadWriter,
    read_ascii,
    read_blocks,
    write_ascii,
    write_blocks,
)
from msconv.errors import MalformedContainer, UnknownVersion  # noqa: E402


def test_block_header_layout_big_endian() -> None:
    block = Block(type_tag=BlockType.GROUP, index=3, name="Strings", payload=b"\x01\x02")
    raw = block.to_bytes()

    assert len(raw) == BLOCK_HEADER_SIZE + 2
    assert raw[0] == 0
    assert raw[1:3] == b"\x01\x00"
    assert raw[3] == BlockType.GROUP
    assert raw[4:8] == (2).to_bytes(4, "big")
    assert raw[8:12] == (3).to_bytes(4, "big")
    assert raw[0x10:0x14] == b"SOBT"
    assert raw[0x14:0x1B] == b"Strings"
    assert raw[BLOCK_HEADER_SIZE:] == b"\x01\x02"


def test_block_header_layout_little_endian() -> None:
    block = Block(type_tag=BlockType.ZONE, index=1, name="z", payload=b"", big_endian=False)
    raw = block.to_bytes()
    assert raw[0] == 1
    assert raw[4:8] == (0).to_bytes(4, "little")
    assert raw[8:12] == (1).to_bytes(4, "little")
    assert raw[0x10:0x14] == b"TBOS"

    parsed, next_offset = Block.from_bytes(raw)
    assert next_offset == len(raw)
    assert parsed == block


def test_block_type_uses_low_nibble() -> None:
    raw = bytearray(Block(type_tag=BlockType.SAMPLE, index=0, name="s", payload=b"").to_bytes())
    raw[3] = 0x43
    parsed, _ = Block.from_bytes(bytes(raw))
    assert parsed.block_type == BlockType.SAMPLE


def test_alternate_magic_is_accepted() -> None:
    raw = bytearray(Block(type_tag=BlockType.ZONE, index=0, name="z", payload=b"").to_bytes())
    raw[0x10:0x14] = b"SOBJ"
    parsed, _ = Block.from_bytes(bytes(raw))
    assert parsed.name == "z"


def test_bad_magic_is_rejected() -> None:
    raw = bytearray(Block(type_tag=BlockType.ZONE, index=0, name="z", payload=b"").to_bytes())
    raw[0x10:0x14] = b"RIFF"
    with pytest.raises(MalformedContainer):
        Block.from_bytes(bytes(raw))


def test_magic_must_match_declared_byte_order() -> None:
    raw = bytearray(Block(type_tag=BlockType.ZONE, index=0, name="z", payload=b"").to_bytes())
    raw[0] = 1
    with pytest.raises(MalformedContainer):
        Block.from_bytes(bytes(raw))


def test_unknown_version_is_rejected() -> None:
    raw = bytearray(Block(type_tag=BlockType.ZONE, index=0, name="z", payload=b"").to_bytes())
    raw[1] = 2
    with pytest.raises(UnknownVersion):
        Block.from_bytes(bytes(raw))


def test_truncated_header_and_payload_are_rejected() -> None:
    raw = Block(type_tag=BlockType.ZONE, index=0, name="z", payload=b"\x00" * 8).to_bytes()
    with pytest.raises(MalformedContainer):
        Block.from_bytes(raw[: BLOCK_HEADER_SIZE - 1])
    with pytest.raises(MalformedContainer):
        Block.from_bytes(raw[:-1])


def test_unknown_type_tag_has_no_block_type() -> None:
    block = Block(type_tag=0x0E, index=0, name="", payload=b"")
    assert block.block_type is None
    parsed, _ = Block.from_bytes(block.to_bytes())
    assert parsed.type_tag == 0x0E


def test_read_blocks_walks_consecutive_blocks() -> None:
    blocks = [
        Block(type_tag=BlockType.INSTRUMENT, index=0, name="inst", payload=b"\x00" * 4),
        Block(type_tag=BlockType.UNKNOWN, index=0, name="", payload=b"\x00" * 4),
        Block(type_tag=BlockType.ZONE, index=0, name="zone", payload=b"\xAA"),
    ]
    parsed = read_blocks(write_blocks(blocks))
    assert [b.block_type for b in parsed] == [
        BlockType.INSTRUMENT,
        BlockType.UNKNOWN,
        BlockType.ZONE,
    ]
    assert parsed[2].payload == b"\xAA"


def test_name_is_truncated_and_nul_terminated() -> None:
    encoded = write_ascii("x" * 100, NAME_SIZE)
    assert len(encoded) == NAME_SIZE
    assert encoded[-1] == 0
    assert read_ascii(encoded) == "x" * (NAME_SIZE - 1)
    assert read_ascii(b"abc\x00garbage") == "abc"


def test_payload_reader_and_writer_mirror_each_other() -> None:
    writer = PayloadWriter("little")
    writer.u8(200)
    writer.s8(-5)
    writer.biased8(-20)
    writer.u16(0xBEEF)
    writer.s16(-2)
    writer.u32(0xDEADBEEF)
    writer.pad(2)
    writer.ascii("name", 8)

    reader = PayloadReader(writer.to_bytes(), "little")
    assert reader.u8() == 200
    assert reader.s8() == -5
    assert reader.biased8() == -20
    assert reader.u16() == 0xBEEF
    assert reader.s16() == -2
    assert reader.u32() == 0xDEADBEEF
    reader.skip(2)
    assert reader.ascii(8) == "name"
    assert reader.remaining == 0
    with pytest.raises(MalformedContainer):
        reader.u8()


def test_biased_byte_storage() -> None:
    writer = PayloadWriter()
    writer.biased8(0)
    writer.biased8(-128)
    assert writer.to_bytes() == b"\x80\x00"


def test_signed_byte_storage_wraps() -> None:
    writer = PayloadWriter()
    writer.s8(-1)
    writer.s8(-128)
    writer.s8(127)
    writer.s8(200)
    assert writer.to_bytes() == b"\xff\x80\x7f\xc8"

    reader = PayloadReader(b"\xff\x80\x7f\xc8")
    assert [reader.s8() for _ in range(4)] == [-1, -128, 127, -56]
