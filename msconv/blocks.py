"""Chunk-framed binary container used by EXS24 instruments.

A file is nothing but a run of blocks, each with an 84-byte header:

=======  ====  ===========================================
offset   size  field
=======  ====  ===========================================
0x00     1     endianness flag (0 = big, otherwise little)
0x01     2     version, always ``1, 0``
0x03     1     block type (low nibble only)
0x04     4     payload size
0x08     4     block index
0x0C     4     flags (unused)
0x10     4     magic (``SOBT``/``SOBJ`` or ``TBOS``/``JBOS``)
0x14     64    name, NUL padded
0x54     n     payload
=======  ====  ===========================================
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, List, Tuple

from .errors import MalformedContainer, UnknownVersion
from .normalize import twos_complement_decode, twos_complement_encode


BLOCK_HEADER_SIZE = 0x54
NAME_SIZE = 64
VERSION = (1, 0)
TYPE_MASK = 0x0F

BIG_ENDIAN_MAGICS = frozenset({b"SOBT", b"SOBJ"})
LITTLE_ENDIAN_MAGICS = frozenset({b"TBOS", b"JBOS"})
WRITE_MAGIC = {"big": b"SOBT", "little": b"TBOS"}


class BlockType(IntEnum):
    INSTRUMENT = 0x00
    ZONE = 0x01
    GROUP = 0x02
    SAMPLE = 0x03
    PARAMS = 0x04
    UNKNOWN = 0x08  # always 4 zero bytes
    PLIST = 0x0B  # macOS binary property list


# Reserved blocks that occur in real files and carry nothing we read.
IGNORED_BLOCK_TYPES = frozenset({BlockType.UNKNOWN, BlockType.PLIST})


def read_ascii(raw: bytes) -> str:
    """Fixed-width text field: everything after the first NUL is garbage."""
    end = raw.find(b"\x00")
    if end >= 0:
        raw = raw[:end]
    return raw.decode("ascii", errors="replace")


def write_ascii(text: str, width: int) -> bytes:
    """Encode ``text`` into ``width`` bytes, truncating and NUL padding."""
    raw = text.encode("ascii", errors="replace")[: width - 1]
    return raw.ljust(width, b"\x00")


@dataclass(frozen=True)
class Block:
    type_tag: int
    index: int
    name: str
    payload: bytes
    big_endian: bool = True
    flags: int = 0

    @property
    def byteorder(self) -> str:
        return "big" if self.big_endian else "little"

    @property
    def block_type(self) -> BlockType | None:
        try:
            return BlockType(self.type_tag)
        except ValueError:
            return None

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> Tuple["Block", int]:
        """Parse the block at ``offset``; return it with the offset of the next block."""
        end = offset + BLOCK_HEADER_SIZE
        if end > len(data):
            raise MalformedContainer(
                f"truncated block header at 0x{offset:X} "
                f"({len(data) - offset} bytes, need {BLOCK_HEADER_SIZE})"
            )
        big_endian = data[offset] == 0
        version = (data[offset + 1], data[offset + 2])
        if version != VERSION:
            raise UnknownVersion(
                f"unknown block version {version[0]}.{version[1]} at 0x{offset:X}"
            )
        type_tag = data[offset + 3] & TYPE_MASK
        fmt = ">III" if big_endian else "<III"
        size, index, flags = struct.unpack_from(fmt, data, offset + 4)
        magic = bytes(data[offset + 0x10 : offset + 0x14])
        valid = BIG_ENDIAN_MAGICS if big_endian else LITTLE_ENDIAN_MAGICS
        if magic not in valid:
            raise MalformedContainer(f"bad block magic {magic!r} at 0x{offset:X}")
        name = read_ascii(data[offset + 0x14 : end])
        if end + size > len(data):
            raise MalformedContainer(
                f"block at 0x{offset:X} declares {size} payload bytes, "
                f"only {len(data) - end} left"
            )
        payload = bytes(data[end : end + size])
        block = cls(
            type_tag=type_tag,
            index=index,
            name=name,
            payload=payload,
            big_endian=big_endian,
            flags=flags,
        )
        return block, end + size

    def to_bytes(self) -> bytes:
        order = self.byteorder
        out = bytearray()
        out.append(0 if self.big_endian else 1)
        out.extend(VERSION)
        out.append(self.type_tag & TYPE_MASK)
        out += len(self.payload).to_bytes(4, order)
        out += (self.index & 0xFFFFFFFF).to_bytes(4, order)
        out += (self.flags & 0xFFFFFFFF).to_bytes(4, order)
        out += WRITE_MAGIC[order]
        out += write_ascii(self.name, NAME_SIZE)
        out += self.payload
        return bytes(out)


def iter_blocks(data: bytes) -> Iterator[Block]:
    offset = 0
    while offset < len(data):
        block, offset = Block.from_bytes(data, offset)
        yield block


def read_blocks(data: bytes) -> List[Block]:
    return list(iter_blocks(data))


def write_blocks(blocks: List[Block]) -> bytes:
    return b"".join(block.to_bytes() for block in blocks)


class PayloadReader:
    """Sequential reader over one block payload in the block's byte order."""

    def __init__(self, payload: bytes, byteorder: str = "big") -> None:
        self.data = payload
        self.pos = 0
        self.prefix = ">" if byteorder == "big" else "<"

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def _take(self, count: int) -> bytes:
        if count > self.remaining:
            raise MalformedContainer(
                f"payload too short: need {count} bytes at {self.pos}, "
                f"have {self.remaining}"
            )
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return chunk

    def skip(self, count: int) -> None:
        self._take(count)

    def u8(self) -> int:
        return self._take(1)[0]

    def s8(self) -> int:
        return twos_complement_decode(self.u8())

    def biased8(self) -> int:
        """Byte stored with a +128 bias."""
        return self.u8() - 128

    def u16(self) -> int:
        return struct.unpack(self.prefix + "H", self._take(2))[0]

    def s16(self) -> int:
        return struct.unpack(self.prefix + "h", self._take(2))[0]

    def u32(self) -> int:
        return struct.unpack(self.prefix + "I", self._take(4))[0]

    def s32(self) -> int:
        return struct.unpack(self.prefix + "i", self._take(4))[0]

    def raw(self, count: int) -> bytes:
        return bytes(self._take(count))

    def ascii(self, width: int) -> str:
        return read_ascii(self._take(width))


class PayloadWriter:
    """Mirror of :class:`PayloadReader`; values are masked to the field width."""

    def __init__(self, byteorder: str = "big") -> None:
        self.out = bytearray()
        self.prefix = ">" if byteorder == "big" else "<"

    def pad(self, count: int) -> None:
        self.out.extend(b"\x00" * count)

    def u8(self, value: int) -> None:
        self.out.append(int(value) & 0xFF)

    def s8(self, value: int) -> None:
        self.u8(twos_complement_encode(value))

    def biased8(self, value: int) -> None:
        self.u8(int(value) + 128)

    def u16(self, value: int) -> None:
        self.out += struct.pack(self.prefix + "H", int(value) & 0xFFFF)

    def s16(self, value: int) -> None:
        self.out += struct.pack(self.prefix + "H", int(value) & 0xFFFF)

    def u32(self, value: int) -> None:
        self.out += struct.pack(self.prefix + "I", int(value) & 0xFFFFFFFF)

    def raw(self, data: bytes) -> None:
        self.out += data

    def ascii(self, text: str, width: int) -> None:
        self.out += write_ascii(text, width)

    def to_bytes(self) -> bytes:
        return bytes(self.out)
