"""EXS24 global parameter table.

The parameter block is a sparse table of instrument-wide settings.  Layout:

- u32 ``count``
- ``count`` one-byte parameter IDs
- ``count`` signed 16-bit values, in the same order
- optionally, for older files: u32 ``count2`` followed by ``count2``
  (one-byte ID, signed one-byte value) pairs

ID 0 is padding.  Several parameters Logic knows about have IDs above 0xFF;
those can not be stored in the one-byte ID table and are never written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .blocks import Block, PayloadReader, PayloadWriter


class ParamId(IntEnum):
    PITCH_BEND_UP = 0x03
    PITCH_BEND_DOWN = 0x04
    POLYPHONY_VOICES = 0x05
    MASTER_VOLUME = 0x07
    VOLUME_KEYSCALE = 0x08
    MONO_LEGATO = 0x0A
    COARSE_TUNE = 0x0E
    FINE_TUNE = 0x0F
    GLIDE = 0x14
    FILTER1_RESO = 0x1D
    FILTER1_CUTOFF = 0x1E
    FILTER1_TOGGLE = 0x2C
    TRANSPOSE = 0x2D
    FILTER1_KEYTRACK = 0x2E
    ENV2_HOLD = 0x38
    LFO_1_FADE = 0x3C
    LFO_1_RATE = 0x3D
    LFO_1_WAVE_SHAPE = 0x3E
    LFO_2_RATE = 0x3F
    LFO_2_WAVE_SHAPE = 0x40
    PORTA_DOWN = 0x48
    PORTA_UP = 0x49
    FILTER1_DRIVE = 0x4B
    ENV2_ATK_HI_VEL = 0x4C
    ENV2_ATK_LO_VEL = 0x4D
    ENV2_DECAY = 0x4E
    ENV2_SUSTAIN = 0x4F
    ENV2_RELEASE = 0x50
    ENV1_SUSTAIN = 0x51
    ENV1_ATK_HI_VEL = 0x52
    ENV1_ATK_LO_VEL = 0x53
    ENV1_DECAY = 0x54
    ENV1_RELEASE = 0x55
    ENV1_HOLD = 0x58
    ENV1_VOLUME_HIGH = 0x59
    ENV1_VEL_SENS = 0x5A
    ENV2_TIME_CURVE = 0x5B
    VELOCITY_OFFSET = 0x5F
    XFADE_AMOUNT = 0x61
    RANDOM_PITCH = 0x62
    RANDOM_SAMPLE_SEL = 0xA3
    RANDOM_VELOCITY = 0xA4
    XFADE_TYPE = 0xA5
    COARSE_TUNE_REMOTE = 0xA6
    LFO_3_RATE = 0xA7
    FILTER1_FAT = 0xAA
    UNISON_TOGGLE = 0xAB
    HOLD_VIA_CONTROL = 0xAC
    FILTER1_TYPE = 0xF3


PARAMETER_NAMES: Mapping[int, str] = MappingProxyType(
    {member.value: member.name for member in ParamId}
)

MAX_PARAM_ID = 0xFF

# Filter type parameter values, in table order.
FILTER_TYPE_LP_24 = 0
FILTER_TYPE_LP_18 = 1
FILTER_TYPE_LP_12 = 2
FILTER_TYPE_LP_6 = 3
FILTER_TYPE_HP_12 = 4
FILTER_TYPE_BP_12 = 5

FILTER_CUTOFF_SCALE = 1000
FILTER_RESONANCE_SCALE = 1000
VEL_SENS_MIN = -60


@dataclass
class ExsParameters:
    """Instrument-wide parameter values keyed by ID."""

    values: Dict[int, int] = field(default_factory=dict)

    def get(self, param: int, default: Optional[int] = None) -> Optional[int]:
        return self.values.get(int(param), default)

    def set(self, param: int, value: int) -> None:
        self.values[int(param)] = int(value)

    def __contains__(self, param: object) -> bool:
        return param in self.values

    @classmethod
    def from_block(cls, block: Block) -> "ExsParameters":
        reader = PayloadReader(block.payload, block.byteorder)
        count = reader.u32()
        values: Dict[int, int] = {}
        ids = reader.raw(count)
        for param_id in ids:
            value = reader.s16()
            if param_id != 0:
                values[param_id] = value

        if reader.remaining >= 4:
            legacy_count = reader.s32()
            if 0 < legacy_count and legacy_count * 2 <= reader.remaining:
                for _ in range(legacy_count):
                    param_id = reader.u8()
                    value = reader.s8()
                    if param_id != 0:
                        values[param_id] = value
        return cls(values=values)

    def to_payload(self, byteorder: str = "big") -> bytes:
        writable = sorted(
            (pid, value)
            for pid, value in self.values.items()
            if 0 < pid <= MAX_PARAM_ID
        )
        writer = PayloadWriter(byteorder)
        writer.u32(len(writable))
        for pid, _ in writable:
            writer.u8(pid)
        for _, value in writable:
            writer.s16(value)
        return writer.to_bytes()

    def describe(self) -> Dict[str, int]:
        return {
            PARAMETER_NAMES.get(pid, f"0x{pid:02X}"): value
            for pid, value in sorted(self.values.items())
        }
