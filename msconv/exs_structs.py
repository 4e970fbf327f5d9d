"""EXS24 block payloads and the file container.

Each block kind is one dataclass with ``from_block`` / ``to_payload``.
:data:`PAYLOAD_CODECS` maps a :class:`~msconv.blocks.BlockType` to its
dataclass; :class:`ExsFile` walks the framed stream and sorts blocks into
zones, groups, samples and parameters.

Field conventions inside payloads are not uniform: zone tune, pan and
volume are two's complement bytes, group velocity/key crossfades are
stored biased by 128.  Both are kept exactly as found in real files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .blocks import (
    IGNORED_BLOCK_TYPES,
    Block,
    BlockType,
    PayloadReader,
    PayloadWriter,
    iter_blocks,
)
from .errors import MalformedContainer
from .exs_params import ExsParameters
from .notify import Notifier


ZONE_FIXED_SIZE = 96
GROUP_BASE_SIZE = 76
GROUP_TAIL_SIZE = 16
SAMPLE_PATH_SIZE = 256
SAMPLE_WAVE_DATA_START = 88
INSTRUMENT_WORDS = 10

# Zone option bits.
ZONE_ONESHOT = 0x01
ZONE_PITCH_OFF = 0x02
ZONE_REVERSE = 0x04
ZONE_VELOCITY_RANGE_ON = 0x08
ZONE_OUTPUT_ON = 0x40

# Zone loop option bits.
LOOP_ON = 0x01
LOOP_EQUAL_POWER = 0x02
LOOP_PLAY_TO_END = 0x04

# Zone loop direction values.
LOOP_DIRECTION_FORWARD = 0
LOOP_DIRECTION_REVERSE = 1
LOOP_DIRECTION_ALTERNATING = 2

# Group option bits.
GROUP_MUTE = 0x10
GROUP_RELEASE_TRIGGER_DECAY = 0x40
GROUP_FIXED_SAMPLE_SELECT = 0x80

# Group enable-by discriminator.
ENABLE_BY_NONE = 0
ENABLE_BY_NOTE = 1
ENABLE_BY_ROUND_ROBIN = 2
ENABLE_BY_CONTROL = 3
ENABLE_BY_BEND = 4
ENABLE_BY_CHANNEL = 5
ENABLE_BY_ARTICULATION = 6
ENABLE_BY_TEMPO = 7

ENABLE_BY_NAMES = MappingProxyType(
    {
        ENABLE_BY_NONE: "none",
        ENABLE_BY_NOTE: "note",
        ENABLE_BY_ROUND_ROBIN: "round robin",
        ENABLE_BY_CONTROL: "control",
        ENABLE_BY_BEND: "pitch bend",
        ENABLE_BY_CHANNEL: "channel",
        ENABLE_BY_ARTICULATION: "articulation",
        ENABLE_BY_TEMPO: "tempo",
    }
)

_SIGN_BIT_32 = 0x80000000


def _optional_index(value: int) -> Optional[int]:
    # Indices written as -1 (or garbage with the sign bit set) mean unset.
    return None if value & _SIGN_BIT_32 else value


@dataclass
class ExsInstrumentBlock:
    name: str = ""
    zone_count: int = 0
    group_count: int = 0
    sample_count: int = 0
    parameter_count: int = 0

    @classmethod
    def from_block(cls, block: Block) -> "ExsInstrumentBlock":
        reader = PayloadReader(block.payload, block.byteorder)
        words = []
        while reader.remaining >= 4 and len(words) < INSTRUMENT_WORDS:
            words.append(reader.u32())
        words += [0] * (INSTRUMENT_WORDS - len(words))
        return cls(
            name=block.name,
            zone_count=words[1],
            group_count=words[2],
            sample_count=words[3],
            parameter_count=words[4],
        )

    def to_payload(self, byteorder: str = "big") -> bytes:
        writer = PayloadWriter(byteorder)
        writer.u32(0)
        writer.u32(self.zone_count)
        writer.u32(self.group_count)
        writer.u32(self.sample_count)
        writer.u32(self.parameter_count)
        writer.pad(4 * (INSTRUMENT_WORDS - 5))
        return writer.to_bytes()


@dataclass
class ExsZone:
    name: str = ""
    block_index: int = 0
    options: int = 0
    key: int = 60
    fine_tune: int = 0
    pan: int = 0
    volume_adjust: int = 0
    volume_scale: int = 0
    key_low: int = 0
    key_high: int = 127
    velocity_low: int = 0
    velocity_high: int = 127
    sample_start: int = 0
    sample_end: int = 0
    loop_start: int = 0
    loop_end: int = 0
    loop_crossfade: int = 0
    loop_tune: int = 0
    loop_options: int = 0
    loop_direction: int = LOOP_DIRECTION_FORWARD
    flex_options: int = 0
    flex_speed: int = 0
    tail_tune: int = 0
    coarse_tune: int = 0
    output: int = 0
    group_index: Optional[int] = None
    sample_index: Optional[int] = None

    @property
    def pitch(self) -> bool:
        return not self.options & ZONE_PITCH_OFF

    @property
    def one_shot(self) -> bool:
        return bool(self.options & ZONE_ONESHOT)

    @property
    def reverse(self) -> bool:
        return bool(self.options & ZONE_REVERSE)

    @property
    def velocity_range_on(self) -> bool:
        return bool(self.options & ZONE_VELOCITY_RANGE_ON)

    @property
    def loop_on(self) -> bool:
        return bool(self.loop_options & LOOP_ON)

    @property
    def loop_equal_power(self) -> bool:
        return bool(self.loop_options & LOOP_EQUAL_POWER)

    @staticmethod
    def pack_options(
        *,
        pitch: bool = True,
        one_shot: bool = False,
        reverse: bool = False,
        velocity_range_on: bool = True,
        output_on: bool = False,
    ) -> int:
        options = 0
        if one_shot:
            options |= ZONE_ONESHOT
        if not pitch:
            options |= ZONE_PITCH_OFF
        if reverse:
            options |= ZONE_REVERSE
        if velocity_range_on:
            options |= ZONE_VELOCITY_RANGE_ON
        if output_on:
            options |= ZONE_OUTPUT_ON
        return options

    @classmethod
    def from_block(cls, block: Block) -> "ExsZone":
        r = PayloadReader(block.payload, block.byteorder)
        zone = cls(name=block.name, block_index=block.index)
        zone.options = r.u8()
        zone.key = r.u8()
        zone.fine_tune = r.s8()
        zone.pan = r.s8()
        zone.volume_adjust = r.s8()
        zone.volume_scale = r.u8()
        zone.key_low = r.u8()
        zone.key_high = r.u8()
        r.skip(1)
        zone.velocity_low = r.u8()
        zone.velocity_high = r.u8()
        r.skip(1)
        zone.sample_start = r.u32()
        zone.sample_end = r.u32()
        zone.loop_start = r.u32()
        zone.loop_end = r.u32()
        zone.loop_crossfade = r.u32()
        zone.loop_tune = r.s8()
        zone.loop_options = r.u8()
        zone.loop_direction = r.u8()
        r.skip(42)
        zone.flex_options = r.u8()
        zone.flex_speed = r.u8()
        zone.tail_tune = r.u8()
        zone.coarse_tune = r.s8()
        r.skip(1)
        zone.output = r.u8()
        r.skip(5)
        # The two back references are missing in some files; anything after
        # them is undocumented and ignored.
        if r.remaining >= 4:
            zone.group_index = _optional_index(r.u32())
        if r.remaining >= 4:
            zone.sample_index = _optional_index(r.u32())
        return zone

    def to_payload(self, byteorder: str = "big") -> bytes:
        w = PayloadWriter(byteorder)
        w.u8(self.options)
        w.u8(self.key)
        w.s8(self.fine_tune)
        w.s8(self.pan)
        w.s8(self.volume_adjust)
        w.u8(self.volume_scale)
        w.u8(self.key_low)
        w.u8(self.key_high)
        w.pad(1)
        w.u8(self.velocity_low)
        w.u8(self.velocity_high)
        w.pad(1)
        w.u32(self.sample_start)
        w.u32(self.sample_end)
        w.u32(self.loop_start)
        w.u32(self.loop_end)
        w.u32(self.loop_crossfade)
        w.s8(self.loop_tune)
        w.u8(self.loop_options)
        w.u8(self.loop_direction)
        w.pad(42)
        w.u8(self.flex_options)
        w.u8(self.flex_speed)
        w.u8(self.tail_tune)
        w.s8(self.coarse_tune)
        w.pad(1)
        w.u8(self.output)
        w.pad(5)
        w.u32(-1 if self.group_index is None else self.group_index)
        w.u32(-1 if self.sample_index is None else self.sample_index)
        return w.to_bytes()


@dataclass
class ExsGroup:
    name: str = ""
    block_index: int = 0
    volume: int = 0
    pan: int = 0
    polyphony: int = 0
    options: int = 0
    exclusive: int = 0
    min_velocity: int = 0
    max_velocity: int = 127
    sample_select_random_offset: int = 0
    release_trigger_time: int = 0
    velocity_crossfade: int = 0
    velocity_crossfade_type: int = 0
    key_crossfade_type: int = 0
    key_crossfade: int = 0
    tempo_low: int = 80
    tempo_high: int = 140
    cutoff_offset: int = 0
    resonance_offset: int = 0
    env1_attack_offset: int = 0
    env1_decay_offset: int = 0
    env1_sustain_offset: int = 0
    env1_release_offset: int = 0
    release_trigger: bool = False
    output: int = 0
    enable_by_note_value: int = 0
    round_robin_position: int = -1
    enable_by_type: int = ENABLE_BY_NONE
    control_value: int = 0
    control_low: int = 0
    control_high: int = 0
    start_note: int = 0
    end_note: int = 127
    midi_channel: int = 0
    articulation: int = 0

    @property
    def mute(self) -> bool:
        return bool(self.options & GROUP_MUTE)

    @property
    def release_trigger_decay(self) -> bool:
        return bool(self.options & GROUP_RELEASE_TRIGGER_DECAY)

    @property
    def fixed_sample_select(self) -> bool:
        return bool(self.options & GROUP_FIXED_SAMPLE_SELECT)

    @classmethod
    def from_block(cls, block: Block) -> "ExsGroup":
        r = PayloadReader(block.payload, block.byteorder)
        group = cls(name=block.name, block_index=block.index)
        group.volume = r.s8()
        group.pan = r.s8()
        group.polyphony = r.u8()
        group.options = r.u8()
        group.exclusive = r.u8()
        group.min_velocity = r.u8()
        group.max_velocity = r.u8()
        group.sample_select_random_offset = r.u8()
        r.skip(8)
        group.release_trigger_time = r.u16()
        r.skip(14)
        group.velocity_crossfade = r.biased8()
        group.velocity_crossfade_type = r.u8()
        group.key_crossfade_type = r.u8()
        group.key_crossfade = r.biased8()
        r.skip(2)
        group.tempo_low = r.u8()
        group.tempo_high = r.u8()
        r.skip(1)
        group.cutoff_offset = r.s8()
        r.skip(1)
        group.resonance_offset = r.s8()
        r.skip(12)
        group.env1_attack_offset = r.u32()
        group.env1_decay_offset = r.u32()
        group.env1_sustain_offset = r.u32()
        group.env1_release_offset = r.u32()
        r.skip(1)
        group.release_trigger = r.u8() != 0
        group.output = r.u8()
        group.enable_by_note_value = r.u8()

        if r.remaining >= GROUP_TAIL_SIZE:
            r.skip(4)
            group.round_robin_position = r.s32()
            group.enable_by_type = r.u8()
            group.control_value = r.u8()
            group.control_low = r.u8()
            group.control_high = r.u8()
            group.start_note = r.u8()
            group.end_note = r.u8()
            group.midi_channel = r.u8()
            group.articulation = r.u8()
        return group

    def to_payload(self, byteorder: str = "big") -> bytes:
        w = PayloadWriter(byteorder)
        w.s8(self.volume)
        w.s8(self.pan)
        w.u8(self.polyphony)
        w.u8(self.options)
        w.u8(self.exclusive)
        w.u8(self.min_velocity)
        w.u8(self.max_velocity)
        w.u8(self.sample_select_random_offset)
        w.pad(8)
        w.u16(self.release_trigger_time)
        w.pad(14)
        w.biased8(self.velocity_crossfade)
        w.u8(self.velocity_crossfade_type)
        w.u8(self.key_crossfade_type)
        w.biased8(self.key_crossfade)
        w.pad(2)
        w.u8(self.tempo_low)
        w.u8(self.tempo_high)
        w.pad(1)
        w.s8(self.cutoff_offset)
        w.pad(1)
        w.s8(self.resonance_offset)
        w.pad(12)
        w.u32(self.env1_attack_offset)
        w.u32(self.env1_decay_offset)
        w.u32(self.env1_sustain_offset)
        w.u32(self.env1_release_offset)
        w.pad(1)
        w.u8(1 if self.release_trigger else 0)
        w.u8(self.output)
        w.u8(self.enable_by_note_value)
        w.pad(4)
        w.u32(self.round_robin_position)
        w.u8(self.enable_by_type)
        w.u8(self.control_value)
        w.u8(self.control_low)
        w.u8(self.control_high)
        w.u8(self.start_note)
        w.u8(self.end_note)
        w.u8(self.midi_channel)
        w.u8(self.articulation)
        return w.to_bytes()


@dataclass
class ExsSample:
    name: str = ""
    block_index: int = 0
    wave_data_start: int = SAMPLE_WAVE_DATA_START
    length: int = 0
    sample_rate: int = 44100
    bit_depth: int = 16
    channels: int = 1
    channels2: int = 1
    type: str = "WAVE"
    size: int = 0
    compressed: int = 0
    file_path: str = ""
    file_name: str = ""

    @classmethod
    def from_block(cls, block: Block) -> "ExsSample":
        r = PayloadReader(block.payload, block.byteorder)
        sample = cls(name=block.name, block_index=block.index)
        sample.wave_data_start = r.u32()
        sample.length = r.u32()
        sample.sample_rate = r.u32()
        sample.bit_depth = r.u32()
        sample.channels = r.u32()
        sample.channels2 = r.u32()
        r.skip(4)
        # Little-endian files store the tag byte-swapped ("EVAW").
        type_tag = r.ascii(4)
        sample.type = type_tag if block.big_endian else type_tag[::-1]
        sample.size = r.u32()
        sample.compressed = r.u32()
        r.skip(40)
        sample.file_path = r.ascii(SAMPLE_PATH_SIZE)
        if r.remaining >= SAMPLE_PATH_SIZE:
            sample.file_name = r.ascii(SAMPLE_PATH_SIZE)
        if not sample.file_name:
            sample.file_name = block.name
        return sample

    def to_payload(self, byteorder: str = "big") -> bytes:
        w = PayloadWriter(byteorder)
        w.u32(self.wave_data_start)
        w.u32(self.length)
        w.u32(self.sample_rate)
        w.u32(self.bit_depth)
        w.u32(self.channels)
        w.u32(self.channels2)
        w.pad(4)
        type_tag = self.type if byteorder == "big" else self.type[::-1]
        w.raw(type_tag.encode("ascii", errors="replace")[:4].ljust(4, b"\x00"))
        w.u32(self.size)
        w.u32(self.compressed)
        w.pad(40)
        w.ascii(self.file_path, SAMPLE_PATH_SIZE)
        w.ascii(self.file_name, SAMPLE_PATH_SIZE)
        return w.to_bytes()


PAYLOAD_CODECS: Mapping[BlockType, type] = MappingProxyType(
    {
        BlockType.INSTRUMENT: ExsInstrumentBlock,
        BlockType.ZONE: ExsZone,
        BlockType.GROUP: ExsGroup,
        BlockType.SAMPLE: ExsSample,
        BlockType.PARAMS: ExsParameters,
    }
)


@dataclass
class ExsFile:
    """All blocks of one EXS24 file, sorted by kind."""

    name: str = ""
    big_endian: bool = True
    instrument: Optional[ExsInstrumentBlock] = None
    zones: List[ExsZone] = field(default_factory=list)
    groups: Dict[int, ExsGroup] = field(default_factory=dict)
    samples: List[ExsSample] = field(default_factory=list)
    parameters: ExsParameters = field(default_factory=ExsParameters)

    @classmethod
    def from_bytes(cls, data: bytes, notifier: Notifier | None = None) -> "ExsFile":
        if notifier is None:
            notifier = Notifier()
        if not data:
            raise MalformedContainer("empty file")

        exs = cls(big_endian=data[0] == 0)
        for block in iter_blocks(data):
            block_type = block.block_type
            if block_type in IGNORED_BLOCK_TYPES:
                continue
            codec = PAYLOAD_CODECS.get(block_type) if block_type is not None else None
            if codec is None:
                notifier.warning(
                    "skipping unknown block type 0x%02X (%s)", block.type_tag, block.name
                )
                continue
            parsed = codec.from_block(block)
            if block_type == BlockType.INSTRUMENT:
                exs.instrument = parsed
                exs.name = block.name
            elif block_type == BlockType.ZONE:
                exs.zones.append(parsed)
            elif block_type == BlockType.GROUP:
                exs.add_group(parsed)
            elif block_type == BlockType.SAMPLE:
                exs.samples.append(parsed)
            else:
                exs.parameters.values.update(parsed.values)
        return exs

    def add_group(self, group: ExsGroup) -> int:
        """Register ``group`` under its block index and return the index used.

        Some encoders write 0 as the index of every group.  A repeated index
        gets the next free slot instead of replacing the earlier group.
        """
        index = group.block_index
        if index in self.groups:
            index = len(self.groups)
            while index in self.groups:
                index += 1
        self.groups[index] = group
        return index

    def to_blocks(self) -> List[Block]:
        order = "big" if self.big_endian else "little"

        def make(block_type: BlockType, index: int, name: str, payload: bytes) -> Block:
            return Block(
                type_tag=block_type,
                index=index,
                name=name,
                payload=payload,
                big_endian=self.big_endian,
            )

        instrument = self.instrument or ExsInstrumentBlock(name=self.name)
        instrument.zone_count = len(self.zones)
        instrument.group_count = len(self.groups)
        instrument.sample_count = len(self.samples)
        instrument.parameter_count = 1
        blocks = [make(BlockType.INSTRUMENT, 0, self.name, instrument.to_payload(order))]
        for i, zone in enumerate(self.zones):
            blocks.append(make(BlockType.ZONE, i, zone.name, zone.to_payload(order)))
        for index, group in self.groups.items():
            blocks.append(make(BlockType.GROUP, index, group.name, group.to_payload(order)))
        for i, sample in enumerate(self.samples):
            blocks.append(make(BlockType.SAMPLE, i, sample.name, sample.to_payload(order)))
        blocks.append(make(BlockType.PARAMS, 0, "", self.parameters.to_payload(order)))
        return blocks

    def to_bytes(self) -> bytes:
        return b"".join(block.to_bytes() for block in self.to_blocks())
