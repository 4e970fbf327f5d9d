"""Format-agnostic multisample model.

Codecs build these objects while decoding and only read them while
encoding.  Units are fixed here so codecs convert at their boundary:

- times in seconds, levels 0..1, slopes -1..1 (0 = linear)
- gain in dB, tune and pitch-bend in cents, panorama -1..1
- loop crossfade as a fraction of the loop length
- filter cutoff in Hz, resonance 0..40 dB, envelope depths in cents
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .normalize import clamp


MAX_FREQUENCY = 20000.0
MAX_RESONANCE_DB = 40.0
MAX_ENVELOPE_DEPTH = 12000  # cents


class TriggerType(Enum):
    ATTACK = "attack"
    RELEASE = "release"


class PlayLogic(Enum):
    ALWAYS = "always"
    ROUND_ROBIN = "round_robin"


class LoopDirection(Enum):
    FORWARD = "forward"
    REVERSE = "reverse"


class LoopType(Enum):
    SIMPLE = "simple"
    ALTERNATING = "alternating"


class FilterType(Enum):
    LOW_PASS = "low_pass"
    HIGH_PASS = "high_pass"
    BAND_PASS = "band_pass"
    BAND_REJECT = "band_reject"


@dataclass
class Envelope:
    delay: float = 0.0
    attack: float = 0.0
    hold: float = 0.0
    decay: float = 0.0
    sustain: float = 1.0
    release: float = 0.0
    attack_slope: float = 0.0
    decay_slope: float = 0.0
    release_slope: float = 0.0

    def copy(self) -> "Envelope":
        return Envelope(**vars(self))


@dataclass
class EnvelopeModulator:
    """An envelope applied with a signed depth.  Depth 0 means not applied."""

    depth: float = 0.0
    envelope: Envelope = field(default_factory=Envelope)

    @property
    def is_active(self) -> bool:
        return self.depth != 0

    def copy(self) -> "EnvelopeModulator":
        return EnvelopeModulator(depth=self.depth, envelope=self.envelope.copy())


@dataclass
class Modulator:
    depth: float = 0.0


@dataclass
class Filter:
    type: FilterType = FilterType.LOW_PASS
    poles: int = 4
    cutoff: float = MAX_FREQUENCY
    resonance: float = 0.0
    cutoff_envelope: EnvelopeModulator = field(default_factory=EnvelopeModulator)
    cutoff_velocity: Modulator = field(default_factory=Modulator)

    def copy(self) -> "Filter":
        return Filter(
            type=self.type,
            poles=self.poles,
            cutoff=self.cutoff,
            resonance=self.resonance,
            cutoff_envelope=self.cutoff_envelope.copy(),
            cutoff_velocity=Modulator(self.cutoff_velocity.depth),
        )


@dataclass
class SampleLoop:
    start: int = 0
    end: int = 0
    crossfade: float = 0.0
    direction: LoopDirection = LoopDirection.FORWARD
    type: LoopType = LoopType.SIMPLE

    @property
    def length(self) -> int:
        return max(0, self.end - self.start)

    def crossfade_frames(self) -> int:
        return int(round(self.crossfade * self.length))

    def set_crossfade_frames(self, frames: int) -> None:
        length = self.length
        self.crossfade = 0.0 if length <= 0 else clamp(frames / length, 0.0, 1.0)


@dataclass
class SampleData:
    """Handle on the audio of a zone.  The audio itself is never loaded."""

    path: Optional[Path] = None
    sample_rate: int = 44100
    frames: int = 0
    channels: int = 1
    bit_depth: int = 16
    root_key: Optional[int] = None
    loops: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return self.path.name if self.path is not None else ""

    def byte_size(self) -> int:
        if self.path is not None and self.path.is_file():
            return self.path.stat().st_size
        return self.frames * self.channels * (self.bit_depth // 8)


@dataclass
class SampleZone:
    name: str = ""
    sample: Optional[SampleData] = None
    key_low: int = 0
    key_high: int = 127
    key_root: Optional[int] = None
    velocity_low: int = 0
    velocity_high: int = 127
    start: int = 0
    stop: int = 0
    reversed: bool = False
    gain: float = 0.0
    tune: float = 0.0
    panorama: float = 0.0
    bend_up: int = 200
    bend_down: int = -200
    key_tracking: float = 1.0
    loops: List[SampleLoop] = field(default_factory=list)
    amplitude_envelope: EnvelopeModulator = field(
        default_factory=lambda: EnvelopeModulator(depth=1.0)
    )
    pitch_envelope: EnvelopeModulator = field(default_factory=EnvelopeModulator)
    amplitude_velocity: Modulator = field(default_factory=lambda: Modulator(1.0))
    filter: Optional[Filter] = None
    play_logic: PlayLogic = PlayLogic.ALWAYS
    sequence_position: Optional[int] = None

    def effective_key_root(self) -> int:
        """``key_root`` pinned inside ``[key_low, key_high]``; ``key_low`` when unset."""
        root = self.key_low if self.key_root is None else self.key_root
        return int(clamp(root, self.key_low, self.key_high))


@dataclass
class Group:
    name: str = ""
    trigger: TriggerType = TriggerType.ATTACK
    zones: List[SampleZone] = field(default_factory=list)


@dataclass
class Instrument:
    name: str = ""
    groups: List[Group] = field(default_factory=list)
    global_filter: Optional[Filter] = None
    amplitude_velocity_depth: Optional[float] = None

    def zones(self) -> Iterator[SampleZone]:
        for group in self.groups:
            yield from group.zones

    def non_empty_groups(self) -> List[Group]:
        return [group for group in self.groups if group.zones]

    @property
    def zone_count(self) -> int:
        return sum(len(group.zones) for group in self.groups)
