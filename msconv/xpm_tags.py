"""Element names and lookup tables of MPC keygroup programs (.xpm)."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .model import FilterType, PlayLogic


FILE_VERSION = "2.1"
APP_VERSION = "v2.11.6.6"
TRUE = "True"
FALSE = "False"
DOUBLE_ZERO = "0.000000"

MAX_KEYGROUPS = 128
MAX_LAYERS = 4
MAX_PADS = 128
SLICE_INDEX = 129

MIN_ENV_TIME_S = 0.001
MAX_ENV_TIME_S = 100.0
MAX_PITCH_ENV_CENTS = 3600
DEFAULT_PITCH_BEND_RANGE = 0.16

# Root
ROOT = "MPCVObject"
ROOT_VERSION = "Version"
VERSION_FILE_VERSION = "File_Version"
VERSION_APPLICATION = "Application"
ROOT_PROGRAM = "Program"

# Program
PROGRAM_TYPE = "type"
TYPE_KEYGROUP = "Keygroup"
TYPE_DRUM = "Drum"
PROGRAM_NAME = "ProgramName"
PROGRAM_PADS = "ProgramPads-"
PROGRAM_PITCHBEND_RANGE = "KeygroupPitchBendRange"
PROGRAM_WHEEL_TO_LFO = "KeygroupWheelToLfo"
PROGRAM_NUM_KEYGROUPS = "KeygroupNumKeygroups"
PROGRAM_PAD_NOTE_MAP = "PadNoteMap"
PROGRAM_INSTRUMENTS = "Instruments"

PAD_NOTE_MAP_PAD_NOTE = "PadNote"
PAD_NOTE_NUMBER = "number"
PAD_NOTE_NOTE = "Note"

# Instrument (= keygroup)
INSTRUMENTS_INSTRUMENT = "Instrument"
INSTRUMENT_NUMBER = "number"
INSTRUMENT_LOW_NOTE = "LowNote"
INSTRUMENT_HIGH_NOTE = "HighNote"
INSTRUMENT_IGNORE_BASE_NOTE = "IgnoreBaseNote"
INSTRUMENT_ZONE_PLAY = "ZonePlay"
INSTRUMENT_TRIGGER_MODE = "TriggerMode"
INSTRUMENT_ONE_SHOT = "OneShot"
INSTRUMENT_FILTER_TYPE = "FilterType"
INSTRUMENT_FILTER_CUTOFF = "Cutoff"
INSTRUMENT_FILTER_RESONANCE = "Resonance"
INSTRUMENT_FILTER_ENV_AMOUNT = "FilterEnvAmt"
INSTRUMENT_FILTER_ATTACK = "FilterAttack"
INSTRUMENT_FILTER_HOLD = "FilterHold"
INSTRUMENT_FILTER_DECAY = "FilterDecay"
INSTRUMENT_FILTER_SUSTAIN = "FilterSustain"
INSTRUMENT_FILTER_RELEASE = "FilterRelease"
INSTRUMENT_VOLUME_ATTACK = "VolumeAttack"
INSTRUMENT_VOLUME_HOLD = "VolumeHold"
INSTRUMENT_VOLUME_DECAY = "VolumeDecay"
INSTRUMENT_VOLUME_SUSTAIN = "VolumeSustain"
INSTRUMENT_VOLUME_RELEASE = "VolumeRelease"
INSTRUMENT_VOLUME_ATTACK_CURVE = "VolumeAttackCurve"
INSTRUMENT_VOLUME_DECAY_CURVE = "VolumeDecayCurve"
INSTRUMENT_VOLUME_RELEASE_CURVE = "VolumeReleaseCurve"
INSTRUMENT_PITCH_ATTACK = "PitchAttack"
INSTRUMENT_PITCH_HOLD = "PitchHold"
INSTRUMENT_PITCH_DECAY = "PitchDecay"
INSTRUMENT_PITCH_SUSTAIN = "PitchSustain"
INSTRUMENT_PITCH_RELEASE = "PitchRelease"
INSTRUMENT_PITCH_ENV_AMOUNT = "PitchEnvAmount"
INSTRUMENT_LFO = "LFO"
INSTRUMENT_LAYERS = "Layers"

# Layer (= sample)
LAYERS_LAYER = "Layer"
LAYER_NUMBER = "number"
LAYER_ACTIVE = "Active"
LAYER_VOLUME = "Volume"
LAYER_PAN = "Pan"
LAYER_PITCH = "Pitch"
LAYER_COARSE_TUNE = "TuneCoarse"
LAYER_FINE_TUNE = "TuneFine"
LAYER_VEL_START = "VelStart"
LAYER_VEL_END = "VelEnd"
LAYER_SAMPLE_START = "SampleStart"
LAYER_SAMPLE_END = "SampleEnd"
LAYER_LOOP_START = "LoopStart"
LAYER_LOOP_END = "LoopEnd"
LAYER_LOOP_CROSSFADE = "LoopCrossfadeLength"
LAYER_LOOP_TUNE = "LoopTune"
LAYER_ROOT_NOTE = "RootNote"
LAYER_KEY_TRACK = "KeyTrack"
LAYER_SAMPLE_NAME = "SampleName"
LAYER_PITCH_RANDOM = "PitchRandom"
LAYER_VOLUME_RANDOM = "VolumeRandom"
LAYER_PAN_RANDOM = "PanRandom"
LAYER_OFFSET_RANDOM = "OffsetRandom"
LAYER_SAMPLE_FILE = "SampleFile"
LAYER_SLICE_INDEX = "SliceIndex"
LAYER_DIRECTION = "Direction"
LAYER_OFFSET = "Offset"
LAYER_SLICE_START = "SliceStart"
LAYER_SLICE_END = "SliceEnd"
LAYER_SLICE_LOOP = "SliceLoop"
LAYER_SLICE_LOOP_START = "SliceLoopStart"
LAYER_SLICE_LOOP_CROSSFADE = "SliceLoopCrossFadeLength"
LAYER_SLICE_TAIL_POSITION = "SliceTailPosition"
LAYER_SLICE_TAIL_LENGTH = "SliceTailLength"

# SliceLoop values
SLICE_LOOP_OFF = 0
SLICE_LOOP_FORWARD = 1
SLICE_LOOP_ALTERNATING = 2
SLICE_LOOP_REVERSE = 3

# TriggerMode values
TRIGGER_ONE_SHOT = 0
TRIGGER_NOTE_OFF = 1
TRIGGER_NOTE_ON = 2

# ZonePlay values
ZONE_PLAY_CYCLE = 0
ZONE_PLAY_VELOCITY = 1
ZONE_PLAY_RANDOM = 2
ZONE_PLAY_VELOCITY_CYCLE = 3

ZONE_PLAY_LOGIC: Mapping[int, PlayLogic] = MappingProxyType(
    {
        ZONE_PLAY_CYCLE: PlayLogic.ROUND_ROBIN,
        ZONE_PLAY_VELOCITY: PlayLogic.ALWAYS,
        ZONE_PLAY_RANDOM: PlayLogic.ROUND_ROBIN,
        ZONE_PLAY_VELOCITY_CYCLE: PlayLogic.ROUND_ROBIN,
    }
)


def zone_play_for(play_logic: PlayLogic) -> int:
    return ZONE_PLAY_CYCLE if play_logic == PlayLogic.ROUND_ROBIN else ZONE_PLAY_VELOCITY


# Envelope time elements stored on a logarithmic curve.  Every other time
# element (PitchRelease) is linear; sustain and curve elements always are.
LOG_TIME_ELEMENTS = frozenset(
    {
        INSTRUMENT_VOLUME_ATTACK,
        INSTRUMENT_VOLUME_HOLD,
        INSTRUMENT_VOLUME_DECAY,
        INSTRUMENT_VOLUME_RELEASE,
        INSTRUMENT_FILTER_ATTACK,
        INSTRUMENT_FILTER_HOLD,
        INSTRUMENT_FILTER_DECAY,
        INSTRUMENT_FILTER_RELEASE,
        INSTRUMENT_PITCH_ATTACK,
        INSTRUMENT_PITCH_HOLD,
        INSTRUMENT_PITCH_DECAY,
    }
)

# (attack, hold, decay, sustain, release) element names per envelope.
VOLUME_ENVELOPE = (
    INSTRUMENT_VOLUME_ATTACK,
    INSTRUMENT_VOLUME_HOLD,
    INSTRUMENT_VOLUME_DECAY,
    INSTRUMENT_VOLUME_SUSTAIN,
    INSTRUMENT_VOLUME_RELEASE,
)
FILTER_ENVELOPE = (
    INSTRUMENT_FILTER_ATTACK,
    INSTRUMENT_FILTER_HOLD,
    INSTRUMENT_FILTER_DECAY,
    INSTRUMENT_FILTER_SUSTAIN,
    INSTRUMENT_FILTER_RELEASE,
)
PITCH_ENVELOPE = (
    INSTRUMENT_PITCH_ATTACK,
    INSTRUMENT_PITCH_HOLD,
    INSTRUMENT_PITCH_DECAY,
    INSTRUMENT_PITCH_SUSTAIN,
    INSTRUMENT_PITCH_RELEASE,
)

# Filter index -> (type, poles).  Indices missing here mean "no filter".
FILTER_TABLE: Mapping[int, Tuple[FilterType, int]] = MappingProxyType(
    {
        1: (FilterType.LOW_PASS, 1),
        2: (FilterType.LOW_PASS, 2),
        3: (FilterType.LOW_PASS, 4),
        4: (FilterType.LOW_PASS, 6),
        5: (FilterType.LOW_PASS, 8),
        6: (FilterType.HIGH_PASS, 1),
        7: (FilterType.HIGH_PASS, 2),
        8: (FilterType.HIGH_PASS, 4),
        9: (FilterType.HIGH_PASS, 6),
        10: (FilterType.HIGH_PASS, 8),
        11: (FilterType.BAND_PASS, 2),
        12: (FilterType.BAND_PASS, 4),
        13: (FilterType.BAND_PASS, 6),
        14: (FilterType.BAND_PASS, 8),
        15: (FilterType.BAND_REJECT, 2),
        16: (FilterType.BAND_REJECT, 4),
        17: (FilterType.BAND_REJECT, 6),
        18: (FilterType.BAND_REJECT, 8),
        29: (FilterType.LOW_PASS, 4),
    }
)


def filter_from_index(index: int) -> Optional[Tuple[FilterType, int]]:
    if index <= 0:
        return None
    return FILTER_TABLE.get(index)


def filter_index(filter_type: FilterType, poles: int) -> int:
    """First table index for ``(filter_type, poles)``; falls back to the
    first index of the type, then 0 (off)."""
    fallback = 0
    for index, (kind, kind_poles) in FILTER_TABLE.items():
        if kind != filter_type:
            continue
        if kind_poles == poles:
            return index
        if fallback == 0:
            fallback = index
    return fallback


# Elements the decoder reads or knows to be inert.  Anything else is
# reported when ``log_unsupported_attributes`` is on.
KNOWN_INSTRUMENT_ELEMENTS = frozenset(
    {
        INSTRUMENT_LOW_NOTE,
        INSTRUMENT_HIGH_NOTE,
        INSTRUMENT_IGNORE_BASE_NOTE,
        INSTRUMENT_ZONE_PLAY,
        INSTRUMENT_TRIGGER_MODE,
        INSTRUMENT_ONE_SHOT,
        INSTRUMENT_FILTER_TYPE,
        INSTRUMENT_FILTER_CUTOFF,
        INSTRUMENT_FILTER_RESONANCE,
        INSTRUMENT_FILTER_ENV_AMOUNT,
        INSTRUMENT_PITCH_ENV_AMOUNT,
        INSTRUMENT_VOLUME_ATTACK_CURVE,
        INSTRUMENT_VOLUME_DECAY_CURVE,
        INSTRUMENT_VOLUME_RELEASE_CURVE,
        INSTRUMENT_LFO,
        INSTRUMENT_LAYERS,
        *VOLUME_ENVELOPE,
        *FILTER_ENVELOPE,
        *PITCH_ENVELOPE,
    }
)

KNOWN_LAYER_ELEMENTS = frozenset(
    {
        LAYER_ACTIVE,
        LAYER_VOLUME,
        LAYER_PAN,
        LAYER_PITCH,
        LAYER_COARSE_TUNE,
        LAYER_FINE_TUNE,
        LAYER_VEL_START,
        LAYER_VEL_END,
        LAYER_SAMPLE_START,
        LAYER_SAMPLE_END,
        LAYER_LOOP_START,
        LAYER_LOOP_END,
        LAYER_LOOP_CROSSFADE,
        LAYER_LOOP_TUNE,
        LAYER_ROOT_NOTE,
        LAYER_KEY_TRACK,
        LAYER_SAMPLE_NAME,
        LAYER_PITCH_RANDOM,
        LAYER_VOLUME_RANDOM,
        LAYER_PAN_RANDOM,
        LAYER_OFFSET_RANDOM,
        LAYER_SAMPLE_FILE,
        LAYER_SLICE_INDEX,
        LAYER_DIRECTION,
        LAYER_OFFSET,
        LAYER_SLICE_START,
        LAYER_SLICE_END,
        LAYER_SLICE_LOOP,
        LAYER_SLICE_LOOP_START,
        LAYER_SLICE_LOOP_CROSSFADE,
        LAYER_SLICE_TAIL_POSITION,
        LAYER_SLICE_TAIL_LENGTH,
    }
)
