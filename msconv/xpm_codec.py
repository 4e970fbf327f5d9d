"""Convert between MPC keygroup programs (.xpm) and the multisample model.

An XPM program holds up to 128 ``Instrument`` nodes (keygroups), each
covering one key range with up to four ``Layer`` nodes (samples).  Envelope,
filter and trigger settings live on the keygroup, so on export they are
taken from the first zone placed into it.

Export has to pack zones into keygroups (see :class:`KeygroupPacker`):

- zones share a keygroup only when their key ranges are identical
- velocity layered and round-robin zones never share a keygroup
- round-robin zones also need an identical velocity range, and at most one
  such keygroup exists per range, so a fifth round-robin zone is rejected
"""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from . import xpm_tags as tags
from .errors import LayerPackingError, SampleError, StructuralError
from .model import (
    MAX_ENVELOPE_DEPTH,
    MAX_FREQUENCY,
    MAX_RESONANCE_DB,
    Envelope,
    EnvelopeModulator,
    Filter,
    Group,
    Instrument,
    LoopType,
    PlayLogic,
    SampleData,
    SampleLoop,
    SampleZone,
    TriggerType,
)
from .normalize import (
    clamp,
    denormalize_frequency,
    denormalize_linear,
    denormalize_log,
    gain_to_volume,
    normalize_frequency,
    normalize_linear,
    normalize_log,
    volume_to_gain,
)
from .notify import Notifier
from .samples import find_sample_file, read_sample_data


__all__ = [
    "Keygroup",
    "KeygroupPacker",
    "XpmOptions",
    "decode_xpm",
    "encode_xpm",
    "sample_file_name",
]


@dataclass(frozen=True)
class XpmOptions:
    prefer_folder_name: bool = False
    log_unsupported_attributes: bool = False


def _fmt(value: float) -> str:
    return f"{value:.6f}"


# ---------------------------------------------------------------------------
# Layer packing
# ---------------------------------------------------------------------------


@dataclass
class Keygroup:
    number: int
    key_low: int
    key_high: int
    trigger: TriggerType
    velocity_range: Optional[Tuple[int, int]] = None  # set for round-robin keygroups
    zones: List[SampleZone] = field(default_factory=list)

    @property
    def is_sequence(self) -> bool:
        return self.velocity_range is not None

    @property
    def layer_count(self) -> int:
        return len(self.zones)


class KeygroupPacker:
    """Assigns zones to keygroups, creating keygroups on demand."""

    def __init__(self) -> None:
        self.buckets: Dict[Tuple[int, int], List[Keygroup]] = {}
        self.keygroups: List[Keygroup] = []

    def assign(self, zone: SampleZone, trigger: TriggerType = TriggerType.ATTACK) -> Keygroup:
        """Place ``zone`` and return its keygroup.

        Raises
        ------
        LayerPackingError
            The round-robin keygroup for the zone's key and velocity range
            already holds four layers.
        """
        key_range = (zone.key_low, zone.key_high)
        velocity_range = (zone.velocity_low, zone.velocity_high)
        is_sequence = zone.play_logic == PlayLogic.ROUND_ROBIN
        candidates = self.buckets.setdefault(key_range, [])

        for keygroup in candidates:
            if keygroup.is_sequence != is_sequence or keygroup.trigger != trigger:
                continue
            if is_sequence and keygroup.velocity_range != velocity_range:
                continue
            if keygroup.layer_count < tags.MAX_LAYERS:
                keygroup.zones.append(zone)
                return keygroup
            if is_sequence:
                raise LayerPackingError(
                    f"more than {tags.MAX_LAYERS} round-robin layers for keys "
                    f"{zone.key_low}-{zone.key_high}, velocity "
                    f"{zone.velocity_low}-{zone.velocity_high}"
                )

        keygroup = Keygroup(
            number=len(self.keygroups) + 1,
            key_low=zone.key_low,
            key_high=zone.key_high,
            trigger=trigger,
            velocity_range=velocity_range if is_sequence else None,
            zones=[zone],
        )
        candidates.append(keygroup)
        self.keygroups.append(keygroup)
        return keygroup


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _add_text(parent: ET.Element, tag: str, text: object) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = str(text)
    return element


def _add_time(parent: ET.Element, tag: str, seconds: float) -> None:
    if tag in tags.LOG_TIME_ELEMENTS:
        value = normalize_log(seconds, tags.MIN_ENV_TIME_S, tags.MAX_ENV_TIME_S)
    else:
        value = normalize_linear(seconds, tags.MIN_ENV_TIME_S, tags.MAX_ENV_TIME_S)
    _add_text(parent, tag, _fmt(value))


def _add_envelope(parent: ET.Element, names: Sequence[str], envelope: Envelope) -> None:
    attack, hold, decay, sustain, release = names
    _add_time(parent, attack, envelope.attack)
    _add_time(parent, hold, envelope.hold)
    _add_time(parent, decay, envelope.decay)
    _add_text(parent, sustain, _fmt(clamp(envelope.sustain, 0.0, 1.0)))
    _add_time(parent, release, envelope.release)


def _slope_to_curve(slope: float) -> float:
    return normalize_linear(slope, -1.0, 1.0)


def _trigger_mode(zone: SampleZone, trigger: TriggerType) -> int:
    if trigger == TriggerType.RELEASE:
        return tags.TRIGGER_NOTE_OFF
    if zone.amplitude_envelope.envelope.sustain <= 0 and zone.key_low == zone.key_high:
        return tags.TRIGGER_ONE_SHOT
    return tags.TRIGGER_NOTE_ON


def _add_lfo(parent: ET.Element) -> None:
    lfo = ET.SubElement(parent, tags.INSTRUMENT_LFO, {"LfoNum": "0"})
    _add_text(lfo, "Type", "Sine")
    _add_text(lfo, "Rate", "0.700000")
    _add_text(lfo, "LfoPitch", "0.044000")


def _build_instrument(
    parent: ET.Element, keygroup: Keygroup, global_filter: Optional[Filter]
) -> ET.Element:
    first = keygroup.zones[0]
    element = ET.SubElement(
        parent, tags.INSTRUMENTS_INSTRUMENT, {tags.INSTRUMENT_NUMBER: str(keygroup.number)}
    )

    zone_filter = global_filter if global_filter is not None else first.filter
    if zone_filter is not None:
        _add_text(
            element,
            tags.INSTRUMENT_FILTER_TYPE,
            tags.filter_index(zone_filter.type, zone_filter.poles),
        )
        _add_text(
            element,
            tags.INSTRUMENT_FILTER_CUTOFF,
            _fmt(normalize_frequency(zone_filter.cutoff, MAX_FREQUENCY)),
        )
        _add_text(
            element,
            tags.INSTRUMENT_FILTER_RESONANCE,
            _fmt(min(MAX_RESONANCE_DB, zone_filter.resonance) / MAX_RESONANCE_DB),
        )
        depth = zone_filter.cutoff_envelope.depth
        # Only positive modulation exists on the hardware.
        if depth > 0:
            _add_text(
                element,
                tags.INSTRUMENT_FILTER_ENV_AMOUNT,
                _fmt(min(depth, MAX_ENVELOPE_DEPTH) / MAX_ENVELOPE_DEPTH),
            )
            _add_envelope(element, tags.FILTER_ENVELOPE, zone_filter.cutoff_envelope.envelope)

    _add_text(element, tags.INSTRUMENT_LOW_NOTE, keygroup.key_low)
    _add_text(element, tags.INSTRUMENT_HIGH_NOTE, keygroup.key_high)
    _add_text(
        element,
        tags.INSTRUMENT_IGNORE_BASE_NOTE,
        tags.TRUE if first.key_tracking == 0 else tags.FALSE,
    )

    amplitude = first.amplitude_envelope.envelope
    _add_envelope(element, tags.VOLUME_ENVELOPE, amplitude)
    _add_text(element, tags.INSTRUMENT_VOLUME_ATTACK_CURVE, _fmt(_slope_to_curve(amplitude.attack_slope)))
    _add_text(element, tags.INSTRUMENT_VOLUME_DECAY_CURVE, _fmt(_slope_to_curve(amplitude.decay_slope)))
    _add_text(element, tags.INSTRUMENT_VOLUME_RELEASE_CURVE, _fmt(_slope_to_curve(amplitude.release_slope)))

    pitch_depth = first.pitch_envelope.depth
    if pitch_depth > 0:
        amount = clamp(pitch_depth, -tags.MAX_PITCH_ENV_CENTS, tags.MAX_PITCH_ENV_CENTS)
        _add_text(
            element,
            tags.INSTRUMENT_PITCH_ENV_AMOUNT,
            _fmt(amount / tags.MAX_PITCH_ENV_CENTS / 2.0 + 0.5),
        )
        _add_envelope(element, tags.PITCH_ENVELOPE, first.pitch_envelope.envelope)

    _add_text(element, tags.INSTRUMENT_ZONE_PLAY, tags.zone_play_for(first.play_logic))
    trigger_mode = _trigger_mode(first, keygroup.trigger)
    _add_text(element, tags.INSTRUMENT_TRIGGER_MODE, trigger_mode)
    _add_text(
        element,
        tags.INSTRUMENT_ONE_SHOT,
        tags.TRUE if trigger_mode == tags.TRIGGER_ONE_SHOT else tags.FALSE,
    )
    _add_lfo(element)
    ET.SubElement(element, tags.INSTRUMENT_LAYERS)
    return element


def _sample_name(zone: SampleZone) -> str:
    if zone.sample is not None and zone.sample.file_name:
        return Path(zone.sample.file_name).stem
    return zone.name


def sample_file_name(zone: SampleZone) -> str:
    """WAV file a layer refers to, expected next to the program."""
    return _sample_name(zone) + ".wav"


def _build_layer(parent: ET.Element, number: int, zone: SampleZone) -> ET.Element:
    layer = ET.SubElement(parent, tags.LAYERS_LAYER, {tags.LAYER_NUMBER: str(number)})
    _add_text(layer, tags.LAYER_ACTIVE, tags.TRUE)
    _add_text(layer, tags.LAYER_VOLUME, _fmt(gain_to_volume(zone.gain)))
    _add_text(layer, tags.LAYER_PAN, _fmt((clamp(zone.panorama, -1.0, 1.0) + 1.0) / 2.0))
    _add_text(layer, tags.LAYER_PITCH, _fmt(zone.tune / 100.0))
    _add_text(layer, tags.LAYER_VEL_START, zone.velocity_low)
    _add_text(layer, tags.LAYER_VEL_END, zone.velocity_high)
    _add_text(layer, tags.LAYER_SAMPLE_START, 0)
    _add_text(layer, tags.LAYER_SAMPLE_END, 0)
    _add_text(layer, tags.LAYER_LOOP_START, 0)
    _add_text(layer, tags.LAYER_LOOP_END, 0)
    _add_text(layer, tags.LAYER_LOOP_CROSSFADE, 0)
    _add_text(layer, tags.LAYER_LOOP_TUNE, 0)
    # Stored one above the MIDI note.
    _add_text(layer, tags.LAYER_ROOT_NOTE, zone.effective_key_root() + 1)
    _add_text(layer, tags.LAYER_KEY_TRACK, tags.TRUE if zone.key_tracking > 0 else tags.FALSE)
    _add_text(layer, tags.LAYER_SAMPLE_NAME, _sample_name(zone))
    _add_text(layer, tags.LAYER_PITCH_RANDOM, tags.DOUBLE_ZERO)
    _add_text(layer, tags.LAYER_VOLUME_RANDOM, tags.DOUBLE_ZERO)
    _add_text(layer, tags.LAYER_PAN_RANDOM, tags.DOUBLE_ZERO)
    _add_text(layer, tags.LAYER_OFFSET_RANDOM, tags.DOUBLE_ZERO)
    _add_text(layer, tags.LAYER_SAMPLE_FILE, "")
    _add_text(layer, tags.LAYER_SLICE_INDEX, tags.SLICE_INDEX)
    _add_text(layer, tags.LAYER_DIRECTION, 0)
    _add_text(layer, tags.LAYER_OFFSET, 0)
    _add_text(layer, tags.LAYER_SLICE_START, zone.start)

    if not zone.loops:
        _add_text(layer, tags.LAYER_SLICE_END, zone.stop)
        _add_text(layer, tags.LAYER_SLICE_LOOP, tags.SLICE_LOOP_OFF)
        return layer

    loop = zone.loops[0]
    if zone.reversed:
        slice_loop = tags.SLICE_LOOP_REVERSE
    elif loop.type == LoopType.ALTERNATING:
        slice_loop = tags.SLICE_LOOP_ALTERNATING
    else:
        slice_loop = tags.SLICE_LOOP_FORWARD
    _add_text(layer, tags.LAYER_SLICE_LOOP_START, loop.start)
    _add_text(layer, tags.LAYER_SLICE_END, loop.end)
    _add_text(layer, tags.LAYER_SLICE_LOOP, slice_loop)
    _add_text(layer, tags.LAYER_SLICE_LOOP_CROSSFADE, loop.crossfade_frames())
    _add_text(layer, tags.LAYER_SLICE_TAIL_POSITION, "0.500000")
    _add_text(layer, tags.LAYER_SLICE_TAIL_LENGTH, tags.DOUBLE_ZERO)
    return layer


def encode_xpm(
    instrument: Instrument,
    *,
    notifier: Notifier | None = None,
    options: XpmOptions | None = None,
) -> str:
    """Encode ``instrument`` as an XPM keygroup program and return the XML text.

    Zones that do not fit into a keygroup are reported and left out.  More
    than 128 keygroups are reported but still written.
    """
    notifier = notifier if notifier is not None else Notifier()

    root = ET.Element(tags.ROOT)
    version = ET.SubElement(root, tags.ROOT_VERSION)
    _add_text(version, tags.VERSION_FILE_VERSION, tags.FILE_VERSION)

    program = ET.SubElement(root, tags.ROOT_PROGRAM, {tags.PROGRAM_TYPE: tags.TYPE_KEYGROUP})
    _add_text(program, tags.PROGRAM_NAME, instrument.name)
    ET.SubElement(program, tags.PROGRAM_PADS + tags.APP_VERSION)

    groups = instrument.non_empty_groups()
    if groups:
        bend_up = abs(groups[0].zones[0].bend_up)
        bend_range = tags.DEFAULT_PITCH_BEND_RANGE if bend_up == 0 else bend_up / 1200.0
        _add_text(program, tags.PROGRAM_PITCHBEND_RANGE, f"{bend_range:.3f}")
    _add_text(program, tags.PROGRAM_WHEEL_TO_LFO, "1.000000")

    packer = KeygroupPacker()
    for group in groups:
        for zone in group.zones:
            if len(zone.loops) > 1:
                notifier.warning(
                    "zone '%s' has %d loops, only the first is kept", zone.name, len(zone.loops)
                )
            try:
                packer.assign(zone, group.trigger)
            except LayerPackingError as exc:
                notifier.error("zone '%s' skipped: %s", zone.name, exc)

    count = len(packer.keygroups)
    if count > tags.MAX_KEYGROUPS:
        notifier.error(
            "%d keygroups exceed the limit of %d; the device ignores the rest",
            count,
            tags.MAX_KEYGROUPS,
        )
    _add_text(program, tags.PROGRAM_NUM_KEYGROUPS, count)

    instruments = ET.SubElement(program, tags.PROGRAM_INSTRUMENTS)
    for keygroup in packer.keygroups:
        element = _build_instrument(instruments, keygroup, instrument.global_filter)
        layers = element.find(tags.INSTRUMENT_LAYERS)
        for number, zone in enumerate(keygroup.zones, start=1):
            _build_layer(layers, number, zone)

    ET.indent(root, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class _Reader:
    """Typed child element access; bad numbers fall back to defaults."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    @staticmethod
    def text(element: ET.Element, tag: str) -> Optional[str]:
        child = element.find(tag)
        if child is None or child.text is None:
            return None
        return child.text

    def number(self, element: ET.Element, tag: str, default: float) -> float:
        text = self.text(element, tag)
        if text is None or not text.strip():
            return default
        try:
            value = float(text)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            self.notifier.warning("can not parse %s value '%s', using %s", tag, text, default)
            return default
        return value

    def integer(self, element: ET.Element, tag: str, default: int) -> int:
        return int(self.number(element, tag, default))

    def attribute(self, element: ET.Element, name: str, default: int) -> int:
        value = element.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            self.notifier.warning("can not parse attribute %s='%s'", name, value)
            return default

    def time(self, element: ET.Element, tag: str, default: float = 0.0) -> float:
        value = self.number(element, tag, -1.0)
        if value < 0:
            return default
        if tag in tags.LOG_TIME_ELEMENTS:
            return denormalize_log(value, tags.MIN_ENV_TIME_S, tags.MAX_ENV_TIME_S)
        return denormalize_linear(value, tags.MIN_ENV_TIME_S, tags.MAX_ENV_TIME_S)

    def envelope(self, element: ET.Element, names: Sequence[str]) -> Envelope:
        attack, hold, decay, sustain, release = names
        return Envelope(
            attack=self.time(element, attack),
            hold=self.time(element, hold),
            decay=self.time(element, decay),
            sustain=clamp(self.number(element, sustain, 1.0), 0.0, 1.0),
            release=self.time(element, release),
        )

    def is_true(self, element: ET.Element, tag: str) -> Optional[bool]:
        text = self.text(element, tag)
        if text is None:
            return None
        return text.strip().lower() == tags.TRUE.lower()


@dataclass
class _KeygroupSettings:
    key_low: int
    key_high: int
    play_logic: PlayLogic
    trigger: TriggerType
    one_shot: bool
    ignore_base_note: bool
    amplitude: Envelope
    pitch_envelope: Optional[EnvelopeModulator]
    filter: Optional[Filter]


def _parse_filter(reader: _Reader, element: ET.Element) -> Optional[Filter]:
    index = reader.integer(element, tags.INSTRUMENT_FILTER_TYPE, -1)
    entry = tags.filter_from_index(index)
    if entry is None:
        return None
    kind, poles = entry
    result = Filter(
        type=kind,
        poles=poles,
        cutoff=denormalize_frequency(reader.number(element, tags.INSTRUMENT_FILTER_CUTOFF, 1.0), MAX_FREQUENCY),
        resonance=clamp(reader.number(element, tags.INSTRUMENT_FILTER_RESONANCE, 0.0), 0.0, 1.0)
        * MAX_RESONANCE_DB,
    )
    amount = reader.number(element, tags.INSTRUMENT_FILTER_ENV_AMOUNT, 0.0)
    if amount > 0:
        result.cutoff_envelope = EnvelopeModulator(
            depth=round(min(amount, 1.0) * MAX_ENVELOPE_DEPTH),
            envelope=reader.envelope(element, tags.FILTER_ENVELOPE),
        )
    return result


def _parse_keygroup(
    reader: _Reader, element: ET.Element, number: int, is_drum: bool
) -> _KeygroupSettings:
    if is_drum:
        key_low = key_high = number
    else:
        key_low = reader.integer(element, tags.INSTRUMENT_LOW_NOTE, 0)
        key_high = reader.integer(element, tags.INSTRUMENT_HIGH_NOTE, 0)

    zone_play = reader.integer(element, tags.INSTRUMENT_ZONE_PLAY, tags.ZONE_PLAY_VELOCITY)
    play_logic = tags.ZONE_PLAY_LOGIC.get(zone_play)
    if play_logic is None:
        reader.notifier.warning("unknown ZonePlay value %d, using velocity", zone_play)
        play_logic = PlayLogic.ALWAYS

    trigger_mode = reader.integer(element, tags.INSTRUMENT_TRIGGER_MODE, -1)
    one_shot = reader.is_true(element, tags.INSTRUMENT_ONE_SHOT)
    if one_shot is None:
        one_shot = trigger_mode in (-1, tags.TRIGGER_ONE_SHOT)

    amplitude = reader.envelope(element, tags.VOLUME_ENVELOPE)
    for tag, slot in (
        (tags.INSTRUMENT_VOLUME_ATTACK_CURVE, "attack_slope"),
        (tags.INSTRUMENT_VOLUME_DECAY_CURVE, "decay_slope"),
        (tags.INSTRUMENT_VOLUME_RELEASE_CURVE, "release_slope"),
    ):
        curve = reader.number(element, tag, 0.5)
        setattr(amplitude, slot, denormalize_linear(curve, -1.0, 1.0))

    pitch_envelope = None
    pitch_amount = reader.number(element, tags.INSTRUMENT_PITCH_ENV_AMOUNT, 0.5)
    if pitch_amount != 0.5:
        cents = clamp(
            round((pitch_amount - 0.5) * 2.0 * tags.MAX_PITCH_ENV_CENTS),
            -tags.MAX_PITCH_ENV_CENTS,
            tags.MAX_PITCH_ENV_CENTS,
        )
        pitch_envelope = EnvelopeModulator(
            depth=cents, envelope=reader.envelope(element, tags.PITCH_ENVELOPE)
        )

    return _KeygroupSettings(
        key_low=key_low,
        key_high=key_high,
        play_logic=play_logic,
        trigger=TriggerType.RELEASE if trigger_mode == tags.TRIGGER_NOTE_OFF else TriggerType.ATTACK,
        one_shot=one_shot,
        ignore_base_note=bool(reader.is_true(element, tags.INSTRUMENT_IGNORE_BASE_NOTE)),
        amplitude=amplitude,
        pitch_envelope=pitch_envelope,
        filter=_parse_filter(reader, element),
    )


def _parse_layer(
    reader: _Reader, layer: ET.Element, settings: _KeygroupSettings
) -> Optional[SampleZone]:
    sample_name = reader.text(layer, tags.LAYER_SAMPLE_NAME)
    # Names can end with a space, so the text is not stripped.
    if sample_name is None or not sample_name.strip():
        return None

    zone = SampleZone(
        name=sample_name,
        key_low=settings.key_low,
        key_high=settings.key_high,
        velocity_low=reader.integer(layer, tags.LAYER_VEL_START, 0),
        velocity_high=reader.integer(layer, tags.LAYER_VEL_END, 0),
        play_logic=settings.play_logic,
    )
    zone.amplitude_envelope = EnvelopeModulator(depth=1.0, envelope=settings.amplitude.copy())
    if settings.pitch_envelope is not None:
        zone.pitch_envelope = settings.pitch_envelope.copy()
    if settings.filter is not None:
        zone.filter = settings.filter.copy()

    active = reader.is_true(layer, tags.LAYER_ACTIVE)
    if active is False:
        return zone

    volume = reader.text(layer, tags.LAYER_VOLUME)
    if volume is not None and volume.strip():
        zone.gain = volume_to_gain(reader.number(layer, tags.LAYER_VOLUME, 1.0))
    zone.panorama = clamp(reader.number(layer, tags.LAYER_PAN, 0.5) * 2.0 - 1.0, -1.0, 1.0)

    pitch = reader.text(layer, tags.LAYER_PITCH)
    if pitch is not None and pitch.strip():
        zone.tune = reader.number(layer, tags.LAYER_PITCH, 0.0) * 100.0
    else:
        coarse = reader.number(layer, tags.LAYER_COARSE_TUNE, 0.0)
        fine = reader.number(layer, tags.LAYER_FINE_TUNE, 0.0)
        zone.tune = coarse * 100.0 + fine

    root = reader.integer(layer, tags.LAYER_ROOT_NOTE, 0)
    if root > 0:
        zone.key_root = root - 1

    if settings.ignore_base_note:
        key_track = reader.is_true(layer, tags.LAYER_KEY_TRACK)
        if key_track is not None:
            zone.key_tracking = 1.0 if key_track else 0.0

    zone.start = reader.integer(layer, tags.LAYER_SLICE_START, 0)
    zone.stop = reader.integer(layer, tags.LAYER_SLICE_END, 0)

    if not settings.one_shot:
        _parse_loop(reader, layer, zone)
    return zone


def _parse_loop(reader: _Reader, layer: ET.Element, zone: SampleZone) -> None:
    slice_loop = reader.integer(layer, tags.LAYER_SLICE_LOOP, -1)
    if slice_loop <= 0:
        return
    loop = SampleLoop(end=zone.stop)
    if slice_loop == tags.SLICE_LOOP_REVERSE:
        zone.reversed = True
    elif slice_loop == tags.SLICE_LOOP_ALTERNATING:
        loop.type = LoopType.ALTERNATING
    loop_start = reader.integer(layer, tags.LAYER_SLICE_LOOP_START, -1)
    if loop_start >= 0:
        loop.start = loop_start
    loop.set_crossfade_frames(reader.integer(layer, tags.LAYER_SLICE_LOOP_CROSSFADE, 0))
    zone.loops.append(loop)


def _attach_sample(
    zone: SampleZone,
    folder: Optional[Path],
    is_drum: bool,
    one_shot: bool,
    notifier: Notifier,
) -> bool:
    """Resolve the zone's sample and fill in what the program left out."""
    if folder is None:
        zone.sample = SampleData(path=Path(zone.name + ".wav"))
        return True

    path = find_sample_file(folder, zone.name + ".WAV")
    if path is None:
        notifier.error("sample '%s.WAV' not found, zone skipped", zone.name)
        return False
    try:
        sample = read_sample_data(path)
    except SampleError as exc:
        notifier.error("%s, zone skipped", exc)
        return False
    zone.sample = sample

    if zone.stop <= 0:
        zone.stop = sample.frames
        for loop in zone.loops:
            if loop.end <= 0:
                loop.end = zone.stop
    if not is_drum:
        if zone.key_root is None and sample.root_key is not None:
            zone.key_root = sample.root_key
        if not one_shot and not zone.loops and sample.loops:
            start, end = sample.loops[0]
            zone.loops.append(SampleLoop(start=start, end=end))
    return True


def _parse_pad_note_map(reader: _Reader, program: ET.Element) -> Optional[Dict[int, int]]:
    element = program.find(tags.PROGRAM_PAD_NOTE_MAP)
    if element is None:
        return None
    pads: Dict[int, int] = {}
    for pad in element.findall(tags.PAD_NOTE_MAP_PAD_NOTE):
        number = reader.attribute(pad, tags.PAD_NOTE_NUMBER, 0)
        if not 1 <= number <= tags.MAX_PADS:
            raise StructuralError(f"pad number {number} out of range 1-{tags.MAX_PADS}")
        note = reader.integer(pad, tags.PAD_NOTE_NOTE, -1)
        if note >= 0:
            pads[number] = note
    return pads


def _apply_pad_note_map(zones: List[SampleZone], pads: Dict[int, int]) -> None:
    for zone in zones:
        note = pads.get(zone.key_low)
        if note is None:
            raise StructuralError(f"no pad note mapped for pad {zone.key_low}")
        zone.key_low = note
        zone.key_high = note
        if zone.key_root is None:
            zone.key_root = note


def _report_unknown_elements(
    instrument_elements: List[ET.Element], notifier: Notifier
) -> None:
    unknown = set()
    for element in instrument_elements:
        for child in element:
            if child.tag not in tags.KNOWN_INSTRUMENT_ELEMENTS:
                unknown.add(child.tag)
        for layer in element.iter(tags.LAYERS_LAYER):
            for child in layer:
                if child.tag not in tags.KNOWN_LAYER_ELEMENTS:
                    unknown.add(child.tag)
    for tag in sorted(unknown):
        notifier.info("unsupported element '%s' ignored", tag)


def decode_xpm(
    text: str,
    *,
    source: Path | None = None,
    notifier: Notifier | None = None,
    options: XpmOptions | None = None,
) -> Instrument:
    """Decode an XPM program.

    Zones are grouped by velocity range into groups named ``Layer N``.

    Raises
    ------
    StructuralError
        The XML is broken, the root or program element is missing, the
        program type is unknown, or a drum program has an unmapped pad.
    """
    notifier = notifier if notifier is not None else Notifier()
    options = options if options is not None else XpmOptions()
    reader = _Reader(notifier)

    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        raise StructuralError(f"not a valid XPM document: {exc}") from exc
    if root.tag != tags.ROOT:
        raise StructuralError(f"unexpected root element '{root.tag}'")
    program = root.find(tags.ROOT_PROGRAM)
    if program is None:
        raise StructuralError("program element missing")

    program_type = program.get(tags.PROGRAM_TYPE, tags.TYPE_KEYGROUP)
    if program_type not in (tags.TYPE_KEYGROUP, tags.TYPE_DRUM):
        raise StructuralError(f"unsupported program type '{program_type}'")
    is_drum = program_type == tags.TYPE_DRUM

    name = reader.text(program, tags.PROGRAM_NAME)
    if name is None:
        name = source.stem if source is not None else ""
    if options.prefer_folder_name and source is not None:
        name = source.parent.name
    instrument = Instrument(name=name)

    instruments = program.find(tags.PROGRAM_INSTRUMENTS)
    if instruments is None:
        return instrument

    num_keygroups = reader.integer(program, tags.PROGRAM_NUM_KEYGROUPS, tags.MAX_KEYGROUPS)
    instrument_elements = instruments.findall(tags.INSTRUMENTS_INSTRUMENT)
    if options.log_unsupported_attributes:
        _report_unknown_elements(instrument_elements, notifier)

    folder = source.parent if source is not None else None
    zones: List[Tuple[SampleZone, TriggerType]] = []
    for element in instrument_elements:
        number = reader.attribute(element, tags.INSTRUMENT_NUMBER, 0)
        if number > num_keygroups:
            continue
        settings = _parse_keygroup(reader, element, number, is_drum)
        layers = element.find(tags.INSTRUMENT_LAYERS)
        if layers is None:
            continue
        for layer in layers.findall(tags.LAYERS_LAYER):
            zone = _parse_layer(reader, layer, settings)
            if zone is None:
                continue
            if not _attach_sample(zone, folder, is_drum, settings.one_shot, notifier):
                continue
            zones.append((zone, settings.trigger))

    if is_drum:
        pads = _parse_pad_note_map(reader, program)
        if pads is not None:
            _apply_pad_note_map([zone for zone, _ in zones], pads)

    bend_range = reader.number(program, tags.PROGRAM_PITCHBEND_RANGE, 0.0)
    if bend_range != 0:
        bend = int(round(bend_range * 1200.0))
        for zone, _ in zones:
            zone.bend_up = bend
            zone.bend_down = -bend

    groups: Dict[Tuple[int, int, TriggerType], Group] = {}
    for zone, trigger in zones:
        key = (zone.velocity_low, zone.velocity_high, trigger)
        group = groups.get(key)
        if group is None:
            group = Group(name=f"Layer {len(groups) + 1}", trigger=trigger)
            groups[key] = group
        group.zones.append(zone)
    instrument.groups = list(groups.values())
    return instrument
