"""Convert between EXS24 instruments and the multisample model.

Decoding builds one model group per EXS group block.  The parameter block
holds instrument-wide settings (pitch bend, tuning, amplitude and filter
envelopes, filter, velocity sensitivity); they are applied to every zone.

Encoding writes one group block per non-empty group and one zone plus one
sample block per zone.  Only the first loop of a zone is stored.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .errors import EncodeError, SampleError
from .exs_params import (
    FILTER_CUTOFF_SCALE,
    FILTER_RESONANCE_SCALE,
    FILTER_TYPE_BP_12,
    FILTER_TYPE_HP_12,
    FILTER_TYPE_LP_6,
    FILTER_TYPE_LP_12,
    FILTER_TYPE_LP_18,
    FILTER_TYPE_LP_24,
    VEL_SENS_MIN,
    ExsParameters,
    ParamId,
)
from .exs_structs import (
    ENABLE_BY_NAMES,
    ENABLE_BY_NONE,
    ENABLE_BY_ROUND_ROBIN,
    LOOP_DIRECTION_ALTERNATING,
    LOOP_DIRECTION_FORWARD,
    LOOP_DIRECTION_REVERSE,
    LOOP_ON,
    ExsFile,
    ExsGroup,
    ExsSample,
    ExsZone,
)
from .model import (
    MAX_ENVELOPE_DEPTH,
    MAX_FREQUENCY,
    MAX_RESONANCE_DB,
    Envelope,
    EnvelopeModulator,
    Filter,
    FilterType,
    Group,
    Instrument,
    LoopDirection,
    LoopType,
    PlayLogic,
    SampleData,
    SampleLoop,
    SampleZone,
    TriggerType,
)
from .normalize import clamp, normalize_linear, seconds_to_units, units_to_seconds
from .notify import Notifier
from .samples import find_sample_file, read_sample_data


__all__ = ["ExsOptions", "decode_exs", "encode_exs", "sample_file_name"]


PAN_RANGE = 50
DEFAULT_BEND_UP = 2
SAME_AS_BEND_UP = -1

# (type, poles) per FILTER1_TYPE value.
FILTER_TYPES = {
    FILTER_TYPE_LP_24: (FilterType.LOW_PASS, 4),
    FILTER_TYPE_LP_18: (FilterType.LOW_PASS, 3),
    FILTER_TYPE_LP_12: (FilterType.LOW_PASS, 2),
    FILTER_TYPE_LP_6: (FilterType.LOW_PASS, 1),
    FILTER_TYPE_HP_12: (FilterType.HIGH_PASS, 2),
    FILTER_TYPE_BP_12: (FilterType.BAND_PASS, 2),
}

_ENVELOPE_IDS = {
    1: (
        ParamId.ENV1_ATK_HI_VEL,
        ParamId.ENV1_HOLD,
        ParamId.ENV1_DECAY,
        ParamId.ENV1_SUSTAIN,
        ParamId.ENV1_RELEASE,
    ),
    2: (
        ParamId.ENV2_ATK_HI_VEL,
        ParamId.ENV2_HOLD,
        ParamId.ENV2_DECAY,
        ParamId.ENV2_SUSTAIN,
        ParamId.ENV2_RELEASE,
    ),
}


@dataclass(frozen=True)
class ExsOptions:
    search_depth: int = 2
    big_endian: bool = True


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_exs(
    data: bytes,
    *,
    source: Path | None = None,
    notifier: Notifier | None = None,
    options: ExsOptions | None = None,
) -> Instrument:
    """Decode an EXS24 file.

    Parameters
    ----------
    data:
        Complete file contents.
    source:
        Path of the file.  When given, every sample is looked up on disk and
        zones whose sample can not be found are dropped.  Without it the
        sample block metadata is used as is.
    notifier:
        Receives everything that is skipped or substituted.
    options:
        Sample search depth.

    Raises
    ------
    MalformedContainer
        Bad block magic or version, or a truncated block.
    """
    notifier = notifier if notifier is not None else Notifier()
    options = options if options is not None else ExsOptions()

    exs = ExsFile.from_bytes(data, notifier)
    name = exs.name or (source.stem if source is not None else "")
    instrument = Instrument(name=name)
    folder = source.parent if source is not None else None

    groups: Dict[int, Group] = {}
    for index, exs_group in exs.groups.items():
        groups[index] = _convert_group(index, exs_group, notifier)
    default_group: Optional[Group] = None

    for exs_zone in exs.zones:
        sample_index = exs_zone.sample_index
        if sample_index is None:
            sample_index = exs_zone.block_index
        if sample_index >= len(exs.samples):
            notifier.error(
                "zone '%s' references missing sample %d, skipped", exs_zone.name, sample_index
            )
            continue
        sample = _resolve_sample(exs.samples[sample_index], folder, options, notifier)
        if sample is None:
            continue

        zone = _convert_zone(exs_zone, sample)
        exs_group = exs.groups.get(exs_zone.group_index) if exs_zone.group_index is not None else None
        if exs_group is None:
            if default_group is None:
                default_group = Group(name=name)
            default_group.zones.append(zone)
            continue

        if not _limit_by_group(zone, exs_group):
            notifier.warning(
                "zone '%s' lies outside the range of group '%s', skipped",
                zone.name,
                exs_group.name,
            )
            continue
        if exs_group.enable_by_type == ENABLE_BY_ROUND_ROBIN:
            zone.play_logic = PlayLogic.ROUND_ROBIN
            position = exs_group.round_robin_position
            zone.sequence_position = position if position >= 0 else None
        groups[exs_zone.group_index].zones.append(zone)

    ordered = list(groups.values())
    if default_group is not None:
        ordered.append(default_group)
    instrument.groups = [group for group in ordered if group.zones]

    _apply_global_parameters(instrument, exs.parameters, notifier)
    return instrument


def _convert_group(index: int, exs_group: ExsGroup, notifier: Notifier) -> Group:
    group = Group(
        name=exs_group.name or f"Group {index + 1}",
        trigger=TriggerType.RELEASE if exs_group.release_trigger else TriggerType.ATTACK,
    )
    if exs_group.enable_by_type not in (ENABLE_BY_NONE, ENABLE_BY_ROUND_ROBIN):
        kind = ENABLE_BY_NAMES.get(exs_group.enable_by_type, str(exs_group.enable_by_type))
        notifier.warning(
            "group '%s' is enabled by %s, which is not supported; always enabled",
            group.name,
            kind,
        )
    if exs_group.mute:
        notifier.info("group '%s' is muted in the source", group.name)
    return group


def _resolve_sample(
    exs_sample: ExsSample,
    folder: Path | None,
    options: ExsOptions,
    notifier: Notifier,
) -> Optional[SampleData]:
    if folder is None:
        return SampleData(
            path=Path(exs_sample.file_name) if exs_sample.file_name else None,
            sample_rate=exs_sample.sample_rate,
            frames=exs_sample.length,
            channels=exs_sample.channels,
            bit_depth=exs_sample.bit_depth,
        )

    path = find_sample_file(
        folder,
        exs_sample.file_name,
        options.search_depth,
        stored_path=exs_sample.file_path,
    )
    if path is None:
        notifier.error("sample '%s' not found, zone skipped", exs_sample.file_name)
        return None
    try:
        return read_sample_data(path)
    except SampleError as exc:
        notifier.error("%s, zone skipped", exc)
        return None


def _convert_zone(exs_zone: ExsZone, sample: SampleData) -> SampleZone:
    zone = SampleZone(name=exs_zone.name or Path(sample.file_name).stem, sample=sample)
    zone.key_root = exs_zone.key
    zone.key_low = exs_zone.key_low
    zone.key_high = exs_zone.key_high
    if exs_zone.velocity_range_on:
        zone.velocity_low = exs_zone.velocity_low
        zone.velocity_high = exs_zone.velocity_high
    zone.start = exs_zone.sample_start
    zone.stop = exs_zone.sample_end if exs_zone.sample_end > 0 else sample.frames
    zone.reversed = exs_zone.reverse
    zone.gain = float(exs_zone.volume_adjust)
    if exs_zone.pitch:
        zone.tune = float(exs_zone.coarse_tune * 100 + exs_zone.fine_tune)
    zone.panorama = clamp(exs_zone.pan, -PAN_RANGE, PAN_RANGE) / PAN_RANGE

    if exs_zone.loop_on:
        loop = SampleLoop(start=exs_zone.loop_start, end=exs_zone.loop_end)
        if exs_zone.loop_direction == LOOP_DIRECTION_REVERSE:
            loop.direction = LoopDirection.REVERSE
        elif exs_zone.loop_direction == LOOP_DIRECTION_ALTERNATING:
            loop.type = LoopType.ALTERNATING
        loop.set_crossfade_frames(exs_zone.loop_crossfade)
        zone.loops.append(loop)
    return zone


def _limit_by_group(zone: SampleZone, group: ExsGroup) -> bool:
    """Apply group volume/pan and clip the zone to the group's ranges.

    Returns False when the zone lies completely outside the group.  A bound
    of 0 means no limit.
    """
    zone.gain += group.volume
    zone.panorama = clamp(zone.panorama + group.pan / PAN_RANGE, -1.0, 1.0)

    min_vel, max_vel = group.min_velocity, group.max_velocity
    if min_vel and zone.velocity_high < min_vel:
        return False
    if max_vel and zone.velocity_low > max_vel:
        return False
    start_note, end_note = group.start_note, group.end_note
    if start_note and zone.key_high < start_note:
        return False
    if end_note and zone.key_low > end_note:
        return False

    if min_vel and zone.velocity_low < min_vel:
        zone.velocity_low = min_vel
    if max_vel and zone.velocity_high > max_vel:
        zone.velocity_high = max_vel
    if start_note and zone.key_low < start_note:
        zone.key_low = start_note
    if end_note and zone.key_high > end_note:
        zone.key_high = end_note
    return True


def _read_envelope(params: ExsParameters, index: int) -> Envelope:
    attack, hold, decay, sustain, release = _ENVELOPE_IDS[index]
    return Envelope(
        attack=units_to_seconds(params.get(attack, 0)),
        hold=units_to_seconds(params.get(hold, 0)),
        decay=units_to_seconds(params.get(decay, 0)),
        sustain=clamp(params.get(sustain, 127) / 127.0, 0.0, 1.0),
        release=units_to_seconds(params.get(release, 0)),
    )


def _has_envelope(params: ExsParameters, index: int) -> bool:
    return any(param in params for param in _ENVELOPE_IDS[index])


def _read_filter(params: ExsParameters, notifier: Notifier) -> Optional[Filter]:
    toggle = params.get(ParamId.FILTER1_TOGGLE, 0)
    filter_type = params.get(ParamId.FILTER1_TYPE)
    if toggle <= 0 or filter_type is None:
        return None
    if filter_type not in FILTER_TYPES:
        notifier.warning("unsupported filter type %d, filter ignored", filter_type)
        return None

    kind, poles = FILTER_TYPES[filter_type]
    cutoff = params.get(ParamId.FILTER1_CUTOFF, FILTER_CUTOFF_SCALE)
    resonance = params.get(ParamId.FILTER1_RESO, 0)
    result = Filter(
        type=kind,
        poles=poles,
        cutoff=clamp(cutoff / FILTER_CUTOFF_SCALE, 0.0, 1.0) * MAX_FREQUENCY,
        resonance=clamp(resonance / FILTER_RESONANCE_SCALE, 0.0, 1.0) * MAX_RESONANCE_DB,
    )
    if _has_envelope(params, 2):
        result.cutoff_envelope = EnvelopeModulator(
            depth=MAX_ENVELOPE_DEPTH, envelope=_read_envelope(params, 2)
        )
    return result


def _apply_global_parameters(
    instrument: Instrument, params: ExsParameters, notifier: Notifier
) -> None:
    bend_up = params.get(ParamId.PITCH_BEND_UP, DEFAULT_BEND_UP) * 100
    bend_down_raw = params.get(ParamId.PITCH_BEND_DOWN, SAME_AS_BEND_UP)
    bend_down = -bend_up if bend_down_raw == SAME_AS_BEND_UP else bend_down_raw * -100

    tune_offset = params.get(ParamId.COARSE_TUNE, 0) * 100 + params.get(ParamId.FINE_TUNE, 0)
    amplitude = _read_envelope(params, 1)

    velocity_depth: Optional[float] = None
    vel_sens = params.get(ParamId.ENV1_VEL_SENS)
    if vel_sens is not None:
        velocity_depth = 1.0 + clamp(vel_sens, VEL_SENS_MIN, 0) / -VEL_SENS_MIN
        instrument.amplitude_velocity_depth = velocity_depth

    instrument.global_filter = _read_filter(params, notifier)

    for zone in instrument.zones():
        zone.bend_up = bend_up
        zone.bend_down = bend_down
        zone.tune += tune_offset
        zone.amplitude_envelope = EnvelopeModulator(depth=1.0, envelope=amplitude.copy())
        if velocity_depth is not None:
            zone.amplitude_velocity.depth = velocity_depth
        if instrument.global_filter is not None:
            zone.filter = instrument.global_filter.copy()


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_exs(
    instrument: Instrument,
    *,
    notifier: Notifier | None = None,
    options: ExsOptions | None = None,
) -> bytes:
    """Encode ``instrument`` as an EXS24 file.

    Raises
    ------
    EncodeError
        The instrument has no zones.
    """
    notifier = notifier if notifier is not None else Notifier()
    options = options if options is not None else ExsOptions()

    groups = instrument.non_empty_groups()
    if not groups:
        raise EncodeError(f"instrument '{instrument.name}' has no zones")

    exs = ExsFile(name=instrument.name, big_endian=options.big_endian)
    for group_index, group in enumerate(groups):
        exs.groups[group_index] = _group_to_exs(group_index, group)
        for zone in group.zones:
            if len(zone.loops) > 1:
                notifier.warning(
                    "zone '%s' has %d loops, only the first is kept", zone.name, len(zone.loops)
                )
            exs.zones.append(_zone_to_exs(zone, group_index, len(exs.samples)))
            exs.samples.append(_sample_to_exs(zone))

    first_zone = groups[0].zones[0]
    global_filter = instrument.global_filter or first_zone.filter
    exs.parameters = _global_parameters(first_zone, global_filter)
    return exs.to_bytes()


def _group_to_exs(index: int, group: Group) -> ExsGroup:
    exs_group = ExsGroup(
        name=group.name,
        block_index=index,
        release_trigger=group.trigger == TriggerType.RELEASE,
    )
    if all(zone.play_logic == PlayLogic.ROUND_ROBIN for zone in group.zones):
        exs_group.enable_by_type = ENABLE_BY_ROUND_ROBIN
        position = group.zones[0].sequence_position
        exs_group.round_robin_position = position if position is not None else index
    return exs_group


def sample_file_name(zone: SampleZone) -> str:
    if zone.sample is not None and zone.sample.file_name:
        return zone.sample.file_name
    return f"{zone.name}.wav"


def _zone_to_exs(zone: SampleZone, group_index: int, sample_index: int) -> ExsZone:
    sample = zone.sample if zone.sample is not None else SampleData()
    coarse = int(zone.tune / 100)
    fine = int(math.fmod(zone.tune, 100))
    exs_zone = ExsZone(
        name=zone.name,
        options=ExsZone.pack_options(pitch=True, reverse=zone.reversed, velocity_range_on=True),
        key=zone.effective_key_root(),
        fine_tune=fine,
        coarse_tune=coarse,
        pan=int(clamp(zone.panorama, -1.0, 1.0) * PAN_RANGE),
        volume_adjust=int(clamp(zone.gain, -128, 127)),
        key_low=zone.key_low,
        key_high=zone.key_high,
        velocity_low=zone.velocity_low,
        velocity_high=zone.velocity_high,
        sample_start=zone.start,
        sample_end=zone.stop if zone.stop > 0 else sample.frames,
        group_index=group_index,
        sample_index=sample_index,
    )
    if zone.loops:
        loop = zone.loops[0]
        exs_zone.loop_options = LOOP_ON
        exs_zone.loop_start = loop.start
        exs_zone.loop_end = loop.end
        exs_zone.loop_crossfade = loop.crossfade_frames()
        if loop.type == LoopType.ALTERNATING:
            exs_zone.loop_direction = LOOP_DIRECTION_ALTERNATING
        elif loop.direction == LoopDirection.REVERSE:
            exs_zone.loop_direction = LOOP_DIRECTION_REVERSE
        else:
            exs_zone.loop_direction = LOOP_DIRECTION_FORWARD
    return exs_zone


def _sample_to_exs(zone: SampleZone) -> ExsSample:
    sample = zone.sample if zone.sample is not None else SampleData()
    name = sample_file_name(zone)
    return ExsSample(
        name=name,
        length=sample.frames,
        sample_rate=sample.sample_rate,
        bit_depth=sample.bit_depth,
        channels=sample.channels,
        channels2=sample.channels,
        type="WAVE",
        size=sample.byte_size(),
        file_path="",
        file_name=name,
    )


def _write_envelope(params: ExsParameters, index: int, modulator: EnvelopeModulator) -> None:
    if not modulator.is_active:
        return
    envelope = modulator.envelope
    depth = min(1.0, abs(modulator.depth))
    attack, hold, decay, sustain, release = _ENVELOPE_IDS[index]
    params.set(attack, seconds_to_units(envelope.attack))
    params.set(hold, seconds_to_units(envelope.hold))
    params.set(decay, seconds_to_units(envelope.decay))
    params.set(sustain, int(round(clamp(envelope.sustain, 0.0, 1.0) * 127 * depth)))
    params.set(release, seconds_to_units(envelope.release))


def _write_filter(params: ExsParameters, global_filter: Optional[Filter]) -> None:
    if global_filter is None or global_filter.type == FilterType.BAND_REJECT:
        params.set(ParamId.FILTER1_TOGGLE, 0)
        return

    if global_filter.type == FilterType.LOW_PASS:
        type_index = {3: FILTER_TYPE_LP_18, 2: FILTER_TYPE_LP_12, 1: FILTER_TYPE_LP_6}.get(
            global_filter.poles, FILTER_TYPE_LP_24
        )
    elif global_filter.type == FilterType.HIGH_PASS:
        type_index = FILTER_TYPE_HP_12
    else:
        type_index = FILTER_TYPE_BP_12

    params.set(ParamId.FILTER1_TOGGLE, 1)
    params.set(ParamId.FILTER1_TYPE, type_index)
    params.set(
        ParamId.FILTER1_CUTOFF,
        round(normalize_linear(global_filter.cutoff, 0.0, MAX_FREQUENCY) * FILTER_CUTOFF_SCALE),
    )
    params.set(
        ParamId.FILTER1_RESO,
        round(
            normalize_linear(global_filter.resonance, 0.0, MAX_RESONANCE_DB)
            * FILTER_RESONANCE_SCALE
        ),
    )
    _write_envelope(params, 2, global_filter.cutoff_envelope)


def _global_parameters(zone: SampleZone, global_filter: Optional[Filter]) -> ExsParameters:
    params = ExsParameters()
    params.set(ParamId.PITCH_BEND_UP, int(zone.bend_up / 100))
    params.set(ParamId.PITCH_BEND_DOWN, abs(int(zone.bend_down / 100)))
    velocity_depth = zone.amplitude_velocity.depth
    params.set(
        ParamId.ENV1_VEL_SENS,
        round(clamp((1.0 - velocity_depth) * VEL_SENS_MIN, VEL_SENS_MIN, 0)),
    )
    _write_envelope(params, 1, zone.amplitude_envelope)
    _write_filter(params, global_filter)
    return params
