from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.model import (  # noqa: E402
    Envelope,
    EnvelopeModulator,
    Filter,
    Group,
    Instrument,
    SampleData,
    SampleLoop,
    SampleZone,
)


def test_key_root_defaults_to_key_low() -> None:
    zone = SampleZone(key_low=48, key_high=52)
    assert zone.effective_key_root() == 48
    assert zone.key_root is None


def test_key_root_is_pinned_inside_key_range() -> None:
    zone = SampleZone(key_low=48, key_high=52, key_root=60)
    assert zone.effective_key_root() == 52
    assert zone.key_root == 60
    assert SampleZone(key_low=48, key_high=52, key_root=10).effective_key_root() == 48
    assert SampleZone(key_low=48, key_high=52, key_root=50).effective_key_root() == 50


def test_loop_crossfade_is_a_fraction_of_the_loop() -> None:
    loop = SampleLoop(start=100, end=2000)
    loop.set_crossfade_frames(50)
    assert loop.length == 1900
    assert loop.crossfade == pytest.approx(50 / 1900)
    assert loop.crossfade_frames() == 50


def test_loop_crossfade_on_empty_loop_is_zero() -> None:
    loop = SampleLoop(start=10, end=10)
    loop.set_crossfade_frames(50)
    assert loop.crossfade == 0.0
    loop = SampleLoop(start=0, end=10)
    loop.set_crossfade_frames(50)
    assert loop.crossfade == 1.0


def test_copies_are_independent() -> None:
    modulator = EnvelopeModulator(depth=1.0, envelope=Envelope(attack=0.5))
    copy = modulator.copy()
    copy.envelope.attack = 2.0
    assert modulator.envelope.attack == 0.5
    assert copy.is_active
    assert not EnvelopeModulator().is_active

    original = Filter(cutoff=1000.0, cutoff_envelope=EnvelopeModulator(depth=1200))
    cloned = original.copy()
    cloned.cutoff_envelope.depth = 0
    assert original.cutoff_envelope.depth == 1200


def test_instrument_zone_iteration_skips_empty_groups() -> None:
    a = SampleZone(name="a")
    b = SampleZone(name="b")
    instrument = Instrument(
        name="inst",
        groups=[Group(name="g1", zones=[a]), Group(name="empty"), Group(name="g2", zones=[b])],
    )
    assert [zone.name for zone in instrument.zones()] == ["a", "b"]
    assert [group.name for group in instrument.non_empty_groups()] == ["g1", "g2"]
    assert instrument.zone_count == 2


def test_sample_data_size_without_file() -> None:
    sample = SampleData(path=Path("missing.wav"), frames=1000, channels=2, bit_depth=24)
    assert sample.file_name == "missing.wav"
    assert sample.byte_size() == 6000
    assert SampleData().file_name == ""
