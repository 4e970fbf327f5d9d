from pathlib import Path
import json
import sys
import xml.etree.ElementTree as ET

import numpy as np
import pytest
import soundfile

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.conversion_spec import (  # noqa: E402
    FORMAT_EXS,
    FORMAT_XPM,
    export_samples,
    load_conversion_spec,
    parse_conversion_spec,
    run_conversion,
    source_format_for,
    summarize,
    write_conversion,
)
from msconv.errors import EncodeError  # noqa: E402
from msconv.exs_codec import decode_exs  # noqa: E402
from msconv.exs_structs import LOOP_ON, ExsFile, ExsGroup, ExsSample, ExsZone  # noqa: E402
from msconv.model import Group, Instrument, SampleData, SampleZone  # noqa: E402
from msconv.notify import Notifier  # noqa: E402
from msconv.xpm_codec import decode_xpm  # noqa: E402


def _write_wav(path: Path, frames: int = 3000) -> Path:
    soundfile.write(str(path), np.zeros((frames, 1), dtype="float32"), 44100, subtype="PCM_16", format="WAV")
    return path


def _write_exs(path: Path, sample_file: str = "tone.wav") -> Path:
    exs = ExsFile(name="Tone")
    exs.samples.append(ExsSample(name=sample_file, length=3000, file_name=sample_file))
    exs.groups[0] = ExsGroup(name="Main")
    exs.zones.append(
        ExsZone(
            name="tone",
            key=60,
            key_low=48,
            key_high=72,
            sample_end=3000,
            loop_options=LOOP_ON,
            loop_start=100,
            loop_end=2900,
            group_index=0,
            sample_index=0,
        )
    )
    path.write_bytes(exs.to_bytes())
    return path


XPM_PROGRAM = """<?xml version="1.0" encoding="UTF-8"?>
<MPCVObject>
  <Version><File_Version>2.1</File_Version></Version>
  <Program type="Keygroup">
    <ProgramName>Tone</ProgramName>
    <Instruments>
      <Instrument number="1">
        <LowNote>36</LowNote>
        <HighNote>84</HighNote>
        <OneShot>False</OneShot>
        <TriggerMode>2</TriggerMode>
        <Layers>
          <Layer number="1">
            <SampleName>tone</SampleName>
            <RootNote>61</RootNote>
            <VelStart>0</VelStart>
            <VelEnd>127</VelEnd>
          </Layer>
        </Layers>
      </Instrument>
    </Instruments>
  </Program>
</MPCVObject>
"""


def test_parse_resolves_relative_paths(tmp_path: Path) -> None:
    spec = parse_conversion_spec(
        {"version": 1, "source": "presets/Piano.EXS", "format": "xpm", "output": "out/p.xpm"},
        base_dir=tmp_path,
    )
    assert spec.source == (tmp_path / "presets" / "Piano.EXS").resolve()
    assert spec.output == (tmp_path / "out" / "p.xpm").resolve()
    assert spec.source_format == FORMAT_EXS
    assert spec.format == FORMAT_XPM


def test_default_output_swaps_suffix(tmp_path: Path) -> None:
    spec = parse_conversion_spec({"source": "Piano.xpm", "format": "exs"}, base_dir=tmp_path)
    assert spec.output is None
    assert spec.default_output() == (tmp_path / "Piano.exs").resolve()


def test_options_are_parsed(tmp_path: Path) -> None:
    spec = parse_conversion_spec(
        {
            "source": "a.exs",
            "format": "xpm",
            "options": {
                "search_depth": 4,
                "big_endian": False,
                "prefer_folder_name": True,
                "log_unsupported_attributes": True,
            },
        },
        base_dir=tmp_path,
    )
    assert spec.exs_options.search_depth == 4
    assert spec.exs_options.big_endian is False
    assert spec.xpm_options.prefer_folder_name is True
    assert spec.xpm_options.log_unsupported_attributes is True


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], "spec must be an object"),
        ({"version": 2, "source": "a.exs", "format": "xpm"}, "unsupported spec version"),
        ({"format": "xpm"}, "source must be"),
        ({"source": "a.sfz", "format": "xpm"}, "unsupported source file type"),
        ({"source": "a.exs", "format": "sfz"}, "format must be one of"),
        ({"source": "a.exs", "format": "xpm", "output": 3}, "output must be"),
        ({"source": "a.exs", "format": "xpm", "options": []}, "options must be an object"),
        ({"source": "a.exs", "format": "xpm", "options": {"speed": 1}}, "unknown option"),
        ({"source": "a.exs", "format": "xpm", "options": {"search_depth": 99}}, "search_depth"),
        ({"source": "a.exs", "format": "xpm", "options": {"search_depth": True}}, "search_depth"),
        ({"source": "a.exs", "format": "xpm", "options": {"big_endian": 1}}, "big_endian"),
    ],
    ids=[
        "not_object",
        "bad_version",
        "missing_source",
        "unknown_suffix",
        "bad_format",
        "bad_output",
        "bad_options",
        "unknown_option",
        "depth_range",
        "depth_bool",
        "endian_type",
    ],
)
def test_invalid_specs_are_rejected(tmp_path: Path, payload: object, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_conversion_spec(payload, base_dir=tmp_path)


def test_source_format_for() -> None:
    assert source_format_for(Path("x/Bass.XPM")) == FORMAT_XPM
    with pytest.raises(ValueError):
        source_format_for(Path("x/Bass"))


def test_load_reads_json_relative_to_job_file(tmp_path: Path) -> None:
    job = tmp_path / "jobs" / "job.json"
    job.parent.mkdir()
    job.write_text(json.dumps({"source": "../Tone.exs", "format": "xpm"}), encoding="utf-8")
    spec = load_conversion_spec(job)
    assert spec.source == (tmp_path / "Tone.exs").resolve()


def test_exs_to_xpm(tmp_path: Path) -> None:
    _write_wav(tmp_path / "tone.wav")
    source = _write_exs(tmp_path / "Tone.exs")
    spec = parse_conversion_spec({"source": str(source), "format": "xpm"}, base_dir=tmp_path)

    notifier = Notifier()
    payload = run_conversion(spec, notifier)
    root = ET.fromstring(payload.decode("utf-8"))
    keygroup = root.find("./Program/Instruments/Instrument")
    assert root.findtext("./Program/ProgramName") == "Tone"
    assert (keygroup.findtext("LowNote"), keygroup.findtext("HighNote")) == ("48", "72")
    layer = keygroup.find("./Layers/Layer")
    assert layer.findtext("SampleName") == "tone"
    assert layer.findtext("RootNote") == "61"
    assert layer.findtext("SliceLoopStart") == "100"
    assert summarize(notifier)["errors"] == 0


def test_xpm_to_exs(tmp_path: Path) -> None:
    _write_wav(tmp_path / "tone.wav", frames=4000)
    source = tmp_path / "Tone.xpm"
    source.write_text(XPM_PROGRAM, encoding="utf-8")
    spec = parse_conversion_spec({"source": "Tone.xpm", "format": "exs"}, base_dir=tmp_path)

    payload = run_conversion(spec)
    instrument = decode_exs(payload)
    zones = list(instrument.zones())
    assert instrument.name == "Tone"
    assert len(zones) == 1
    assert (zones[0].key_low, zones[0].key_high, zones[0].key_root) == (36, 84, 60)
    assert zones[0].stop == 4000


def test_missing_samples_are_counted(tmp_path: Path) -> None:
    source = tmp_path / "Tone.xpm"
    source.write_text(XPM_PROGRAM, encoding="utf-8")
    spec = parse_conversion_spec({"source": "Tone.xpm", "format": "xpm"}, base_dir=tmp_path)

    notifier = Notifier()
    payload = run_conversion(spec, notifier)
    assert summarize(notifier) == {"warnings": 0, "errors": 1}
    assert ET.fromstring(payload.decode("utf-8")).findtext("./Program/KeygroupNumKeygroups") == "0"

    exs_spec = parse_conversion_spec({"source": "Tone.xpm", "format": "exs"}, base_dir=tmp_path)
    with pytest.raises(EncodeError):
        run_conversion(exs_spec)


def test_written_program_gets_its_samples(tmp_path: Path) -> None:
    (tmp_path / "Inst").mkdir()
    (tmp_path / "Samples").mkdir()
    _write_wav(tmp_path / "Samples" / "tone.wav")
    _write_exs(tmp_path / "Inst" / "Tone.exs")
    spec = parse_conversion_spec({"source": "Inst/Tone.exs", "format": "xpm"}, base_dir=tmp_path)
    out_path = tmp_path / "out" / "Tone.xpm"

    notifier = Notifier()
    payload = write_conversion(spec, out_path, notifier)
    assert out_path.read_bytes() == payload
    assert (tmp_path / "out" / "tone.wav").is_file()
    assert summarize(notifier)["errors"] == 0

    instrument = decode_xpm(out_path.read_text(encoding="utf-8"), source=out_path)
    assert instrument.zone_count == 1


def test_written_exs_gets_its_samples(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    _write_wav(tmp_path / "src" / "tone.wav", frames=4000)
    (tmp_path / "src" / "Tone.xpm").write_text(XPM_PROGRAM, encoding="utf-8")
    spec = parse_conversion_spec({"source": "src/Tone.xpm", "format": "exs"}, base_dir=tmp_path)
    out_path = tmp_path / "out" / "Tone.exs"

    write_conversion(spec, out_path)
    assert (tmp_path / "out" / "tone.wav").is_file()
    instrument = decode_exs(out_path.read_bytes(), source=out_path)
    assert [zone.stop for zone in instrument.zones()] == [4000]


def test_samples_are_not_copied_on_request(tmp_path: Path) -> None:
    _write_wav(tmp_path / "tone.wav")
    _write_exs(tmp_path / "Tone.exs")
    spec = parse_conversion_spec({"source": "Tone.exs", "format": "xpm"}, base_dir=tmp_path)

    write_conversion(spec, tmp_path / "out" / "Tone.xpm", copy_samples=False)
    assert (tmp_path / "out" / "Tone.xpm").is_file()
    assert not (tmp_path / "out" / "tone.wav").exists()


def test_program_samples_are_converted_to_wav(tmp_path: Path) -> None:
    soundfile.write(
        str(tmp_path / "tone.aiff"),
        np.zeros((3000, 1), dtype="float32"),
        44100,
        subtype="PCM_16",
        format="AIFF",
    )
    _write_exs(tmp_path / "Tone.exs", sample_file="tone.aiff")
    spec = parse_conversion_spec({"source": "Tone.exs", "format": "xpm"}, base_dir=tmp_path)
    out_path = tmp_path / "out" / "Tone.xpm"

    write_conversion(spec, out_path)
    root = ET.fromstring(out_path.read_text(encoding="utf-8"))
    assert root.findtext("./Program/Instruments/Instrument/Layers/Layer/SampleName") == "tone"
    assert soundfile.info(str(tmp_path / "out" / "tone.wav")).format == "WAV"


def test_export_reports_name_clashes_and_missing_files(tmp_path: Path) -> None:
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    first = _write_wav(tmp_path / "a" / "hit.wav")
    second = _write_wav(tmp_path / "b" / "hit.wav")
    instrument = Instrument(
        name="Kit",
        groups=[
            Group(
                zones=[
                    SampleZone(name="one", sample=SampleData(path=first)),
                    SampleZone(name="two", sample=SampleData(path=second)),
                    SampleZone(name="three", sample=SampleData(path=tmp_path / "gone.wav")),
                    SampleZone(name="four"),
                ]
            )
        ],
    )
    notifier = Notifier()
    written = export_samples(instrument, FORMAT_XPM, tmp_path / "out", notifier)

    assert written == [tmp_path / "out" / "hit.wav"]
    assert len(notifier.warnings) == 1
    assert "hit.wav" in notifier.warnings[0]
    assert len(notifier.errors) == 1
    assert "gone.wav" in notifier.errors[0]
