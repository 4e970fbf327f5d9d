import os
from pathlib import Path
import subprocess
import sys

ROOT = Path(__file__).resolve().parents[1]
INSPECTOR = ROOT / "tools" / "inspect_exs.py"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from msconv.blocks import Block, BlockType  # noqa: E402
from msconv.exs_params import ParamId  # noqa: E402
from msconv.exs_structs import ENABLE_BY_ROUND_ROBIN, LOOP_ON, ExsFile, ExsGroup, ExsSample, ExsZone  # noqa: E402
from tools.inspect_exs import format_midi_note, generate_report  # noqa: E402


def _sample_file() -> bytes:
    exs = ExsFile(name="Report")
    exs.groups[0] = ExsGroup(name="Cycle", enable_by_type=ENABLE_BY_ROUND_ROBIN, release_trigger=True)
    exs.zones.append(
        ExsZone(
            name="c3",
            options=ExsZone.pack_options(one_shot=True),
            key=60,
            key_low=58,
            key_high=62,
            loop_options=LOOP_ON,
            loop_start=10,
            loop_end=90,
            group_index=0,
            sample_index=0,
        )
    )
    exs.samples.append(ExsSample(name="c3.wav", sample_rate=48000, length=100, file_name="c3.wav"))
    exs.parameters.set(ParamId.PITCH_BEND_UP, 7)
    extra = Block(type_tag=0x0E, index=0, name="mystery", payload=b"\x00\x01")
    return exs.to_bytes() + extra.to_bytes()


def test_format_midi_note() -> None:
    assert format_midi_note(60) == "C3"
    assert format_midi_note(0) == "C-2"
    assert format_midi_note(127) == "G8"


def test_report_lists_blocks_and_records() -> None:
    report = generate_report(Path("Report.exs"), _sample_file())

    assert "Instrument: 'Report'" in report
    assert "(big endian)" in report
    assert f"type=0x{BlockType.ZONE:02X} ZONE" in report
    assert "type=0x0E ?" in report
    assert "'c3' key=C3 range=58-62" in report
    assert "one-shot" in report
    assert "loop 10-90" in report
    assert "enable_by=" in report and "release_trigger=yes" in report
    assert "'c3.wav' 48000 Hz" in report
    assert "PITCH_BEND_UP" in report
    assert "Diagnostics:" in report
    assert "0x0E" in report.split("Diagnostics:")[1]


def test_inspector_cli(tmp_path: Path) -> None:
    path = tmp_path / "Report.exs"
    path.write_bytes(_sample_file())
    env = os.environ.copy()
    env["PYTHONPATH"] = str(ROOT)
    proc = subprocess.run(
        [sys.executable, str(INSPECTOR), str(path)],
        capture_output=True,
        text=True,
        check=False,
        env=env,
    )
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.startswith(f"File: {path}")
    assert "Zones (1):" in proc.stdout
