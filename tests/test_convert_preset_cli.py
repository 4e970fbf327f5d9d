"""CLI integration tests for tools/convert_preset.py."""

from __future__ import annotations

import json
import os
from pathlib import Path
import subprocess
import sys

import numpy as np
import soundfile

REPO_ROOT = Path(__file__).resolve().parents[1]
SCRIPT = REPO_ROOT / "tools" / "convert_preset.py"
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.exs_codec import decode_exs  # noqa: E402
from msconv.exs_structs import ExsFile, ExsGroup, ExsSample, ExsZone  # noqa: E402


def _run_cli(*args: str) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = str(REPO_ROOT)
    return subprocess.run(
        [sys.executable, str(SCRIPT), *args],
        cwd=str(REPO_ROOT),
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )


def _write_preset(folder: Path, *, with_sample: bool = True) -> Path:
    if with_sample:
        soundfile.write(
            str(folder / "keys.wav"),
            np.zeros((2000, 1), dtype="float32"),
            44100,
            subtype="PCM_16",
            format="WAV",
        )
    exs = ExsFile(name="Keys")
    exs.samples.append(ExsSample(name="keys.wav", length=2000, file_name="keys.wav"))
    exs.groups[0] = ExsGroup(name="Main")
    exs.zones.append(
        ExsZone(name="keys", key=60, key_low=0, key_high=127, sample_end=2000, group_index=0, sample_index=0)
    )
    path = folder / "Keys.exs"
    path.write_bytes(exs.to_bytes())
    return path


def test_cli_converts_preset_to_default_output(tmp_path: Path) -> None:
    source = _write_preset(tmp_path)
    result = _run_cli(str(source), "--format", "xpm")

    assert result.returncode == 0, result.stderr
    output = tmp_path / "Keys.xpm"
    assert output.exists()
    assert "Wrote" in result.stdout
    assert "<SampleName>keys</SampleName>" in output.read_text(encoding="utf-8")


def test_cli_requires_format_for_preset_input(tmp_path: Path) -> None:
    source = _write_preset(tmp_path)
    result = _run_cli(str(source))
    assert result.returncode == 2
    assert "--format is required" in result.stderr


def test_cli_refuses_to_overwrite_source(tmp_path: Path) -> None:
    source = _write_preset(tmp_path)
    result = _run_cli(str(source), "--format", "exs")
    assert result.returncode == 2
    assert "overwrite the source" in result.stderr


def test_cli_runs_json_job_with_output(tmp_path: Path) -> None:
    _write_preset(tmp_path)
    job = tmp_path / "job.json"
    job.write_text(
        json.dumps({"version": 1, "source": "Keys.exs", "format": "xpm", "output": "out/Keys.xpm"}),
        encoding="utf-8",
    )
    result = _run_cli(str(job), "--format", "exs", "-o", str(tmp_path / "copy.exs"))

    assert result.returncode == 0, result.stderr
    assert not (tmp_path / "out" / "Keys.xpm").exists()
    instrument = decode_exs((tmp_path / "copy.exs").read_bytes())
    assert instrument.name == "Keys"
    assert instrument.zone_count == 1


def test_cli_dry_run_writes_nothing(tmp_path: Path) -> None:
    source = _write_preset(tmp_path)
    result = _run_cli(str(source), "--format", "xpm", "--dry-run")

    assert result.returncode == 0, result.stderr
    assert "dry-run OK: exs -> xpm" in result.stdout
    assert "errors=0" in result.stdout
    assert not (tmp_path / "Keys.xpm").exists()


def test_cli_reports_missing_samples(tmp_path: Path) -> None:
    source = _write_preset(tmp_path, with_sample=False)
    log_file = tmp_path / "convert.log"
    result = _run_cli(str(source), "--format", "xpm", "--log-file", str(log_file))

    assert result.returncode == 1
    assert "errors=1" in result.stdout
    assert "not found" in log_file.read_text(encoding="utf-8")


def test_cli_fails_on_broken_preset(tmp_path: Path) -> None:
    source = tmp_path / "Broken.exs"
    source.write_bytes(b"\x00" * 10)
    result = _run_cli(str(source), "--format", "xpm")
    assert result.returncode == 1
    assert not (tmp_path / "Broken.xpm").exists()


def test_cli_rejects_invalid_job(tmp_path: Path) -> None:
    job = tmp_path / "job.json"
    job.write_text(json.dumps({"source": "Keys.exs", "format": "sfz"}), encoding="utf-8")
    result = _run_cli(str(job))
    assert result.returncode == 2
    assert "format must be one of" in result.stderr


def test_cli_copies_samples_next_to_output(tmp_path: Path) -> None:
    (tmp_path / "Inst").mkdir()
    (tmp_path / "Samples").mkdir()
    _write_preset(tmp_path / "Samples")
    source = (tmp_path / "Samples" / "Keys.exs").rename(tmp_path / "Inst" / "Keys.exs")
    output = tmp_path / "out" / "Keys.xpm"
    result = _run_cli(str(source), "--format", "xpm", "-o", str(output))

    assert result.returncode == 0, result.stderr
    assert "errors=0" in result.stdout
    assert (tmp_path / "out" / "keys.wav").is_file()


def test_cli_no_samples_flag(tmp_path: Path) -> None:
    source = _write_preset(tmp_path)
    output = tmp_path / "out" / "Keys.xpm"
    result = _run_cli(str(source), "--format", "xpm", "-o", str(output), "--no-samples")

    assert result.returncode == 0, result.stderr
    assert output.exists()
    assert not (tmp_path / "out" / "keys.wav").exists()
