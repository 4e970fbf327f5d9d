#!/usr/bin/env python3
"""Human-readable EXS24 instrument inspector.

Lists every block of a ``.exs`` file with its header fields, then the
decoded zones, groups, samples and global parameters.  Blocks of unknown
type are listed with their raw size so new layouts can be studied.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import List, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.blocks import BLOCK_HEADER_SIZE, iter_blocks  # noqa: E402
from msconv.exs_params import PARAMETER_NAMES  # noqa: E402
from msconv.exs_structs import ENABLE_BY_NAMES, ExsFile  # noqa: E402
from msconv.notify import Notifier  # noqa: E402


def format_midi_note(note: int) -> str:
    names = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
    return f"{names[note % 12]}{note // 12 - 2}"


def _block_lines(data: bytes) -> List[str]:
    lines = ["Blocks:"]
    offset = 0
    for block in iter_blocks(data):
        kind = block.block_type.name if block.block_type is not None else "?"
        lines.append(
            f"  @0x{offset:06X} type=0x{block.type_tag:02X} {kind:<10} "
            f"index={block.index:<4} size={len(block.payload):<5} name={block.name!r}"
        )
        offset += BLOCK_HEADER_SIZE + len(block.payload)
    return lines


def generate_report(path: Path, data: bytes) -> str:
    notifier = Notifier()
    exs = ExsFile.from_bytes(data, notifier)
    order = "big" if exs.big_endian else "little"

    lines = [
        f"File: {path}",
        f"Size: {len(data)} bytes ({order} endian)",
        f"Instrument: {exs.name!r}",
        "",
    ]
    lines.extend(_block_lines(data))

    lines.append("")
    lines.append(f"Zones ({len(exs.zones)}):")
    for zone in exs.zones:
        flags = []
        if zone.one_shot:
            flags.append("one-shot")
        if zone.reverse:
            flags.append("reverse")
        if not zone.pitch:
            flags.append("no-pitch")
        if zone.loop_on:
            flags.append(f"loop {zone.loop_start}-{zone.loop_end}")
        lines.append(
            f"  [{zone.block_index}] {zone.name!r} key={format_midi_note(zone.key)} "
            f"range={zone.key_low}-{zone.key_high} vel={zone.velocity_low}-{zone.velocity_high} "
            f"group={zone.group_index} sample={zone.sample_index} "
            f"{' '.join(flags)}".rstrip()
        )

    lines.append("")
    lines.append(f"Groups ({len(exs.groups)}):")
    for index, group in exs.groups.items():
        enable_by = ENABLE_BY_NAMES.get(group.enable_by_type, str(group.enable_by_type))
        lines.append(
            f"  [{index}] {group.name!r} vol={group.volume} pan={group.pan} "
            f"vel={group.min_velocity}-{group.max_velocity} "
            f"notes={group.start_note}-{group.end_note} enable_by={enable_by} "
            f"release_trigger={'yes' if group.release_trigger else 'no'}"
        )

    lines.append("")
    lines.append(f"Samples ({len(exs.samples)}):")
    for i, sample in enumerate(exs.samples):
        lines.append(
            f"  [{i}] {sample.file_name!r} {sample.sample_rate} Hz {sample.bit_depth} bit "
            f"{sample.channels} ch frames={sample.length} path={sample.file_path!r}"
        )

    lines.append("")
    lines.append("Parameters:")
    for pid, value in sorted(exs.parameters.values.items()):
        label = PARAMETER_NAMES.get(pid, "?")
        lines.append(f"  0x{pid:02X} {label:<24} {value}")

    if notifier.diagnostics:
        lines.append("")
        lines.append("Diagnostics:")
        for diagnostic in notifier.diagnostics:
            lines.append(f"  {diagnostic.level_name}: {diagnostic.message}")

    return "\n".join(lines).rstrip() + "\n"


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect a single EXS24 instrument file.")
    parser.add_argument("path", type=Path, help="Path to the .exs file to inspect.")
    args = parser.parse_args(argv)

    data = args.path.read_bytes()
    print(generate_report(args.path, data), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
