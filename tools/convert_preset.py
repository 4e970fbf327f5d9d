#!/usr/bin/env python3
"""Convert a sampler preset between EXS24 (.exs) and MPC keygroup (.xpm).

The input is either a preset file or a JSON conversion job (see
``msconv.conversion_spec``).  Exit status is 0 on success, 1 when the
conversion finished with errors reported, and 2 for usage errors.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from msconv.conversion_spec import (  # noqa: E402
    VALID_FORMATS,
    ConversionSpec,
    load_conversion_spec,
    parse_conversion_spec,
    run_conversion,
    summarize,
    write_conversion,
)
from msconv.errors import EncodeError, ParseError, SampleError  # noqa: E402
from msconv.notify import Notifier, configure_logging  # noqa: E402


logger = logging.getLogger("msconv.tools.convert_preset")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert an .exs or .xpm preset, or run a JSON conversion job",
    )
    parser.add_argument(
        "input",
        type=Path,
        help="Preset file (.exs/.xpm) or JSON conversion job (.json)",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=sorted(VALID_FORMATS),
        default=None,
        help="Target format (required for preset input, overrides job format)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output path (overrides job output; default: source name with new suffix)",
    )
    parser.add_argument(
        "--search-depth",
        type=int,
        default=None,
        help="Parent folders searched for missing samples",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Convert without writing output",
    )
    parser.add_argument(
        "--no-samples",
        action="store_true",
        help="Do not copy samples next to the output",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log messages to this file (rotated)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug messages",
    )
    return parser


def _load_spec(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ConversionSpec:
    if args.input.suffix.lower() == ".json":
        spec = load_conversion_spec(args.input)
        if args.format is not None:
            spec = replace(spec, format=args.format)
    else:
        if args.format is None:
            parser.error("--format is required when converting a preset file")
        source = args.input.expanduser().resolve()
        spec = parse_conversion_spec(
            {"source": str(source), "format": args.format},
            base_dir=source.parent,
        )
    if args.search_depth is not None:
        spec = replace(
            spec, exs_options=replace(spec.exs_options, search_depth=args.search_depth)
        )
    return spec


def main() -> int:
    parser = _build_arg_parser()
    args = parser.parse_args()
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    try:
        spec = _load_spec(args, parser)
    except ValueError as exc:
        parser.error(str(exc))

    out_path = args.output if args.output is not None else spec.output
    if out_path is None:
        out_path = spec.default_output()
    out_path = out_path.expanduser().resolve()
    if out_path == spec.source:
        parser.error("output would overwrite the source file")

    notifier = Notifier()
    try:
        if args.dry_run:
            payload = run_conversion(spec, notifier)
        else:
            payload = write_conversion(spec, out_path, notifier, copy_samples=not args.no_samples)
    except (ParseError, EncodeError, SampleError) as exc:
        logger.error("conversion of %s failed: %s", spec.source, exc)
        return 1
    except OSError as exc:
        logger.error("can not write %s: %s", out_path, exc)
        return 1

    counts = summarize(notifier)
    if args.dry_run:
        print(
            f"dry-run OK: {spec.source_format} -> {spec.format} size={len(payload)}B "
            f"warnings={counts['warnings']} errors={counts['errors']}"
        )
        return 1 if counts["errors"] else 0

    print(f"Wrote {len(payload)} bytes -> {out_path}")
    print(f"  {spec.source_format} -> {spec.format}")
    print(f"  warnings={counts['warnings']} errors={counts['errors']}")
    return 1 if counts["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
