"""Command line interface: ``nii2bids convert|sync|events``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import load_settings
from .converter import dicom2bids
from .errors import Nii2BidsError
from .events import parse_task_file_to_tsv
from .sync import sync_supporting_files

LOGGER = logging.getLogger(__name__)


def _pairs_from_args(values: Sequence[str]) -> List[Tuple[str, str]]:
    if len(values) % 2:
        raise ValueError("--pairs needs an even number of paths (old new ...)")
    return [(values[i], values[i + 1]) for i in range(0, len(values), 2)]


def _pairs_from_file(path: Path) -> list:
    """Read rename pairs from a JSON list of ``{"old": ..., "new": ...}``."""

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of rename pairs")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nii2bids",
        description="Organise dcm2niix output into a BIDS sourcedata tree",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", type=Path, help="YAML file overriding conversion settings")
    sub = parser.add_subparsers(dest="command", required=True)

    conv = sub.add_parser("convert", help="Convert a flat NIfTI directory to BIDS")
    conv.add_argument("indir", type=Path, help="Directory produced by the DICOM converter")
    conv.add_argument("outdir", type=Path, help="Directory receiving the sourcedata tree")
    conv.add_argument(
        "--from-converter",
        action="store_true",
        help="Record that the call comes straight from the DICOM conversion step",
    )

    syn = sub.add_parser("sync", help="Propagate image renames to sidecars and metadata")
    syn.add_argument("study", type=Path, help="Any path inside the converted study")
    syn.add_argument("--task", required=True, help="Task label written into sidecar names")
    group = syn.add_mutually_exclusive_group(required=True)
    group.add_argument("--pairs", nargs="+", metavar="PATH", help="old1 new1 [old2 new2 ...]")
    group.add_argument("--pairs-file", type=Path, help="JSON list of {old, new} objects")

    ev = sub.add_parser("events", help="Write events TSVs from a task timing file")
    ev.add_argument("timing_file", type=Path, help="JSON or YAML timing description")
    ev.add_argument("study", type=Path, help="Converted study directory")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        settings = load_settings(args.config)
        if args.command == "convert":
            out = dicom2bids(
                args.indir,
                args.outdir,
                invoked_from_converter=args.from_converter,
                settings=settings,
            )
            print(out)
        elif args.command == "sync":
            if args.pairs_file:
                pairs = _pairs_from_file(args.pairs_file)
            else:
                pairs = _pairs_from_args(args.pairs)
            for rel in sync_supporting_files(pairs, args.task, args.study, settings=settings):
                print(rel)
        elif args.command == "events":
            for path in parse_task_file_to_tsv(args.timing_file, args.study):
                print(path)
    except (Nii2BidsError, ValueError, OSError) as exc:
        LOGGER.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
