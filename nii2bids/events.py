"""Derive BIDS ``*_events.tsv`` files from a task timing description.

The timing description lists, for every run, the sample index ranges during
which each task condition was shown::

    {
      "TR": 2.0,
      "offset": 0,
      "runs": {
        "1": {"A": [[0, 10]], "B": [[20, 30], [40, 50]]},
        "2": {"A": "5-15"}
      }
    }

Ranges may be nested arbitrarily deep or written as ``"low-high"`` strings.
Indices are converted to seconds with ``(index - offset) * TR``.  One events
table is produced per run and attached to the functional image with the same
``run-NN`` number in the job metadata.

Ranges within a run are expected not to overlap; overlapping ranges are kept
but their relative order is not defined.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd
import yaml

from .config import FUNC_DIR
from .errors import (
    MalformedTimingFileError,
    MetadataWriteError,
    UnresolvedRunNumberError,
)
from .metadata import load_job_document, locate_job_file, save_job_document

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

EVENTS_COLUMNS = ["onset", "duration", "trial_type"]
RUN_RE = re.compile(r"run-0*(\d+)")
_RUN_KEY_RE = re.compile(r"(\d+)")
_RANGE_TEXT_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$")


@dataclass
class TaskTimeline:
    """Per-run events tables plus the sample span covered by all runs."""

    runs: Dict[int, pd.DataFrame] = field(default_factory=dict)
    first_sample: Optional[float] = None
    last_sample: Optional[float] = None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def load_timing_file(path: PathLike) -> Dict[str, object]:
    """Read a JSON or YAML timing description."""

    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise MalformedTimingFileError(f"Could not parse timing file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedTimingFileError(f"Timing file {path} must contain a mapping")
    return data


def _as_range(value: object) -> Optional[Tuple[float, float]]:
    if isinstance(value, str):
        match = _RANGE_TEXT_RE.match(value)
        if not match:
            raise MalformedTimingFileError(f"Invalid range {value!r}")
        return float(match.group(1)), float(match.group(2))
    if (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    ):
        return value[0], value[1]
    return None


def flatten_ranges(task: str, value: object) -> List[Tuple[str, float, float]]:
    """Expand a possibly nested range specification into flat entries."""

    single = _as_range(value)
    if single is not None:
        low, high = single
        if high < low:
            raise MalformedTimingFileError(f"Range [{low}, {high}] for {task!r} ends before it starts")
        return [(task, low, high)]
    if isinstance(value, (list, tuple)) and value:
        out: List[Tuple[str, float, float]] = []
        for item in value:
            out.extend(flatten_ranges(task, item))
        return out
    raise MalformedTimingFileError(f"Invalid range specification for {task!r}: {value!r}")


def _run_number(key: object) -> int:
    match = _RUN_KEY_RE.search(str(key))
    if not match:
        raise MalformedTimingFileError(f"Run key {key!r} carries no run number")
    return int(match.group(1))


def build_events_tables(description: Mapping[str, object]) -> TaskTimeline:
    """Turn a parsed timing description into one events table per run."""

    try:
        tr = float(description["TR"])
        offset = float(description.get("offset", 0))
        runs = description["runs"]
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedTimingFileError(f"Timing description needs numeric 'TR' and 'runs': {exc}") from exc
    if not isinstance(runs, Mapping):
        raise MalformedTimingFileError("'runs' must map run keys to task ranges")

    timeline = TaskTimeline()
    for key, tasks in runs.items():
        if not isinstance(tasks, Mapping):
            raise MalformedTimingFileError(f"Run {key!r} must map task labels to ranges")
        entries: List[Tuple[str, float, float]] = []
        for task, value in tasks.items():
            entries.extend(flatten_ranges(str(task), value))

        for _, low, high in entries:
            if timeline.first_sample is None or low < timeline.first_sample:
                timeline.first_sample = low
            if timeline.last_sample is None or high > timeline.last_sample:
                timeline.last_sample = high

        entries.sort(key=lambda item: item[1])
        rows = []
        for task, low, high in entries:
            onset = (low - offset) * tr
            rows.append(
                {"onset": onset, "duration": (high - offset) * tr - onset, "trial_type": task}
            )
        timeline.runs[_run_number(key)] = pd.DataFrame(rows, columns=EVENTS_COLUMNS)

    LOGGER.debug("Timing spans samples %s to %s", timeline.first_sample, timeline.last_sample)
    return timeline


def write_events_tsv(table: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, sep="\t", index=False, float_format="%.10g")
    return path


# ---------------------------------------------------------------------------
# Correlation with the converted study
# ---------------------------------------------------------------------------

def events_name(entry_name: str) -> str:
    """Return the events file name for the image stem ``entry_name``."""

    fields = entry_name.split("_")
    fields[-1] = "events"
    return "_".join(fields) + ".tsv"


def entry_run(entry_name: str) -> int:
    match = RUN_RE.search(entry_name)
    if not match:
        raise UnresolvedRunNumberError(
            f"Cannot determine run number of {entry_name!r}; expected a 'run-NN' token"
        )
    return int(match.group(1))


def _is_func_entry(entry: Mapping[str, object]) -> bool:
    return FUNC_DIR in Path(str(entry.get("filename", ""))).parts


def parse_task_file_to_tsv(timing_file: PathLike, study_dir: PathLike) -> List[Path]:
    """Write one events TSV per functional run of the study in ``study_dir``.

    Parameters
    ----------
    timing_file : str or Path
        JSON or YAML timing description.
    study_dir : str or Path
        Converted study (its ``sourcedata`` folder or any path inside it).

    Returns
    -------
    list of Path
        The events files written.
    """

    timeline = build_events_tables(load_timing_file(timing_file))
    job_file = locate_job_file(study_dir)
    root = job_file.parent
    document = load_job_document(job_file)

    pending: List[Tuple[pd.DataFrame, Path]] = []
    for entry in document["files"]:
        if not _is_func_entry(entry):
            continue
        name = str(entry.get("name", ""))
        run = entry_run(name)
        table = timeline.runs.get(run)
        if table is None:
            LOGGER.warning("No timing information for run %d (%s)", run, name)
            continue
        rel = (Path(str(entry["filename"])).parent / events_name(name)).as_posix()
        sidecars = [s for s in entry.get("supportingfiles", []) if not str(s).endswith(".tsv")]
        sidecars.append(rel)
        entry["supportingfiles"] = sidecars
        pending.append((table, root / rel))

    written: List[Path] = []
    try:
        for table, path in pending:
            written.append(write_events_tsv(table, path))
            LOGGER.info("Wrote %s", path)
        save_job_document(root, document)
    except OSError as exc:
        raise MetadataWriteError(f"Failed to write events files under {root}: {exc}") from exc
    return written


__all__ = [
    "EVENTS_COLUMNS",
    "TaskTimeline",
    "load_timing_file",
    "flatten_ranges",
    "build_events_tables",
    "write_events_tsv",
    "events_name",
    "entry_run",
    "parse_task_file_to_tsv",
]
