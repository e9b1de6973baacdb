"""Job metadata and study level bookkeeping files.

A converted study carries four files at its ``sourcedata`` root:

``dicom_job_info.json``
    The job document: where the data came from, when it was acquired and one
    entry per converted image (relative path, checksum, sidecars).
``dataset_description.json``
    Minimal BIDS dataset description.
``.bidsignore``
    Hides the localizer folder and the bookkeeping files from validators.
``name_change_log.txt``
    ``"<old> -> <new>"`` for every file that was renamed.

The job document is later read back and rewritten by :mod:`nii2bids.sync` and
:mod:`nii2bids.events`; :func:`locate_job_file` finds it from any path inside
the study.
"""

from __future__ import annotations

import json
import logging
import platform
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .config import (
    BIDS_VERSION,
    BIDSIGNORE_FILENAME,
    DATASET_DESCRIPTION_FILENAME,
    HASH_PENDING,
    HASH_SKIPPED,
    JOB_INFO_FILENAME,
    LOCALIZER_DIR,
    RENAME_LOG_FILENAME,
    SOURCE_DIRNAME,
    SOURCE_TAG,
)
from .errors import MetadataWriteError, MissingInputError

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]
JobDocument = Dict[str, object]


def parse_acquisition_date(token: str) -> datetime:
    """Return the ``YYYYMMDDHHMMSS`` ``token`` as a :class:`datetime`."""

    return datetime.strptime(token, "%Y%m%d%H%M%S")


def format_description(date: datetime) -> str:
    return f"DICOM Dataset generated on {date:%m/%d, %Y at %H:%M}"


def platform_info() -> Dict[str, str]:
    """Return the ``platform``/``location`` descriptors of this machine."""

    return {"platform": platform.platform(), "location": platform.node()}


def relative_to_root(path: PathLike, root: Path) -> str:
    return Path(path).relative_to(root).as_posix()


def make_job_entry(
    name: str,
    filename: str,
    tag: str,
    supportingfiles: Iterable[str],
    hash_value: str = HASH_PENDING,
    details: str = "",
) -> Dict[str, object]:
    return {
        "name": name,
        "filename": filename,
        "tag": tag,
        "hash": hash_value,
        "supportingfiles": list(supportingfiles),
        "details": details,
    }


def build_job_document(
    entries: Iterable[Dict[str, object]],
    date: datetime,
    invoked_from_converter: bool = False,
    bids_version: str = BIDS_VERSION,
    checksums_skipped: bool = False,
) -> JobDocument:
    """Assemble the job document from already built ``entries``.

    When ``checksums_skipped`` is set every entry still carrying the pending
    placeholder is marked with ``"no checksums"``.
    """

    files = [dict(e) for e in entries]
    if checksums_skipped:
        for entry in files:
            if entry.get("hash") in (None, HASH_PENDING):
                entry["hash"] = HASH_SKIPPED

    document: JobDocument = {"source": SOURCE_TAG}
    document.update(platform_info())
    document["invokedfromconverter"] = bool(invoked_from_converter)
    document["bidsversion"] = bids_version
    document["description"] = format_description(date)
    document["files"] = files
    return document


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def _write_json(path: Path, data: object) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def save_job_document(root: Path, document: JobDocument) -> Path:
    path = Path(root) / JOB_INFO_FILENAME
    _write_json(path, document)
    return path


def write_bidsignore(root: Path) -> Path:
    path = Path(root) / BIDSIGNORE_FILENAME
    lines = [f"{LOCALIZER_DIR}/", JOB_INFO_FILENAME, RENAME_LOG_FILENAME]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_dataset_description(root: Path, date: datetime, bids_version: str = BIDS_VERSION) -> Path:
    """Write ``dataset_description.json``.

    An existing description is kept; only missing keys are filled in so that
    curated authorship information survives a re-conversion.
    """

    path = Path(root) / DATASET_DESCRIPTION_FILENAME
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    else:
        data = {}
    data.setdefault("Name", f"DICOM dataset converted {date:%Y-%m-%d %H:%M:%S}")
    data.setdefault("BIDSVersion", bids_version)
    data.setdefault("Authors", [])
    data.setdefault("Funding", "")
    data.setdefault("License", "")
    _write_json(path, data)
    return path


def write_rename_log(root: Path, lines: Iterable[str], append: bool = False) -> Path:
    path = Path(root) / RENAME_LOG_FILENAME
    text = "".join(f"{line}\n" for line in lines)
    with open(path, "a" if append else "w", encoding="utf-8") as f:
        f.write(text)
    return path


def write_job_metadata(
    root: Path,
    document: JobDocument,
    date: datetime,
    rename_lines: Iterable[str],
    bids_version: str = BIDS_VERSION,
) -> List[Path]:
    """Write the job document and the three auxiliary files under ``root``."""

    try:
        written = [
            save_job_document(root, document),
            write_bidsignore(root),
            write_dataset_description(root, date, bids_version),
            write_rename_log(root, rename_lines),
        ]
    except (OSError, TypeError, ValueError) as exc:
        raise MetadataWriteError(f"Failed to write job metadata in {root}: {exc}") from exc
    LOGGER.info("Wrote job metadata to %s", root / JOB_INFO_FILENAME)
    return written


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

def study_root(path: PathLike) -> Path:
    """Return the ``sourcedata`` directory containing ``path``.

    The path segments are walked until the ``sourcedata`` anchor is found.
    When ``path`` lies above the anchor, ``<path>/sourcedata`` is used if it
    holds a job document.
    """

    path = Path(path).absolute()
    parts = path.parts
    for idx, part in enumerate(parts):
        if part == SOURCE_DIRNAME:
            return Path(*parts[: idx + 1])
    candidate = path / SOURCE_DIRNAME
    if (candidate / JOB_INFO_FILENAME).exists():
        return candidate
    raise MissingInputError(f"No '{SOURCE_DIRNAME}' directory found for {path}")


def locate_job_file(path: PathLike) -> Path:
    job_file = study_root(path) / JOB_INFO_FILENAME
    if not job_file.is_file():
        raise MissingInputError(f"Job metadata {job_file} does not exist")
    return job_file


def load_job_document(job_file: PathLike) -> JobDocument:
    try:
        with open(job_file, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise MissingInputError(f"Could not read job metadata {job_file}: {exc}") from exc
    document.setdefault("files", [])
    return document


def find_entry(document: JobDocument, stem: str) -> Optional[Dict[str, object]]:
    """Return the first job entry whose ``name`` contains ``stem``."""

    for entry in document.get("files", []):
        if stem and stem in str(entry.get("name", "")):
            return entry
    return None


__all__ = [
    "parse_acquisition_date",
    "format_description",
    "platform_info",
    "relative_to_root",
    "make_job_entry",
    "build_job_document",
    "save_job_document",
    "write_bidsignore",
    "write_dataset_description",
    "write_rename_log",
    "write_job_metadata",
    "study_root",
    "locate_job_file",
    "load_job_document",
    "find_entry",
]
