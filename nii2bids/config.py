"""Layout constants and run-time settings for the conversion helpers.

The module level constants describe the fixed BIDS layout produced by
:func:`nii2bids.converter.dicom2bids`.  Values that a site may reasonably want
to tune (checksum threshold, worker count, subject label, ...) live on
:class:`ConversionSettings`, which can be loaded from a small YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml

# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

# Anchor directory of every converted study.  The sync and events helpers walk
# up a path until they meet this segment to find the job metadata.
SOURCE_DIRNAME = "sourcedata"
SUBJECT_LABEL = "sub-01"

ANAT_DIR = "anat"
FUNC_DIR = "func"
LOCALIZER_DIR = "localizer"
DWI_DIR = "dwi"
MODALITY_DIRS: Tuple[str, ...] = (ANAT_DIR, FUNC_DIR, LOCALIZER_DIR, DWI_DIR)

# Bookkeeping files written next to the subject folder.
JOB_INFO_FILENAME = "dicom_job_info.json"
DATASET_DESCRIPTION_FILENAME = "dataset_description.json"
BIDSIGNORE_FILENAME = ".bidsignore"
RENAME_LOG_FILENAME = "name_change_log.txt"

BIDS_VERSION = "1.1.0"
SOURCE_TAG = "DICOMImport"
DEFAULT_TASK_LABEL = "unnamed"

# Placeholders stored in the ``hash`` field of a job entry.
HASH_SKIPPED = "no checksums"
HASH_PENDING = "TODO"

# Label returned by the classifier for files that must not be converted.
DISCARD_LABEL = "DISCARD"

CHECKSUM_LIMIT_GB = 2.0
MAX_WORKERS = 8


@dataclass(frozen=True)
class ConversionSettings:
    """Tunable parameters shared by the conversion, sync and events steps."""

    subject: str = SUBJECT_LABEL
    task: str = DEFAULT_TASK_LABEL
    checksum_limit_gb: float = CHECKSUM_LIMIT_GB
    max_workers: int = MAX_WORKERS
    bids_version: str = BIDS_VERSION


DEFAULT_SETTINGS = ConversionSettings()


def load_settings(path: Union[str, Path, None] = None) -> ConversionSettings:
    """Return :class:`ConversionSettings` overridden by the YAML file at ``path``.

    Only keys matching a settings field are accepted.  An empty or missing
    ``path`` yields the defaults.
    """

    if not path:
        return DEFAULT_SETTINGS

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")

    known = {f.name for f in fields(ConversionSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(unknown)}")

    overrides = {}
    for key, value in data.items():
        default = getattr(DEFAULT_SETTINGS, key)
        overrides[key] = type(default)(value)
    settings = replace(DEFAULT_SETTINGS, **overrides)
    if settings.max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    return settings


def resolve_settings(settings: Optional[ConversionSettings]) -> ConversionSettings:
    return settings if settings is not None else DEFAULT_SETTINGS


__all__ = [
    "SOURCE_DIRNAME",
    "SUBJECT_LABEL",
    "ANAT_DIR",
    "FUNC_DIR",
    "LOCALIZER_DIR",
    "DWI_DIR",
    "MODALITY_DIRS",
    "JOB_INFO_FILENAME",
    "DATASET_DESCRIPTION_FILENAME",
    "BIDSIGNORE_FILENAME",
    "RENAME_LOG_FILENAME",
    "BIDS_VERSION",
    "SOURCE_TAG",
    "DEFAULT_TASK_LABEL",
    "HASH_SKIPPED",
    "HASH_PENDING",
    "DISCARD_LABEL",
    "CHECKSUM_LIMIT_GB",
    "MAX_WORKERS",
    "ConversionSettings",
    "DEFAULT_SETTINGS",
    "load_settings",
    "resolve_settings",
]
