"""Convert a flat ``dcm2niix`` output directory into a BIDS ``sourcedata`` tree.

:func:`dicom2bids` is the single entry point.  It works in stages, each one
joined before the next starts:

1. inventory the input directory and decide whether checksums are affordable,
2. classify and name every image and attach its sidecars,
3. copy everything into ``<outdir>/sourcedata/sub-01/<modality>/``,
4. hash the converted images,
5. write the job metadata.

Metadata is only written once all copies and checksums succeeded, so a failed
job never registers a half converted study.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .classifier import directory_tag, is_image
from .config import (
    HASH_PENDING,
    MODALITY_DIRS,
    SOURCE_DIRNAME,
    ConversionSettings,
    resolve_settings,
)
from .errors import (
    ChecksumError,
    CopyError,
    DirectoryCreateError,
    MissingInputError,
)
from .fileops import checksum_files, copy_files, directory_size, size_in_gb
from .metadata import (
    build_job_document,
    make_job_entry,
    parse_acquisition_date,
    relative_to_root,
    write_job_metadata,
)
from .naming import NamedFile, RunCounter, plan_names, rename_log_lines, split_extension

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

DATE_RE = re.compile(r"\d{14}")


@dataclass
class ConvertedFile:
    """An image copied into the BIDS tree together with its sidecars."""

    source: Path
    destination: Path
    directory: str
    label: str
    run: int
    sidecars: List[Path]
    checksum: Optional[str] = None

    @property
    def name(self) -> str:
        return split_extension(self.destination.name)[0]


def inventory(indir: Path) -> Tuple[List[Path], List[Path]]:
    """Return sorted ``(images, supporting)`` files directly under ``indir``."""

    images: List[Path] = []
    supporting: List[Path] = []
    for path in sorted(indir.glob("*")):
        if not path.is_file():
            continue
        (images if is_image(path) else supporting).append(path)
    return images, supporting


def extract_date(images: Sequence[Path]) -> datetime:
    """Return the acquisition date embedded in the image names.

    The first image carrying a 14 digit ``YYYYMMDDHHMMSS`` token wins.
    """

    for path in images:
        match = DATE_RE.search(path.name)
        if match:
            try:
                return parse_acquisition_date(match.group(0))
            except ValueError:
                continue
        LOGGER.debug("No date token in %s", path.name)
    raise MissingInputError("No acquisition date (YYYYMMDDHHMMSS) found in image file names")


def make_modality_dirs(subject_dir: Path) -> Dict[str, Path]:
    """Create the modality folders under ``subject_dir``.

    Existing folders are reused; any other failure is fatal.
    """

    dirs: Dict[str, Path] = {}
    for name in MODALITY_DIRS:
        target = subject_dir / name
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryCreateError(f"Failed to make directory {target}: {exc}") from exc
        dirs[name] = target
    return dirs


def _copy_plan(
    planned: Sequence[NamedFile], dirs: Dict[str, Path]
) -> Tuple[List[Tuple[Path, Path]], List[ConvertedFile]]:
    operations: List[Tuple[Path, Path]] = []
    converted: List[ConvertedFile] = []
    for named in planned:
        target_dir = dirs[named.directory]
        destination = target_dir / named.bids_name
        operations.append((named.source, destination))
        sidecars: List[Path] = []
        for sidecar in named.sidecars:
            sidecar_dst = target_dir / sidecar.bids_name
            operations.append((sidecar.source, sidecar_dst))
            sidecars.append(sidecar_dst)
        converted.append(
            ConvertedFile(named.source, destination, named.directory, named.label, named.run, sidecars)
        )
    return operations, converted


def _attach_checksums(converted: Sequence[ConvertedFile], checksums: Dict[Path, str]) -> None:
    for item in converted:
        digest = checksums.get(item.destination)
        if digest is None:
            # Keys that are not the destination path match on the stem.
            digest = next(
                (d for path, d in checksums.items() if split_extension(path.name)[0] == item.name),
                None,
            )
        item.checksum = digest


def _bvec_details(item: ConvertedFile, root: Path) -> str:
    for sidecar in item.sidecars:
        if sidecar.name.lower().endswith(".bvec"):
            return relative_to_root(sidecar, root)
    return ""


def _job_entries(converted: Sequence[ConvertedFile], root: Path) -> List[Dict[str, object]]:
    entries = []
    for item in converted:
        entries.append(
            make_job_entry(
                name=item.name,
                filename=relative_to_root(item.destination, root),
                tag=directory_tag(item.directory, item.source),
                supportingfiles=[relative_to_root(s, root) for s in item.sidecars],
                hash_value=item.checksum or HASH_PENDING,
                details=_bvec_details(item, root),
            )
        )
    return entries


def _convert(indir: Path, outdir: Path, invoked_from_converter: bool,
             settings: ConversionSettings, counter: RunCounter) -> Path:
    if not indir.is_dir():
        raise MissingInputError(f"Input directory {indir} does not exist")

    size_gb = size_in_gb(directory_size(indir))
    skip_checksums = size_gb > settings.checksum_limit_gb
    if skip_checksums:
        LOGGER.info("Input is %.2f GB; checksums will not be computed", size_gb)

    images, supporting = inventory(indir)
    if not images:
        raise MissingInputError(f"No data to convert in {indir}")
    LOGGER.info("Found %d image(s) and %d supporting file(s) in %s",
                len(images), len(supporting), indir)

    date = extract_date(images)

    root = outdir / SOURCE_DIRNAME
    dirs = make_modality_dirs(root / settings.subject)

    planned, discarded = plan_names(images, supporting, counter, settings.subject, settings.task)
    if discarded:
        LOGGER.info("Discarded %d file(s)", len(discarded))
    operations, converted = _copy_plan(planned, dirs)

    LOGGER.info("Copying %d file(s) into %s", len(operations), root)
    try:
        copy_files(operations, settings.max_workers)
    except OSError as exc:
        raise CopyError(f"Failed to copy files into {root}: {exc}") from exc

    if not skip_checksums:
        LOGGER.info("Calculating checksums for %d image(s)", len(converted))
        try:
            checksums = checksum_files([c.destination for c in converted], settings.max_workers)
        except OSError as exc:
            raise ChecksumError(f"Failed to calculate checksums: {exc}") from exc
        _attach_checksums(converted, checksums)

    document = build_job_document(
        _job_entries(converted, root),
        date,
        invoked_from_converter=invoked_from_converter,
        bids_version=settings.bids_version,
        checksums_skipped=skip_checksums,
    )
    write_job_metadata(root, document, date, rename_log_lines(planned), settings.bids_version)
    return root


def dicom2bids(
    indir: PathLike,
    outdir: PathLike,
    *,
    invoked_from_converter: bool = False,
    settings: Optional[ConversionSettings] = None,
) -> Path:
    """Convert the converter output in ``indir`` into a BIDS tree under ``outdir``.

    Parameters
    ----------
    indir : str or Path
        Flat directory of NIfTI images and sidecars.
    outdir : str or Path
        Directory receiving the ``sourcedata`` tree.
    invoked_from_converter : bool, optional
        Recorded in the job metadata when the call comes straight from the
        DICOM conversion step.
    settings : ConversionSettings, optional
        Overrides for the subject label, checksum threshold and worker count.

    Returns
    -------
    Path
        The ``sourcedata`` directory of the converted study.

    Raises
    ------
    Nii2BidsError
        One of its subclasses describing the failed stage.
    """

    settings = resolve_settings(settings)
    counter = RunCounter()
    LOGGER.info("Converting %s to BIDS format", indir)
    try:
        root = _convert(Path(indir), Path(outdir), invoked_from_converter, settings, counter)
    finally:
        counter.reset()
    LOGGER.info("Output directory %s", root)
    return root


__all__ = [
    "ConvertedFile",
    "inventory",
    "extract_date",
    "make_modality_dirs",
    "dicom2bids",
]
