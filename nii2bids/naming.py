"""BIDS filename synthesis with job scoped run numbering.

Names follow ``<subject>_[task-<task>_]run-NN_<label>.<ext>``.  Run numbers
are tracked per label by a :class:`RunCounter` created for a single conversion
job; nothing is kept at module level so consecutive jobs never share counts.

Assignment happens in two passes (see :func:`plan_names`): images receive
their run numbers first, in input order, and supporting files are then
resolved against the image they belong to.  A sidecar therefore always shares
the run of its image no matter where it appears in the input listing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .classifier import DISCARD_RULE, classify_directory, classify_label
from .config import DEFAULT_TASK_LABEL, DISCARD_LABEL, FUNC_DIR, SUBJECT_LABEL

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def format_run(run: int) -> str:
    """Return ``run`` zero padded to at least two digits."""

    return f"{run:02d}"


class RunCounter:
    """Next run number per BIDS label, scoped to one conversion job."""

    def __init__(self) -> None:
        self._next: Dict[str, int] = {}

    def peek(self, label: str) -> int:
        """Return the run the next image labelled ``label`` would receive."""

        return self._next.get(label, 1)

    def next(self, label: str) -> int:
        """Assign and return the next run number for ``label``."""

        run = self.peek(label)
        self._next[label] = run + 1
        return run

    def reset(self) -> None:
        self._next.clear()

    def __len__(self) -> int:
        return len(self._next)


def split_extension(name: str) -> Tuple[str, str]:
    """Split ``name`` into stem and extension (without the dot).

    ``.nii.gz`` is treated as a single extension; other files use their last
    dot separated segment.  Names without a dot have an empty extension.
    """

    if name.lower().endswith(".nii.gz"):
        return name[: -len(".nii.gz")], "nii.gz"
    if "." not in name:
        return name, ""
    stem, ext = name.rsplit(".", 1)
    return stem, ext


def compose_bids_name(
    directory: str,
    label: str,
    run: int,
    extension: str,
    subject: str = SUBJECT_LABEL,
    task: str = DEFAULT_TASK_LABEL,
) -> str:
    """Assemble the BIDS basename from already resolved parts."""

    parts = [subject]
    if directory == FUNC_DIR:
        parts.append(f"task-{task}")
    parts.append(f"run-{format_run(run)}")
    parts.append(label)
    name = "_".join(parts)
    if extension:
        name += f".{extension}"
    return name


def _resolve(
    filename: PathLike,
    directory: str,
    counter: RunCounter,
    subject: str,
    task: str,
) -> Tuple[str, int, str]:
    """Return ``(label, run, bids_name)`` for an image, advancing ``counter``."""

    basename = Path(filename).name
    # BIDS reserves ``_`` as the entity separator.
    label = classify_label(basename.replace("_", "-"), directory)
    _, ext = split_extension(basename)
    if label == DISCARD_LABEL:
        return label, 0, f"{DISCARD_LABEL}.{ext}" if ext else DISCARD_LABEL
    run = counter.next(label)
    return label, run, compose_bids_name(directory, label, run, ext, subject, task)


def make_bids_name(
    filename: PathLike,
    directory: str,
    counter: RunCounter,
    subject: str = SUBJECT_LABEL,
    task: str = DEFAULT_TASK_LABEL,
) -> str:
    """Return the BIDS basename of an image and advance ``counter``.

    Discarded files yield a name containing ``DISCARD`` and leave the counter
    untouched; callers must drop such files from any further processing.
    """

    return _resolve(filename, directory, counter, subject, task)[2]


def is_discarded(name: str) -> bool:
    return DISCARD_LABEL in name


@dataclass
class NamedFile:
    """A source file together with its planned BIDS destination."""

    source: Path
    directory: str
    label: str
    run: int
    bids_name: str
    sidecars: List["NamedFile"] = field(default_factory=list)

    @property
    def stem(self) -> str:
        return split_extension(self.bids_name)[0]


def _owner_of(supporting: Path, images: Sequence[Tuple[str, NamedFile]]) -> Optional[NamedFile]:
    """Return the image whose stem is contained in ``supporting``'s stem.

    When several stems match (``IMG_1`` and ``IMG_10``) the longest wins.
    """

    stem = split_extension(supporting.name)[0].lower()
    best: Optional[Tuple[str, NamedFile]] = None
    for image_stem, named in images:
        if image_stem and image_stem in stem:
            if best is None or len(image_stem) > len(best[0]):
                best = (image_stem, named)
    return best[1] if best else None


def plan_names(
    images: Sequence[PathLike],
    supporting: Sequence[PathLike],
    counter: RunCounter,
    subject: str = SUBJECT_LABEL,
    task: str = DEFAULT_TASK_LABEL,
) -> Tuple[List[NamedFile], List[Path]]:
    """Plan BIDS names for a flat converter output directory.

    Parameters
    ----------
    images : sequence of paths
        NIfTI images in processing order.  Run numbers follow this order.
    supporting : sequence of paths
        Every non-image file of the input directory.
    counter : RunCounter
        Job scoped run counter.

    Returns
    -------
    planned, discarded
        ``planned`` holds one :class:`NamedFile` per kept image with its
        sidecars attached.  ``discarded`` lists the source paths dropped by
        the ``DISCARD`` rule, including supporting files whose own name
        matches it.
    """

    image_paths = [Path(p) for p in images]
    supporting_paths = [Path(p) for p in supporting]
    siblings = image_paths + supporting_paths

    planned: List[NamedFile] = []
    discarded: List[Path] = []
    # Owners include discarded images so that their sidecars are dropped too.
    owners: List[Tuple[str, NamedFile]] = []

    for path in image_paths:
        directory = classify_directory(path, siblings)
        label, run, bids_name = _resolve(path, directory, counter, subject, task)
        named = NamedFile(path, directory, label, run, bids_name)
        image_stem = split_extension(path.name)[0].lower()
        owners.append((image_stem, named))
        if is_discarded(bids_name):
            LOGGER.info("Discarding %s", path.name)
            discarded.append(path)
            continue
        LOGGER.debug("%s -> %s/%s", path.name, directory, bids_name)
        planned.append(named)

    for path in supporting_paths:
        if DISCARD_RULE.matches(path.name.lower()):
            LOGGER.info("Discarding %s", path.name)
            discarded.append(path)
            continue
        owner = _owner_of(path, owners)
        if owner is None:
            LOGGER.warning("No image found for supporting file %s; skipping", path.name)
            continue
        if is_discarded(owner.bids_name):
            discarded.append(path)
            continue
        _, ext = split_extension(path.name)
        sidecar_name = compose_bids_name(owner.directory, owner.label, owner.run, ext, subject, task)
        owner.sidecars.append(
            NamedFile(path, owner.directory, owner.label, owner.run, sidecar_name)
        )

    return planned, discarded


def rename_log_lines(planned: Iterable[NamedFile]) -> List[str]:
    """Return ``"<old> -> <new>"`` lines for images and their sidecars."""

    lines: List[str] = []
    for named in planned:
        lines.append(f"{named.source.name} -> {named.bids_name}")
        for sidecar in named.sidecars:
            lines.append(f"{sidecar.source.name} -> {sidecar.bids_name}")
    return lines


__all__ = [
    "RunCounter",
    "NamedFile",
    "format_run",
    "split_extension",
    "compose_bids_name",
    "make_bids_name",
    "is_discarded",
    "plan_names",
    "rename_log_lines",
]
