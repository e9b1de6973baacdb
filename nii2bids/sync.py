"""Keep sidecars and job metadata in step with renamed images.

After conversion a user (or another tool) may rename or relabel images, most
commonly to replace the placeholder ``task-unnamed`` with the real task name.
:func:`sync_supporting_files` takes the ``(old, new)`` image paths, moves the
sidecars recorded for each image next to the new image with the task label
substituted, and rewrites the job metadata accordingly.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import ConversionSettings, resolve_settings
from .errors import MetadataWriteError, MoveError, UnresolvedSidecarRenameError
from .fileops import move_files
from .metadata import (
    find_entry,
    load_job_document,
    locate_job_file,
    relative_to_root,
    save_job_document,
    write_rename_log,
)
from .naming import split_extension

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]
RenamePair = Union[Tuple[PathLike, PathLike], Mapping[str, PathLike]]


def substitute_task(basename: str, task: str) -> str:
    """Return ``basename`` with its ``task-`` field set to ``task``.

    BIDS places the task entity second (``sub-01_task-x_...``) or third
    (``sub-01_ses-1_task-x_...``); the first of those two fields containing
    ``task`` is replaced.  Names without such a field are returned unchanged.
    """

    fields = basename.split("_")
    for idx in (1, 2):
        if idx < len(fields) and "task" in fields[idx]:
            fields[idx] = f"task-{task}"
            break
    return "_".join(fields)


def _normalise_pair(pair: RenamePair) -> Tuple[Path, Path]:
    if isinstance(pair, Mapping):
        old, new = pair["old"], pair["new"]
    else:
        old, new = pair
    return Path(old).absolute(), Path(new).absolute()


def sync_supporting_files(
    pairs: Iterable[RenamePair],
    task: str,
    study_path: PathLike,
    *,
    settings: Optional[ConversionSettings] = None,
) -> List[str]:
    """Propagate image renames to their sidecars and the job metadata.

    Parameters
    ----------
    pairs : iterable
        ``(old, new)`` tuples or ``{"old": ..., "new": ...}`` mappings with
        the full paths of images that have already been renamed.
    task : str
        Task label written into the sidecar names.
    study_path : str or Path
        Any path inside the converted study; used to find the job metadata.

    Returns
    -------
    list of str
        New sidecar paths relative to the study root.
    """

    settings = resolve_settings(settings)
    job_file = locate_job_file(study_path)
    root = job_file.parent
    document = load_job_document(job_file)

    moves: List[Tuple[Path, Path]] = []
    updates: List[Tuple[Dict[str, object], str, List[str]]] = []
    log_lines: List[str] = []

    for pair in pairs:
        old, new = _normalise_pair(pair)
        old_stem = split_extension(old.name)[0]
        entry = find_entry(document, old_stem)
        if entry is None:
            raise UnresolvedSidecarRenameError(
                f"No job entry matches {old.name}; cannot rename its supporting files"
            )
        try:
            new_rel = relative_to_root(new, root)
        except ValueError as exc:
            raise UnresolvedSidecarRenameError(f"{new} lies outside the study {root}") from exc

        new_sidecars: List[str] = []
        for rel in entry.get("supportingfiles", []):
            src = root / rel
            dst = new.parent / substitute_task(Path(rel).name, task)
            new_sidecars.append(relative_to_root(dst, root))
            if src != dst:
                moves.append((src, dst))
                log_lines.append(f"{src.name} -> {dst.name}")
        log_lines.append(f"{old.name} -> {new.name}")
        updates.append((entry, new_rel, new_sidecars))

    LOGGER.info("Moving %d supporting file(s)", len(moves))
    try:
        move_files(moves, settings.max_workers)
    except OSError as exc:
        raise MoveError(f"Failed to move supporting files: {exc}") from exc

    renamed: List[str] = []
    for entry, new_rel, new_sidecars in updates:
        entry["name"] = split_extension(Path(new_rel).name)[0]
        entry["filename"] = new_rel
        entry["supportingfiles"] = new_sidecars
        renamed.extend(new_sidecars)

    try:
        save_job_document(root, document)
        write_rename_log(root, log_lines, append=True)
    except OSError as exc:
        raise MetadataWriteError(f"Failed to update {job_file}: {exc}") from exc
    return renamed


__all__ = ["substitute_task", "sync_supporting_files"]
