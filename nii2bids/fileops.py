"""Filesystem helpers used by the conversion and sync steps.

Bulk copies, moves and checksums are fanned out with :mod:`joblib` on the
threading backend and joined before returning.  The first failure aborts
work that has not started yet; operations that already finished are left in
place.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple, TypeVar

from joblib import Parallel, delayed

from .config import MAX_WORKERS

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_CHUNK_SIZE = 1 << 20
_GIGABYTE = 1024 ** 3


def directory_size(path: Path) -> int:
    """Return the size in bytes of ``path`` and everything below it.

    The directory entries themselves are counted as well (``st_size`` of each
    folder), matching the historic behaviour of the checksum threshold.
    """

    path = Path(path)
    total = path.stat().st_size
    if not path.is_dir():
        return total
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                total += directory_size(Path(entry.path))
            else:
                total += entry.stat(follow_symlinks=False).st_size
    return total


def size_in_gb(num_bytes: int) -> float:
    return num_bytes / _GIGABYTE


def file_checksum(path: Path) -> str:
    """Return the SHA-256 hex digest of ``path``."""

    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _run_all(
    func: Callable[..., T],
    jobs: Sequence[Tuple],
    max_workers: int,
) -> List[Tuple[Tuple, T]]:
    """Run ``func(*job)`` for every job and return ``(job, result)`` pairs.

    Results follow the order of ``jobs``.  The first exception is re-raised
    and jobs that were not dispatched yet are dropped.
    """

    if not jobs:
        return []
    workers = max(1, max_workers)
    if workers == 1:
        results = [func(*job) for job in jobs]
    else:
        results = Parallel(n_jobs=workers, prefer="threads")(
            delayed(func)(*job) for job in jobs
        )
    return list(zip(jobs, results))


def _copy(src: Path, dst: Path) -> Path:
    Path(dst).parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    LOGGER.debug("Copied %s -> %s", src, dst)
    return Path(dst)


def _move(src: Path, dst: Path) -> Path:
    Path(dst).parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))
    LOGGER.debug("Moved %s -> %s", src, dst)
    return Path(dst)


def copy_files(operations: Iterable[Tuple[Path, Path]], max_workers: int = MAX_WORKERS) -> List[Path]:
    """Copy every ``(source, destination)`` pair concurrently."""

    done = _run_all(_copy, list(operations), max_workers)
    return [dst for _, dst in done]


def move_files(operations: Iterable[Tuple[Path, Path]], max_workers: int = MAX_WORKERS) -> List[Path]:
    """Move every ``(source, destination)`` pair concurrently."""

    done = _run_all(_move, list(operations), max_workers)
    return [dst for _, dst in done]


def checksum_files(paths: Iterable[Path], max_workers: int = MAX_WORKERS) -> Dict[Path, str]:
    """Return a mapping ``path -> sha256`` computed concurrently."""

    done = _run_all(file_checksum, [(Path(p),) for p in paths], max_workers)
    return {job[0]: digest for job, digest in done}


__all__ = [
    "directory_size",
    "size_in_gb",
    "file_checksum",
    "copy_files",
    "move_files",
    "checksum_files",
]
