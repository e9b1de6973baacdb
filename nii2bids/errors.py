"""Exception hierarchy raised by the conversion, sync and events helpers.

Every public entry point translates low level failures (``OSError`` from the
filesystem, JSON/YAML parse errors, ...) into one of the classes below so that
callers only need to handle :class:`Nii2BidsError`.
"""

from __future__ import annotations


class Nii2BidsError(RuntimeError):
    """Base class for all errors surfaced by :mod:`nii2bids`."""


class MissingInputError(Nii2BidsError):
    """No image files, no date token or no job metadata could be found."""


class DirectoryCreateError(Nii2BidsError):
    """A modality directory could not be created."""


class CopyError(Nii2BidsError):
    """Copying a file into the BIDS tree failed."""


class MoveError(Nii2BidsError):
    """Moving a sidecar to its renamed location failed."""


class ChecksumError(Nii2BidsError):
    """Computing the content hash of a converted image failed."""


class MetadataWriteError(Nii2BidsError):
    """One of the bookkeeping files could not be written."""


class UnresolvedSidecarRenameError(Nii2BidsError):
    """A renamed image has no matching entry in the job metadata."""


class UnresolvedRunNumberError(Nii2BidsError):
    """A functional entry carries no ``run-NN`` token."""


class MalformedTimingFileError(Nii2BidsError):
    """The task timing description could not be parsed."""


__all__ = [
    "Nii2BidsError",
    "MissingInputError",
    "DirectoryCreateError",
    "CopyError",
    "MoveError",
    "ChecksumError",
    "MetadataWriteError",
    "UnresolvedSidecarRenameError",
    "UnresolvedRunNumberError",
    "MalformedTimingFileError",
]
