"""Keyword based classification of converter output.

Two decisions are made for every file produced by the DICOM → NIfTI
converter:

* :func:`classify_directory` picks the BIDS modality folder
  (``anat``, ``func``, ``localizer`` or ``dwi``).
* :func:`classify_label` picks the BIDS suffix (``T1w``, ``bold``, ...) once the
  folder is known.

Both are driven by ordered rule tables where the first matching rule wins.
Keeping the tables as data makes the precedence easy to audit and lets the
tests exercise every rule on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .config import ANAT_DIR, DISCARD_LABEL, DWI_DIR, FUNC_DIR, LOCALIZER_DIR

PathLike = Union[str, Path]

IMAGE_EXTENSIONS = (".nii.gz", ".nii")


@dataclass(frozen=True)
class KeywordRule:
    """Map a file name to ``target`` when one keyword group matches.

    ``groups`` is a tuple of alternatives; a group matches when *all* of its
    keywords occur in the lower-cased name.
    """

    target: str
    groups: Tuple[Tuple[str, ...], ...]

    def matches(self, lowered: str) -> bool:
        return any(all(k in lowered for k in group) for group in self.groups)


def _any_of(*keywords: str) -> Tuple[Tuple[str, ...], ...]:
    return tuple((k,) for k in keywords)


# Folder rules.  The sibling ``.bval`` test is not a keyword and is applied by
# :func:`classify_directory` after these.
DIRECTORY_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule(FUNC_DIR, _any_of("bold", "asl", "rest", "task")),
    KeywordRule(LOCALIZER_DIR, _any_of("localizer", "loc")),
    KeywordRule(DWI_DIR, _any_of(".bval", ".bvec")),
    KeywordRule(DWI_DIR, _any_of("dti", "dwi", "diff")),
)

DISCARD_RULE = KeywordRule(DISCARD_LABEL, (("phoenix", "document"),))

ANAT_LABEL_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("T1w", (("t1", "weight"), ("mprage",), ("t1w",))),
    KeywordRule("T2w", (("t2", "weight"),)),
    KeywordRule("T1rho", (("t1", "rho"),)),
    KeywordRule("T1map", (("t1", "map"),)),
    KeywordRule("inplaneT1", (("t1", "plane"),)),
    KeywordRule("T2map", (("t2", "map"),)),
    KeywordRule("inplaneT2", (("t2", "plane"),)),
    KeywordRule("T2star", (("star",),)),
    KeywordRule("FLAIR", (("flair",),)),
    KeywordRule("FLASH", (("flash",),)),
    KeywordRule("PDmap", (("pd", "map"),)),
    KeywordRule("PDT2", (("pd", "t2"),)),
    KeywordRule("PD", (("pd",),)),
    KeywordRule("angio", (("angio",),)),
)

FUNC_LABEL_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("bold", (("bold",),)),
    KeywordRule("cbv", (("cbv",),)),
    KeywordRule("phase", (("phase",),)),
)

UNKNOWN_LABEL = "unknown"


def _first_match(rules: Iterable[KeywordRule], lowered: str) -> Optional[str]:
    for rule in rules:
        if rule.matches(lowered):
            return rule.target
    return None


def is_image(path: PathLike) -> bool:
    """Return ``True`` for ``.nii``/``.nii.gz`` files."""

    return Path(path).name.lower().endswith(IMAGE_EXTENSIONS)


def strip_image_extension(path: PathLike) -> str:
    """Return ``path`` as a string without its ``.nii``/``.nii.gz`` suffix."""

    text = str(path)
    lowered = text.lower()
    for ext in IMAGE_EXTENSIONS:
        if lowered.endswith(ext):
            return text[: -len(ext)]
    return text


def classify_directory(filename: PathLike, siblings: Iterable[PathLike] = ()) -> str:
    """Return the modality folder for ``filename``.

    Parameters
    ----------
    filename : str or Path
        File produced by the converter.
    siblings : iterable of str or Path
        Every file of the input directory.  Used to detect diffusion images
        through a ``<stem>.bval`` companion whose name carries no keyword.
    """

    lowered = Path(filename).name.lower()
    target = _first_match(DIRECTORY_RULES, lowered)
    if target:
        return target

    bval = strip_image_extension(Path(filename).name) + ".bval"
    if any(Path(s).name == bval for s in siblings):
        return DWI_DIR
    return ANAT_DIR


def _localizer_label(lowered: str) -> str:
    name = lowered.replace("_", "-")
    for ext in IMAGE_EXTENSIONS:
        if name.endswith(ext):
            name = name[: -len(ext)]
            break
    else:
        name = name.rsplit(".", 1)[0]
    return name.rsplit("-", 1)[-1]


def classify_label(filename: PathLike, directory: str) -> str:
    """Return the BIDS label of ``filename`` stored under ``directory``.

    ``DISCARD`` is returned for vendor reports (``phoenix`` + ``document``)
    whatever the folder.  Files matching no rule are labelled ``unknown``.
    """

    lowered = Path(filename).name.lower()
    if DISCARD_RULE.matches(lowered):
        return DISCARD_LABEL

    if directory == ANAT_DIR:
        return _first_match(ANAT_LABEL_RULES, lowered) or UNKNOWN_LABEL
    if directory == FUNC_DIR:
        return _first_match(FUNC_LABEL_RULES, lowered) or UNKNOWN_LABEL
    if directory == LOCALIZER_DIR:
        return _localizer_label(lowered)
    if directory == DWI_DIR:
        return "dwi"
    raise ValueError(f"Unknown modality directory: {directory!r}")


def directory_tag(directory: str, filename: PathLike) -> str:
    """Return the coarse acquisition tag recorded in the job metadata."""

    if directory == FUNC_DIR:
        return "Functional"
    if directory == DWI_DIR:
        return "DTI"
    if directory == LOCALIZER_DIR:
        return "Localizer"
    if "3d" in Path(filename).name.lower():
        return "3DAnatomical"
    return "Anatomical"


__all__ = [
    "KeywordRule",
    "DIRECTORY_RULES",
    "DISCARD_RULE",
    "ANAT_LABEL_RULES",
    "FUNC_LABEL_RULES",
    "UNKNOWN_LABEL",
    "is_image",
    "strip_image_extension",
    "classify_directory",
    "classify_label",
    "directory_tag",
]
