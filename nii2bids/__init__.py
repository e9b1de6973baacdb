"""nii2bids package."""

from importlib.metadata import PackageNotFoundError, version

# Re-export the three workflows at the package root so callers can write
# ``from nii2bids import dicom2bids`` without knowing the module layout.
from .converter import dicom2bids
from .errors import Nii2BidsError
from .events import parse_task_file_to_tsv
from .naming import RunCounter, make_bids_name
from .sync import sync_supporting_files

__all__ = [
    "__version__",
    "Nii2BidsError",
    "RunCounter",
    "dicom2bids",
    "make_bids_name",
    "parse_task_file_to_tsv",
    "sync_supporting_files",
]

try:  # pragma: no cover - version resolution
    __version__ = version("nii2bids")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
