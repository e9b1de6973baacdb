import json
from pathlib import Path

import pytest

from nii2bids.converter import dicom2bids
from nii2bids.errors import UnresolvedSidecarRenameError
from nii2bids.sync import substitute_task, sync_supporting_files


def _touch(path: Path, content: str = "dummy") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _convert(tmp_path: Path) -> Path:
    indir = tmp_path / "in"
    _touch(indir / "IMG_20230615093000_bold.nii.gz")
    _touch(indir / "IMG_20230615093000_bold.json")
    _touch(indir / "IMG_20230615093000_mprage.nii.gz")
    _touch(indir / "IMG_20230615093000_mprage.json")
    return dicom2bids(indir, tmp_path / "out")


def _job(root: Path) -> dict:
    return json.loads((root / "dicom_job_info.json").read_text())


def test_substitute_task_second_or_third_field():
    assert substitute_task("sub-01_task-unnamed_run-01_bold.json", "rest") == \
        "sub-01_task-rest_run-01_bold.json"
    assert substitute_task("sub-01_ses-1_task-unnamed_bold.json", "nback") == \
        "sub-01_ses-1_task-nback_bold.json"
    assert substitute_task("sub-01_run-01_T1w.json", "rest") == "sub-01_run-01_T1w.json"


def test_sync_moves_sidecars_and_updates_job(tmp_path):
    root = _convert(tmp_path)
    func = root / "sub-01" / "func"
    old = func / "sub-01_task-unnamed_run-01_bold.nii.gz"
    new = func / "sub-01_task-rest_run-01_bold.nii.gz"
    old.rename(new)

    renamed = sync_supporting_files([(old, new)], "rest", func)

    assert renamed == ["sub-01/func/sub-01_task-rest_run-01_bold.json"]
    assert (func / "sub-01_task-rest_run-01_bold.json").exists()
    assert not (func / "sub-01_task-unnamed_run-01_bold.json").exists()

    entry = next(e for e in _job(root)["files"] if e["name"] == "sub-01_task-rest_run-01_bold")
    assert entry["filename"] == "sub-01/func/sub-01_task-rest_run-01_bold.nii.gz"
    assert entry["supportingfiles"] == renamed

    log = (root / "name_change_log.txt").read_text().splitlines()
    assert log[-1] == "sub-01_task-unnamed_run-01_bold.nii.gz -> sub-01_task-rest_run-01_bold.nii.gz"


def test_sync_moves_sidecars_to_new_directory(tmp_path):
    root = _convert(tmp_path)
    old = root / "sub-01" / "anat" / "sub-01_run-01_T1w.nii.gz"
    new_dir = root / "sub-01" / "anat_extra"
    new_dir.mkdir()
    new = new_dir / "sub-01_run-01_T1w.nii.gz"
    old.rename(new)

    renamed = sync_supporting_files([{"old": str(old), "new": str(new)}], "rest", root)

    assert renamed == ["sub-01/anat_extra/sub-01_run-01_T1w.json"]
    assert (new_dir / "sub-01_run-01_T1w.json").exists()


def test_sync_unknown_image_is_an_error(tmp_path):
    root = _convert(tmp_path)
    before = _job(root)
    with pytest.raises(UnresolvedSidecarRenameError):
        sync_supporting_files(
            [(root / "sub-01" / "func" / "nothing.nii.gz", root / "sub-01" / "func" / "x.nii.gz")],
            "rest",
            root,
        )
    assert _job(root) == before
