import hashlib
from pathlib import Path

import pytest

from nii2bids.fileops import (
    checksum_files,
    copy_files,
    directory_size,
    file_checksum,
    move_files,
)


def _touch(path: Path, content: str = "dummy") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_directory_size_counts_folders_too(tmp_path):
    a = _touch(tmp_path / "a.nii", "12345")
    b = _touch(tmp_path / "nested" / "b.json", "xy")
    expected = (
        tmp_path.stat().st_size
        + (tmp_path / "nested").stat().st_size
        + a.stat().st_size
        + b.stat().st_size
    )
    assert directory_size(tmp_path) == expected
    assert directory_size(a) == 5


def test_checksums_match_hashlib(tmp_path):
    paths = [_touch(tmp_path / f"f{i}.nii", f"content {i}") for i in range(5)]
    digests = checksum_files(paths, max_workers=3)
    assert set(digests) == set(paths)
    for path in paths:
        assert digests[path] == hashlib.sha256(path.read_bytes()).hexdigest()
        assert file_checksum(path) == digests[path]


def test_copy_and_move_create_parents(tmp_path):
    src = _touch(tmp_path / "src" / "a.nii", "data")
    copied = copy_files([(src, tmp_path / "out" / "x" / "a.nii")])
    assert copied == [tmp_path / "out" / "x" / "a.nii"]
    assert src.exists()

    moved = move_files([(src, tmp_path / "moved" / "b.nii")], max_workers=1)
    assert moved == [tmp_path / "moved" / "b.nii"]
    assert not src.exists()
    assert moved[0].read_text() == "data"


def test_copy_failure_propagates(tmp_path):
    with pytest.raises(OSError):
        copy_files([(tmp_path / "missing.nii", tmp_path / "out" / "missing.nii")])


def test_empty_operations():
    assert copy_files([]) == []
    assert checksum_files([]) == {}
