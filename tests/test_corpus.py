"""Tests for the image corpus scanner."""
import os
from collections import Counter
from pathlib import Path

import pytest

from crack_detection.corpus import (
    ImageCorpus,
    derive_label,
    label_from_filename,
    records_to_frame,
    scan_images,
)


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG")
    return path


@pytest.fixture
def crack_tree(tmp_path: Path) -> Path:
    root = tmp_path / "D"
    touch(root / "crackA" / "img1.jpg")
    touch(root / "crackA" / "img2.png")
    touch(root / "nocrack" / "img3.jpg")
    touch(root / "nocrack" / "notes.txt")
    return root


def test_parent_dir_labels_scenario(crack_tree: Path) -> None:
    records = list(scan_images(crack_tree, use_parent_dir_as_label=True))

    assert len(records) == 3
    assert Counter(r.label for r in records) == Counter({"crackA": 2, "nocrack": 1})
    assert all(r.path.name != "notes.txt" for r in records)
    for record in records:
        assert record.label == record.path.parent.name


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("abc123.jpg", "abc"),
        ("123abc.jpg", ""),
        ("abcdef.png", "abcdef"),
        ("00121021_D.jpg", ""),
        ("CD_7001.jpg", "CD"),
        ("crack", "crack"),
        ("ÉcoleX-1.png", "ÉcoleX"),
    ],
)
def test_label_from_filename(filename: str, expected: str) -> None:
    assert label_from_filename(filename) == expected


def test_filename_labels_from_scan(tmp_path: Path) -> None:
    touch(tmp_path / "nested" / "abc123.jpg")
    touch(tmp_path / "123abc.jpg")
    touch(tmp_path / "abcdef.png")

    labels = {r.path.name: r.label for r in scan_images(tmp_path, use_parent_dir_as_label=False)}

    assert labels == {"abc123.jpg": "abc", "123abc.jpg": "", "abcdef.png": "abcdef"}


def test_extension_filter_is_case_sensitive(tmp_path: Path) -> None:
    kept = {touch(tmp_path / "a" / "one.jpg"), touch(tmp_path / "a" / "two.png")}
    for name in ("three.JPG", "four.PNG", "five.Jpg", "six.jpeg", "seven.gif", "eight"):
        touch(tmp_path / "a" / name)

    found = {r.path for r in scan_images(tmp_path)}

    assert found == kept


def test_rescanning_is_idempotent(crack_tree: Path) -> None:
    corpus = scan_images(crack_tree)

    first = Counter((r.path, r.label) for r in corpus)
    second = Counter((r.path, r.label) for r in corpus)
    third = Counter((r.path, r.label) for r in scan_images(crack_tree))

    assert first == second == third


def test_independent_iterators_do_not_share_state(crack_tree: Path) -> None:
    corpus = scan_images(crack_tree)
    left = iter(corpus)
    next(left)

    assert len(list(corpus)) == 3
    assert len(list(left)) == 2


def test_empty_root_yields_nothing(tmp_path: Path) -> None:
    assert list(scan_images(tmp_path)) == []


def test_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        scan_images(tmp_path / "does-not-exist")


def test_file_root_raises(tmp_path: Path) -> None:
    path = touch(tmp_path / "img.jpg")
    with pytest.raises(NotADirectoryError):
        scan_images(path)


def test_unreadable_directory_surfaces_error(crack_tree: Path, monkeypatch) -> None:
    real_scandir = os.scandir

    def locked_scandir(path="."):
        if os.fspath(path).endswith("nocrack"):
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", locked_scandir)

    with pytest.raises(PermissionError):
        list(scan_images(crack_tree))


def test_records_are_immutable(crack_tree: Path) -> None:
    record = next(iter(scan_images(crack_tree)))
    with pytest.raises(AttributeError):
        record.label = "other"  # type: ignore[misc]


def test_derive_label_modes() -> None:
    path = Path("assets") / "D" / "CD" / "7001-1.jpg"
    assert derive_label(path, use_parent_dir_as_label=True) == "CD"
    assert derive_label(path, use_parent_dir_as_label=False) == ""


def test_records_to_frame(crack_tree: Path) -> None:
    frame = records_to_frame(scan_images(crack_tree))
    assert list(frame.columns) == ["ImagePath", "Label"]
    assert sorted(frame["Label"]) == ["crackA", "crackA", "nocrack"]

    empty = records_to_frame([])
    assert empty.empty
    assert list(empty.columns) == ["ImagePath", "Label"]


def test_corpus_repr_names_root(tmp_path: Path) -> None:
    corpus = ImageCorpus(tmp_path, use_parent_dir_as_label=False)
    assert str(tmp_path) in repr(corpus)
