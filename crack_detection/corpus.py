"""Image corpus discovery for the concrete crack dataset.

The scanner walks a root directory recursively and yields one
:class:`ImageRecord` per ``.jpg`` / ``.png`` file. Labels come either from
the immediate parent directory (``assets/D/CD/7001-1.jpg`` -> ``CD``) or
from the leading run of letters in the file name.

``scan_images`` returns an :class:`ImageCorpus`, a re-iterable sequence:
every ``for`` loop over it starts a fresh walk, so the same corpus object can
be handed to several consumers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Union

import pandas as pd

LOGGER = logging.getLogger(__name__)

# Case-sensitive on purpose: ``photo.JPG`` is skipped.
SUPPORTED_EXTENSIONS = (".jpg", ".png")

IMAGE_PATH_COLUMN = "ImagePath"
LABEL_COLUMN = "Label"


@dataclass(frozen=True)
class ImageRecord:
    """A single image on disk and its target label."""

    path: Path
    label: str


def label_from_filename(filename: str) -> str:
    """Return ``filename`` truncated at its first non-letter character.

    The extension is part of the scanned text, so ``abcdef.png`` gives
    ``abcdef``. A name that starts with a digit or separator gives ``""``.
    """

    for index, char in enumerate(filename):
        if not char.isalpha():
            return filename[:index]
    return filename


def derive_label(path: Path, use_parent_dir_as_label: bool = True) -> str:
    if use_parent_dir_as_label:
        return path.parent.name
    return label_from_filename(path.name)


def _raise_walk_error(exc: OSError) -> None:
    raise exc


class ImageCorpus:
    """Restartable, lazily evaluated sequence of :class:`ImageRecord`."""

    def __init__(self, root: Path, use_parent_dir_as_label: bool = True) -> None:
        self.root = Path(root)
        self.use_parent_dir_as_label = use_parent_dir_as_label

    def __iter__(self) -> Iterator[ImageRecord]:
        LOGGER.info("Looking for images in %s", self.root)
        for dirpath, _dirnames, filenames in os.walk(self.root, onerror=_raise_walk_error):
            for filename in filenames:
                if os.path.splitext(filename)[1] not in SUPPORTED_EXTENSIONS:
                    continue
                path = Path(dirpath) / filename
                yield ImageRecord(
                    path=path,
                    label=derive_label(path, self.use_parent_dir_as_label),
                )

    def __repr__(self) -> str:
        return (
            f"ImageCorpus(root={str(self.root)!r}, "
            f"use_parent_dir_as_label={self.use_parent_dir_as_label})"
        )


def scan_images(root: Union[str, Path], use_parent_dir_as_label: bool = True) -> ImageCorpus:
    """Validate ``root`` and return a lazy corpus over its images."""

    root = Path(root)
    if not root.exists():
        raise FileNotFoundError(f"Image directory not found: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Image root is not a directory: {root}")
    return ImageCorpus(root, use_parent_dir_as_label=use_parent_dir_as_label)


def records_to_frame(records: Iterable[ImageRecord]) -> pd.DataFrame:
    rows = [
        {IMAGE_PATH_COLUMN: str(record.path), LABEL_COLUMN: record.label}
        for record in records
    ]
    return pd.DataFrame(rows, columns=[IMAGE_PATH_COLUMN, LABEL_COLUMN])

