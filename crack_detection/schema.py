"""Row types passed between the dataset, the model and the reporter."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .corpus import IMAGE_PATH_COLUMN, LABEL_COLUMN

IMAGE_COLUMN = "Image"
LABEL_KEY_COLUMN = "LabelAsKey"
PREDICTED_LABEL_COLUMN = "PredictedLabel"


@dataclass(frozen=True)
class ModelInput:
    image: bytes
    label_as_key: int
    image_path: str
    label: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ModelInput":
        return cls(
            image=bytes(row[IMAGE_COLUMN]),
            label_as_key=int(row[LABEL_KEY_COLUMN]),
            image_path=str(row[IMAGE_PATH_COLUMN]),
            label=str(row[LABEL_COLUMN]),
        )


@dataclass(frozen=True)
class ModelOutput:
    image_path: str
    label: str
    predicted_label: str
