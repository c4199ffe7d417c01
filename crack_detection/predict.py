"""Prediction with a trained crack classifier.

Usage:
    python -m crack_detection.predict --model model/model.zip <image> [<image> ...]
"""
from __future__ import annotations

import argparse
import logging
import pickle
from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd
import torch

from .corpus import derive_label
from .logging_config import configure_logging
from .schema import ModelInput, ModelOutput
from .training.common import (
    DataError,
    ImageClassifier,
    build_transform,
    decode_image,
    load_model,
    resolve_device,
)

LOGGER = logging.getLogger(__name__)


class PredictionEngine:
    """Applies a trained model to one :class:`ModelInput` at a time."""

    def __init__(self, model: ImageClassifier, device: Union[str, torch.device, None] = None) -> None:
        self.device = resolve_device(device)
        self.model = model.to(self.device)
        self.model.eval()
        self.transform = build_transform(model.image_size)

    def predict(self, model_input: ModelInput) -> ModelOutput:
        tensor = decode_image(model_input.image, self.transform).unsqueeze(0).to(self.device)
        with torch.no_grad():
            logits = self.model(tensor)
        predicted_key = int(logits.argmax(dim=1).item())
        return ModelOutput(
            image_path=model_input.image_path,
            label=model_input.label,
            predicted_label=self.model.classes[predicted_key],
        )


def format_prediction(prediction: ModelOutput) -> str:
    image_name = Path(prediction.image_path).name
    return (
        f"Image: {image_name} | Actual Value: {prediction.label} "
        f"| Predicted Value: {prediction.predicted_label}"
    )


def classify_single_image(
    model: ImageClassifier,
    data: pd.DataFrame,
    device: Union[str, torch.device, None] = None,
) -> ModelOutput:
    """Predict the first row of a preprocessed frame and print the result."""

    if data.empty:
        raise DataError("No images available to classify")
    engine = PredictionEngine(model, device)
    prediction = engine.predict(ModelInput.from_row(data.iloc[0]))
    LOGGER.info("Classifying single image")
    print(format_prediction(prediction))
    return prediction


def image_to_model_input(
    path: Path,
    classes: Sequence[str],
    use_parent_dir_as_label: bool = True,
) -> ModelInput:
    """Build a :class:`ModelInput` for a file on disk.

    The actual label follows the scanner's rules; labels the model has never
    seen get key ``-1``.
    """

    label = derive_label(path, use_parent_dir_as_label)
    return ModelInput(
        image=path.read_bytes(),
        label_as_key=classes.index(label) if label in classes else -1,
        image_path=str(path),
        label=label,
    )


def parse_args(args: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Classify images with a trained crack classifier")
    parser.add_argument("images", type=Path, nargs="+", help="Image files to classify")
    parser.add_argument(
        "--model",
        type=Path,
        default=Path("model/model.zip"),
        help="Path to a model saved by crack-train",
    )
    parser.add_argument(
        "--use-filename-label",
        action="store_true",
        help="Derive the actual label from the file name instead of the parent directory",
    )
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "cuda"],
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(args=args)


def main(args: Optional[Sequence[str]] = None) -> int:
    parsed = parse_args(args)
    configure_logging(verbose=parsed.verbose)
    try:
        model = load_model(parsed.model, device=parsed.device)
        engine = PredictionEngine(model, parsed.device)
        for path in parsed.images:
            model_input = image_to_model_input(path, model.classes, not parsed.use_filename_label)
            print(format_prediction(engine.predict(model_input)))
    except (OSError, ValueError, KeyError, RuntimeError, pickle.UnpicklingError) as exc:
        LOGGER.error("Prediction failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
