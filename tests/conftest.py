"""Shared fixtures: tiny on-disk image corpora and a weight-free backbone."""
import logging
from pathlib import Path
from typing import Tuple

import matplotlib

matplotlib.use("Agg")

import pytest
import torch
import torch.nn as nn
from PIL import Image

from crack_detection.training.common import ImageClassifier, TrainingConfig

RED = (255, 0, 0)
BLUE = (0, 0, 255)
IMAGE_SIZE = 16


def make_image(path: Path, color: Tuple[int, int, int], size: int = IMAGE_SIZE) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (size, size), color=color).save(path)
    return path


def tiny_backbone() -> nn.Module:
    # Per-channel mean of the normalized image: red and blue are linearly separable.
    return nn.Sequential(nn.AdaptiveAvgPool2d(1), nn.Flatten())


def color_classifier() -> ImageClassifier:
    """Hand-weighted classifier: class 0 follows the red channel, class 1 the blue one."""
    head = nn.Linear(3, 2)
    with torch.no_grad():
        head.weight.copy_(torch.tensor([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]]))
        head.bias.zero_()
    model = ImageClassifier(tiny_backbone(), head, ["red", "blue"], "resnet_v2_101", IMAGE_SIZE)
    model.eval()
    return model


@pytest.fixture
def color_corpus(tmp_path: Path) -> Path:
    root = tmp_path / "assets" / "D"
    for idx in range(8):
        make_image(root / "red" / f"r{idx}.png", RED)
        make_image(root / "blue" / f"b{idx}.png", BLUE)
    return root


@pytest.fixture
def training_config(tmp_path: Path, color_corpus: Path) -> TrainingConfig:
    return TrainingConfig(
        data_dir=color_corpus,
        model_path=tmp_path / "model" / "model.zip",
        workspace_dir=tmp_path / "workspace",
        output_dir=tmp_path / "outputs",
        pretrained=False,
        epochs=30,
        batch_size=4,
        learning_rate=0.5,
        early_stopping_patience=10,
        device="cpu",
        image_size=IMAGE_SIZE,
    )


@pytest.fixture
def restore_root_logging():
    """Undo ``configure_logging`` calls made by CLI entry points."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
