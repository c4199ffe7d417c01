"""End-to-end training run for the crack classifier.

Stages run strictly in order and any failure aborts the run:
scan -> load/shuffle -> preprocess -> split -> train -> save -> evaluate ->
classify one held-out image.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import torch.nn as nn

from ..corpus import LABEL_COLUMN, scan_images
from ..predict import classify_single_image
from ..schema import ModelOutput
from .common import (
    ImageClassifier,
    MetricsCallback,
    TrainingConfig,
    evaluate_model,
    fit_classifier,
    frame_schema,
    load_dataset,
    load_raw_image_bytes,
    log_metrics,
    map_value_to_key,
    plot_confusion_matrix,
    plot_training_curves,
    resolve_device,
    save_model,
    set_seed,
    shuffle_rows,
    train_test_split_frame,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    model: ImageClassifier
    classes: List[str]
    history: Dict[str, List[float]]
    test_metrics: Dict[str, float]
    prediction: ModelOutput
    model_path: Path


def run_training(
    config: TrainingConfig,
    backbone: Optional[nn.Module] = None,
    metrics_callback: MetricsCallback = log_metrics,
) -> TrainingResult:
    """Train, save and smoke-test a classifier on ``config.data_dir``."""

    LOGGER.info("Starting...")
    set_seed(config.seed)

    # ImagePath values start with the root; an absolute root keeps them valid
    data_dir = Path(config.data_dir).resolve()
    corpus = scan_images(data_dir, use_parent_dir_as_label=config.use_parent_dir_as_label)
    image_data = load_dataset(corpus)
    label_counts = image_data[LABEL_COLUMN].value_counts().sort_index()
    LOGGER.info(
        "Found %d images across %d labels: %s",
        len(image_data),
        len(label_counts),
        ", ".join(f"{label}={count}" for label, count in label_counts.items()),
    )

    LOGGER.info("Setting up images stream...")
    shuffled = shuffle_rows(image_data, config.seed)

    LOGGER.info("Executing the preprocessing pipeline...")
    keyed, classes = map_value_to_key(shuffled)
    preprocessed = load_raw_image_bytes(keyed, image_folder=data_dir)

    LOGGER.info(
        "Splitting the training and test set %d/%d...",
        round((1 - config.test_fraction) * 100),
        round(config.test_fraction * 100),
    )
    train_set, holdout = train_test_split_frame(preprocessed, config.test_fraction, config.seed)
    # The held-out rows are split again: first part validation, second part test
    validation_set, test_set = train_test_split_frame(
        holdout, 1 - config.validation_fraction, config.seed
    )
    LOGGER.info(
        "Partition sizes - train %d | validation %d | test %d",
        len(train_set),
        len(validation_set),
        len(test_set),
    )

    LOGGER.info("Training the model (go get a coffee!)...")
    model, history = fit_classifier(
        train_set,
        validation_set,
        config,
        classes,
        backbone=backbone,
        metrics_callback=metrics_callback,
    )

    LOGGER.info("Saving the model to %s", config.model_path)
    model_path = save_model(model, frame_schema(train_set), config.model_path)

    device = resolve_device(config.device)
    test_metrics, y_true, y_pred = evaluate_model(model, test_set, device, config.batch_size)
    LOGGER.info(
        "Test set - accuracy %.3f precision %.3f recall %.3f f1 %.3f",
        test_metrics["accuracy"],
        test_metrics["precision"],
        test_metrics["recall"],
        test_metrics["f1"],
    )
    plot_training_curves(history, config.curve_path, config.arch)
    plot_confusion_matrix(y_true, y_pred, classes, config.confusion_path, config.arch)
    config.results_table.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([test_metrics]).to_csv(config.results_table, index=False)

    prediction = classify_single_image(model, test_set, device)
    LOGGER.info("Finished...")
    return TrainingResult(
        model=model,
        classes=classes,
        history=history,
        test_metrics=test_metrics,
        prediction=prediction,
        model_path=model_path,
    )
