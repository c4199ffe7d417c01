"""End-to-end tests for the training pipeline and its CLI."""
import dataclasses
from pathlib import Path

import pytest

from conftest import RED, make_image, tiny_backbone
from crack_detection import train_classifier
from crack_detection.training.common import DataError, TrainingConfig
from crack_detection.training.pipeline import run_training


def test_run_training_end_to_end(training_config: TrainingConfig, capsys) -> None:
    result = run_training(training_config, backbone=tiny_backbone())

    assert result.classes == ["blue", "red"]
    assert result.model_path == training_config.model_path
    assert training_config.model_path.exists()
    assert training_config.curve_path.exists()
    assert training_config.confusion_path.exists()
    assert training_config.results_table.exists()
    assert result.prediction.label in result.classes
    assert result.prediction.predicted_label in result.classes
    assert 0.0 <= result.test_metrics["accuracy"] <= 1.0

    out = capsys.readouterr().out
    assert f"Image: {Path(result.prediction.image_path).name} | Actual Value: " in out


def test_run_training_with_filename_labels(tmp_path: Path, training_config: TrainingConfig) -> None:
    root = tmp_path / "flat"
    for idx in range(6):
        make_image(root / f"red_{idx}.png", RED)
        make_image(root / f"blue-{idx}.png", (0, 0, 255))
    config = dataclasses.replace(training_config, data_dir=root, use_parent_dir_as_label=False, epochs=2)

    result = run_training(config, backbone=tiny_backbone())

    assert result.classes == ["blue", "red"]


def test_run_training_with_relative_data_dir(
    tmp_path: Path, training_config: TrainingConfig, monkeypatch
) -> None:
    # color_corpus lives at tmp_path/assets/D, the CLI default relative root
    monkeypatch.chdir(tmp_path)
    config = dataclasses.replace(training_config, data_dir=Path("assets/D"), epochs=2)

    result = run_training(config, backbone=tiny_backbone())

    assert result.classes == ["blue", "red"]
    assert Path(result.prediction.image_path).is_absolute()


def test_run_training_missing_corpus(training_config: TrainingConfig, tmp_path: Path) -> None:
    config = dataclasses.replace(training_config, data_dir=tmp_path / "nowhere")
    with pytest.raises(FileNotFoundError):
        run_training(config, backbone=tiny_backbone())


def test_run_training_empty_corpus(training_config: TrainingConfig, tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()
    config = dataclasses.replace(training_config, data_dir=empty)
    with pytest.raises(DataError):
        run_training(config, backbone=tiny_backbone())


def test_run_training_degenerate_split(training_config: TrainingConfig, tmp_path: Path) -> None:
    root = tmp_path / "single"
    make_image(root / "red" / "only.png", RED)
    config = dataclasses.replace(training_config, data_dir=root)
    with pytest.raises(DataError):
        run_training(config, backbone=tiny_backbone())


def test_cli_maps_arguments_to_config(tmp_path: Path) -> None:
    parsed = train_classifier.parse_args(
        [
            "--data-dir",
            str(tmp_path),
            "--use-filename-label",
            "--arch",
            "mobilenet_v2",
            "--no-reuse-train-bottleneck",
            "--test-on-train-set",
            "--epochs",
            "5",
            "--early-stopping",
            "2",
        ]
    )
    config = train_classifier.config_from_args(parsed)

    assert config.data_dir == tmp_path
    assert config.use_parent_dir_as_label is False
    assert config.arch == "mobilenet_v2"
    assert config.reuse_train_bottleneck is False
    assert config.reuse_validation_bottleneck is True
    assert config.test_on_train_set is True
    assert config.epochs == 5
    assert config.early_stopping_patience == 2
    assert config.model_path == Path("model/model.zip")


def test_cli_reports_failure(tmp_path: Path, restore_root_logging) -> None:
    status = train_classifier.main(
        [
            "--data-dir",
            str(tmp_path / "missing"),
            "--output-dir",
            str(tmp_path / "outputs"),
        ]
    )
    assert status == 1
    assert (tmp_path / "outputs" / "logs" / "train.log").exists()
