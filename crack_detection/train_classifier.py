"""CLI wrapper for training the crack classifier.

Delegates to training.pipeline.run_training using the TrainingConfig schema
from training.common.

Usage:
    python -m crack_detection.train_classifier --data-dir assets/D
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from .logging_config import configure_logging
from .training.common import ARCHITECTURES, DEFAULT_ARCHITECTURE, TrainingConfig
from .training.pipeline import run_training

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("assets/D"),
        help="Root directory of the .jpg/.png images.",
    )
    parser.add_argument("--model-path", type=Path, default=Path("model/model.zip"))
    parser.add_argument(
        "--workspace-dir",
        type=Path,
        default=Path("workspace"),
        help="Directory for cached bottleneck values.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs"),
        help="Base directory for figures, metrics tables and the run log.",
    )
    parser.add_argument(
        "--use-filename-label",
        action="store_true",
        help="Label images by the letters leading their file name instead of the parent directory.",
    )
    parser.add_argument("--test-fraction", type=float, default=0.3)
    parser.add_argument(
        "--validation-fraction",
        type=float,
        default=0.5,
        help="Share of the held-out images used for validation; the rest is the test set.",
    )
    parser.add_argument(
        "--arch",
        type=str,
        default=DEFAULT_ARCHITECTURE,
        choices=sorted(ARCHITECTURES),
    )
    parser.add_argument("--test-on-train-set", action="store_true")
    parser.add_argument(
        "--no-reuse-train-bottleneck",
        dest="reuse_train_bottleneck",
        action="store_false",
        help="Always recompute training-set bottleneck values.",
    )
    parser.add_argument(
        "--no-reuse-validation-bottleneck",
        dest="reuse_validation_bottleneck",
        action="store_false",
        help="Always recompute validation-set bottleneck values.",
    )
    parser.add_argument("--epochs", type=int, default=200)
    parser.add_argument("--batch-size", type=int, default=10)
    parser.add_argument("--learning-rate", type=float, default=0.01)
    parser.add_argument("--early-stopping", type=int, default=20)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "cuda"],
        help="Device to use: auto (default), cpu, or cuda",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def parse_args(args: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(args=args)


def config_from_args(parsed: argparse.Namespace) -> TrainingConfig:
    return TrainingConfig(
        data_dir=parsed.data_dir,
        model_path=parsed.model_path,
        workspace_dir=parsed.workspace_dir,
        output_dir=parsed.output_dir,
        use_parent_dir_as_label=not parsed.use_filename_label,
        test_fraction=parsed.test_fraction,
        validation_fraction=parsed.validation_fraction,
        arch=parsed.arch,
        test_on_train_set=parsed.test_on_train_set,
        reuse_train_bottleneck=parsed.reuse_train_bottleneck,
        reuse_validation_bottleneck=parsed.reuse_validation_bottleneck,
        epochs=parsed.epochs,
        batch_size=parsed.batch_size,
        learning_rate=parsed.learning_rate,
        early_stopping_patience=parsed.early_stopping,
        seed=parsed.seed,
        device=parsed.device,
    )


def main(args: Optional[Sequence[str]] = None) -> int:
    parsed = parse_args(args)
    configure_logging(verbose=parsed.verbose, log_path=parsed.output_dir / "logs" / "train.log")
    try:
        config = config_from_args(parsed)
        result = run_training(config)
    except (OSError, ValueError) as exc:
        LOGGER.error("Training failed: %s", exc)
        return 1
    LOGGER.info("Test metrics:\n%s", json.dumps(result.test_metrics, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
