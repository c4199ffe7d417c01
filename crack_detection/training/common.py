"""Shared building blocks for the crack classifier training pipeline.

This module centralizes configuration, dataset assembly (label keys, raw
image bytes, shuffling, splitting), transfer-learning model creation, the
bottleneck cache, the head training loop, evaluation, plotting and model
persistence. ``training.pipeline`` chains these together; ``predict`` reuses
the transforms and the model loader.
"""
from __future__ import annotations

import copy
import hashlib
import io
import logging
import math
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import torch
import torch.nn as nn
import torch.optim as optim
from PIL import Image
from sklearn.metrics import accuracy_score, confusion_matrix, precision_recall_fscore_support
from sklearn.model_selection import train_test_split
from torch.utils.data import DataLoader, Dataset, TensorDataset
from torchvision import models, transforms

from ..corpus import IMAGE_PATH_COLUMN, LABEL_COLUMN, ImageRecord, records_to_frame
from ..schema import IMAGE_COLUMN, LABEL_KEY_COLUMN

LOGGER = logging.getLogger(__name__)

TRAIN_BOTTLENECK_CACHE = "train_bottlenecks.npz"
VALIDATION_BOTTLENECK_CACHE = "validation_bottlenecks.npz"

IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]


class DataError(ValueError):
    """The dataset is empty or cannot be split into usable partitions."""


# ---------------------------------------------------------------------------
# Architectures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArchitectureSpec:
    name: str
    builder: Callable[..., nn.Module]
    weights: Any
    input_size: int
    # Attribute holding the ImageNet classifier, swapped for nn.Identity
    head_attr: str


ARCHITECTURES: Dict[str, ArchitectureSpec] = {
    "resnet_v2_101": ArchitectureSpec(
        "resnet_v2_101", models.resnet101, models.ResNet101_Weights.IMAGENET1K_V2, 224, "fc"
    ),
    "resnet_v2_50": ArchitectureSpec(
        "resnet_v2_50", models.resnet50, models.ResNet50_Weights.IMAGENET1K_V2, 224, "fc"
    ),
    "inception_v3": ArchitectureSpec(
        "inception_v3", models.inception_v3, models.Inception_V3_Weights.IMAGENET1K_V1, 299, "fc"
    ),
    "mobilenet_v2": ArchitectureSpec(
        "mobilenet_v2", models.mobilenet_v2, models.MobileNet_V2_Weights.IMAGENET1K_V2, 224, "classifier"
    ),
}
DEFAULT_ARCHITECTURE = "resnet_v2_101"


def get_architecture(name: str) -> ArchitectureSpec:
    try:
        return ARCHITECTURES[name]
    except KeyError:
        raise ValueError(
            f"Unknown architecture '{name}'. Choose one of: {', '.join(sorted(ARCHITECTURES))}"
        ) from None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class TrainingConfig:
    data_dir: Path = Path("assets/D")
    model_path: Path = Path("model/model.zip")
    workspace_dir: Path = Path("workspace")
    output_dir: Path = Path("outputs")
    use_parent_dir_as_label: bool = True
    test_fraction: float = 0.3
    validation_fraction: float = 0.5  # share of the held-out rows used for validation
    arch: str = DEFAULT_ARCHITECTURE
    pretrained: bool = True
    feature_column: str = IMAGE_COLUMN
    label_column: str = LABEL_KEY_COLUMN
    test_on_train_set: bool = False
    reuse_train_bottleneck: bool = True
    reuse_validation_bottleneck: bool = True
    epochs: int = 200
    batch_size: int = 10
    learning_rate: float = 0.01
    lr_decay_epochs: int = 2
    lr_decay_factor: float = 0.94
    early_stopping_patience: int = 20
    early_stopping_min_delta: float = 0.01
    seed: int = 42
    device: str = "auto"  # "auto" | "cpu" | "cuda"
    image_size: Optional[int] = None  # None -> architecture default

    def __post_init__(self) -> None:
        for name in ("test_fraction", "validation_fraction"):
            value = getattr(self, name)
            if not 0.0 < value < 1.0:
                raise ValueError(f"{name} must be between 0 and 1 (exclusive), got {value}")
        get_architecture(self.arch)

    @property
    def curve_path(self) -> Path:
        return self.output_dir / "figures" / "train_curves.png"

    @property
    def confusion_path(self) -> Path:
        return self.output_dir / "figures" / "confusion_matrix.png"

    @property
    def results_table(self) -> Path:
        return self.output_dir / "tables" / "test_metrics.csv"


# ---------------------------------------------------------------------------
# Reproducibility, devices and transforms
# ---------------------------------------------------------------------------

def set_seed(seed: int) -> None:
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)
    torch.backends.cudnn.deterministic = True
    torch.backends.cudnn.benchmark = False


def resolve_device(name: Union[str, torch.device, None] = "auto") -> torch.device:
    if name is None or name == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    return torch.device(name)


def build_transform(image_size: int = 224) -> transforms.Compose:
    # No augmentation: bottleneck values are computed once and cached.
    return transforms.Compose(
        [
            transforms.Resize((image_size, image_size)),
            transforms.ToTensor(),
            transforms.Normalize(mean=IMAGENET_MEAN, std=IMAGENET_STD),
        ]
    )


def decode_image(data: bytes, transform: Callable[[Image.Image], torch.Tensor]) -> torch.Tensor:
    """Decode raw PNG/JPEG bytes to a normalized RGB tensor."""

    with Image.open(io.BytesIO(data)) as img:
        return transform(img.convert("RGB"))


# ---------------------------------------------------------------------------
# Dataset assembly
# ---------------------------------------------------------------------------

def load_dataset(records: Iterable[ImageRecord]) -> pd.DataFrame:
    """Materialize scanner records into an ``ImagePath`` / ``Label`` table."""

    frame = records_to_frame(records)
    if frame.empty:
        raise DataError("No .jpg or .png images found; cannot build a dataset")
    return frame


def map_value_to_key(
    frame: pd.DataFrame,
    input_column: str = LABEL_COLUMN,
    output_column: str = LABEL_KEY_COLUMN,
) -> Tuple[pd.DataFrame, List[str]]:
    """Add a dense integer key column for ``input_column``.

    Keys follow the sorted label order, so the same set of labels always maps
    to the same keys. Returns the new frame and the key -> label list.
    """

    classes = sorted(frame[input_column].unique().tolist())
    mapping = {label: key for key, label in enumerate(classes)}
    keyed = frame.copy()
    keyed[output_column] = keyed[input_column].map(mapping).astype("int64")
    return keyed, classes


def load_raw_image_bytes(
    frame: pd.DataFrame,
    image_folder: Union[str, Path],
    input_column: str = IMAGE_PATH_COLUMN,
    output_column: str = IMAGE_COLUMN,
) -> pd.DataFrame:
    """Add a column with each file's raw bytes.

    Relative paths are resolved against ``image_folder``; absolute paths are
    used as they are.
    """

    image_folder = Path(image_folder)
    loaded = frame.copy()
    loaded[output_column] = [(image_folder / path).read_bytes() for path in loaded[input_column]]
    LOGGER.debug("Loaded raw bytes for %d images", len(loaded))
    return loaded


def shuffle_rows(frame: pd.DataFrame, seed: int) -> pd.DataFrame:
    return frame.sample(frac=1.0, random_state=seed).reset_index(drop=True)


def train_test_split_frame(
    frame: pd.DataFrame,
    test_fraction: float,
    seed: int,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Randomly split rows into ``(train, test)``.

    Raises :class:`DataError` when the input is empty or when either side of
    the split would be empty.
    """

    if not 0.0 < test_fraction < 1.0:
        raise ValueError(f"test_fraction must be between 0 and 1 (exclusive), got {test_fraction}")
    if frame.empty:
        raise DataError("Cannot split an empty dataset")
    try:
        train, test = train_test_split(frame, test_size=test_fraction, random_state=seed, shuffle=True)
    except ValueError as exc:
        raise DataError(
            f"Cannot split {len(frame)} rows with test_fraction={test_fraction}: {exc}"
        ) from exc
    if train.empty or test.empty:
        raise DataError(f"Split of {len(frame)} rows produced an empty partition")
    return train.reset_index(drop=True), test.reset_index(drop=True)


def frame_schema(frame: pd.DataFrame) -> Dict[str, str]:
    return {str(column): str(dtype) for column, dtype in frame.dtypes.items()}


class EncodedImageDataset(Dataset):
    """Decodes the raw-bytes column of a preprocessed frame on access."""

    def __init__(
        self,
        frame: pd.DataFrame,
        transform: Callable[[Image.Image], torch.Tensor],
        feature_column: str = IMAGE_COLUMN,
        label_column: str = LABEL_KEY_COLUMN,
    ) -> None:
        self.images = frame[feature_column].tolist()
        self.labels = frame[label_column].astype("int64").tolist()
        self.transform = transform

    def __len__(self) -> int:
        return len(self.images)

    def __getitem__(self, idx: int):
        return decode_image(self.images[idx], self.transform), self.labels[idx]


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

def create_backbone(
    arch: str = DEFAULT_ARCHITECTURE,
    pretrained: bool = True,
    **builder_kwargs: Any,
) -> nn.Module:
    """Return a frozen feature extractor for ``arch``.

    The ImageNet classifier is replaced with ``nn.Identity`` so the module
    outputs the pooled penultimate features. ``builder_kwargs`` go to the
    torchvision builder unchanged.
    """

    spec = get_architecture(arch)
    model = spec.builder(weights=spec.weights if pretrained else None, **builder_kwargs)
    setattr(model, spec.head_attr, nn.Identity())
    for param in model.parameters():
        param.requires_grad_(False)
    model.eval()
    return model


class ImageClassifier(nn.Module):
    """Frozen backbone followed by a trained linear head."""

    def __init__(
        self,
        backbone: nn.Module,
        head: nn.Linear,
        classes: Sequence[str],
        architecture: str,
        image_size: int,
    ) -> None:
        super().__init__()
        self.backbone = backbone
        self.head = head
        self.classes = list(classes)
        self.architecture = architecture
        self.image_size = int(image_size)

    def forward(self, images: torch.Tensor) -> torch.Tensor:
        features = torch.flatten(self.backbone(images), 1)
        return self.head(features)


# ---------------------------------------------------------------------------
# Bottleneck values
# ---------------------------------------------------------------------------

def bottleneck_cache_key(backbone: nn.Module, arch: str, image_size: int, pretrained: bool) -> str:
    """Identify the feature extractor a bottleneck cache was computed with."""

    digest = hashlib.sha1(repr(backbone).encode("utf-8")).hexdigest()[:16]
    weights = "imagenet" if pretrained else "random"
    return f"{arch}:{image_size}:{weights}:{digest}"


def compute_bottlenecks(
    backbone: nn.Module,
    frame: pd.DataFrame,
    transform: Callable[[Image.Image], torch.Tensor],
    device: torch.device,
    batch_size: int = 10,
    feature_column: str = IMAGE_COLUMN,
    label_column: str = LABEL_KEY_COLUMN,
    cache_path: Optional[Path] = None,
    reuse: bool = False,
    cache_key: str = "",
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Run every image once through the frozen backbone.

    Results are written to ``cache_path`` when given, tagged with
    ``cache_key``. With ``reuse`` an existing cache is loaded instead,
    provided it carries the same key and was built from the same image paths
    and label keys.
    """

    if frame.empty:
        raise DataError("No images to compute bottleneck values for")

    paths = np.array(frame[IMAGE_PATH_COLUMN].astype(str).tolist())
    labels = frame[label_column].to_numpy(dtype=np.int64)

    if reuse and cache_path is not None and cache_path.exists():
        with np.load(cache_path) as cached:
            cached_key = str(cached["key"]) if "key" in cached.files else None
            if (
                cached_key == cache_key
                and np.array_equal(cached["paths"], paths)
                and np.array_equal(cached["labels"], labels)
            ):
                LOGGER.info("Reusing cached bottleneck values from %s", cache_path)
                return torch.from_numpy(cached["features"]), torch.from_numpy(labels)
        LOGGER.info("Bottleneck cache %s does not match the dataset or backbone; recomputing", cache_path)

    dataset = EncodedImageDataset(frame, transform, feature_column, label_column)
    loader = DataLoader(dataset, batch_size=batch_size, shuffle=False)

    backbone.eval()
    chunks: List[torch.Tensor] = []
    processed = 0
    with torch.no_grad():
        for inputs, _labels in loader:
            outputs = backbone(inputs.to(device))
            chunks.append(torch.flatten(outputs, 1).float().cpu())
            processed += len(inputs)
            LOGGER.debug("Bottleneck values computed for %d/%d images", processed, len(dataset))

    features = torch.cat(chunks)
    if cache_path is not None:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        np.savez(
            cache_path,
            features=features.numpy(),
            labels=labels,
            paths=paths,
            key=np.array(cache_key),
        )
        LOGGER.info("Cached %d bottleneck values at %s", len(features), cache_path)
    return features, torch.from_numpy(labels)


# ---------------------------------------------------------------------------
# Training loop
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrainingMetrics:
    """Snapshot passed to the metrics callback after every epoch."""

    dataset: str  # "Train" | "Validation"
    epoch: int
    accuracy: float
    cross_entropy: float
    learning_rate: float
    phase: str = "Training"

    def __str__(self) -> str:
        return (
            f"Phase: {self.phase}, Dataset: {self.dataset}, Epoch: {self.epoch}, "
            f"Accuracy: {self.accuracy:.4f}, Cross-Entropy: {self.cross_entropy:.4f}, "
            f"Learning Rate: {self.learning_rate:.6f}"
        )


MetricsCallback = Callable[[TrainingMetrics], None]


def log_metrics(metrics: TrainingMetrics) -> None:
    LOGGER.info("%s", metrics)


def evaluate_head(
    head: nn.Module,
    features: torch.Tensor,
    labels: torch.Tensor,
    criterion: nn.Module,
    device: torch.device,
    batch_size: int,
) -> Tuple[float, float]:
    """Return ``(mean loss, accuracy)`` of ``head`` on cached features."""

    head.eval()
    total_loss = 0.0
    correct = 0
    loader = DataLoader(TensorDataset(features, labels), batch_size=batch_size, shuffle=False)
    with torch.no_grad():
        for batch_features, batch_labels in loader:
            batch_features = batch_features.to(device)
            batch_labels = batch_labels.to(device)
            outputs = head(batch_features)
            total_loss += criterion(outputs, batch_labels).item() * len(batch_labels)
            correct += int((outputs.argmax(dim=1) == batch_labels).sum().item())
    count = len(labels)
    return total_loss / count, correct / count


def fit_classifier(
    train_set: pd.DataFrame,
    validation_set: Optional[pd.DataFrame],
    config: TrainingConfig,
    classes: Sequence[str],
    backbone: Optional[nn.Module] = None,
    metrics_callback: MetricsCallback = log_metrics,
) -> Tuple[ImageClassifier, Dict[str, List[float]]]:
    """Train a linear head on bottleneck features of a frozen backbone.

    ``backbone`` defaults to the pretrained network named by ``config.arch``.
    Early stopping watches validation accuracy (train accuracy when there is
    no validation set) and the best head weights are restored at the end.
    """

    set_seed(config.seed)
    device = resolve_device(config.device)
    LOGGER.info("Using device: %s", device)

    spec = get_architecture(config.arch)
    image_size = config.image_size or spec.input_size
    if backbone is None:
        backbone = create_backbone(config.arch, pretrained=config.pretrained)
    backbone = backbone.to(device)
    transform = build_transform(image_size)
    cache_key = bottleneck_cache_key(backbone, config.arch, image_size, config.pretrained)

    LOGGER.info("Computing bottleneck values for %d training images", len(train_set))
    train_features, train_labels = compute_bottlenecks(
        backbone,
        train_set,
        transform,
        device,
        batch_size=config.batch_size,
        feature_column=config.feature_column,
        label_column=config.label_column,
        cache_path=config.workspace_dir / TRAIN_BOTTLENECK_CACHE,
        reuse=config.reuse_train_bottleneck,
        cache_key=cache_key,
    )
    val_features: Optional[torch.Tensor] = None
    val_labels: Optional[torch.Tensor] = None
    if validation_set is not None and not validation_set.empty:
        LOGGER.info("Computing bottleneck values for %d validation images", len(validation_set))
        val_features, val_labels = compute_bottlenecks(
            backbone,
            validation_set,
            transform,
            device,
            batch_size=config.batch_size,
            feature_column=config.feature_column,
            label_column=config.label_column,
            cache_path=config.workspace_dir / VALIDATION_BOTTLENECK_CACHE,
            reuse=config.reuse_validation_bottleneck,
            cache_key=cache_key,
        )

    head = nn.Linear(train_features.shape[1], len(classes)).to(device)
    criterion = nn.CrossEntropyLoss()
    optimizer = optim.SGD(head.parameters(), lr=config.learning_rate)
    scheduler = optim.lr_scheduler.StepLR(
        optimizer, step_size=config.lr_decay_epochs, gamma=config.lr_decay_factor
    )
    generator = torch.Generator().manual_seed(config.seed)
    train_loader = DataLoader(
        TensorDataset(train_features, train_labels),
        batch_size=config.batch_size,
        shuffle=True,
        generator=generator,
    )

    history: Dict[str, List[float]] = {
        "train_loss": [],
        "val_loss": [],
        "train_acc": [],
        "val_acc": [],
    }
    best_state = copy.deepcopy(head.state_dict())
    best_score = -math.inf
    patience_counter = 0

    for epoch in range(config.epochs):
        learning_rate = optimizer.param_groups[0]["lr"]
        head.train()
        total_loss = 0.0
        correct = 0
        seen = 0
        for features, labels in train_loader:
            features = features.to(device)
            labels = labels.to(device)
            optimizer.zero_grad()
            outputs = head(features)
            loss = criterion(outputs, labels)
            loss.backward()
            optimizer.step()
            total_loss += loss.item() * len(labels)
            correct += int((outputs.argmax(dim=1) == labels).sum().item())
            seen += len(labels)

        if config.test_on_train_set:
            train_loss, train_acc = evaluate_head(
                head, train_features, train_labels, criterion, device, config.batch_size
            )
        else:
            train_loss, train_acc = total_loss / seen, correct / seen
        metrics_callback(TrainingMetrics("Train", epoch, train_acc, train_loss, learning_rate))
        history["train_loss"].append(train_loss)
        history["train_acc"].append(train_acc)
        score = train_acc

        if val_features is not None and val_labels is not None:
            val_loss, val_acc = evaluate_head(
                head, val_features, val_labels, criterion, device, config.batch_size
            )
            metrics_callback(TrainingMetrics("Validation", epoch, val_acc, val_loss, learning_rate))
            history["val_loss"].append(val_loss)
            history["val_acc"].append(val_acc)
            score = val_acc

        scheduler.step()

        if score > best_score + config.early_stopping_min_delta:
            best_score = score
            best_state = copy.deepcopy(head.state_dict())
            patience_counter = 0
        else:
            patience_counter += 1
            if patience_counter >= config.early_stopping_patience:
                LOGGER.info("Early stopping triggered at epoch %d", epoch + 1)
                break

    head.load_state_dict(best_state)
    model = ImageClassifier(backbone, head, classes, config.arch, image_size)
    model.eval()
    return model, history


# ---------------------------------------------------------------------------
# Evaluation helpers and plots
# ---------------------------------------------------------------------------

def evaluate_model(
    model: ImageClassifier,
    frame: pd.DataFrame,
    device: torch.device,
    batch_size: int = 10,
) -> Tuple[Dict[str, float], np.ndarray, np.ndarray]:
    """Score ``model`` on a preprocessed frame (macro-averaged metrics)."""

    model.eval()
    dataset = EncodedImageDataset(frame, build_transform(model.image_size))
    loader = DataLoader(dataset, batch_size=batch_size, shuffle=False)
    y_true: List[int] = []
    y_pred: List[int] = []
    with torch.no_grad():
        for inputs, labels in loader:
            outputs = model(inputs.to(device))
            y_true.extend(labels.numpy().tolist())
            y_pred.extend(outputs.argmax(dim=1).cpu().numpy().tolist())

    precision, recall, f1, _ = precision_recall_fscore_support(
        y_true,
        y_pred,
        labels=list(range(len(model.classes))),
        average="macro",
        zero_division=0,
    )
    metrics = {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "precision": float(precision),
        "recall": float(recall),
        "f1": float(f1),
        "num_images": float(len(y_true)),
    }
    return metrics, np.array(y_true), np.array(y_pred)


def plot_training_curves(history: Dict[str, List[float]], output_path: Path, title: str) -> None:
    epochs = range(1, len(history["train_loss"]) + 1)
    plt.figure(figsize=(10, 4))
    plt.subplot(1, 2, 1)
    plt.plot(epochs, history["train_loss"], label="Train")
    if history["val_loss"]:
        plt.plot(epochs, history["val_loss"], label="Validation")
    plt.title(f"Cross-Entropy - {title}")
    plt.xlabel("Epoch")
    plt.ylabel("Loss")
    plt.legend()

    plt.subplot(1, 2, 2)
    plt.plot(epochs, history["train_acc"], label="Train")
    if history["val_acc"]:
        plt.plot(epochs, history["val_acc"], label="Validation")
    plt.title(f"Accuracy - {title}")
    plt.xlabel("Epoch")
    plt.ylabel("Accuracy")
    plt.legend()
    plt.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=200)
    plt.close()


def plot_confusion_matrix(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    class_names: Sequence[str],
    output_path: Path,
    arch: str = "",
) -> np.ndarray:
    """Plot the test-set confusion matrix normalized per actual label.

    Each row is divided by the number of test images carrying that label, so
    the diagonal reads as per-class recall; cells also show the raw count.
    Labels absent from the test set give an all-zero row. Returns the
    normalized matrix.
    """

    counts = confusion_matrix(y_true, y_pred, labels=list(range(len(class_names))))
    totals = counts.sum(axis=1, keepdims=True)
    recall = np.divide(counts, totals, out=np.zeros(counts.shape), where=totals > 0)

    fig, ax = plt.subplots(figsize=(4.5, 4))
    image = ax.imshow(recall, cmap="Blues", vmin=0.0, vmax=1.0)
    fig.colorbar(image, ax=ax, label="Share of actual label")
    ticks = np.arange(len(class_names))
    ax.set_xticks(ticks)
    ax.set_xticklabels(class_names, rotation=45)
    ax.set_yticks(ticks)
    ax.set_yticklabels(class_names)
    for i, j in np.ndindex(counts.shape):
        ax.text(
            j,
            i,
            f"{counts[i, j]}\n{recall[i, j]:.0%}",
            ha="center",
            va="center",
            color="white" if recall[i, j] > 0.5 else "black",
        )

    ax.set_title(f"Crack detection - {arch}" if arch else "Crack detection")
    ax.set_ylabel("Actual label")
    ax.set_xlabel("Predicted label")
    fig.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=200)
    plt.close(fig)
    return recall


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def save_model(model: ImageClassifier, schema: Mapping[str, str], path: Union[str, Path]) -> Path:
    """Write the model, its class names and the input schema to ``path``."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # The inception_v3 builder turns input re-normalization on only when it
    # loads ImageNet weights; a reload without weights must restore it.
    backbone_options: Dict[str, bool] = {}
    if hasattr(model.backbone, "transform_input"):
        backbone_options["transform_input"] = bool(model.backbone.transform_input)
    torch.save(
        {
            "architecture": model.architecture,
            "classes": list(model.classes),
            "image_size": model.image_size,
            "schema": dict(schema),
            "backbone_options": backbone_options,
            "state_dict": model.state_dict(),
        },
        path,
    )
    return path


def load_model(
    path: Union[str, Path],
    backbone: Optional[nn.Module] = None,
    device: Union[str, torch.device, None] = None,
) -> ImageClassifier:
    """Rebuild an :class:`ImageClassifier` saved by :func:`save_model`."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    checkpoint = torch.load(path, map_location="cpu", weights_only=True)
    state_dict = checkpoint["state_dict"]
    if backbone is None:
        backbone = create_backbone(
            checkpoint["architecture"],
            pretrained=False,
            **checkpoint.get("backbone_options", {}),
        )
    num_classes, num_features = state_dict["head.weight"].shape
    model = ImageClassifier(
        backbone,
        nn.Linear(num_features, num_classes),
        checkpoint["classes"],
        checkpoint["architecture"],
        checkpoint["image_size"],
    )
    model.load_state_dict(state_dict)
    model.to(resolve_device(device or "cpu"))
    model.eval()
    return model
