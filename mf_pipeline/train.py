"""
Model Training Module

Runs SGD training of a LatentFactorModel over rating records, reporting
per-epoch losses through an optional progress callback.
"""

import logging
import math
import time
from dataclasses import dataclass, field, fields
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from . import config as pipeline_config
from .data_io import RatingRecord
from .errors import DivergenceError, IndexOutOfRange, TrainingInProgressError
from .model import LatentFactorModel, ModelConfig

logger = logging.getLogger(__name__)


@dataclass
class TrainingConfig:
    """Optimizer hyperparameters and loop settings."""
    epochs: int = 20
    batch_size: int = 64
    learning_rate: float = 0.01
    l2_penalty: float = 0.02
    validation_fraction: float = 0.0
    shuffle_each_epoch: bool = True
    seed: Optional[int] = 42
    center_ratings: bool = True
    patience: Optional[int] = None

    def __post_init__(self):
        if self.epochs < 1:
            raise ValueError(f"epochs must be positive, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if not self.learning_rate > 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.l2_penalty < 0:
            raise ValueError(f"l2_penalty must be non-negative, got {self.l2_penalty}")
        if not 0 <= self.validation_fraction < 1:
            raise ValueError(f"validation_fraction must be in [0, 1), got {self.validation_fraction}")
        if self.patience is not None and self.patience < 1:
            raise ValueError(f"patience must be positive, got {self.patience}")

    @classmethod
    def from_dict(cls, config: Dict) -> "TrainingConfig":
        names = [f.name for f in fields(cls)]
        return cls(**{name: config[name] for name in names if name in config})


@dataclass
class EpochResult:
    epoch_index: int  # 1-based
    train_loss: float  # MSE over the training slice
    validation_loss: Optional[float]  # None when nothing is held out
    epoch_time: float = 0.0


@dataclass
class TrainingReport:
    epochs_run: int = 0
    cancelled: bool = False
    stopped_early: bool = False
    n_train: int = 0
    n_validation: int = 0
    history: List[EpochResult] = field(default_factory=list)
    training_time_sec: float = 0.0

    @property
    def final_train_loss(self) -> Optional[float]:
        return self.history[-1].train_loss if self.history else None

    @property
    def final_validation_loss(self) -> Optional[float]:
        return self.history[-1].validation_loss if self.history else None

    def loss_curve(self) -> List[Tuple[float, Optional[float]]]:
        return [(r.train_loss, r.validation_loss) for r in self.history]


ProgressCallback = Callable[[EpochResult], Optional[bool]]


def split_train_validation(n_records: int, validation_fraction: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split record positions into training and held-out slices.

    The held-out slice is the tail of the sequence, so the split is stable
    across epochs and independent of shuffling. At least one record is
    always kept for training.

    Returns:
        Tuple of (train_positions, validation_positions)
    """
    n_validation = int(round(n_records * validation_fraction))
    n_validation = min(n_validation, max(n_records - 1, 0))
    split_idx = n_records - n_validation
    return np.arange(split_idx), np.arange(split_idx, n_records)


def evaluate_mse(model: LatentFactorModel, users: np.ndarray, items: np.ndarray,
                 ratings: np.ndarray) -> Optional[float]:
    """Mean squared error of raw scores, no updates. None for empty input."""
    if len(ratings) == 0:
        return None
    total = 0.0
    for u, i, r in zip(users, items, ratings):
        error = r - model.score(int(u), int(i))
        total += error * error
    return total / len(ratings)


def train(model: LatentFactorModel,
          records: Sequence[RatingRecord],
          config: Optional[TrainingConfig] = None,
          progress_callback: Optional[ProgressCallback] = None) -> TrainingReport:
    """
    Train a model in place with stochastic gradient descent.

    Steps per epoch:
    1. Optionally reshuffle the training positions (the input is never mutated)
    2. Walk batches of `batch_size`, applying one gradient step per record
    3. Score the held-out slice without updates
    4. Report an EpochResult to `progress_callback`; a truthy return cancels

    Args:
        model: Model to update; must be sized to cover every id in `records`
        records: Rating records (training slice first, held-out tail last)
        config: Training hyperparameters (defaults from config.TRAINING_CONFIG)
        progress_callback: Called once per epoch boundary; must not call
            train() on the same model

    Returns:
        TrainingReport. Cancelled or early-stopped runs keep their partial updates.

    Raises:
        DivergenceError: As soon as a squared error becomes non-finite
        IndexOutOfRange: If a record id does not fit the model tables
        TrainingInProgressError: If the model is already being trained
    """
    if config is None:
        config = TrainingConfig.from_dict(pipeline_config.TRAINING_CONFIG)
    if len(records) == 0:
        raise ValueError("Cannot train on an empty record sequence")

    with model.lock:
        if model.training:
            raise TrainingInProgressError("Model is already being trained")
        model.training = True
        try:
            with np.errstate(over="ignore", invalid="ignore"):
                return _run_session(model, records, config, progress_callback)
        finally:
            model.training = False


def _run_session(model: LatentFactorModel,
                 records: Sequence[RatingRecord],
                 config: TrainingConfig,
                 progress_callback: Optional[ProgressCallback]) -> TrainingReport:
    users = np.array([r.user_id for r in records], dtype=np.int64)
    items = np.array([r.item_id for r in records], dtype=np.int64)
    ratings = np.array([r.rating for r in records], dtype=np.float64)

    if users.min() < 0 or users.max() >= model.n_users:
        bad = int(users[(users < 0) | (users >= model.n_users)][0])
        raise IndexOutOfRange("user", bad, model.n_users)
    if items.min() < 0 or items.max() >= model.n_items:
        bad = int(items[(items < 0) | (items >= model.n_items)][0])
        raise IndexOutOfRange("item", bad, model.n_items)

    train_pos, val_pos = split_train_validation(len(records), config.validation_fraction)
    n_train = len(train_pos)

    if model.epochs_trained == 0:
        model.global_mean = float(ratings[train_pos].mean())
        if config.center_ratings and model.use_bias:
            model.global_bias = model.global_mean

    model.user_seen[users[train_pos]] = True
    model.item_seen[items[train_pos]] = True

    logger.info(f"Training setup: {n_train} train / {len(val_pos)} validation records, "
                f"{model.n_factors} factors, {config.epochs} epochs, "
                f"lr={config.learning_rate}, l2={config.l2_penalty}")

    report = TrainingReport(n_train=n_train, n_validation=len(val_pos))
    rng = np.random.default_rng(config.seed)
    order = train_pos
    best_val = math.inf
    epochs_without_improvement = 0
    start_time = time.time()

    for epoch in range(1, config.epochs + 1):
        epoch_start = time.time()
        if config.shuffle_each_epoch:
            order = rng.permutation(train_pos)

        epoch_loss = 0.0
        for batch_start in range(0, n_train, config.batch_size):
            for pos in order[batch_start:batch_start + config.batch_size]:
                squared_error = model.gradient_step(
                    int(users[pos]), int(items[pos]), float(ratings[pos]),
                    config.learning_rate, config.l2_penalty,
                )
                if not math.isfinite(squared_error):
                    raise DivergenceError(epoch, squared_error)
                epoch_loss += squared_error

        train_loss = epoch_loss / n_train
        if not math.isfinite(train_loss):
            raise DivergenceError(epoch, train_loss)

        val_loss = evaluate_mse(model, users[val_pos], items[val_pos], ratings[val_pos])
        model.epochs_trained += 1

        result = EpochResult(
            epoch_index=epoch,
            train_loss=train_loss,
            validation_loss=val_loss,
            epoch_time=time.time() - epoch_start,
        )
        report.history.append(result)

        val_text = f"{val_loss:.4f}" if val_loss is not None else "n/a"
        logger.info(f"Epoch {epoch:2d}/{config.epochs}: Train MSE: {train_loss:.4f}, "
                    f"Val MSE: {val_text} ({result.epoch_time:.2f}s)")

        if progress_callback is not None and progress_callback(result):
            report.cancelled = True
            logger.info(f"Training cancelled by caller after epoch {epoch}")
            break

        if config.patience is not None and val_loss is not None:
            if val_loss < best_val:
                best_val = val_loss
                epochs_without_improvement = 0
            else:
                epochs_without_improvement += 1
                if epochs_without_improvement >= config.patience:
                    report.stopped_early = True
                    logger.info(f"Early stopping: no validation improvement for {config.patience} epochs")
                    break

    report.epochs_run = len(report.history)
    report.training_time_sec = time.time() - start_time
    logger.info(f"Training completed in {report.training_time_sec:.2f} seconds "
                f"({report.epochs_run} epochs)")
    return report


def train_model(records: Sequence[RatingRecord],
                n_users: int,
                n_items: int,
                model_config: Dict,
                training_config: Dict,
                progress_callback: Optional[ProgressCallback] = None) -> Tuple[LatentFactorModel, TrainingReport]:
    """
    Build a fresh model sized to the data and train it.

    Example:
        >>> model, report = train_model(store.records, store.user_count(), store.item_count(),
        ...                             config.MODEL_CONFIG, config.TRAINING_CONFIG)
        >>> print(report.epochs_run)
        20
    """
    model = LatentFactorModel.from_config(n_users, n_items, ModelConfig.from_dict(model_config))
    report = train(model, records, TrainingConfig.from_dict(training_config), progress_callback)
    return model, report
