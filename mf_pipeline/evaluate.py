"""
Model Evaluation Module

Provides rating-accuracy metrics for a trained model:
- RMSE (Root Mean Squared Error)
- MAE (Mean Absolute Error)
- Cold-start coverage
- Inference time
"""

import time
from typing import Dict, Sequence, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .data_io import RatingRecord
from .predict import PredictionService


def _predictions(service: PredictionService,
                 records: Sequence[RatingRecord]) -> Tuple[np.ndarray, np.ndarray, int]:
    """Predicted and actual ratings; cold-start pairs get the baseline."""
    predictions = np.empty(len(records), dtype=np.float64)
    actuals = np.empty(len(records), dtype=np.float64)
    n_cold = 0
    for idx, record in enumerate(records):
        if service.model.is_known_user(record.user_id) and service.model.is_known_item(record.item_id):
            predictions[idx] = service.predict(record.user_id, record.item_id)
        else:
            predictions[idx] = service.baseline()
            n_cold += 1
        actuals[idx] = record.rating
    return predictions, actuals, n_cold


def evaluate_rmse(service: PredictionService, records: Sequence[RatingRecord]) -> float:
    """
    Calculate Root Mean Squared Error on held-out records.

    Metric: How accurately the model predicts ratings
    Operationalization: RMSE = sqrt(mean((predicted - actual)^2))

    Returns:
        RMSE value (lower is better), NaN for an empty sequence

    Example:
        >>> rmse = evaluate_rmse(service, test_records)
        >>> print(f"RMSE: {rmse:.4f}")
        RMSE: 0.9312
    """
    if len(records) == 0:
        return float("nan")
    predictions, actuals, _ = _predictions(service, records)
    return float(np.sqrt(mean_squared_error(actuals, predictions)))


def evaluate_mae(service: PredictionService, records: Sequence[RatingRecord]) -> float:
    """Mean absolute error on held-out records (NaN for an empty sequence)."""
    if len(records) == 0:
        return float("nan")
    predictions, actuals, _ = _predictions(service, records)
    return float(mean_absolute_error(actuals, predictions))


def measure_inference_time(service: PredictionService, records: Sequence[RatingRecord],
                           n_samples: int = 100) -> float:
    """Average milliseconds per predict_or_baseline call over the first n_samples records."""
    sample = list(records[:n_samples])
    if not sample:
        return 0.0
    start = time.perf_counter()
    for record in sample:
        service.predict_or_baseline(record.user_id, record.item_id)
    return (time.perf_counter() - start) * 1000 / len(sample)


def generate_evaluation_report(service: PredictionService,
                               records: Sequence[RatingRecord]) -> Dict:
    """
    Compute all evaluation metrics in one pass.

    Returns:
        Dict with rmse, mae, n_records, cold_start_rate, inference_ms
    """
    if len(records) == 0:
        return {"rmse": float("nan"), "mae": float("nan"), "n_records": 0,
                "cold_start_rate": 0.0, "inference_ms": 0.0}

    predictions, actuals, n_cold = _predictions(service, records)
    return {
        "rmse": float(np.sqrt(mean_squared_error(actuals, predictions))),
        "mae": float(mean_absolute_error(actuals, predictions)),
        "n_records": len(records),
        "cold_start_rate": n_cold / len(records),
        "inference_ms": measure_inference_time(service, records),
    }
