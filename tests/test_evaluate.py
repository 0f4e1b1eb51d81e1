"""
Tests for mf_pipeline.evaluate module
"""

import math

import pytest

from mf_pipeline import evaluate
from mf_pipeline.data_io import RatingRecord
from mf_pipeline.model import LatentFactorModel
from mf_pipeline.predict import PredictionService


@pytest.fixture
def constant_service():
    """Predicts 3.0 for every known pair; users/items 1 and 2 are known."""
    model = LatentFactorModel(n_users=3, n_items=3, n_factors=2, init_std=0.0)
    model.global_mean = 3.0
    model.global_bias = 3.0
    model.mark_seen(1, 1)
    model.mark_seen(2, 2)
    return PredictionService(model)


class TestMetrics:

    def test_rmse(self, constant_service):
        records = [RatingRecord(1, 1, 5.0), RatingRecord(2, 2, 1.0)]
        assert evaluate.evaluate_rmse(constant_service, records) == pytest.approx(2.0)

    def test_mae(self, constant_service):
        records = [RatingRecord(1, 1, 4.0), RatingRecord(2, 2, 1.0)]
        assert evaluate.evaluate_mae(constant_service, records) == pytest.approx(1.5)

    def test_empty_records_give_nan(self, constant_service):
        assert math.isnan(evaluate.evaluate_rmse(constant_service, []))
        assert math.isnan(evaluate.evaluate_mae(constant_service, []))

    def test_cold_start_pairs_use_baseline(self, constant_service):
        constant_service.model.item_bias[1] = 1.0
        records = [RatingRecord(0, 1, 3.0), RatingRecord(1, 1, 4.0)]
        # (0, 1) is cold and scores the 3.0 baseline; (1, 1) scores 4.0
        assert evaluate.evaluate_rmse(constant_service, records) == pytest.approx(0.0)


class TestEvaluationReport:

    def test_report_fields(self, constant_service):
        records = [RatingRecord(1, 1, 5.0), RatingRecord(2, 2, 1.0), RatingRecord(0, 0, 3.0)]
        report = evaluate.generate_evaluation_report(constant_service, records)

        assert report["n_records"] == 3
        assert report["cold_start_rate"] == pytest.approx(1 / 3)
        assert report["rmse"] == pytest.approx(math.sqrt(8 / 3))
        assert report["mae"] == pytest.approx(4 / 3)
        assert report["inference_ms"] >= 0.0

    def test_empty_report(self, constant_service):
        report = evaluate.generate_evaluation_report(constant_service, [])
        assert report["n_records"] == 0
        assert math.isnan(report["rmse"])

    def test_trained_model_beats_constant_baseline(self, planted_service, planted_records):
        rmse = evaluate.evaluate_rmse(planted_service, planted_records)
        assert rmse < 2.0
