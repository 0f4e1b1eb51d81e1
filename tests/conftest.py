"""
Pytest configuration and shared fixtures

This file contains fixtures that are available to all test files.
"""

import pytest

from mf_pipeline.data_io import RatingRecord
from mf_pipeline.model import LatentFactorModel
from mf_pipeline.predict import PredictionService
from mf_pipeline.train import TrainingConfig, train

# ---------------------------------------------------
# Record fixtures
# ---------------------------------------------------

@pytest.fixture
def planted_records():
    """
    Two users with opposite tastes over two items (ids start at 1).

    User 1 loves item 1 and hates item 2; user 2 the reverse.
    """
    return [
        RatingRecord(1, 1, 5.0),
        RatingRecord(1, 2, 1.0),
        RatingRecord(2, 1, 1.0),
        RatingRecord(2, 2, 5.0),
    ]


@pytest.fixture
def small_records():
    """Hand-built 4 users x 4 items, 8 ratings (0-based ids)."""
    return [
        RatingRecord(0, 0, 5.0),
        RatingRecord(0, 1, 3.0),
        RatingRecord(1, 1, 4.0),
        RatingRecord(1, 2, 1.0),
        RatingRecord(2, 2, 2.0),
        RatingRecord(2, 3, 5.0),
        RatingRecord(3, 3, 4.0),
        RatingRecord(3, 0, 1.0),
    ]


@pytest.fixture
def ratings_text():
    """Raw rating lines per delimiter format, 3 lines each with timestamps."""
    rows = [(1, 10, 4.0, 881250949), (2, 20, 3.5, 891717742), (3, 10, 1.0, 878887116)]
    delimiters = {"pipe": "|", "tab": "\t", "double_colon": "::", "comma": ","}
    return {
        fmt: "\n".join(d.join(str(v) for v in row) for row in rows)
        for fmt, d in delimiters.items()
    }, rows

# ---------------------------------------------------
# Model fixtures
# ---------------------------------------------------

@pytest.fixture
def planted_training_config():
    return TrainingConfig(
        epochs=200,
        batch_size=2,
        learning_rate=0.1,
        l2_penalty=0.01,
        validation_fraction=0.0,
        seed=7,
    )


@pytest.fixture
def trained_planted_model(planted_records, planted_training_config):
    """Model fitted on the planted preference pattern."""
    model = LatentFactorModel(n_users=3, n_items=3, n_factors=2, seed=7)
    train(model, planted_records, planted_training_config)
    return model


@pytest.fixture
def planted_service(trained_planted_model):
    return PredictionService(trained_planted_model, min_rating=0.5, max_rating=5.0)
