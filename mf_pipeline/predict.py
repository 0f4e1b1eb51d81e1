"""
Prediction Service

Turns raw model scores into human-consumable ratings:
- Optional logistic squash into the rating range
- Clamping to [min_rating, max_rating]
- Cold-start detection and global-mean fallback
- Top-N recommendations for a known user
"""

import logging
import math
from typing import List, Optional, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.special import expit

from . import config
from .errors import UnknownEntity
from .feature_engineering import calculate_popular_items, user_rated_items
from .model import LatentFactorModel

logger = logging.getLogger(__name__)


class PredictionService:
    """
    Read-only view of a trained model.

    Calls take the model lock, so they never interleave with a training
    epoch on the same model.
    """

    def __init__(self, model: LatentFactorModel,
                 min_rating: float = config.PREDICTION_CONFIG["min_rating"],
                 max_rating: float = config.PREDICTION_CONFIG["max_rating"],
                 rating_matrix: Optional[csr_matrix] = None):
        """
        Args:
            model: Trained model (shared, never mutated here)
            min_rating: Lower bound of reported ratings
            max_rating: Upper bound of reported ratings
            rating_matrix: Training ratings, used to exclude seen items and
                rank popular items
        """
        if min_rating >= max_rating:
            raise ValueError(f"min_rating ({min_rating}) must be below max_rating ({max_rating})")
        self.model = model
        self.min_rating = min_rating
        self.max_rating = max_rating
        self.rating_matrix = rating_matrix

    def squash(self, score: float) -> float:
        """Logistic map of a raw score into the rating range, slope 1 at the midpoint."""
        span = self.max_rating - self.min_rating
        midpoint = (self.min_rating + self.max_rating) / 2
        return self.min_rating + span * float(expit((score - midpoint) / (span / 4)))

    def to_rating(self, score: float) -> float:
        """Map a raw score to a reported rating."""
        if math.isnan(score):
            return self.baseline()
        if self.model.squash_output:
            score = self.squash(score)
        return float(np.clip(score, self.min_rating, self.max_rating))

    def baseline(self) -> float:
        """Global-mean rating used as the cold-start fallback."""
        mean = self.model.global_mean
        if mean is None:
            mean = (self.min_rating + self.max_rating) / 2
        return float(np.clip(mean, self.min_rating, self.max_rating))

    def _require_known(self, user_id: int, item_id: Optional[int] = None) -> None:
        if not self.model.is_known_user(user_id):
            raise UnknownEntity("user", user_id)
        if item_id is not None and not self.model.is_known_item(item_id):
            raise UnknownEntity("item", item_id)

    def predict(self, user_id: int, item_id: int) -> float:
        """
        Predict a rating for a single user-item pair.

        Returns:
            Rating clamped to [min_rating, max_rating]

        Raises:
            UnknownEntity: If the user or item was never seen in training
        """
        with self.model.lock:
            self._require_known(user_id, item_id)
            score = self.model.score(user_id, item_id)
        return self.to_rating(score)

    def predict_or_baseline(self, user_id: int, item_id: int) -> float:
        """Predict a rating, falling back to the global mean on cold start."""
        try:
            return self.predict(user_id, item_id)
        except UnknownEntity as e:
            logger.debug(f"Cold start, using baseline: {e}")
            return self.baseline()

    def recommend(self, user_id: int, n_recommendations: int = config.PREDICTION_CONFIG["n_recommendations"],
                  exclude_seen: bool = True) -> List[Tuple[int, float]]:
        """
        Top-N items for a known user.

        Args:
            user_id: User identifier
            n_recommendations: Number of items to return
            exclude_seen: Skip items the user already rated (needs rating_matrix)

        Returns:
            List of (item_id, predicted_rating) sorted by rating, descending

        Raises:
            UnknownEntity: If the user was never seen in training
        """
        with self.model.lock:
            self._require_known(user_id)
            scores = self.model.score_items(user_id).astype(np.float64)
            candidates = self.model.item_seen.copy()

        if exclude_seen and self.rating_matrix is not None:
            rated = user_rated_items(self.rating_matrix, user_id)
            candidates[rated[rated < len(candidates)]] = False

        item_ids = np.flatnonzero(candidates)
        order = np.argsort(-scores[item_ids], kind="stable")[:max(n_recommendations, 0)]
        return [(int(item_ids[idx]), self.to_rating(float(scores[item_ids[idx]]))) for idx in order]

    def popular_items(self, n_items: int = 50,
                      min_ratings: int = config.PREDICTION_CONFIG["min_ratings_for_popular"]) -> List[int]:
        """Most-rated items, for cold-start lists. Empty without a rating matrix."""
        if self.rating_matrix is None:
            return []
        return calculate_popular_items(self.rating_matrix, n_top=n_items, min_ratings=min_ratings)
