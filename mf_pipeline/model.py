"""
Latent Factor Recommendation Model

Biased matrix factorization trained with stochastic gradient descent.

Prediction formula: r_ui = μ + b_u + b_i + q_i^T * p_u

Where:
- μ = global bias (mean training rating)
- b_u = user bias
- b_i = item bias
- q_i = item latent factors
- p_u = user latent factors
"""

import threading
from dataclasses import dataclass, asdict
from typing import Dict, Optional

import numpy as np

from .errors import IndexOutOfRange


@dataclass
class ModelConfig:
    """Model variant settings: latent dimension, bias toggle, output squash."""
    n_factors: int = 20
    use_bias: bool = True
    squash_output: bool = False
    init_std: float = 0.1
    seed: Optional[int] = 42

    def __post_init__(self):
        if self.n_factors < 1:
            raise ValueError(f"n_factors must be positive, got {self.n_factors}")
        if self.init_std < 0:
            raise ValueError(f"init_std must be non-negative, got {self.init_std}")

    @classmethod
    def from_dict(cls, config: Dict) -> "ModelConfig":
        return cls(
            n_factors=config.get("n_factors", 20),
            use_bias=config.get("use_bias", True),
            squash_output=config.get("squash_output", False),
            init_std=config.get("init_std", 0.1),
            seed=config.get("seed", 42),
        )


class LatentFactorModel:
    """
    Per-user and per-item embedding tables with optional bias terms.

    Tables are sized once at construction and never grow. The model is
    mutated in place by the trainer and read by the prediction service;
    `lock` keeps the two from overlapping.
    """

    def __init__(self, n_users: int, n_items: int, n_factors: int = 20,
                 use_bias: bool = True, squash_output: bool = False,
                 init_std: float = 0.1, seed: Optional[int] = 42):
        """
        Initialize model tables.

        Args:
            n_users: Number of user rows (max user id + 1)
            n_items: Number of item rows (max item id + 1)
            n_factors: Latent dimension K
            use_bias: Whether to learn user/item biases and use a global bias
            squash_output: Whether serving maps scores through a logistic curve
            init_std: Std of the zero-mean Gaussian factor initialization
            seed: Seed for the initialization RNG
        """
        if n_users < 1 or n_items < 1:
            raise ValueError(f"Model needs at least one user and one item, got {n_users}x{n_items}")

        self.n_users = n_users
        self.n_items = n_items
        self.n_factors = n_factors
        self.use_bias = use_bias
        self.squash_output = squash_output
        self.init_std = init_std
        self.seed = seed

        rng = np.random.default_rng(seed)
        self.user_factors = rng.normal(0, init_std, (n_users, n_factors)).astype(np.float64)
        self.item_factors = rng.normal(0, init_std, (n_items, n_factors)).astype(np.float64)
        self.user_bias = np.zeros(n_users, dtype=np.float64)
        self.item_bias = np.zeros(n_items, dtype=np.float64)
        self.global_bias = 0.0
        self.global_mean: Optional[float] = None  # Mean training rating, set by the trainer

        # Rows observed in training; everything else is cold start
        self.user_seen = np.zeros(n_users, dtype=bool)
        self.item_seen = np.zeros(n_items, dtype=bool)

        self.epochs_trained = 0
        self.lock = threading.RLock()
        self.training = False

    @classmethod
    def from_config(cls, n_users: int, n_items: int, config: ModelConfig) -> "LatentFactorModel":
        return cls(n_users, n_items, **asdict(config))

    def _check_ids(self, user_id: int, item_id: int) -> None:
        if not 0 <= user_id < self.n_users:
            raise IndexOutOfRange("user", user_id, self.n_users)
        if not 0 <= item_id < self.n_items:
            raise IndexOutOfRange("item", item_id, self.n_items)

    def score(self, user_id: int, item_id: int) -> float:
        """
        Raw linear score for a user-item pair.

        Raises:
            IndexOutOfRange: If either id is outside the model tables
        """
        self._check_ids(user_id, item_id)
        value = float(np.dot(self.user_factors[user_id], self.item_factors[item_id]))
        if self.use_bias:
            value += self.user_bias[user_id] + self.item_bias[item_id] + self.global_bias
        return value

    def score_items(self, user_id: int) -> np.ndarray:
        """Raw scores of every item for one user."""
        if not 0 <= user_id < self.n_users:
            raise IndexOutOfRange("user", user_id, self.n_users)
        scores = self.item_factors @ self.user_factors[user_id]
        if self.use_bias:
            scores = scores + self.item_bias + self.user_bias[user_id] + self.global_bias
        return scores

    def gradient_step(self, user_id: int, item_id: int, target: float,
                      learning_rate: float, l2_penalty: float) -> float:
        """
        Apply one SGD update for a single observation.

        Returns:
            Squared error of the prediction before the update
        """
        error = target - self.score(user_id, item_id)

        user_factor_old = self.user_factors[user_id].copy()
        self.user_factors[user_id] += learning_rate * (
            error * self.item_factors[item_id] - l2_penalty * user_factor_old
        )
        self.item_factors[item_id] += learning_rate * (
            error * user_factor_old - l2_penalty * self.item_factors[item_id]
        )

        if self.use_bias:
            self.user_bias[user_id] += learning_rate * (error - l2_penalty * self.user_bias[user_id])
            self.item_bias[item_id] += learning_rate * (error - l2_penalty * self.item_bias[item_id])

        return error * error

    def mark_seen(self, user_id: int, item_id: int) -> None:
        self._check_ids(user_id, item_id)
        self.user_seen[user_id] = True
        self.item_seen[item_id] = True

    def is_known_user(self, user_id: int) -> bool:
        return 0 <= user_id < self.n_users and bool(self.user_seen[user_id])

    def is_known_item(self, item_id: int) -> bool:
        return 0 <= item_id < self.n_items and bool(self.item_seen[item_id])

    def get_model_info(self) -> dict:
        """Get model metadata and statistics."""
        return {
            "model_type": "Biased Matrix Factorization (SGD)" if self.use_bias else "Matrix Factorization (SGD)",
            "n_users": self.n_users,
            "n_items": self.n_items,
            "n_known_users": int(self.user_seen.sum()),
            "n_known_items": int(self.item_seen.sum()),
            "n_factors": self.n_factors,
            "use_bias": self.use_bias,
            "squash_output": self.squash_output,
            "global_bias": float(self.global_bias),
            "global_mean": self.global_mean,
            "epochs_trained": self.epochs_trained,
        }
