"""
Tests for mf_pipeline.model.LatentFactorModel
-----------------------------------------------
Covers:
- Initialization and configuration
- score()
- gradient_step()
- Seen-row tracking
- get_model_info()
"""

import numpy as np
import pytest

from mf_pipeline.errors import IndexOutOfRange
from mf_pipeline.model import LatentFactorModel, ModelConfig

# -------------------------------------------------------------------
# Initialization
# -------------------------------------------------------------------

class TestInitialization:

    def test_table_shapes(self):
        model = LatentFactorModel(n_users=5, n_items=7, n_factors=3)
        assert model.user_factors.shape == (5, 3)
        assert model.item_factors.shape == (7, 3)
        assert model.user_bias.shape == (5,)
        assert model.item_bias.shape == (7,)

    def test_biases_start_at_zero(self):
        model = LatentFactorModel(n_users=5, n_items=7)
        assert not model.user_bias.any()
        assert not model.item_bias.any()
        assert model.global_bias == 0.0
        assert model.global_mean is None

    def test_factors_are_small_and_centered(self):
        model = LatentFactorModel(n_users=500, n_items=500, n_factors=20, init_std=0.1, seed=1)
        assert abs(model.user_factors.mean()) < 0.01
        assert model.user_factors.std() == pytest.approx(0.1, rel=0.05)

    def test_same_seed_same_tables(self):
        a = LatentFactorModel(4, 4, n_factors=3, seed=11)
        b = LatentFactorModel(4, 4, n_factors=3, seed=11)
        np.testing.assert_array_equal(a.user_factors, b.user_factors)
        np.testing.assert_array_equal(a.item_factors, b.item_factors)

    def test_nothing_seen_initially(self):
        model = LatentFactorModel(3, 3)
        assert not model.is_known_user(1)
        assert not model.is_known_item(1)

    def test_empty_tables_rejected(self):
        with pytest.raises(ValueError):
            LatentFactorModel(0, 3)

    def test_from_config(self):
        config = ModelConfig.from_dict({"n_factors": 4, "use_bias": False, "seed": 3})
        model = LatentFactorModel.from_config(6, 2, config)
        assert model.n_factors == 4
        assert model.use_bias is False
        assert model.user_factors.shape == (6, 4)

    @pytest.mark.parametrize("kwargs", [{"n_factors": 0}, {"init_std": -0.1}])
    def test_invalid_model_config(self, kwargs):
        with pytest.raises(ValueError):
            ModelConfig(**kwargs)

# -------------------------------------------------------------------
# score
# -------------------------------------------------------------------

class TestScore:

    @pytest.fixture
    def model(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=2, init_std=0.0)
        model.user_factors[1] = [1.0, 2.0]
        model.item_factors[0] = [0.5, -1.0]
        model.user_bias[1] = 0.25
        model.item_bias[0] = -0.5
        model.global_bias = 3.0
        return model

    def test_score_formula(self, model):
        # dot = 0.5 - 2.0 = -1.5; biases 0.25 - 0.5 + 3.0
        assert model.score(1, 0) == pytest.approx(1.25)

    def test_score_without_bias(self, model):
        model.use_bias = False
        assert model.score(1, 0) == pytest.approx(-1.5)

    def test_score_items_matches_score(self, model):
        scores = model.score_items(1)
        assert scores[0] == pytest.approx(model.score(1, 0))
        assert scores[1] == pytest.approx(model.score(1, 1))

    @pytest.mark.parametrize("user_id, item_id", [(2, 0), (0, 2), (-1, 0), (0, -1)])
    def test_out_of_range_ids(self, model, user_id, item_id):
        with pytest.raises(IndexOutOfRange):
            model.score(user_id, item_id)

    def test_out_of_range_is_index_error(self, model):
        with pytest.raises(IndexError):
            model.score_items(5)

# -------------------------------------------------------------------
# gradient_step
# -------------------------------------------------------------------

class TestGradientStep:

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    @pytest.mark.parametrize("target", [4.0, -2.0])
    def test_step_moves_score_toward_target(self, seed, target):
        """One step with l2 = 0 strictly reduces the error for that pair."""
        model = LatentFactorModel(n_users=3, n_items=3, n_factors=3, seed=seed)
        before = model.score(1, 2)

        model.gradient_step(1, 2, target, learning_rate=0.1, l2_penalty=0.0)

        after = model.score(1, 2)
        assert abs(target - after) < abs(target - before)

    def test_returns_squared_error_before_update(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=2, seed=5)
        before = model.score(0, 1)
        squared_error = model.gradient_step(0, 1, 3.0, learning_rate=0.05, l2_penalty=0.0)
        assert squared_error == pytest.approx((3.0 - before) ** 2)

    def test_only_touches_the_pair_rows(self):
        model = LatentFactorModel(n_users=3, n_items=3, n_factors=2, seed=5)
        users_before = model.user_factors.copy()
        items_before = model.item_factors.copy()

        model.gradient_step(1, 2, 5.0, learning_rate=0.1, l2_penalty=0.1)

        np.testing.assert_array_equal(model.user_factors[[0, 2]], users_before[[0, 2]])
        np.testing.assert_array_equal(model.item_factors[[0, 1]], items_before[[0, 1]])
        assert model.user_bias[0] == 0.0 and model.item_bias[0] == 0.0

    def test_bias_update(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=2, init_std=0.0)
        model.gradient_step(0, 0, 2.0, learning_rate=0.1, l2_penalty=0.0)
        assert model.user_bias[0] == pytest.approx(0.2)
        assert model.item_bias[0] == pytest.approx(0.2)
        assert model.global_bias == 0.0

    def test_no_bias_updates_when_disabled(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=2, use_bias=False, seed=1)
        model.gradient_step(0, 0, 5.0, learning_rate=0.1, l2_penalty=0.0)
        assert not model.user_bias.any()
        assert not model.item_bias.any()

    def test_l2_shrinks_factors_at_zero_error(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=3, use_bias=False, seed=2)
        user_before = model.user_factors[0].copy()
        item_before = model.item_factors[1].copy()
        target = model.score(0, 1)

        model.gradient_step(0, 1, target, learning_rate=0.1, l2_penalty=0.5)

        np.testing.assert_allclose(model.user_factors[0], user_before * 0.95)
        np.testing.assert_allclose(model.item_factors[1], item_before * 0.95)

    def test_out_of_range_step_leaves_tables_untouched(self):
        model = LatentFactorModel(n_users=2, n_items=2, n_factors=2, seed=3)
        users_before = model.user_factors.copy()
        with pytest.raises(IndexOutOfRange):
            model.gradient_step(0, 7, 4.0, learning_rate=0.1, l2_penalty=0.0)
        np.testing.assert_array_equal(model.user_factors, users_before)

# -------------------------------------------------------------------
# Seen rows and metadata
# -------------------------------------------------------------------

def test_mark_seen():
    model = LatentFactorModel(3, 3)
    model.mark_seen(2, 1)
    assert model.is_known_user(2)
    assert model.is_known_item(1)
    assert not model.is_known_user(1)
    assert not model.is_known_user(99)


def test_get_model_info():
    model = LatentFactorModel(3, 4, n_factors=2)
    info = model.get_model_info()
    assert info["n_users"] == 3
    assert info["n_items"] == 4
    assert info["n_factors"] == 2
    assert info["n_known_users"] == 0
    assert info["epochs_trained"] == 0
