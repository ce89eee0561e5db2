"""
Test suite for GradientBoostingModel.

Tests the boosting loop end to end with the different distributions.
"""

import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path
_repo_root = Path(__file__).resolve().parents[1]
src_path = str(_repo_root / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from gbmdist import (
    BoosterParams,
    Callback,
    EarlyStoppingCallback,
    GammaDistribution,
    GradientBoostingModel,
    InvalidInput,
    NotFittedError,
    UnsupportedConfiguration,
)


def _synthetic_gamma(seed: int = 42, n: int = 300):
    """Generate gamma responses with a log-linear mean."""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 4))
    mean = np.exp(0.8 * X[:, 0] - 0.5 * X[:, 1])
    y = rng.gamma(shape=2.0, scale=mean / 2.0)
    return X, y


def _synthetic_noise(seed: int = 0, n: int = 250):
    """Features unrelated to the response, so validation deviance degrades."""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 3))
    y = rng.normal(size=n)
    return X, y


def _initial_deviance(model, n_train):
    return model.distribution_.deviance(np.full(n_train, model.init_f_), n_train)


# =============================================================================
# Gamma end to end
# =============================================================================

def test_gamma_beats_constant_baseline():
    """Test that boosting lowers the gamma deviance of the initial constant."""
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(
        distribution="gamma",
        n_trees=60,
        shrinkage=0.1,
        num_leaves=8,
        min_obs_in_node=10,
        random_state=0,
    )
    model.fit(X, y)

    assert isinstance(model.distribution_, GammaDistribution)
    assert model.init_f_ == pytest.approx(np.log(np.mean(y)))
    baseline = _initial_deviance(model, len(y))
    assert model.training_history_["train_deviance"][-1] < 0.8 * baseline


def test_gamma_train_deviance_never_increases_without_bagging():
    """Node values are exact minimizers, so each shrunk step lowers the deviance."""
    X, y = _synthetic_gamma(seed=1)
    model = GradientBoostingModel(
        distribution="gamma",
        n_trees=25,
        shrinkage=0.2,
        num_leaves=6,
        bag_fraction=1.0,
        random_state=0,
    )
    model.fit(X, y)

    history = model.training_history_["train_deviance"]
    assert len(history) == 25
    assert np.all(np.diff(history) <= 1e-10)


def test_bag_improvement_tracks_training_deviance():
    """With a full bag the improvement equals the drop of the training deviance."""
    X, y = _synthetic_gamma(seed=2)
    weights = np.random.default_rng(2).uniform(0.5, 2.0, size=len(y))
    model = GradientBoostingModel(
        distribution="gamma", n_trees=10, num_leaves=4, bag_fraction=1.0,
    )
    model.fit(X, y, sample_weight=weights)

    deviances = [_initial_deviance(model, len(y))] + model.training_history_["train_deviance"]
    np.testing.assert_allclose(
        model.training_history_["bag_improvement"],
        -np.diff(deviances),
        rtol=1e-8, atol=1e-12,
    )
    # no out-of-bag rows
    np.testing.assert_array_equal(model.training_history_["oob_improvement"], 0.0)


def test_predict_kinds():
    """Test link and response predictions for the gamma family."""
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(distribution="gamma", n_trees=15, random_state=1)
    model.fit(X, y)

    link = model.predict(X[:20])
    mean = model.predict(X[:20], kind="response")
    assert link.shape == (20,)
    assert np.all(mean > 0)
    np.testing.assert_allclose(np.log(mean), link)

    with pytest.raises(ValueError, match="kind"):
        model.predict(X, kind="probability")


def test_predict_num_trees():
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(distribution="gamma", n_trees=10, random_state=1)
    model.fit(X, y)

    np.testing.assert_allclose(model.predict(X[:5], num_trees=0), model.init_f_)
    assert not np.allclose(model.predict(X[:5], num_trees=5), model.predict(X[:5]))


def test_offset_is_added_to_scores():
    """Test that a training offset is honoured and added back at predict time."""
    X, y = _synthetic_gamma(seed=3)
    exposure = np.random.default_rng(3).uniform(0.5, 2.0, size=len(y))
    offset = np.log(exposure)
    model = GradientBoostingModel(distribution="gamma", n_trees=10, random_state=0)
    model.fit(X, y * exposure, offset=offset)

    assert model.init_f_ == pytest.approx(np.log(np.mean(y)))
    np.testing.assert_allclose(
        model.predict(X[:10], offset=offset[:10]) - model.predict(X[:10]),
        offset[:10],
    )
    with pytest.raises(InvalidInput):
        model.predict(X[:10], offset=offset[:5])


# =============================================================================
# Other families
# =============================================================================

def test_poisson_counts():
    rng = np.random.default_rng(5)
    X = rng.normal(size=(300, 3))
    y = rng.poisson(np.exp(0.7 * X[:, 0]))
    model = GradientBoostingModel(
        distribution="poisson", n_trees=40, num_leaves=8, bag_fraction=1.0,
    )
    model.fit(X, y)

    history = model.training_history_["train_deviance"]
    assert history[-1] < _initial_deviance(model, len(y))
    assert np.all(np.diff(history) <= 1e-10)
    assert np.all(model.predict(X, kind="response") > 0)


def test_bernoulli_classification():
    rng = np.random.default_rng(6)
    X = rng.normal(size=(300, 3))
    y = (X[:, 0] + 0.5 * X[:, 1] > 0).astype(int)
    model = GradientBoostingModel(
        distribution="bernoulli", n_trees=40, num_leaves=8, random_state=0,
    )
    model.fit(X, y)

    proba = model.predict(X, kind="response")
    assert np.all((proba > 0) & (proba < 1))
    assert np.mean((proba > 0.5) == y) > 0.9
    assert model.training_history_["train_deviance"][-1] < _initial_deviance(model, len(y))


@pytest.mark.parametrize("distribution", ["gaussian", "laplace"])
def test_regression_families_fit(distribution):
    rng = np.random.default_rng(7)
    X = rng.normal(size=(200, 3))
    y = 2.0 * X[:, 0] - X[:, 1] + 0.1 * rng.normal(size=200)
    model = GradientBoostingModel(
        distribution=distribution, n_trees=50, shrinkage=0.2, random_state=0,
    )
    model.fit(X, y)
    preds = model.predict(X)
    assert np.mean((preds - y) ** 2) < 0.3 * np.var(y)


# =============================================================================
# Validation, early stopping and callbacks
# =============================================================================

def test_early_stopping():
    """Test that training stops once the validation deviance stalls."""
    X, y = _synthetic_noise()
    model = GradientBoostingModel(
        n_trees=500,
        shrinkage=0.3,
        min_obs_in_node=2,
        early_stopping_rounds=5,
        random_state=0,
    )
    model.fit(X[:150], y[:150], eval_set=(X[150:], y[150:]))

    assert model.n_iter_ < 500
    assert model.n_iter_ == model.best_iteration_ + 5
    assert len(model.trees_) == model.n_iter_
    assert len(model.training_history_["valid_deviance"]) == model.n_iter_
    best = np.argmin(model.training_history_["valid_deviance"]) + 1
    assert model.best_iteration_ == best


def test_validation_deviance_matches_predictions():
    X, y = _synthetic_gamma(seed=8)
    model = GradientBoostingModel(distribution="gamma", n_trees=5, random_state=0)
    model.fit(X[:200], y[:200], eval_set=(X[200:], y[200:]))

    f_valid = model.predict(X[200:])
    expected = model.distribution_.deviance(f_valid, 100, is_validation_set=True)
    assert model.training_history_["valid_deviance"][-1] == pytest.approx(expected)


def test_weighted_eval_set():
    X, y = _synthetic_gamma(seed=9)
    model = GradientBoostingModel(distribution="gamma", n_trees=3, random_state=0)
    model.fit(X[:200], y[:200], eval_set=(X[200:], y[200:], np.ones(100)))
    assert len(model.training_history_["valid_deviance"]) == 3


def test_early_stopping_callback():
    X, y = _synthetic_noise(seed=1)
    callback = EarlyStoppingCallback(patience=3)
    model = GradientBoostingModel(
        n_trees=500, shrinkage=0.3, min_obs_in_node=2, random_state=0,
    )
    model.fit(X[:150], y[:150], eval_set=(X[150:], y[150:]), callbacks=[callback])

    assert model.n_iter_ < 500
    assert callback.stopped_iteration == model.n_iter_ - 1


def test_custom_callback_sees_every_iteration():
    class Recorder(Callback):
        def __init__(self):
            self.seen = []

        def on_iteration_end(self, iteration, model, train_deviance, valid_deviance=None):
            self.seen.append((iteration, train_deviance, valid_deviance))
            return False

    X, y = _synthetic_gamma()
    recorder = Recorder()
    model = GradientBoostingModel(distribution="gamma", n_trees=4, random_state=0)
    model.fit(X, y, callbacks=[recorder])

    assert [it for it, _, _ in recorder.seen] == [0, 1, 2, 3]
    assert [dev for _, dev, _ in recorder.seen] == model.training_history_["train_deviance"]
    assert all(valid is None for _, _, valid in recorder.seen)


# =============================================================================
# Input handling and errors
# =============================================================================

def test_unknown_distribution():
    X, y = _synthetic_gamma()
    with pytest.raises(UnsupportedConfiguration):
        GradientBoostingModel(distribution="tweedie").fit(X, y)


def test_gamma_rejects_non_positive_response():
    X, y = _synthetic_gamma()
    y = y.copy()
    y[3] = 0.0
    with pytest.raises(UnsupportedConfiguration):
        GradientBoostingModel(distribution="gamma").fit(X, y)


def test_predict_before_fit():
    with pytest.raises(NotFittedError):
        GradientBoostingModel().predict(np.zeros((2, 2)))


def test_predict_wrong_feature_count():
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(distribution="gamma", n_trees=2).fit(X, y)
    with pytest.raises(InvalidInput):
        model.predict(X[:, :2])


def test_bad_eval_set():
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(distribution="gamma", n_trees=2)
    with pytest.raises(InvalidInput):
        model.fit(X, y, eval_set=(X,))
    with pytest.raises(InvalidInput):
        model.fit(X, y, eval_offset=np.zeros(10))


def test_eval_set_feature_count_mismatch():
    X, y = _synthetic_gamma()
    model = GradientBoostingModel(distribution="gamma", n_trees=2)
    with pytest.raises(InvalidInput):
        model.fit(X, y, eval_set=(X[:5, :2], y[:5]))


def test_mismatched_lengths():
    X, y = _synthetic_gamma()
    with pytest.raises(InvalidInput):
        GradientBoostingModel(distribution="gamma").fit(X, y[:-1])
    with pytest.raises(InvalidInput):
        GradientBoostingModel(distribution="gamma").fit(X, y, sample_weight=np.ones(3))


def test_invalid_hyperparameters():
    X, y = _synthetic_gamma()
    with pytest.raises(ValueError, match="shrinkage"):
        GradientBoostingModel(shrinkage=0.0).fit(X, y)
    with pytest.raises(ValueError, match="bag_fraction"):
        GradientBoostingModel(bag_fraction=1.5).fit(X, y)
    with pytest.raises(ValueError, match="num_leaves"):
        GradientBoostingModel(num_leaves=1).fit(X, y)


def test_pandas_input():
    X, y = _synthetic_gamma()
    df = pd.DataFrame(X, columns=["a", "b", "c", "d"])
    model = GradientBoostingModel(distribution="gamma", n_trees=5, random_state=0)
    model.fit(df, pd.Series(y))
    np.testing.assert_allclose(model.predict(df), model.predict(X))


def test_sample_weight():
    """Test that zero-weight rows do not move the initial score."""
    X, y = _synthetic_gamma()
    weights = np.ones(len(y))
    weights[:100] = 0.0
    model = GradientBoostingModel(distribution="gamma", n_trees=5, random_state=0)
    model.fit(X, y, sample_weight=weights)
    assert model.init_f_ == pytest.approx(np.log(np.mean(y[100:])))


def test_reproducibility():
    """Test reproducibility with same random_state."""
    X, y = _synthetic_gamma()
    preds = []
    for _ in range(2):
        model = GradientBoostingModel(
            distribution="gamma", n_trees=10, feature_fraction=0.5, random_state=42,
        )
        model.fit(X, y)
        preds.append(model.predict(X))
    np.testing.assert_allclose(preds[0], preds[1])


# =============================================================================
# Parameters
# =============================================================================

def test_get_and_set_params():
    model = GradientBoostingModel(distribution="gamma", n_trees=7)
    params = model.get_params()
    assert params["distribution"] == "gamma"
    assert params["n_trees"] == 7

    model.set_params(shrinkage=0.05)
    assert model.params.shrinkage == 0.05
    with pytest.raises(ValueError, match="Invalid parameter"):
        model.set_params(lambda_l2=1.0)


def test_sklearn_style_aliases():
    model = GradientBoostingModel(n_estimators=12, learning_rate=0.3, subsample=0.7)
    assert model.params.n_trees == 12
    assert model.params.shrinkage == 0.3
    assert model.params.bag_fraction == 0.7


def test_params_round_trip():
    params = BoosterParams(distribution="poisson", n_trees=3)
    restored = BoosterParams.from_dict({**params.to_dict(), "unknown": 1})
    assert restored == params


def test_repr_lists_non_default_params():
    assert repr(GradientBoostingModel()) == "GradientBoostingModel()"
    assert repr(GradientBoostingModel(distribution="gamma", n_trees=5)) == (
        "GradientBoostingModel(distribution='gamma', n_trees=5)"
    )
