"""
Gradient boosting model driven by a distribution strategy.

This module provides the boosting loop around the distributions: it
draws a bag, asks the distribution for the working response, grows a
regression tree on the in-bag rows, lets the distribution overwrite the
terminal node values, applies shrinkage and tracks deviance and
improvement estimates.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .bagging import Bagger
from .base import BoosterParams, Callback
from .dataset import Dataset
from .distribution import Distribution, NodeAccumulator
from .factory import create_distribution
from .tree import RegressionTree
from .utils import (
    ArrayLike,
    InvalidInput,
    check_array,
    check_is_fitted,
    log_message,
    log_training_progress,
)


class GradientBoostingModel:
    """
    Gradient boosting machine with a pluggable distribution.

    Parameters
    ----------
    distribution : str, default='gaussian'
        Distribution family. Options: 'gaussian', 'laplace', 'bernoulli',
        'poisson', 'gamma'.
    n_trees : int, default=100
        Number of boosting iterations (trees).
    shrinkage : float, default=0.1
        Step size applied to each tree's contribution.
    max_depth : int, default=-1
        Maximum tree depth. -1 means unlimited.
    num_leaves : int, default=31
        Maximum number of terminal nodes per tree.
    min_obs_in_node : int, default=10
        Minimum number of rows in a terminal node.
    bag_fraction : float, default=0.5
        Fraction of training rows drawn for each tree.
    feature_fraction : float, default=1.0
        Fraction of features considered by each tree.
    early_stopping_rounds : int or None, default=None
        Stop if the validation deviance doesn't improve for this many rounds.
    verbose : int, default=0
        Verbosity level (0=silent, 1=progress).
    random_state : int or None, default=None
        Random seed for reproducibility.

    Attributes
    ----------
    trees_ : list of RegressionTree
        Fitted trees; their terminal node values are on the link scale.
    init_f_ : float
        Initial link-scale score.
    distribution_ : Distribution
        Strategy used during fitting.
    n_features_ : int
        Number of features seen during fit.
    n_iter_ : int
        Actual number of iterations performed.
    best_iteration_ : int or None
        Number of trees with the lowest validation deviance.
    training_history_ : dict
        Per-iteration ``train_deviance``, ``valid_deviance``,
        ``bag_improvement`` and ``oob_improvement``.

    Examples
    --------
    >>> import numpy as np
    >>> from gbmdist import GradientBoostingModel
    >>> rng = np.random.default_rng(0)
    >>> X = rng.normal(size=(200, 3))
    >>> y = rng.gamma(shape=2.0, scale=np.exp(X[:, 0]) / 2.0)
    >>> model = GradientBoostingModel(distribution='gamma', n_trees=50)
    >>> model.fit(X, y)
    >>> mean = model.predict(X, kind='response')
    """

    def __init__(
        self,
        distribution: str = 'gaussian',
        n_trees: int = 100,
        shrinkage: float = 0.1,
        max_depth: int = -1,
        num_leaves: int = 31,
        min_obs_in_node: int = 10,
        bag_fraction: float = 0.5,
        feature_fraction: float = 1.0,
        early_stopping_rounds: Optional[int] = None,
        verbose: int = 0,
        random_state: Optional[int] = None,
        # sklearn-style aliases
        n_estimators: Optional[int] = None,
        learning_rate: Optional[float] = None,
        subsample: Optional[float] = None,
    ):
        if n_estimators is not None:
            n_trees = n_estimators
        if learning_rate is not None:
            shrinkage = learning_rate
        if subsample is not None:
            bag_fraction = subsample

        self.params = BoosterParams(
            distribution=distribution,
            n_trees=n_trees,
            shrinkage=shrinkage,
            max_depth=max_depth,
            num_leaves=num_leaves,
            min_obs_in_node=min_obs_in_node,
            bag_fraction=bag_fraction,
            feature_fraction=feature_fraction,
            early_stopping_rounds=early_stopping_rounds,
            verbose=verbose,
            random_state=random_state,
        )

        # Fitted state
        self.trees_: List[RegressionTree] = []
        self.init_f_: Optional[float] = None
        self.distribution_: Optional[Distribution] = None
        self.n_features_: Optional[int] = None
        self.n_iter_: int = 0
        self.best_iteration_: Optional[int] = None
        self.callbacks_: List[Callback] = []
        self.training_history_: Dict[str, List[float]] = self._empty_history()

    # -------------------------------------------------------------------------
    # Parameters
    # -------------------------------------------------------------------------

    def get_params(self) -> Dict[str, Any]:
        """Get model parameters as a dictionary."""
        return self.params.to_dict()

    def set_params(self, **params: Any) -> "GradientBoostingModel":
        """
        Set model parameters.

        Raises
        ------
        ValueError
            If a parameter name is unknown.
        """
        for key, value in params.items():
            if hasattr(self.params, key):
                setattr(self.params, key, value)
            else:
                raise ValueError(f"Invalid parameter: {key}")
        return self

    @staticmethod
    def _empty_history() -> Dict[str, List[float]]:
        return {
            "train_deviance": [],
            "valid_deviance": [],
            "bag_improvement": [],
            "oob_improvement": [],
        }

    # -------------------------------------------------------------------------
    # Fitting
    # -------------------------------------------------------------------------

    def fit(
        self,
        X: ArrayLike,
        y: ArrayLike,
        *,
        eval_set: Optional[Tuple[ArrayLike, ...]] = None,
        sample_weight: Optional[ArrayLike] = None,
        offset: Optional[ArrayLike] = None,
        eval_offset: Optional[ArrayLike] = None,
        callbacks: Optional[List[Callback]] = None,
    ) -> "GradientBoostingModel":
        """
        Fit the boosting model.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training features.
        y : array-like of shape (n_samples,)
            Training responses.
        eval_set : tuple of (X_val, y_val) or (X_val, y_val, w_val), or None
            Validation rows used for the validation deviance and early stopping.
        sample_weight : array-like of shape (n_samples,) or None
            Case weights.
        offset : array-like of shape (n_samples,) or None
            Link-scale offset of the training rows.
        eval_offset : array-like or None
            Link-scale offset of the validation rows.
        callbacks : list of Callback or None
            Training callbacks.

        Returns
        -------
        self : GradientBoostingModel
            Fitted model.

        Raises
        ------
        UnsupportedConfiguration
            If the distribution is unknown or cannot model ``y``.
        InvalidInput
            If the arrays are inconsistent.
        """
        self.params.validate()
        self.callbacks_ = callbacks or []

        X_val, y_val, w_val = None, None, None
        if eval_set is not None:
            if len(eval_set) == 2:
                X_val, y_val = eval_set
            elif len(eval_set) == 3:
                X_val, y_val, w_val = eval_set
            else:
                raise InvalidInput(
                    "eval_set must be (X_val, y_val) or (X_val, y_val, w_val)."
                )
        elif eval_offset is not None:
            raise InvalidInput("eval_offset given without eval_set.")

        data = Dataset.from_train_valid(
            y,
            y_val,
            weights_train=sample_weight,
            weights_valid=w_val,
            offset_train=offset,
            offset_valid=eval_offset,
            X_train=X,
            X_valid=X_val,
        )

        self.distribution_, _, n_train = create_distribution(
            data, self.params.distribution, verbose=self.params.verbose
        )
        self.n_features_ = data.X.shape[1]
        self.trees_ = []
        self.n_iter_ = 0
        self.best_iteration_ = None
        self.training_history_ = self._empty_history()
        self.init_f_ = self.distribution_.init_f(n_train)

        log_message(f"Initial score: {self.init_f_:.6f}", verbose=self.params.verbose)

        self._train(data)
        return self

    def _train(self, data: Dataset) -> None:
        """Main boosting loop."""
        params = self.params
        dist = self.distribution_
        n_train = data.n_train
        n_valid = data.n_valid

        X_train = data.X[:n_train]
        X_valid = data.X[n_train:] if n_valid else None
        weights = data.weights[:n_train]

        f = np.full(n_train, self.init_f_)
        f_valid = np.full(n_valid, self.init_f_)

        bagger = Bagger(params.bag_fraction, random_state=params.random_state)
        z = np.empty(n_train)
        accumulator = NodeAccumulator()

        best_valid_deviance = np.inf
        rounds_without_improvement = 0

        for iteration in range(params.n_trees):
            bag = bagger.sample(n_train)
            in_bag = bag > 0

            dist.compute_working_response(f, bag, n_train, out=z)

            tree = RegressionTree(
                max_depth=params.max_depth,
                min_samples_leaf=params.min_obs_in_node,
                num_leaves=params.num_leaves,
                feature_fraction=params.feature_fraction,
                random_state=(
                    None if params.random_state is None
                    else params.random_state + iteration
                ),
            )
            tree.fit(X_train[in_bag], z[in_bag], sample_weight=weights[in_bag])

            node_assign = tree.apply(X_train)
            f_adj = self._node_values(tree)[node_assign]
            dist.fit_best_constant(
                f, z, node_assign, n_train,
                tree.terminal_nodes_, tree.n_leaves_, params.min_obs_in_node,
                bag, f_adj, accumulator=accumulator,
            )
            f_adj = self._node_values(tree)[node_assign]

            bag_improvement = dist.bag_improvement(
                f, f_adj, bag, params.shrinkage, n_train
            )
            oob_improvement = dist.bag_improvement(
                f, f_adj, 1.0 - bag, params.shrinkage, n_train
            )

            f += params.shrinkage * f_adj
            self.trees_.append(tree)
            self.n_iter_ += 1

            train_deviance = dist.deviance(f, n_train)
            self.training_history_["train_deviance"].append(train_deviance)
            self.training_history_["bag_improvement"].append(bag_improvement)
            self.training_history_["oob_improvement"].append(oob_improvement)

            valid_deviance = None
            if X_valid is not None:
                f_valid += params.shrinkage * tree.predict(X_valid)
                valid_deviance = dist.deviance(f_valid, n_valid, is_validation_set=True)
                self.training_history_["valid_deviance"].append(valid_deviance)

            log_training_progress(
                self.n_iter_,
                params.n_trees,
                train_deviance,
                verbose=params.verbose,
                valid_value=valid_deviance,
                improvement=oob_improvement if params.bag_fraction < 1.0 else bag_improvement,
            )

            stop = False
            for callback in self.callbacks_:
                if callback.on_iteration_end(iteration, self, train_deviance, valid_deviance):
                    stop = True

            if stop:
                log_message(
                    f"Callback requested early stopping at iteration {self.n_iter_}",
                    verbose=params.verbose,
                )
                break

            if valid_deviance is not None:
                if valid_deviance < best_valid_deviance:
                    best_valid_deviance = valid_deviance
                    self.best_iteration_ = self.n_iter_
                    rounds_without_improvement = 0
                else:
                    rounds_without_improvement += 1

                if (
                    params.early_stopping_rounds is not None
                    and rounds_without_improvement >= params.early_stopping_rounds
                ):
                    log_message(
                        f"Early stopping at iteration {self.n_iter_} "
                        f"(no improvement for {params.early_stopping_rounds} rounds)",
                        verbose=params.verbose,
                    )
                    break

    @staticmethod
    def _node_values(tree: RegressionTree) -> np.ndarray:
        return np.array([node.value for node in tree.terminal_nodes_])

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def predict(
        self,
        X: ArrayLike,
        *,
        offset: Optional[ArrayLike] = None,
        kind: str = "link",
        num_trees: Optional[int] = None,
    ) -> np.ndarray:
        """
        Predict scores for samples.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Features to predict.
        offset : array-like of shape (n_samples,) or None
            Link-scale offset added to every score.
        kind : {'link', 'response'}, default='link'
            Return link-scale scores or values on the response scale
            (e.g. the mean for gamma and poisson, a probability for bernoulli).
        num_trees : int or None
            Use only the first ``num_trees`` trees.

        Returns
        -------
        predictions : np.ndarray of shape (n_samples,)
            Predicted values.
        """
        check_is_fitted(self)

        X = check_array(X, ensure_2d=True)
        if X.shape[1] != self.n_features_:
            raise InvalidInput(
                f"Expected {self.n_features_} features, got {X.shape[1]}"
            )
        if kind not in ("link", "response"):
            raise ValueError(f"kind must be 'link' or 'response', got {kind!r}")

        f = np.full(X.shape[0], self.init_f_)
        if offset is not None:
            offset = check_array(offset, ensure_2d=False)
            if len(offset) != X.shape[0]:
                raise InvalidInput(
                    f"offset has {len(offset)} elements, expected {X.shape[0]}."
                )
            f += offset

        trees = self.trees_ if num_trees is None else self.trees_[:num_trees]
        for tree in trees:
            f += self.params.shrinkage * tree.predict(X)

        if kind == "response":
            return self.distribution_.link_inverse(f)
        return f

    def __repr__(self) -> str:
        defaults = BoosterParams()
        params_str = ", ".join(
            f"{k}={v!r}"
            for k, v in self.get_params().items()
            if v != getattr(defaults, k)
        )
        return f"{type(self).__name__}({params_str})"


__all__ = ['GradientBoostingModel']
