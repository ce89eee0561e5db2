"""
Additional distribution families.

Each family implements the same contract as the Gamma exemplar and keeps
``bag_improvement`` equal to the drop in its own per-row deviance, so the
reported training loss and the improvement estimates stay consistent.

Families
--------
gaussian  : squared error, identity link
laplace   : absolute error, identity link
bernoulli : binomial deviance, logit link
poisson   : Poisson deviance, log link
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from .distribution import Distribution, DistributionFamily, NodeAccumulator
from .utils import (
    ArrayLike,
    InvalidInput,
    UnsupportedConfiguration,
    check_bag,
    check_length,
    ensure_finite,
    weighted_median,
)


# Scores of log-link families are kept inside [-LINK_BOUND, LINK_BOUND].
LINK_BOUND = 19.0


# =============================================================================
# Regression Families
# =============================================================================

class GaussianDistribution(Distribution):
    """
    Squared error loss.

    d(y, F) = (y - F)^2

    Node values are the weighted mean residual of the node's in-bag rows.
    """

    family = DistributionFamily.GAUSSIAN

    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        y, _, x = self._training_rows(f, n_train)
        check_bag(bag, n_train)
        return self._emit(y - x, out, n_train)

    def init_f(self, n_obs: int) -> float:
        rows = self.data.rows(n_obs)
        target = self.data.y[rows] - self.data.offset_for(rows)
        return self._weighted_mean(target, self.data.weights[rows], "gaussian initial score")

    def fit_best_constant(
        self,
        f: ArrayLike,
        z: ArrayLike,
        node_assign: ArrayLike,
        n_train: int,
        terminal_nodes: Sequence[Any],
        n_term_nodes: int,
        min_obs_in_node: int,
        bag: ArrayLike,
        f_adj: ArrayLike,
        accumulator: Optional[NodeAccumulator] = None,
    ) -> None:
        acc = self._start_fit(accumulator, n_term_nodes)
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        check_length(z, n_train, "z")
        nodes = self._node_indices(node_assign, n_train, n_term_nodes)

        residual = y - x
        acc.accumulate(nodes[in_bag], w[in_bag] * residual[in_bag], w[in_bag])

        values = np.zeros(n_term_nodes)
        fit = acc.fittable(min_obs_in_node)
        values[fit] = acc.num[fit] / acc.den[fit]
        self._store_node_values(terminal_nodes, n_term_nodes, values)

    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        y, w, x = self._selected_rows(f, length, is_validation_set)
        return self._weighted_mean((y - x) ** 2, w, "gaussian deviance")

    def bag_improvement(
        self,
        f: ArrayLike,
        f_adj: ArrayLike,
        bag: ArrayLike,
        step_size: float,
        n_train: int,
    ) -> float:
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        step = step_size * check_length(f_adj, n_train, "f_adj")[:n_train]
        gain = step * (2.0 * (y - x) - step)
        return self._bag_mean(gain[in_bag], w[in_bag], "gaussian bag improvement")

    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        return np.asarray(f, dtype=float)


class LaplaceDistribution(Distribution):
    """
    Absolute error loss.

    d(y, F) = |y - F|

    The working response is the sign of the residual; node values are the
    weighted median residual, which minimizes the node's absolute error.
    """

    family = DistributionFamily.LAPLACE

    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        y, _, x = self._training_rows(f, n_train)
        check_bag(bag, n_train)
        return self._emit(np.sign(y - x), out, n_train)

    def init_f(self, n_obs: int) -> float:
        rows = self.data.rows(n_obs)
        target = self.data.y[rows] - self.data.offset_for(rows)
        return weighted_median(target, self.data.weights[rows])

    def fit_best_constant(
        self,
        f: ArrayLike,
        z: ArrayLike,
        node_assign: ArrayLike,
        n_train: int,
        terminal_nodes: Sequence[Any],
        n_term_nodes: int,
        min_obs_in_node: int,
        bag: ArrayLike,
        f_adj: ArrayLike,
        accumulator: Optional[NodeAccumulator] = None,
    ) -> None:
        acc = self._start_fit(accumulator, n_term_nodes)
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        check_length(z, n_train, "z")
        nodes = self._node_indices(node_assign, n_train, n_term_nodes)

        residual = (y - x)[in_bag]
        weights = w[in_bag]
        bag_nodes = nodes[in_bag]
        acc.accumulate(bag_nodes, weights * residual, weights, residual)

        # Rows grouped by node, in node order.
        order = np.argsort(bag_nodes, kind="mergesort")
        groups = np.split(order, np.cumsum(acc.count)[:-1])

        values = np.zeros(n_term_nodes)
        for k in np.flatnonzero(acc.fittable(min_obs_in_node)):
            members = groups[k]
            values[k] = weighted_median(residual[members], weights[members])
        self._store_node_values(terminal_nodes, n_term_nodes, values)

    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        y, w, x = self._selected_rows(f, length, is_validation_set)
        return self._weighted_mean(np.abs(y - x), w, "laplace deviance")

    def bag_improvement(
        self,
        f: ArrayLike,
        f_adj: ArrayLike,
        bag: ArrayLike,
        step_size: float,
        n_train: int,
    ) -> float:
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        step = step_size * check_length(f_adj, n_train, "f_adj")[:n_train]
        residual = y - x
        gain = np.abs(residual) - np.abs(residual - step)
        return self._bag_mean(gain[in_bag], w[in_bag], "laplace bag improvement")

    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        return np.asarray(f, dtype=float)


# =============================================================================
# Classification and Count Families
# =============================================================================

class BernoulliDistribution(Distribution):
    """
    Binomial deviance for 0/1 responses.

    d(y, F) = -2 * (y * F - log(1 + exp(F)))

    Works with log-odds scores. Node values are one Newton step:
    ``sum w*(y - p) / sum w*p*(1 - p)``.

    Parameters
    ----------
    data : Dataset
        Responses must be 0 or 1.
    eps : float, default=1e-15
        Clip applied to the initial mean probability.
    max_newton_iter : int, default=50
        Newton iterations used by ``init_f`` when the dataset has an offset.
    """

    family = DistributionFamily.BERNOULLI

    def __init__(self, data, eps: float = 1e-15, max_newton_iter: int = 50):
        self.eps = eps
        self.max_newton_iter = max_newton_iter
        super().__init__(data)

    def _check_support(self, y: np.ndarray) -> None:
        n_bad = int(np.sum((y != 0) & (y != 1)))
        if n_bad:
            raise UnsupportedConfiguration(
                f"bernoulli distribution requires responses in {{0, 1}}, "
                f"found {n_bad} other value(s)."
            )

    @staticmethod
    def _sigmoid(x: np.ndarray) -> np.ndarray:
        x = np.clip(x, -500, 500)
        return 1.0 / (1.0 + np.exp(-x))

    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        y, _, x = self._training_rows(f, n_train)
        check_bag(bag, n_train)
        return self._emit(y - self._sigmoid(x), out, n_train)

    def init_f(self, n_obs: int) -> float:
        rows = self.data.rows(n_obs)
        y = self.data.y[rows]
        w = self.data.weights[rows]

        p = self._weighted_mean(y, w, "bernoulli initial score")
        p = float(np.clip(p, self.eps, 1 - self.eps))
        f0 = float(np.log(p / (1 - p)))
        if self.data.offset is None:
            return f0

        offset = self.data.offset_for(rows)
        for _ in range(self.max_newton_iter):
            prob = self._sigmoid(offset + f0)
            hessian = np.sum(w * prob * (1 - prob))
            if hessian <= 0:
                break
            step = np.sum(w * (y - prob)) / hessian
            f0 += float(step)
            if abs(step) < 1e-10:
                break
        return float(ensure_finite(f0, "bernoulli initial score"))

    def fit_best_constant(
        self,
        f: ArrayLike,
        z: ArrayLike,
        node_assign: ArrayLike,
        n_train: int,
        terminal_nodes: Sequence[Any],
        n_term_nodes: int,
        min_obs_in_node: int,
        bag: ArrayLike,
        f_adj: ArrayLike,
        accumulator: Optional[NodeAccumulator] = None,
    ) -> None:
        acc = self._start_fit(accumulator, n_term_nodes)
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        check_length(z, n_train, "z")
        nodes = self._node_indices(node_assign, n_train, n_term_nodes)

        prob = self._sigmoid(x[in_bag])
        weights = w[in_bag]
        acc.accumulate(
            nodes[in_bag],
            weights * (y[in_bag] - prob),
            weights * prob * (1 - prob),
        )

        values = np.zeros(n_term_nodes)
        fit = acc.fittable(min_obs_in_node)
        values[fit] = acc.num[fit] / acc.den[fit]
        self._store_node_values(terminal_nodes, n_term_nodes, values)

    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        y, w, x = self._selected_rows(f, length, is_validation_set)
        unit = -2.0 * (y * x - np.logaddexp(0.0, x))
        return self._weighted_mean(unit, w, "bernoulli deviance")

    def bag_improvement(
        self,
        f: ArrayLike,
        f_adj: ArrayLike,
        bag: ArrayLike,
        step_size: float,
        n_train: int,
    ) -> float:
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        step = step_size * check_length(f_adj, n_train, "f_adj")[:n_train]
        gain = 2.0 * (y * step - np.logaddexp(0.0, x + step) + np.logaddexp(0.0, x))
        return self._bag_mean(gain[in_bag], w[in_bag], "bernoulli bag improvement")

    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        return self._sigmoid(np.asarray(f, dtype=float))


class PoissonDistribution(Distribution):
    """
    Poisson deviance for non-negative counts, log link.

    d(y, F) = 2 * (y * log(y / mu) - (y - mu)),  mu = exp(F)

    Node values are ``log(sum w*y / sum w*mu)``. The node's smallest and
    largest scores bound the value so that every updated score stays in
    [-LINK_BOUND, LINK_BOUND]; a node without any response mass gets
    ``-LINK_BOUND`` before that bound is applied.
    """

    family = DistributionFamily.POISSON

    def _check_support(self, y: np.ndarray) -> None:
        n_bad = int(np.sum(y < 0))
        if n_bad:
            raise UnsupportedConfiguration(
                f"poisson distribution requires non-negative responses, "
                f"found {n_bad} negative value(s)."
            )

    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        y, _, x = self._training_rows(f, n_train)
        check_bag(bag, n_train)
        return self._emit(y - np.exp(x), out, n_train)

    def init_f(self, n_obs: int) -> float:
        rows = self.data.rows(n_obs)
        w = self.data.weights[rows]
        if not np.sum(w) > 0:
            raise InvalidInput("poisson initial score needs a positive total weight.")
        total = np.sum(w * self.data.y[rows])
        exposure = np.sum(w * np.exp(self.data.offset_for(rows)))
        if total <= 0:
            return -LINK_BOUND
        return float(np.clip(np.log(total / exposure), -LINK_BOUND, LINK_BOUND))

    def fit_best_constant(
        self,
        f: ArrayLike,
        z: ArrayLike,
        node_assign: ArrayLike,
        n_train: int,
        terminal_nodes: Sequence[Any],
        n_term_nodes: int,
        min_obs_in_node: int,
        bag: ArrayLike,
        f_adj: ArrayLike,
        accumulator: Optional[NodeAccumulator] = None,
    ) -> None:
        acc = self._start_fit(accumulator, n_term_nodes)
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        check_length(z, n_train, "z")
        nodes = self._node_indices(node_assign, n_train, n_term_nodes)

        weights = w[in_bag]
        acc.accumulate(
            nodes[in_bag],
            weights * y[in_bag],
            weights * np.exp(x[in_bag]),
            x[in_bag],
        )

        values = np.zeros(n_term_nodes)
        fit = acc.fittable(min_obs_in_node)
        num = acc.num[fit]
        den = acc.den[fit]
        step = np.full(len(num), -LINK_BOUND)
        has_mass = num > 0
        step[has_mass] = np.log(num[has_mass] / den[has_mass])
        step = np.minimum(step, LINK_BOUND - acc.maximum[fit])
        step = np.maximum(step, -LINK_BOUND - acc.minimum[fit])
        values[fit] = step
        self._store_node_values(terminal_nodes, n_term_nodes, values)

    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        y, w, x = self._selected_rows(f, length, is_validation_set)
        positive = y > 0
        y_log_y = np.where(positive, y * np.log(np.where(positive, y, 1.0)), 0.0)
        unit = 2.0 * (y_log_y - y * x - y + np.exp(x))
        return self._weighted_mean(unit, w, "poisson deviance")

    def bag_improvement(
        self,
        f: ArrayLike,
        f_adj: ArrayLike,
        bag: ArrayLike,
        step_size: float,
        n_train: int,
    ) -> float:
        y, w, x, in_bag = self._bagged_rows(f, bag, n_train)
        step = step_size * check_length(f_adj, n_train, "f_adj")[:n_train]
        gain = 2.0 * (y * step - np.exp(x) * np.expm1(step))
        return self._bag_mean(gain[in_bag], w[in_bag], "poisson bag improvement")

    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        return np.exp(np.asarray(f, dtype=float))


__all__ = [
    'LINK_BOUND',
    'GaussianDistribution',
    'LaplaceDistribution',
    'BernoulliDistribution',
    'PoissonDistribution',
]
