"""
Gamma distribution for strictly positive, right-skewed responses.

The ensemble score is the log of the mean, ``mu = exp(F)``. With the
ratio ``r = y * exp(-F)`` the per-row deviance is

    d(y, F) = 2 * (r - 1 - log(r)),

which is convex in F, vanishes only at ``F = log(y)`` and does not depend
on the shape parameter.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from .distribution import Distribution, DistributionFamily, NodeAccumulator
from .utils import (
    ArrayLike,
    UnsupportedConfiguration,
    check_bag,
    check_length,
)


class GammaDistribution(Distribution):
    """
    Gamma deviance with a log link.

    Node constants are one Newton step on the node's rows:
    ``log(sum w*r / sum w)``. The fitted ratio is clamped to the range of
    ratios observed in the node so a single extreme row cannot produce a
    divergent leaf value.
    """

    family = DistributionFamily.GAMMA

    def _check_support(self, y: np.ndarray) -> None:
        n_bad = int(np.sum(y <= 0))
        if n_bad:
            raise UnsupportedConfiguration(
                f"gamma distribution requires strictly positive responses, "
                f"found {n_bad} non-positive value(s)."
            )

    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Z = y * exp(-F) - 1.

        Computed for every training row; out-of-bag rows are safe because
        the responses are positive.
        """
        y, _, x = self._training_rows(f, n_train)
        check_bag(bag, n_train)

        return self._emit(y * np.exp(-x) - 1.0, out, n_train)

    def init_f(self, n_obs: int) -> float:
        """log of the weighted mean of ``y * exp(-offset)``."""
        rows = self.data.rows(n_obs)
        y = self.data.y[rows]
        ratio = y * np.exp(-self.data.offset_for(rows))
        mean_ratio = self._weighted_mean(ratio, self.data.weights[rows], "gamma initial score")
        return float(np.log(mean_ratio))

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

        ratio = y * np.exp(-x)
        acc.accumulate(
            nodes[in_bag],
            w[in_bag] * ratio[in_bag],
            w[in_bag],
            ratio[in_bag],
        )

        values = np.zeros(n_term_nodes)
        fit = acc.fittable(min_obs_in_node)
        fitted_ratio = np.clip(
            acc.num[fit] / acc.den[fit], acc.minimum[fit], acc.maximum[fit]
        )
        values[fit] = np.log(fitted_ratio)

        self._store_node_values(terminal_nodes, n_term_nodes, values)

    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        y, w, x = self._selected_rows(f, length, is_validation_set)
        unit = 2.0 * (y * np.exp(-x) - 1.0 - np.log(y) + x)
        return self._weighted_mean(unit, w, "gamma deviance")

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

        # d(y, F) - d(y, F + step)
        gain = 2.0 * (-y * np.exp(-x) * np.expm1(-step) - step)
        return self._bag_mean(gain[in_bag], w[in_bag], "gamma bag improvement")

    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        return np.exp(np.asarray(f, dtype=float))


__all__ = ['GammaDistribution']
