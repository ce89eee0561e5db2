"""
Distribution strategy contract for gradient boosting.

A distribution decouples the boosting loop from any one loss function.
Every family supplies the working response the next tree is grown on, the
initial constant score, the loss-minimizing value of each terminal node,
a deviance and an estimate of the improvement brought by a step.

All scores ``f`` live on the link scale; when the dataset carries an
offset every formula is evaluated at ``f + offset``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from .dataset import Dataset
from .utils import (
    ArrayLike,
    InvalidInput,
    UnsupportedConfiguration,
    check_bag,
    check_length,
    ensure_finite,
)


# =============================================================================
# Distribution Families
# =============================================================================

class DistributionFamily(str, Enum):
    """Supported response families."""

    GAUSSIAN = "gaussian"
    LAPLACE = "laplace"
    BERNOULLI = "bernoulli"
    POISSON = "poisson"
    GAMMA = "gamma"

    @classmethod
    def resolve(cls, family: Union[str, "DistributionFamily"]) -> "DistributionFamily":
        """
        Map a family or family name to an enum member.

        Raises
        ------
        UnsupportedConfiguration
            If the name is not recognized.
        """
        if isinstance(family, cls):
            return family
        if not isinstance(family, str):
            raise UnsupportedConfiguration(
                f"distribution must be a string or DistributionFamily, "
                f"got {type(family).__name__}"
            )

        name = family.lower().replace('-', '_')
        aliases = {
            'normal': cls.GAUSSIAN,
            'mse': cls.GAUSSIAN,
            'l2': cls.GAUSSIAN,
            'mae': cls.LAPLACE,
            'l1': cls.LAPLACE,
            'logistic': cls.BERNOULLI,
            'binary': cls.BERNOULLI,
        }
        if name in aliases:
            return aliases[name]
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedConfiguration(
                f"Unknown distribution: '{family}'. "
                f"Supported distributions: {[m.value for m in cls]}"
            ) from None


# =============================================================================
# Terminal Node Accumulator
# =============================================================================

@dataclass
class NodeAccumulator:
    """
    Per-terminal-node scratch sums used while fitting node constants.

    ``num`` and ``den`` hold the Newton-step numerator and denominator,
    ``maximum`` and ``minimum`` the extreme per-row quantity each family
    uses to bound its step, and ``count`` the number of in-bag rows.
    The buffers are resized to the node count and re-zeroed by ``reset``
    at the start of every fit; they never carry information between fits.
    """
    num: np.ndarray = field(default_factory=lambda: np.zeros(0))
    den: np.ndarray = field(default_factory=lambda: np.zeros(0))
    maximum: np.ndarray = field(default_factory=lambda: np.zeros(0))
    minimum: np.ndarray = field(default_factory=lambda: np.zeros(0))
    count: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    @property
    def n_nodes(self) -> int:
        return len(self.num)

    def reset(self, n_nodes: int) -> "NodeAccumulator":
        """Size the buffers to ``n_nodes`` and set them to neutral values."""
        if self.n_nodes != n_nodes:
            self.num = np.empty(n_nodes)
            self.den = np.empty(n_nodes)
            self.maximum = np.empty(n_nodes)
            self.minimum = np.empty(n_nodes)
            self.count = np.empty(n_nodes, dtype=np.int64)
        self.num.fill(0.0)
        self.den.fill(0.0)
        self.maximum.fill(-np.inf)
        self.minimum.fill(np.inf)
        self.count.fill(0)
        return self

    def accumulate(
        self,
        nodes: np.ndarray,
        num_terms: np.ndarray,
        den_terms: np.ndarray,
        bound_terms: Optional[np.ndarray] = None,
    ) -> None:
        """
        Add one contribution per row to the sums of its node.

        Parameters
        ----------
        nodes : np.ndarray of int
            Node index of each contributing row.
        num_terms, den_terms : np.ndarray
            Numerator and denominator contributions.
        bound_terms : np.ndarray or None
            Per-row quantity whose node-wise range is tracked.
        """
        n = self.n_nodes
        self.num += np.bincount(nodes, weights=num_terms, minlength=n)
        self.den += np.bincount(nodes, weights=den_terms, minlength=n)
        self.count += np.bincount(nodes, minlength=n)
        if bound_terms is not None:
            np.maximum.at(self.maximum, nodes, bound_terms)
            np.minimum.at(self.minimum, nodes, bound_terms)

        ensure_finite(self.num, "node numerator accumulation")
        ensure_finite(self.den, "node denominator accumulation")

    def fittable(self, min_obs_in_node: int) -> np.ndarray:
        """Mask of nodes with enough in-bag rows and positive weight."""
        return (self.count >= min_obs_in_node) & (self.den > 0)


# =============================================================================
# Base Distribution Class
# =============================================================================

class Distribution(ABC):
    """
    Abstract base class for distribution strategies.

    A strategy is built once per model fit from a Dataset and reused for
    every boosting iteration. It keeps no fitted state; the only thing it
    owns between calls is a scratch NodeAccumulator, which callers may
    replace with their own by passing ``accumulator`` to
    ``fit_best_constant``.

    Parameters
    ----------
    data : Dataset
        Responses, weights and offset. Construction fails with
        UnsupportedConfiguration when the responses fall outside the
        family's support.
    """

    family: DistributionFamily

    def __init__(self, data: Dataset):
        self.data = data
        self._accumulator = NodeAccumulator()
        self._check_support(data.y)

    @property
    def n_groups(self) -> int:
        return 1

    @property
    def n_train(self) -> int:
        return self.data.n_train

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    @abstractmethod
    def compute_working_response(
        self,
        f: ArrayLike,
        bag: ArrayLike,
        n_train: int,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Compute the negative gradient of the loss at ``f``.

        Parameters
        ----------
        f : array-like of shape (>= n_train,)
            Current link-scale scores of the training rows.
        bag : array-like of shape (>= n_train,)
            Bag of the current iteration.
        n_train : int
            Number of training rows to process.
        out : np.ndarray or None
            Array to write the working response into.

        Returns
        -------
        z : np.ndarray of shape (n_train,)
            Working response.
        """

    @abstractmethod
    def init_f(self, n_obs: int) -> float:
        """Constant score minimizing the weighted loss of the first ``n_obs`` rows."""

    @abstractmethod
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
        """
        Overwrite each terminal node's value with a loss-minimizing step.

        Only in-bag rows contribute. A node with fewer than
        ``min_obs_in_node`` in-bag rows, or without positive weight,
        receives 0.

        Parameters
        ----------
        f : array-like of shape (>= n_train,)
            Current link-scale scores.
        z : array-like of shape (>= n_train,)
            Working response the tree was grown on.
        node_assign : array-like of int, shape (>= n_train,)
            Terminal node index of each training row.
        n_train : int
            Number of training rows.
        terminal_nodes : sequence
            Node handles with a settable ``value``; ``None`` entries are skipped.
        n_term_nodes : int
            Number of terminal nodes.
        min_obs_in_node : int
            Minimum number of in-bag rows required to fit a node.
        bag : array-like of shape (>= n_train,)
            Bag of the current iteration.
        f_adj : array-like of shape (>= n_train,)
            Tree predictions before node fitting.
        accumulator : NodeAccumulator or None
            Scratch buffers to use instead of the instance's own.
        """

    @abstractmethod
    def deviance(
        self,
        f: ArrayLike,
        length: int,
        is_validation_set: bool = False,
    ) -> float:
        """
        Weighted mean deviance over the first ``length`` rows.

        With ``is_validation_set`` the rows are taken from the validation
        part of the dataset and ``f`` holds validation scores from index 0.
        """

    @abstractmethod
    def bag_improvement(
        self,
        f: ArrayLike,
        f_adj: ArrayLike,
        bag: ArrayLike,
        step_size: float,
        n_train: int,
    ) -> float:
        """
        Decrease in weighted mean deviance over the bag from moving ``f``
        to ``f + step_size * f_adj``.
        """

    @abstractmethod
    def link_inverse(self, f: ArrayLike) -> np.ndarray:
        """Map link-scale scores to the response scale."""

    # -------------------------------------------------------------------------
    # Helpers shared by the families
    # -------------------------------------------------------------------------

    def _check_support(self, y: np.ndarray) -> None:
        """Reject responses outside the family's support. Default: any real."""

    def _training_rows(
        self, f: ArrayLike, n_train: int
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Response, weights and offset-adjusted scores of the training rows."""
        if not 0 <= n_train <= self.data.n_train:
            raise InvalidInput(
                f"n_train must be in [0, {self.data.n_train}], got {n_train}"
            )
        f = check_length(f, n_train, "f")[:n_train]
        rows = slice(0, n_train)
        return self.data.y[rows], self.data.weights[rows], f + self.data.offset_for(rows)

    def _bagged_rows(
        self, f: ArrayLike, bag: ArrayLike, n_train: int
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Training rows plus effective weights ``w * bag`` and the in-bag mask."""
        y, w, x = self._training_rows(f, n_train)
        bag = check_bag(bag, n_train)
        return y, w * bag, x, bag > 0

    def _selected_rows(
        self, f: ArrayLike, length: int, is_validation_set: bool
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Response, weights and scores of the rows a deviance is taken over."""
        rows = self.data.rows(length, is_validation_set=is_validation_set)
        f = check_length(f, length, "f")[:length]
        return self.data.y[rows], self.data.weights[rows], f + self.data.offset_for(rows)

    def _node_indices(
        self, node_assign: ArrayLike, n_train: int, n_term_nodes: int
    ) -> np.ndarray:
        node_assign = np.asarray(node_assign)
        if node_assign.size == 0:
            node_assign = node_assign.astype(np.intp)
        if node_assign.ndim != 1 or len(node_assign) < n_train:
            raise InvalidInput(
                f"node_assign must be 1D with at least {n_train} entries."
            )
        nodes = node_assign[:n_train]
        if not np.issubdtype(nodes.dtype, np.integer):
            raise InvalidInput(f"node_assign must hold integers, got {nodes.dtype}")
        if len(nodes) and (nodes.min() < 0 or nodes.max() >= n_term_nodes):
            raise InvalidInput(
                f"node_assign values must lie in [0, {n_term_nodes})."
            )
        return nodes.astype(np.intp)

    def _emit(self, z: np.ndarray, out: Optional[np.ndarray], n_train: int) -> np.ndarray:
        """Check a working response and copy it into ``out`` when given."""
        ensure_finite(z, f"{self.family.value} working response")
        if out is None:
            return z
        if len(out) < n_train:
            raise InvalidInput(
                f"out has {len(out)} elements, expected at least {n_train}."
            )
        out[:n_train] = z
        return out[:n_train]

    def _start_fit(
        self, accumulator: Optional[NodeAccumulator], n_term_nodes: int
    ) -> NodeAccumulator:
        if n_term_nodes < 0:
            raise InvalidInput(f"n_term_nodes must be non-negative, got {n_term_nodes}")
        if accumulator is None:
            accumulator = self._accumulator
        return accumulator.reset(n_term_nodes)

    def _store_node_values(
        self,
        terminal_nodes: Sequence[Any],
        n_term_nodes: int,
        values: np.ndarray,
    ) -> None:
        if len(terminal_nodes) < n_term_nodes:
            raise InvalidInput(
                f"Expected {n_term_nodes} terminal nodes, got {len(terminal_nodes)}."
            )
        ensure_finite(values, f"{self.family.value} terminal node values")
        for node, value in zip(terminal_nodes[:n_term_nodes], values):
            if node is not None:
                node.value = float(value)

    @staticmethod
    def _weighted_mean(values: np.ndarray, weights: np.ndarray, what: str) -> float:
        total_weight = np.sum(weights)
        if not total_weight > 0:
            raise InvalidInput(f"{what} needs a positive total weight.")
        return float(ensure_finite(np.sum(weights * values) / total_weight, what))

    @staticmethod
    def _bag_mean(values: np.ndarray, weights: np.ndarray, what: str) -> float:
        """Weighted mean over a bag, 0 when the bag carries no weight."""
        total_weight = np.sum(weights)
        if total_weight <= 0:
            return 0.0
        return float(ensure_finite(np.sum(weights * values) / total_weight, what))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(n_train={self.data.n_train}, n_valid={self.data.n_valid})"


__all__ = [
    'DistributionFamily',
    'NodeAccumulator',
    'Distribution',
]
