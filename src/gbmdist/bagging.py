"""
Row subsampling (bagging) for stochastic gradient boosting.

Each boosting iteration grows its tree on a random subset of the training
rows. The subset is represented as a bag: one value per training row,
1.0 for rows in the subsample and 0.0 otherwise.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class Bagger:
    """
    Draws the bag of each boosting iteration.

    Exactly ``max(1, floor(bag_fraction * n_train))`` rows are drawn
    without replacement, so every iteration sees the same number of rows.

    Parameters
    ----------
    bag_fraction : float, default=0.5
        Fraction of training rows in each bag, in (0, 1].
    random_state : int or None, default=None
        Random seed for reproducibility.

    References
    ----------
    Friedman, J. H. "Stochastic Gradient Boosting." Computational
    Statistics & Data Analysis, 2002.
    """

    def __init__(
        self,
        bag_fraction: float = 0.5,
        random_state: Optional[int] = None,
    ):
        if not 0 < bag_fraction <= 1:
            raise ValueError(f"bag_fraction must be in (0, 1], got {bag_fraction}")

        self.bag_fraction = bag_fraction
        self.random_state = random_state
        self._rng = np.random.default_rng(random_state)

    def bag_size(self, n_train: int) -> int:
        """Number of rows in each bag."""
        return max(1, int(n_train * self.bag_fraction))

    def sample(self, n_train: int) -> np.ndarray:
        """
        Draw a bag over ``n_train`` rows.

        Parameters
        ----------
        n_train : int
            Number of training rows.

        Returns
        -------
        bag : np.ndarray of shape (n_train,)
            1.0 for in-bag rows, 0.0 otherwise.
        """
        if n_train <= 0:
            raise ValueError(f"n_train must be positive, got {n_train}")

        if self.bag_fraction >= 1.0:
            return np.ones(n_train)

        bag = np.zeros(n_train)
        selected = self._rng.choice(n_train, size=self.bag_size(n_train), replace=False)
        bag[selected] = 1.0
        return bag

    def __repr__(self) -> str:
        return (
            f"Bagger(bag_fraction={self.bag_fraction}, "
            f"random_state={self.random_state})"
        )


__all__ = ['Bagger']
