"""
Configuration and callbacks for the boosting loop.

This module provides the dataclass holding all boosting hyperparameters
and the callback classes run at the end of every iteration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .distribution import DistributionFamily


# =============================================================================
# Booster Parameters Dataclass
# =============================================================================

@dataclass
class BoosterParams:
    """
    Dataclass containing all boosting hyperparameters.

    Parameters
    ----------
    distribution : str
        Distribution family ('gaussian', 'laplace', 'bernoulli', 'poisson',
        'gamma').
    n_trees : int
        Number of boosting iterations (trees to build).
    shrinkage : float
        Step size applied to each tree's contribution.
    max_depth : int
        Maximum depth of each tree. -1 means unlimited.
    num_leaves : int
        Maximum number of terminal nodes per tree.
    min_obs_in_node : int
        Minimum number of rows in a terminal node; nodes with fewer in-bag
        rows keep a zero step.
    bag_fraction : float
        Fraction of training rows drawn for each tree.
    feature_fraction : float
        Fraction of features considered by each tree.
    early_stopping_rounds : int or None
        Stop training if the validation deviance doesn't improve.
    verbose : int
        Verbosity level (0=silent, 1=progress).
    random_state : int or None
        Random seed for reproducibility.
    """
    distribution: str = "gaussian"
    n_trees: int = 100
    shrinkage: float = 0.1
    max_depth: int = -1
    num_leaves: int = 31
    min_obs_in_node: int = 10
    bag_fraction: float = 0.5
    feature_fraction: float = 1.0
    early_stopping_rounds: Optional[int] = None
    verbose: int = 0
    random_state: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert parameters to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "BoosterParams":
        """Create BoosterParams from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in params.items() if k in valid_keys}
        return cls(**filtered)

    def validate(self) -> None:
        """
        Validate all parameters.

        Raises
        ------
        ValueError
            If any parameter is invalid.
        UnsupportedConfiguration
            If the distribution is unknown.
        """
        DistributionFamily.resolve(self.distribution)
        if self.n_trees <= 0:
            raise ValueError(f"n_trees must be positive, got {self.n_trees}")
        if not 0 < self.shrinkage <= 1:
            raise ValueError(f"shrinkage must be in (0, 1], got {self.shrinkage}")
        if self.max_depth < -1 or self.max_depth == 0:
            raise ValueError(
                f"max_depth must be -1 or positive, got {self.max_depth}"
            )
        if self.num_leaves < 2:
            raise ValueError(f"num_leaves must be >= 2, got {self.num_leaves}")
        if self.min_obs_in_node < 1:
            raise ValueError(
                f"min_obs_in_node must be >= 1, got {self.min_obs_in_node}"
            )
        if not 0 < self.bag_fraction <= 1:
            raise ValueError(
                f"bag_fraction must be in (0, 1], got {self.bag_fraction}"
            )
        if not 0 < self.feature_fraction <= 1:
            raise ValueError(
                f"feature_fraction must be in (0, 1], got {self.feature_fraction}"
            )
        if self.early_stopping_rounds is not None and self.early_stopping_rounds <= 0:
            raise ValueError(
                f"early_stopping_rounds must be positive, got {self.early_stopping_rounds}"
            )


# =============================================================================
# Callback Base Class
# =============================================================================

class Callback(ABC):
    """
    Abstract base class for training callbacks.

    Callbacks allow custom actions at the end of every boosting iteration.
    """

    @abstractmethod
    def on_iteration_end(
        self,
        iteration: int,
        model: Any,
        train_deviance: float,
        valid_deviance: Optional[float] = None,
    ) -> bool:
        """
        Called at the end of each training iteration.

        Parameters
        ----------
        iteration : int
            Current iteration number (0-indexed).
        model : GradientBoostingModel
            The model being trained.
        train_deviance : float
            Training deviance after this iteration.
        valid_deviance : float or None
            Validation deviance if a validation set is present.

        Returns
        -------
        stop_training : bool
            If True, training will be stopped early.
        """
        pass


class EarlyStoppingCallback(Callback):
    """
    Callback for early stopping based on deviance.

    Monitors the validation deviance when available, the training
    deviance otherwise.

    Parameters
    ----------
    patience : int
        Number of iterations with no improvement to wait before stopping.
    min_delta : float
        Minimum change to qualify as an improvement.
    """

    def __init__(self, patience: int = 10, min_delta: float = 0.0):
        self.patience = patience
        self.min_delta = min_delta
        self.best_deviance: Optional[float] = None
        self.wait = 0
        self.stopped_iteration: Optional[int] = None

    def on_iteration_end(
        self,
        iteration: int,
        model: Any,
        train_deviance: float,
        valid_deviance: Optional[float] = None,
    ) -> bool:
        deviance = valid_deviance if valid_deviance is not None else train_deviance

        if self.best_deviance is None or deviance < self.best_deviance - self.min_delta:
            self.best_deviance = deviance
            self.wait = 0
        else:
            self.wait += 1

        if self.wait >= self.patience:
            self.stopped_iteration = iteration
            return True

        return False


class PrintProgressCallback(Callback):
    """
    Callback to print training progress.

    Parameters
    ----------
    print_every : int
        Print progress every N iterations.
    """

    def __init__(self, print_every: int = 10):
        self.print_every = print_every

    def on_iteration_end(
        self,
        iteration: int,
        model: Any,
        train_deviance: float,
        valid_deviance: Optional[float] = None,
    ) -> bool:
        if (iteration + 1) % self.print_every == 0:
            valid_str = (
                f", valid_deviance: {valid_deviance:.6f}"
                if valid_deviance is not None else ""
            )
            print(f"[Iter {iteration + 1}] train_deviance: {train_deviance:.6f}{valid_str}")
        return False


__all__ = [
    'BoosterParams',
    'Callback',
    'EarlyStoppingCallback',
    'PrintProgressCallback',
]
