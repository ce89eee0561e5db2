"""
Utility functions for input validation and logging.

This module provides the array validation helpers shared by the datasets,
the distributions and the boosting loop, together with the package's
exception types. All validation is done with NumPy only.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple, Union

import numpy as np


# =============================================================================
# Type Aliases
# =============================================================================

ArrayLike = Union[np.ndarray, List[Any], Tuple[Any, ...]]


# =============================================================================
# Custom Exceptions
# =============================================================================

class UnsupportedConfiguration(ValueError):
    """
    Raised when a distribution cannot be built for the requested setup.

    Covers unknown distribution families as well as datasets whose responses
    fall outside the family's support (e.g. non-positive responses for the
    Gamma family). Raised once, at construction time.
    """
    pass


class InvalidInput(ValueError):
    """
    Raised when an operation receives arrays that break its contract.

    Length mismatches, negative weights, bag values outside [0, 1] and
    out-of-range node indices all end up here.
    """
    pass


class NumericalError(ArithmeticError):
    """Raised when an accumulation or result is not finite."""
    pass


class NotFittedError(ValueError):
    """
    Exception raised when a model is used before fitting.

    This exception is raised when calling predict or similar methods
    before calling fit.
    """
    pass


# =============================================================================
# Input Validation Functions
# =============================================================================

def check_array(
    X: ArrayLike,
    *,
    ensure_2d: bool = True,
    allow_nan: bool = False,
    dtype: type = float,
    copy: bool = False,
) -> np.ndarray:
    """
    Validate and convert input array to numpy array.

    Parameters
    ----------
    X : array-like
        Input data to validate. pandas objects are accepted through their
        ``values`` attribute.
    ensure_2d : bool, default=True
        Whether to reshape 1D input to a column and reject other shapes.
    allow_nan : bool, default=False
        Whether to allow NaN values.
    dtype : type, default=float
        Desired dtype of the output array.
    copy : bool, default=False
        Whether to force a copy of the input.

    Returns
    -------
    X_converted : np.ndarray
        Validated and converted array.

    Raises
    ------
    InvalidInput
        If validation fails.
    TypeError
        If input type is not supported.
    """
    if isinstance(X, np.ndarray):
        X_out = X.copy() if copy else X
    elif isinstance(X, (list, tuple)):
        X_out = np.array(X, dtype=dtype)
    else:
        try:
            if hasattr(X, 'values'):
                X_out = np.asarray(X.values, dtype=dtype)
            else:
                X_out = np.asarray(X, dtype=dtype)
        except (TypeError, ValueError) as e:
            raise TypeError(
                f"Cannot convert input of type {type(X).__name__} to numpy array: {e}"
            ) from e
        if copy:
            X_out = X_out.copy()

    if X_out.dtype != dtype:
        X_out = X_out.astype(dtype)

    if X_out.ndim == 1:
        if ensure_2d:
            X_out = X_out.reshape(-1, 1)
    elif X_out.ndim != 2 or not ensure_2d:
        if ensure_2d:
            raise InvalidInput(
                f"Expected 2D array, got {X_out.ndim}D array instead."
            )
        raise InvalidInput(
            f"Expected 1D array, got {X_out.ndim}D array instead."
        )

    if X_out.size == 0:
        raise InvalidInput("Input array cannot be empty.")

    if np.any(np.isinf(X_out)):
        raise InvalidInput("Input array contains infinite values.")

    if not allow_nan and np.any(np.isnan(X_out)):
        raise InvalidInput("Input array contains NaN values but allow_nan=False.")

    return X_out


def check_is_fitted(model: Any, attributes: Optional[List[str]] = None) -> None:
    """
    Check if a model is fitted by verifying required attributes.

    Parameters
    ----------
    model : object
        Model instance to check.
    attributes : list of str, optional
        Attribute names that must be set. Defaults to ``['trees_', 'init_f_']``.

    Raises
    ------
    NotFittedError
        If the model is not fitted.
    """
    if attributes is None:
        attributes = ['trees_', 'init_f_']

    for attr in attributes:
        val = getattr(model, attr, None)
        if val is None or (isinstance(val, (list, np.ndarray)) and len(val) == 0):
            raise NotFittedError(
                f"This {type(model).__name__} instance is not fitted yet. "
                "Call 'fit' with appropriate arguments before using this model."
            )


def check_sample_weight(
    sample_weight: Optional[ArrayLike],
    n_samples: int,
) -> np.ndarray:
    """
    Validate sample weights, defaulting to ones.

    Parameters
    ----------
    sample_weight : array-like of shape (n_samples,) or None
        Sample weights.
    n_samples : int
        Expected number of samples.

    Returns
    -------
    sample_weight : np.ndarray of shape (n_samples,)
        Validated sample weights.

    Raises
    ------
    InvalidInput
        If sample_weight has incorrect shape or contains negative values.
    """
    if sample_weight is None:
        return np.ones(n_samples)

    sample_weight = check_array(sample_weight, ensure_2d=False)

    if len(sample_weight) != n_samples:
        raise InvalidInput(
            f"sample_weight has {len(sample_weight)} elements, "
            f"expected {n_samples}."
        )

    if np.any(sample_weight < 0):
        raise InvalidInput("sample_weight must contain non-negative values.")

    return sample_weight


def check_length(values: np.ndarray, n: int, name: str) -> np.ndarray:
    """Return ``values`` as a float array after checking it holds ``n`` rows."""
    values = np.asarray(values, dtype=float)
    if values.ndim != 1:
        raise InvalidInput(f"{name} must be 1D, got shape {values.shape}")
    if len(values) < n:
        raise InvalidInput(
            f"{name} has {len(values)} elements, expected at least {n}."
        )
    return values


def check_bag(bag: ArrayLike, n_train: int) -> np.ndarray:
    """
    Validate a bag and return its first ``n_train`` entries as floats.

    Booleans map to 0/1; fractional entries must lie in [0, 1].
    """
    bag = np.asarray(bag)
    if bag.ndim != 1:
        raise InvalidInput(f"bag must be 1D, got shape {bag.shape}")
    if len(bag) < n_train:
        raise InvalidInput(
            f"bag has {len(bag)} elements, expected at least {n_train}."
        )
    bag = bag[:n_train].astype(float)
    if np.any(~np.isfinite(bag)) or np.any((bag < 0) | (bag > 1)):
        raise InvalidInput("bag values must lie in [0, 1].")
    return bag


def ensure_finite(value: Any, what: str) -> Any:
    """Raise NumericalError unless every entry of ``value`` is finite."""
    if not np.all(np.isfinite(value)):
        raise NumericalError(f"Non-finite value encountered in {what}.")
    return value


def weighted_median(values: np.ndarray, weights: np.ndarray) -> float:
    """
    Lower weighted median of ``values``.

    Returns the smallest value whose cumulative weight reaches half of the
    total weight. Zero-weight entries never win.
    """
    mask = weights > 0
    values = values[mask]
    weights = weights[mask]
    if len(values) == 0:
        raise InvalidInput("weighted_median needs at least one positive weight.")

    order = np.argsort(values, kind="mergesort")
    cumulative = np.cumsum(weights[order])
    position = np.searchsorted(cumulative, 0.5 * cumulative[-1])
    return float(values[order][position])


# =============================================================================
# Logging Utilities
# =============================================================================

def log_message(message: str, *, verbose: int = 0) -> None:
    """
    Print a log message if verbose level is sufficient.

    Parameters
    ----------
    message : str
        Message to print.
    verbose : int, default=0
        Verbosity level. Message is printed if verbose >= 1.
    """
    if verbose >= 1:
        print(f"[gbmdist] {message}")


def log_training_progress(
    iteration: int,
    total_iterations: int,
    metric_value: float,
    *,
    verbose: int = 0,
    metric_name: str = "deviance",
    valid_value: Optional[float] = None,
    improvement: Optional[float] = None,
) -> None:
    """
    Log training progress.

    Parameters
    ----------
    iteration : int
        Current iteration number.
    total_iterations : int
        Total number of iterations.
    metric_value : float
        Current training metric value.
    verbose : int, default=0
        Verbosity level.
    metric_name : str, default="deviance"
        Name of the metric being tracked.
    valid_value : float or None
        Validation metric value, if a validation set is present.
    improvement : float or None
        Estimated improvement of the last step on out-of-bag rows.
    """
    if verbose >= 1:
        progress = (iteration / total_iterations) * 100
        line = (
            f"[gbmdist] Iter {iteration}/{total_iterations} "
            f"({progress:.1f}%) - train_{metric_name}: {metric_value:.6f}"
        )
        if valid_value is not None:
            line += f", valid_{metric_name}: {valid_value:.6f}"
        if improvement is not None:
            line += f", improve: {improvement:.6f}"
        print(line)
