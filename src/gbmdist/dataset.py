"""
Dataset view consumed by the distributions.

A Dataset stores the response, case weights and optional offset of the
training rows followed by the validation rows. Distributions read it but
never modify it.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .utils import (
    ArrayLike,
    InvalidInput,
    check_array,
    check_sample_weight,
)


class Dataset:
    """
    Immutable view of response, weights, offset and features.

    Parameters
    ----------
    y : array-like of shape (n_train + n_valid,)
        Response values, training rows first.
    weights : array-like of shape (n_train + n_valid,) or None
        Non-negative case weights. Defaults to ones.
    offset : array-like of shape (n_train + n_valid,) or None
        Link-scale offset added to every prediction.
    X : array-like of shape (n_train + n_valid, n_features) or None
        Feature matrix. Only the boosting loop needs it.
    n_train : int or None
        Number of leading training rows. Defaults to all rows.

    Attributes
    ----------
    n_train : int
        Number of training rows.
    n_valid : int
        Number of validation rows following the training rows.
    """

    def __init__(
        self,
        y: ArrayLike,
        *,
        weights: Optional[ArrayLike] = None,
        offset: Optional[ArrayLike] = None,
        X: Optional[ArrayLike] = None,
        n_train: Optional[int] = None,
    ):
        y = check_array(y, ensure_2d=False, copy=True)
        n_rows = len(y)

        if n_train is None:
            n_train = n_rows
        if not 0 < n_train <= n_rows:
            raise InvalidInput(
                f"n_train must be in [1, {n_rows}], got {n_train}"
            )

        weights = check_sample_weight(weights, n_rows).copy()

        if offset is not None:
            offset = check_array(offset, ensure_2d=False, copy=True)
            if len(offset) != n_rows:
                raise InvalidInput(
                    f"offset has {len(offset)} elements, expected {n_rows}."
                )
            offset.setflags(write=False)

        if X is not None:
            X = check_array(X, ensure_2d=True)
            if X.shape[0] != n_rows:
                raise InvalidInput(
                    f"Found input variables with inconsistent numbers of samples: "
                    f"X has {X.shape[0]} samples, y has {n_rows} samples."
                )

        y.setflags(write=False)
        weights.setflags(write=False)

        self._y = y
        self._weights = weights
        self._offset = offset
        self._X = X
        self.n_train = int(n_train)
        self.n_valid = n_rows - self.n_train

    @classmethod
    def from_train_valid(
        cls,
        y_train: ArrayLike,
        y_valid: Optional[ArrayLike] = None,
        *,
        weights_train: Optional[ArrayLike] = None,
        weights_valid: Optional[ArrayLike] = None,
        offset_train: Optional[ArrayLike] = None,
        offset_valid: Optional[ArrayLike] = None,
        X_train: Optional[ArrayLike] = None,
        X_valid: Optional[ArrayLike] = None,
    ) -> "Dataset":
        """Build a Dataset by stacking a training and a validation part."""
        y_train = check_array(y_train, ensure_2d=False)
        n_train = len(y_train)
        if y_valid is None:
            return cls(y_train, weights=weights_train, offset=offset_train,
                       X=X_train, n_train=n_train)

        y_valid = check_array(y_valid, ensure_2d=False)
        n_valid = len(y_valid)

        def stack(train_part, valid_part, fill):
            if train_part is None and valid_part is None:
                return None
            if train_part is None:
                train_part = np.full(n_train, fill)
            if valid_part is None:
                valid_part = np.full(n_valid, fill)
            return np.concatenate([
                check_array(train_part, ensure_2d=False),
                check_array(valid_part, ensure_2d=False),
            ])

        X = None
        if X_train is not None or X_valid is not None:
            if X_train is None or X_valid is None:
                raise InvalidInput("X_train and X_valid must be given together.")
            X_train = check_array(X_train)
            X_valid = check_array(X_valid)
            if X_train.shape[1] != X_valid.shape[1]:
                raise InvalidInput(
                    f"X_valid has {X_valid.shape[1]} features, expected {X_train.shape[1]}."
                )
            X = np.vstack([X_train, X_valid])

        return cls(
            np.concatenate([y_train, y_valid]),
            weights=stack(weights_train, weights_valid, 1.0),
            offset=stack(offset_train, offset_valid, 0.0),
            X=X,
            n_train=n_train,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def y(self) -> np.ndarray:
        return self._y

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    @property
    def offset(self) -> Optional[np.ndarray]:
        return self._offset

    @property
    def X(self) -> Optional[np.ndarray]:
        return self._X

    @property
    def n_rows(self) -> int:
        return self.n_train + self.n_valid

    def rows(self, length: int, *, is_validation_set: bool = False) -> slice:
        """
        Slice selecting the first ``length`` training or validation rows.

        Raises
        ------
        InvalidInput
            If the requested part has fewer than ``length`` rows.
        """
        available = self.n_valid if is_validation_set else self.n_train
        if length < 0 or length > available:
            part = "validation" if is_validation_set else "training"
            raise InvalidInput(
                f"Requested {length} {part} rows, dataset has {available}."
            )
        start = self.n_train if is_validation_set else 0
        return slice(start, start + length)

    def offset_for(self, rows: slice) -> np.ndarray:
        """Offset over ``rows``, zeros when the dataset has none."""
        if self._offset is None:
            return np.zeros(rows.stop - rows.start)
        return self._offset[rows]

    def __repr__(self) -> str:
        return (
            f"Dataset(n_train={self.n_train}, n_valid={self.n_valid}, "
            f"has_offset={self._offset is not None}, "
            f"has_features={self._X is not None})"
        )


__all__ = ['Dataset']
