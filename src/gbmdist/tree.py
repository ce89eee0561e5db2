"""
Regression tree grown on the working response.

This module provides the tree the boosting loop grows at every iteration:
a least-squares regression tree with leaf-wise (best-first) growth. After
growth its terminal nodes are exposed as an ordered list of handles whose
``value`` the distribution overwrites with a loss-minimizing step, and
``apply`` maps rows to terminal node indices.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

# Node Data Structure

@dataclass
class TreeNode:
    """
    Represents a node in the regression tree.

    Attributes
    ----------
    is_leaf : bool
        Whether this node is a terminal node.
    value : float
        Prediction of a terminal node. Starts as the weighted mean working
        response and is overwritten by the distribution.
    feature_idx : int or None
        Feature index used for splitting (internal nodes only).
    threshold : float or None
        Rows with feature value <= threshold go left.
    left : TreeNode or None
        Left child node.
    right : TreeNode or None
        Right child node.
    n_samples : int
        Number of rows that reached this node during growth.
    depth : int
        Depth of this node in the tree.
    gain : float
        Squared-error reduction of the split (internal nodes only).
    leaf_index : int
        Position among the terminal nodes, -1 for internal nodes.
    """
    is_leaf: bool = True
    value: float = 0.0
    feature_idx: Optional[int] = None
    threshold: Optional[float] = None
    left: Optional["TreeNode"] = None
    right: Optional["TreeNode"] = None
    n_samples: int = 0
    depth: int = 0
    gain: float = 0.0
    leaf_index: int = -1


@dataclass
class SplitInfo:
    """
    Information about a potential split.

    Attributes
    ----------
    gain : float
        Squared-error reduction of the split.
    feature_idx : int
        Feature index to split on.
    threshold : float
        Split threshold value.
    left_indices : np.ndarray
        Row indices going to the left child.
    right_indices : np.ndarray
        Row indices going to the right child.
    left_value : float
        Weighted mean working response of the left child.
    right_value : float
        Weighted mean working response of the right child.
    """
    gain: float = -np.inf
    feature_idx: int = 0
    threshold: float = 0.0
    left_indices: Optional[np.ndarray] = None
    right_indices: Optional[np.ndarray] = None
    left_value: float = 0.0
    right_value: float = 0.0

# Regression Tree Class

class RegressionTree:
    """
    Least-squares regression tree for gradient boosting.

    This implementation supports:
    - Leaf-wise (best-first) tree growth
    - Case weights
    - Feature subsampling

    Parameters
    ----------
    max_depth : int, default=-1
        Maximum depth of the tree. -1 means unlimited.
    min_samples_leaf : int, default=10
        Minimum number of rows required in a terminal node.
    num_leaves : int, default=31
        Maximum number of terminal nodes.
    min_gain_to_split : float, default=0.0
        Minimum gain required to make a split.
    feature_fraction : float, default=1.0
        Fraction of features to consider for each tree.
    random_state : int or None, default=None
        Random seed for reproducibility.

    Attributes
    ----------
    root_ : TreeNode
        Root of the fitted tree.
    terminal_nodes_ : list of TreeNode
        Terminal nodes, left to right; ``leaf_index`` is the position.
    n_leaves_ : int
        Number of terminal nodes.
    """

    def __init__(
        self,
        max_depth: int = -1,
        min_samples_leaf: int = 10,
        num_leaves: int = 31,
        min_gain_to_split: float = 0.0,
        feature_fraction: float = 1.0,
        random_state: Optional[int] = None,
    ):
        self.max_depth = max_depth
        self.min_samples_leaf = max(1, min_samples_leaf)
        self.num_leaves = num_leaves
        self.min_gain_to_split = min_gain_to_split
        self.feature_fraction = feature_fraction
        self.random_state = random_state

        # Tree state
        self.root_: Optional[TreeNode] = None
        self.terminal_nodes_: List[TreeNode] = []
        self.n_features_: Optional[int] = None
        self.n_leaves_: int = 0
        self.max_depth_reached_: int = 0

        self._rng: np.random.Generator = np.random.default_rng(random_state)

    def fit(
        self,
        X: np.ndarray,
        z: np.ndarray,
        *,
        sample_weight: Optional[np.ndarray] = None,
    ) -> "RegressionTree":
        """
        Fit the tree to a working response.

        Parameters
        ----------
        X : np.ndarray of shape (n_samples, n_features)
            Feature matrix.
        z : np.ndarray of shape (n_samples,)
            Working response.
        sample_weight : np.ndarray of shape (n_samples,) or None
            Case weights.

        Returns
        -------
        self : RegressionTree
            Fitted tree.
        """
        n_samples, n_features = X.shape
        self.n_features_ = n_features

        weights = np.ones(n_samples) if sample_weight is None else sample_weight
        weighted_z = weights * z

        if self.feature_fraction < 1.0:
            n_selected = max(1, int(n_features * self.feature_fraction))
            self._selected_features = self._rng.choice(
                n_features, size=n_selected, replace=False
            )
        else:
            self._selected_features = np.arange(n_features)

        indices = np.arange(n_samples)
        self._build_tree_leaf_wise(X, weighted_z, weights, indices)
        self._index_terminal_nodes()

        return self

    def _build_tree_leaf_wise(
        self,
        X: np.ndarray,
        weighted_z: np.ndarray,
        weights: np.ndarray,
        indices: np.ndarray,
    ) -> None:
        """
        Build tree using leaf-wise (best-first) growth strategy.

        Always splits the terminal node with the highest gain until
        ``num_leaves`` is reached or no admissible split remains.
        """
        self.root_ = TreeNode(
            is_leaf=True,
            value=self._compute_leaf_value(weighted_z[indices], weights[indices]),
            n_samples=len(indices),
            depth=0,
        )
        self.n_leaves_ = 1
        self.max_depth_reached_ = 0

        # Priority queue: (-gain, counter, node, indices, split)
        split_candidates: List[Tuple[float, int, TreeNode, np.ndarray, SplitInfo]] = []
        node_counter = 0

        best_split = self._find_best_split(X, weighted_z, weights, indices, depth=0)
        if best_split.gain > self.min_gain_to_split:
            heapq.heappush(
                split_candidates,
                (-best_split.gain, node_counter, self.root_, indices, best_split)
            )
            node_counter += 1

        while split_candidates and self.n_leaves_ < self.num_leaves:
            _, _, node, node_indices, split_info = heapq.heappop(split_candidates)

            node.is_leaf = False
            node.feature_idx = split_info.feature_idx
            node.threshold = split_info.threshold
            node.gain = split_info.gain

            left_indices = split_info.left_indices
            right_indices = split_info.right_indices

            node.left = TreeNode(
                is_leaf=True,
                value=split_info.left_value,
                n_samples=len(left_indices),
                depth=node.depth + 1,
            )
            node.right = TreeNode(
                is_leaf=True,
                value=split_info.right_value,
                n_samples=len(right_indices),
                depth=node.depth + 1,
            )

            self.n_leaves_ += 1
            self.max_depth_reached_ = max(self.max_depth_reached_, node.depth + 1)

            for child, child_indices in [
                (node.left, left_indices),
                (node.right, right_indices),
            ]:
                if len(child_indices) >= 2 * self.min_samples_leaf:
                    child_split = self._find_best_split(
                        X, weighted_z, weights, child_indices, depth=child.depth
                    )
                    if child_split.gain > self.min_gain_to_split:
                        heapq.heappush(
                            split_candidates,
                            (-child_split.gain, node_counter, child, child_indices, child_split)
                        )
                        node_counter += 1

    def _find_best_split(
        self,
        X: np.ndarray,
        weighted_z: np.ndarray,
        weights: np.ndarray,
        indices: np.ndarray,
        depth: int,
    ) -> SplitInfo:
        """Find the best split over the selected features for a set of rows."""
        best_split = SplitInfo()

        if self.max_depth != -1 and depth >= self.max_depth:
            return best_split

        node_gz = weighted_z[indices]
        node_w = weights[indices]
        G_total = np.sum(node_gz)
        H_total = np.sum(node_w)
        current_score = self._compute_score(G_total, H_total)

        for feature_idx in self._selected_features:
            split_info = self._find_best_split_exact(
                X[indices, feature_idx], node_gz, node_w,
                indices, feature_idx, G_total, H_total, current_score
            )
            if split_info.gain > best_split.gain:
                best_split = split_info

        return best_split

    def _find_best_split_exact(
        self,
        feature_values: np.ndarray,
        weighted_z: np.ndarray,
        weights: np.ndarray,
        indices: np.ndarray,
        feature_idx: int,
        G_total: float,
        H_total: float,
        current_score: float,
    ) -> SplitInfo:
        """
        Find best split using the exact algorithm (vectorized).

        The gain of a split is G_L^2/H_L + G_R^2/H_R - G^2/H with G the
        weighted sum of the working response and H the sum of weights.
        """
        best_split = SplitInfo()
        best_split.feature_idx = feature_idx

        n_samples = len(indices)
        if n_samples < 2 * self.min_samples_leaf:
            return best_split

        sorted_order = np.argsort(feature_values, kind="mergesort")
        sorted_values = feature_values[sorted_order]
        sorted_gz = weighted_z[sorted_order]
        sorted_w = weights[sorted_order]
        sorted_indices = indices[sorted_order]

        G_left = np.cumsum(sorted_gz)[:-1]
        H_left = np.cumsum(sorted_w)[:-1]
        G_right = G_total - G_left
        H_right = H_total - H_left

        # Valid split positions: value changes and both children are large enough
        value_changes = sorted_values[:-1] != sorted_values[1:]
        n_left = np.arange(1, n_samples)
        n_right = n_samples - n_left
        valid_splits = (
            value_changes
            & (n_left >= self.min_samples_leaf)
            & (n_right >= self.min_samples_leaf)
            & (H_left > 0)
            & (H_right > 0)
        )
        if not np.any(valid_splits):
            return best_split

        valid_idx = np.flatnonzero(valid_splits)
        gains = (
            G_left[valid_idx] ** 2 / H_left[valid_idx]
            + G_right[valid_idx] ** 2 / H_right[valid_idx]
            - current_score
        )

        best_local_idx = int(np.argmax(gains))
        split_pos = valid_idx[best_local_idx]
        n_left_best = split_pos + 1

        best_split.gain = float(gains[best_local_idx])
        best_split.threshold = float(
            (sorted_values[split_pos] + sorted_values[split_pos + 1]) / 2
        )
        best_split.left_indices = sorted_indices[:n_left_best]
        best_split.right_indices = sorted_indices[n_left_best:]
        best_split.left_value = self._compute_leaf_value(
            sorted_gz[:n_left_best], sorted_w[:n_left_best]
        )
        best_split.right_value = self._compute_leaf_value(
            sorted_gz[n_left_best:], sorted_w[n_left_best:]
        )
        return best_split

    @staticmethod
    def _compute_score(G: float, H: float) -> float:
        """Score G^2 / H of a node, 0 for a node without weight."""
        if H <= 0:
            return 0.0
        return float(G ** 2 / H)

    @staticmethod
    def _compute_leaf_value(weighted_z: np.ndarray, weights: np.ndarray) -> float:
        """Weighted mean working response."""
        H = np.sum(weights)
        if H <= 0:
            return 0.0
        return float(np.sum(weighted_z) / H)

    def _index_terminal_nodes(self) -> None:
        """Collect terminal nodes left to right and number them."""
        self.terminal_nodes_ = []
        stack = [self.root_]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                node.leaf_index = len(self.terminal_nodes_)
                self.terminal_nodes_.append(node)
            else:
                node.leaf_index = -1
                stack.append(node.right)
                stack.append(node.left)
        self.n_leaves_ = len(self.terminal_nodes_)

    def apply(self, X: np.ndarray) -> np.ndarray:
        """
        Terminal node index of every row.

        Parameters
        ----------
        X : np.ndarray of shape (n_samples, n_features)
            Feature matrix.

        Returns
        -------
        node_assign : np.ndarray of int, shape (n_samples,)
            Values in [0, n_leaves_).
        """
        if self.root_ is None:
            raise RuntimeError("Tree has not been fitted yet.")

        node_assign = np.empty(X.shape[0], dtype=np.intp)
        stack = [(self.root_, np.arange(X.shape[0]))]
        while stack:
            node, rows = stack.pop()
            if node.is_leaf:
                node_assign[rows] = node.leaf_index
                continue
            go_left = X[rows, node.feature_idx] <= node.threshold
            stack.append((node.left, rows[go_left]))
            stack.append((node.right, rows[~go_left]))
        return node_assign

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Current terminal node value of every row.

        Parameters
        ----------
        X : np.ndarray of shape (n_samples, n_features)
            Feature matrix.

        Returns
        -------
        predictions : np.ndarray of shape (n_samples,)
            Predicted values.
        """
        values = np.array([node.value for node in self.terminal_nodes_])
        return values[self.apply(X)]

# Module Export

__all__ = ['RegressionTree', 'TreeNode', 'SplitInfo']
