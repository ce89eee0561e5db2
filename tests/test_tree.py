"""
Test suite for RegressionTree implementation.
"""

import numpy as np
import pytest

import sys
from pathlib import Path
_repo_root = Path(__file__).resolve().parents[1]
src_path = str(_repo_root / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from gbmdist import RegressionTree


def count_leaves(node):
    if node.is_leaf:
        return 1
    return count_leaves(node.left) + count_leaves(node.right)


def test_tree_can_fit_sample_data():
    """Test that tree can fit simple data."""
    X = np.array([[1, 2], [3, 4], [5, 6], [7, 8]], dtype=float)
    z = np.array([0.5, -0.3, 0.2, -0.1])

    tree = RegressionTree(max_depth=3, num_leaves=10, min_samples_leaf=1)
    tree.fit(X, z)
    assert tree.root_ is not None
    assert tree.n_features_ == 2


def test_tree_leaf_wise_creates_limited_leaves():
    """Test that num_leaves parameter is respected."""
    np.random.seed(42)
    X = np.random.rand(100, 5)
    z = np.random.randn(100)

    tree = RegressionTree(max_depth=10, num_leaves=5, min_samples_leaf=1)
    tree.fit(X, z)

    assert count_leaves(tree.root_) <= 5
    assert tree.n_leaves_ == count_leaves(tree.root_)


def test_tree_respects_max_depth():
    """Test that no terminal node is deeper than max_depth."""
    np.random.seed(0)
    X = np.random.rand(200, 3)
    z = np.random.randn(200)

    tree = RegressionTree(max_depth=2, num_leaves=31, min_samples_leaf=1)
    tree.fit(X, z)
    assert tree.max_depth_reached_ <= 2
    assert all(node.depth <= 2 for node in tree.terminal_nodes_)
    assert tree.n_leaves_ <= 4


def test_tree_predict_returns_correct_shape():
    """Test that predict returns correct shape."""
    np.random.seed(42)
    X = np.random.rand(50, 3)
    z = np.random.randn(50)

    tree = RegressionTree(max_depth=4, num_leaves=15, min_samples_leaf=1)
    tree.fit(X, z)
    predictions = tree.predict(X)
    assert predictions.shape == (50,)
    assert np.all(np.isfinite(predictions))


def test_terminal_nodes_are_indexed_in_order():
    """Test that terminal_nodes_ positions match leaf_index and apply()."""
    np.random.seed(1)
    X = np.random.rand(80, 2)
    z = np.where(X[:, 0] > 0.5, 1.0, -1.0) + 0.1 * np.random.randn(80)

    tree = RegressionTree(num_leaves=6, min_samples_leaf=5)
    tree.fit(X, z)

    for position, node in enumerate(tree.terminal_nodes_):
        assert node.is_leaf
        assert node.leaf_index == position

    node_assign = tree.apply(X)
    assert node_assign.dtype.kind == "i"
    assert node_assign.min() >= 0
    assert node_assign.max() < tree.n_leaves_
    # every terminal node receives at least min_samples_leaf training rows
    counts = np.bincount(node_assign, minlength=tree.n_leaves_)
    assert np.all(counts >= 5)


def test_leaf_values_are_weighted_means():
    """Test that leaf values start as the weighted mean working response."""
    X = np.array([[0.0], [0.0], [1.0], [1.0]])
    z = np.array([1.0, 3.0, 10.0, 20.0])
    w = np.array([1.0, 3.0, 1.0, 1.0])

    tree = RegressionTree(num_leaves=2, min_samples_leaf=1)
    tree.fit(X, z, sample_weight=w)

    np.testing.assert_allclose(tree.predict(X), [2.5, 2.5, 15.0, 15.0])


def test_overwritten_values_are_predicted():
    """Test that predict uses the current terminal node values."""
    X = np.array([[0.0], [0.0], [1.0], [1.0]])
    z = np.array([-1.0, -1.0, 1.0, 1.0])

    tree = RegressionTree(num_leaves=2, min_samples_leaf=1)
    tree.fit(X, z)
    for node in tree.terminal_nodes_:
        node.value = 7.0 * (node.leaf_index + 1)

    predictions = tree.predict(X)
    expected = 7.0 * (tree.apply(X) + 1)
    np.testing.assert_allclose(predictions, expected)


def test_tree_handles_constant_features():
    """Test that tree handles constant features."""
    X = np.array([[1, 5], [1, 6], [1, 7], [1, 8]], dtype=float)
    z = np.array([0.5, -0.3, 0.2, -0.1])

    tree = RegressionTree(max_depth=3, num_leaves=5, min_samples_leaf=1)
    tree.fit(X, z)
    predictions = tree.predict(X)
    assert predictions.shape == (4,)
    if not tree.root_.is_leaf:
        assert tree.root_.feature_idx == 1


def test_single_leaf_when_no_split_possible():
    """Test that a tree with too few rows stays a single terminal node."""
    X = np.random.RandomState(0).rand(5, 2)
    z = np.arange(5.0)

    tree = RegressionTree(min_samples_leaf=10)
    tree.fit(X, z)
    assert tree.n_leaves_ == 1
    np.testing.assert_array_equal(tree.apply(X), 0)
    np.testing.assert_allclose(tree.predict(X), 2.0)


def test_tree_respects_min_gain_to_split():
    """Test that min_gain_to_split prevents splits with low gain."""
    np.random.seed(42)
    X = np.random.rand(20, 2)
    z = np.random.randn(20) * 0.01

    tree = RegressionTree(
        max_depth=4,
        num_leaves=10,
        min_samples_leaf=1,
        min_gain_to_split=1.0,  # High threshold
    )
    tree.fit(X, z)
    assert count_leaves(tree.root_) < 5


def test_tree_reproducibility():
    """Test that same random_state gives same results."""
    np.random.seed(42)
    X = np.random.rand(50, 3)
    z = np.random.randn(50)

    preds = []
    for _ in range(2):
        tree = RegressionTree(
            max_depth=4,
            num_leaves=10,
            min_samples_leaf=1,
            feature_fraction=0.8,
            random_state=42,
        )
        tree.fit(X, z)
        preds.append(tree.predict(X))

    assert np.allclose(preds[0], preds[1])


def test_tree_feature_fraction():
    """Test feature_fraction parameter."""
    np.random.seed(42)
    X = np.random.rand(50, 10)
    z = np.random.randn(50)

    tree = RegressionTree(
        max_depth=4,
        num_leaves=10,
        min_samples_leaf=1,
        feature_fraction=0.5,  # Only use half of features
        random_state=42,
    )
    tree.fit(X, z)
    assert len(tree._selected_features) == 5
    assert tree.predict(X).shape == (50,)


def test_apply_before_fit_raises():
    with pytest.raises(RuntimeError):
        RegressionTree().apply(np.zeros((2, 2)))
