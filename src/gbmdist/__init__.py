"""
gbmdist - distribution strategies for gradient boosting.

This package provides the loss-function layer of a gradient boosting
machine: for the current ensemble scores a distribution supplies the
working response, the initial score, loss-minimizing terminal node values,
a deviance and bag improvement estimates. A small boosting loop built on
top of it is included.

Features:
- Gaussian, Laplace, Bernoulli, Poisson and Gamma families
- Case weights, offsets and fractional bags
- Clipped Newton steps for terminal node values
- Leaf-wise regression trees grown on the working response
- Stochastic bagging with in-bag and out-of-bag improvement tracking
- Validation deviance, early stopping and callbacks

Example usage:
    >>> import numpy as np
    >>> from gbmdist import Dataset, create_distribution
    >>>
    >>> data = Dataset([2.0, 4.0, 6.0])
    >>> gamma, n_groups, n_train = create_distribution(data, "gamma")
    >>> f0 = gamma.init_f(n_train)                       # log(4)
    >>> f = np.full(n_train, f0)
    >>> z = gamma.compute_working_response(f, np.ones(n_train), n_train)
    >>>
    >>> from gbmdist import GradientBoostingModel
    >>> X = np.random.rand(200, 3)
    >>> y = np.random.gamma(2.0, np.exp(X[:, 0]))
    >>> model = GradientBoostingModel(distribution="gamma", n_trees=50)
    >>> model.fit(X, y)
    >>> mean = model.predict(X, kind="response")
"""

__version__ = "0.1.0"

# Data
from .dataset import Dataset
from .bagging import Bagger

# Distributions
from .distribution import Distribution, DistributionFamily, NodeAccumulator
from .gamma import GammaDistribution
from .families import (
    BernoulliDistribution,
    GaussianDistribution,
    LaplaceDistribution,
    PoissonDistribution,
)
from .factory import create_distribution

# Tree and boosting loop
from .tree import RegressionTree, TreeNode, SplitInfo
from .base import (
    BoosterParams,
    Callback,
    EarlyStoppingCallback,
    PrintProgressCallback,
)
from .booster import GradientBoostingModel

# Utility functions and exceptions
from .utils import (
    InvalidInput,
    NotFittedError,
    NumericalError,
    UnsupportedConfiguration,
    check_array,
    check_bag,
    check_sample_weight,
    log_message,
    log_training_progress,
)

# Public API
__all__ = [
    # Version
    "__version__",
    # Data
    "Dataset",
    "Bagger",
    # Distributions
    "Distribution",
    "DistributionFamily",
    "NodeAccumulator",
    "GammaDistribution",
    "GaussianDistribution",
    "LaplaceDistribution",
    "BernoulliDistribution",
    "PoissonDistribution",
    "create_distribution",
    # Tree and boosting loop
    "RegressionTree",
    "TreeNode",
    "SplitInfo",
    "BoosterParams",
    "Callback",
    "EarlyStoppingCallback",
    "PrintProgressCallback",
    "GradientBoostingModel",
    # Utilities
    "check_array",
    "check_bag",
    "check_sample_weight",
    "log_message",
    "log_training_progress",
    # Exceptions
    "UnsupportedConfiguration",
    "InvalidInput",
    "NumericalError",
    "NotFittedError",
]
