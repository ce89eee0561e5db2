"""
Distribution factory.

Resolves a family selector once, at model construction, and builds the
matching strategy for a Dataset.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple, Type, Union

from .dataset import Dataset
from .distribution import Distribution, DistributionFamily
from .families import (
    BernoulliDistribution,
    GaussianDistribution,
    LaplaceDistribution,
    PoissonDistribution,
)
from .gamma import GammaDistribution
from .utils import UnsupportedConfiguration, log_message


DISTRIBUTIONS: Dict[DistributionFamily, Type[Distribution]] = {
    DistributionFamily.GAUSSIAN: GaussianDistribution,
    DistributionFamily.LAPLACE: LaplaceDistribution,
    DistributionFamily.BERNOULLI: BernoulliDistribution,
    DistributionFamily.POISSON: PoissonDistribution,
    DistributionFamily.GAMMA: GammaDistribution,
}


def create_distribution(
    data: Dataset,
    family: Union[str, DistributionFamily],
    *,
    verbose: int = 0,
    **kwargs: Any,
) -> Tuple[Distribution, int, int]:
    """
    Factory function to create a distribution strategy.

    Parameters
    ----------
    data : Dataset
        Responses, weights and offset the strategy will read.
    family : str or DistributionFamily
        Distribution family. Supported: 'gaussian', 'laplace', 'bernoulli',
        'poisson', 'gamma' (plus aliases such as 'normal' or 'l1').
    verbose : int, default=0
        Verbosity level.
    **kwargs
        Additional arguments passed to the distribution constructor.

    Returns
    -------
    distribution : Distribution
        Strategy instance.
    n_groups : int
        Number of response groups (1 for every shipped family).
    n_train : int
        Number of training rows the strategy works on.

    Raises
    ------
    UnsupportedConfiguration
        If the family is unknown or the dataset's responses are outside
        the family's support.
    """
    if not isinstance(data, Dataset):
        raise UnsupportedConfiguration(
            f"data must be a Dataset, got {type(data).__name__}"
        )

    family = DistributionFamily.resolve(family)
    distribution = DISTRIBUTIONS[family](data, **kwargs)

    log_message(
        f"Using {family.value} distribution "
        f"(n_train={distribution.n_train}, n_valid={data.n_valid}, "
        f"n_groups={distribution.n_groups})",
        verbose=verbose,
    )
    return distribution, distribution.n_groups, distribution.n_train


__all__ = ['DISTRIBUTIONS', 'create_distribution']
