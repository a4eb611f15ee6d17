"""
Site-rate and branch-rate models.

SiteModel provides rate categories (discrete gamma plus an optional invariant
category) and equilibrium frequencies from its substitution model. Branch-rate
models provide the per-branch rate multiplier.
"""

import logging
from typing import Optional

import numpy as np
from scipy import stats

from .parameters import RealParameter, as_parameter
from .substitution import MutationDeathModel

logger = logging.getLogger(__name__)


class SiteModel:
    """
    Among-site rate heterogeneity.

    Gamma categories use the median of each of `category_count` equiprobable
    slices of a Gamma(shape, 1/shape) distribution, normalised to mean 1. With
    an invariant proportion p, an extra category of rate 0 and weight p is
    prepended and the variable rates are scaled by 1/(1-p).

    Attributes:
        substitution_model: Supplies transition matrices and frequencies
        category_count: Number of gamma categories
        shape: Gamma shape parameter (None: no gamma heterogeneity)
        proportion_invariant: Proportion of invariant sites
        mutation_rate: Overall rate multiplier
    """

    def __init__(
        self,
        substitution_model: MutationDeathModel,
        category_count: int = 1,
        shape=None,
        proportion_invariant=0.0,
        mutation_rate=1.0,
    ):
        if category_count < 1:
            raise ValueError(f"category_count must be >= 1, got {category_count}")
        self.substitution_model = substitution_model
        self.category_count = category_count
        self.shape: Optional[RealParameter] = (
            None if shape is None else as_parameter(shape, "shape", lower=0.0)
        )
        self.proportion_invariant = as_parameter(proportion_invariant, "proportionInvariant", lower=0.0)
        self.mutation_rate = as_parameter(mutation_rate, "mutationRate", lower=0.0)
        if self.proportion_invariant.value >= 1.0:
            raise ValueError("proportion_invariant must be < 1")
        if category_count > 1 and self.shape is None:
            logger.warning(
                f"{category_count} rate categories requested without a gamma shape; all rates are equal"
            )

    def _parameters(self):
        params = [self.proportion_invariant, self.mutation_rate]
        if self.shape is not None:
            params.append(self.shape)
        return params

    def get_category_rates(self) -> np.ndarray:
        n = self.category_count
        if self.shape is None or n == 1:
            rates = np.ones(n)
        else:
            a = self.shape.value
            quantiles = (2.0 * np.arange(n) + 1.0) / (2.0 * n)
            rates = stats.gamma.ppf(quantiles, a, scale=1.0 / a)
            rates = rates / rates.mean()

        p_inv = self.proportion_invariant.value
        if p_inv > 0.0:
            rates = np.concatenate([[0.0], rates / (1.0 - p_inv)])
        return rates * self.mutation_rate.value

    def get_category_proportions(self) -> np.ndarray:
        n = self.category_count
        p_inv = self.proportion_invariant.value
        if p_inv > 0.0:
            return np.concatenate([[p_inv], np.full(n, (1.0 - p_inv) / n)])
        return np.full(n, 1.0 / n)

    def get_category_count(self) -> int:
        return self.category_count + (1 if self.proportion_invariant.value > 0.0 else 0)

    def get_average_rate(self) -> float:
        """Category-weighted mean rate multiplier."""
        return float(np.dot(self.get_category_proportions(), self.get_category_rates()))

    def get_frequencies(self) -> np.ndarray:
        return self.substitution_model.frequencies

    def is_dirty_calculation(self) -> bool:
        return (
            any(p.something_is_dirty() for p in self._parameters())
            or self.substitution_model.is_dirty_calculation()
        )

    def accept(self) -> None:
        for p in self._parameters():
            p.accept()
        self.substitution_model.accept()


class StrictClockModel:
    """Same rate multiplier on every branch."""

    def __init__(self, rate=1.0):
        self.rate = as_parameter(rate, "clock.rate", lower=0.0)

    def get_rate_for_branch(self, node_id: int) -> float:
        return self.rate.value

    def get_branch_rates(self, n_nodes: int) -> np.ndarray:
        return np.full(n_nodes, self.rate.value)

    def is_dirty_calculation(self) -> bool:
        return self.rate.something_is_dirty()

    def accept(self) -> None:
        self.rate.accept()


class FixedBranchRates:
    """Per-branch rate multipliers supplied as an array indexed by node id."""

    def __init__(self, rates):
        rates = np.asarray(rates, dtype=float)
        if rates.ndim != 1 or np.any(rates < 0) or not np.all(np.isfinite(rates)):
            raise ValueError("Branch rates must be a 1D array of finite non-negative values")
        self._rates = rates
        self._dirty = False

    def set_rate(self, node_id: int, rate: float) -> None:
        if rate < 0 or not np.isfinite(rate):
            raise ValueError(f"Branch rate must be finite and non-negative, got {rate}")
        self._rates[node_id] = rate
        self._dirty = True

    def get_rate_for_branch(self, node_id: int) -> float:
        return float(self._rates[node_id])

    def get_branch_rates(self, n_nodes: int) -> np.ndarray:
        if self._rates.shape[0] != n_nodes:
            raise ValueError(f"Have {self._rates.shape[0]} branch rates for {n_nodes} nodes")
        return self._rates

    def is_dirty_calculation(self) -> bool:
        return self._dirty

    def accept(self) -> None:
        self._dirty = False
