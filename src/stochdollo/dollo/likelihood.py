"""
Stochastic Dollo observation-process likelihood.

Characters are gained once on the tree by a Poisson process of rate lambda
and lost independently along branches at rate mu. The probability of a
pattern sums, over every node whose subtree holds all of the pattern's extant
tips, the site likelihood of the node's partials weighted by the node's loss
probability:

    cumLike[j] = sum_i  included[i, j] * (freqs . partials[i, j]) * loss[i]

The log-likelihood is then

    gammaNorm + sum_j w[j] log(cumLike[j] / correction) + gainRateTerm

where `correction` removes the mass of ascertainment-excluded patterns and
gammaNorm = -lnGamma(N + 1) for N counted sites.

Numerical degeneracies (a zero pattern probability, all mass excluded) give
-inf so an MCMC framework simply rejects the state. Invalid parameter domains
raise ValueError.
"""

import logging
import math
from typing import Optional, Union

import numpy as np
from scipy.special import gammaln

from ..core.parameters import as_parameter
from ..core.patterns import SitePatterns
from ..core.pruning import FelsensteinPartials, check_backend
from ..core.site_model import SiteModel, StrictClockModel
from ..core.trees import TreeStructure
from ..core.traversal import post_order_traversal
from .cache import RecomputationCache
from .observation import ObservationProcess, make_observation_process
from .survival import loss_probabilities, loss_probability
from .tree_weight import gain_rate_term, log_tree_weight

logger = logging.getLogger(__name__)


def validate_parameters(mu: float, lam: float, integrate_gain_rate: bool) -> None:
    """
    Reject invalid parameter domains.

    Raises:
        ValueError: If mu < 0, lam < 0, or mu == 0 with a fixed gain rate
    """
    if not math.isfinite(mu) or mu < 0:
        raise ValueError(f"mu must be finite and >= 0, got {mu}")
    if not math.isfinite(lam) or lam < 0:
        raise ValueError(f"lambda must be finite and >= 0, got {lam}")
    if mu == 0 and not integrate_gain_rate:
        raise ValueError("mu == 0 requires integrate_gain_rate=True (lambda/mu is undefined)")


class ObservationProcessLikelihood:
    """
    Log-likelihood of Dollo characters under an observation process.

    Usage:
        likelihood = ObservationProcessLikelihood(tree, patterns, site_model, mu=0.5)
        log_p = likelihood.calculate_log_p()

        # MCMC step
        likelihood.store()
        likelihood.mu.set_value(0.7)
        likelihood.requires_recalculation()
        proposed = likelihood.calculate_log_p()
        likelihood.mu.restore()
        likelihood.restore()

    Attributes:
        tree: Tree the characters evolved on
        patterns: Compressed alignment
        site_model: Site-rate model (supplies frequencies and average rate)
        branch_rate_model: Per-branch rate multipliers
        mu: Per-lineage loss rate parameter
        lam: Gain rate parameter
        integrate_gain_rate: Whether lambda is integrated out
        observation_process: Inclusion and tree-weight strategy
        partials: Provider of per-node partial likelihoods
        death_state: State meaning "character absent"
        total_patterns: Weighted number of counted sites N
        gamma_norm: -lnGamma(N + 1)
    """

    def __init__(
        self,
        tree: TreeStructure,
        patterns: SitePatterns,
        site_model: SiteModel,
        mu,
        lam=1.0,
        integrate_gain_rate: bool = False,
        observation_process: Union[str, ObservationProcess] = "any_tip",
        branch_rate_model=None,
        tip_taxon: Optional[str] = None,
        backend: str = "numpy",
        partials=None,
    ):
        """
        Args:
            tree: Tree with leaf ids in [0, n_tips)
            patterns: Site patterns; its data type should carry a death_state
            site_model: Site model wrapping a MutationDeathModel
            mu: Loss rate (float or RealParameter)
            lam: Gain rate (float or RealParameter)
            integrate_gain_rate: Integrate lambda out instead of fixing it
            observation_process: "any_tip", "single_tip", or a strategy object
            branch_rate_model: Branch-rate model (strict clock of rate 1 if None)
            tip_taxon: Designated taxon for the "single_tip" process
            backend: Partial-likelihood backend
            partials: Optional partials provider (default: FelsensteinPartials)
        """
        check_backend(backend, type(self).__name__)
        self.tree = tree
        self.patterns = patterns
        self.site_model = site_model
        self.branch_rate_model = branch_rate_model if branch_rate_model is not None else StrictClockModel()
        self.mu = as_parameter(mu, "mu", lower=0.0)
        self.lam = as_parameter(lam, "lambda", lower=0.0)
        self.integrate_gain_rate = integrate_gain_rate
        validate_parameters(self.mu.value, self.lam.value, integrate_gain_rate)

        self.pattern_count = patterns.n_patterns
        self.state_count = patterns.state_count
        self.pattern_weights = patterns.pattern_weights
        self.total_patterns = float(self.pattern_weights.sum())
        if self.total_patterns <= 0:
            raise ValueError("Alignment has no counted sites")
        self.gamma_norm = -float(gammaln(self.total_patterns + 1.0))

        death_state = getattr(patterns.datatype, "death_state", None)
        if death_state is None:
            logger.warning(
                f"Data type '{patterns.datatype.name}' has no death state; using state 0"
            )
            death_state = 0
        self.death_state = death_state

        if isinstance(observation_process, str):
            observation_process = make_observation_process(
                observation_process, tree, patterns, death_state, tip_taxon
            )
        self.observation_process = observation_process

        if partials is None:
            partials = FelsensteinPartials(
                tree, patterns, site_model, self.branch_rate_model, backend=backend
            )
        self.partials = partials

        self.cache = RecomputationCache(tree.n_nodes, self.pattern_count)
        self._loss = np.empty(tree.n_nodes)
        self._node_partials = np.empty(self.pattern_count * self.state_count)
        self.log_p = -math.inf

        logger.info(
            f"Initialized {self.observation_process.name} observation process: "
            f"{tree.n_tips} tips, {self.pattern_count} patterns, "
            f"{int(self.total_patterns)} counted sites, integrate_gain_rate={integrate_gain_rate}"
        )

    # ------------------------------------------------------------------ #
    # Parameters
    # ------------------------------------------------------------------ #

    def get_mu_parameter(self):
        return self.mu

    def get_lam_parameter(self):
        return self.lam

    # ------------------------------------------------------------------ #
    # Cached quantities
    # ------------------------------------------------------------------ #

    def get_post_order(self) -> np.ndarray:
        cache = self.cache
        if not cache.post_order_known:
            post_order_traversal(self.tree, out=cache.post_order)
            cache.post_order_known = True
        return cache.post_order

    def get_inclusion_mask(self) -> np.ndarray:
        """(n_nodes, n_patterns) boolean mask, rebuilt when unknown."""
        cache = self.cache
        if not cache.node_pattern_inclusion_known:
            self.observation_process.compute_inclusion_mask(self.get_post_order(), cache.inclusion)
            cache.node_pattern_inclusion_known = True
        return cache.inclusion

    def get_average_rate(self) -> float:
        cache = self.cache
        if not cache.average_rate_known:
            proportions = self.site_model.get_category_proportions()
            rates = self.site_model.get_category_rates()
            cache.average_rate = float(np.dot(proportions, rates))
            cache.average_rate_known = True
        return cache.average_rate

    def get_node_loss_probability(self, node_id: int, average_rate: Optional[float] = None) -> float:
        """
        Probability that a character present in the parent is lost along the
        branch above `node_id`; 1.0 for the root.
        """
        if average_rate is None:
            average_rate = self.get_average_rate()
        return loss_probability(
            self.tree.get_branch_length(node_id),
            self.branch_rate_model.get_rate_for_branch(node_id),
            self.mu.value,
            average_rate,
            is_root=self.tree.get_parent(node_id) is None,
        )

    def get_node_loss_probabilities(self) -> np.ndarray:
        return loss_probabilities(
            self.tree,
            self.mu.value,
            self.get_average_rate(),
            self.branch_rate_model.get_branch_rates(self.tree.n_nodes),
            out=self._loss,
        )

    def get_exposure(self) -> float:
        self._update_weight()
        return self.cache.exposure

    def get_log_tree_weight(self) -> float:
        self._update_weight()
        return self.cache.log_tree_weight

    def _update_weight(self) -> None:
        cache = self.cache
        if cache.weight_known:
            return
        average_rate = self.get_average_rate()
        loss = self.get_node_loss_probabilities()
        cache.exposure = self.observation_process.compute_exposure(self.get_post_order(), loss, average_rate)
        cache.log_tree_weight = log_tree_weight(cache.exposure, self.mu.value, self.lam.value)
        cache.weight_known = True
        logger.debug(f"Tree weight recomputed: log weight {cache.log_tree_weight:.6g}")

    # ------------------------------------------------------------------ #
    # Likelihood
    # ------------------------------------------------------------------ #

    def calculate_log_p(self) -> float:
        """Update partials and compute the total log-likelihood."""
        self.requires_recalculation()
        validate_parameters(self.mu.value, self.lam.value, self.integrate_gain_rate)
        self.partials.update()
        self.log_p = self.node_pattern_likelihood(self.site_model.get_frequencies())
        return self.log_p

    def pattern_probabilities(self, frequencies: np.ndarray) -> np.ndarray:
        """
        Uncorrected probability of every pattern (cumLike).

        Args:
            frequencies: (n_states,) or (n_patterns, n_states) equilibrium frequencies

        Returns:
            (n_patterns,) array
        """
        frequencies = np.asarray(frequencies, dtype=float)
        mask = self.get_inclusion_mask()
        loss = self.get_node_loss_probabilities()
        cum_like = np.zeros(self.pattern_count)

        for node_id in range(self.tree.n_nodes):
            weight = loss[node_id]
            if weight == 0.0:
                continue
            node_partials = self.partials.get_node_partials(node_id, self._node_partials)
            node_partials = node_partials.reshape(self.pattern_count, self.state_count)
            if frequencies.ndim == 1:
                site_like = node_partials @ frequencies
            else:
                site_like = np.sum(node_partials * frequencies, axis=1)
            cum_like += np.where(mask[node_id], site_like * weight, 0.0)
        return cum_like

    def get_ascertainment_correction(self, pattern_probs: np.ndarray) -> float:
        """1 - total probability of ascertainment-excluded patterns."""
        excluded = sorted(self.patterns.excluded_pattern_indices)
        if not excluded:
            return 1.0
        return 1.0 - float(np.sum(pattern_probs[excluded]))

    def node_pattern_likelihood(self, frequencies: np.ndarray) -> float:
        """
        Total log-likelihood from the current partials.

        Returns:
            Log-likelihood, -inf for a zero pattern probability or when the
            excluded patterns hold all probability mass
        """
        cum_like = self.pattern_probabilities(frequencies)
        correction = self.get_ascertainment_correction(cum_like)

        counted = self.pattern_weights > 0
        if correction <= 0.0 or np.any(cum_like[counted] <= 0.0):
            logger.debug("Zero pattern probability or ascertainment correction; log-likelihood is -inf")
            return -math.inf

        log_l = self.gamma_norm
        log_l += float(np.sum(np.log(cum_like[counted] / correction) * self.pattern_weights[counted]))
        log_l += self.gain_rate()
        return log_l

    def gain_rate(self) -> float:
        return gain_rate_term(
            self.get_exposure(),
            self.mu.value,
            self.lam.value,
            self.total_patterns,
            self.gamma_norm,
            self.integrate_gain_rate,
        )

    def get_node_partials(self, node_id: int, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Partials of a node after bringing the likelihood up to date."""
        if self.requires_recalculation():
            self.get_log_tree_weight()
            self.calculate_log_p()
        return self.partials.get_node_partials(node_id, out)

    # ------------------------------------------------------------------ #
    # MCMC lifecycle
    # ------------------------------------------------------------------ #

    def requires_recalculation(self) -> bool:
        """Invalidate cached quantities whose inputs changed. Always recalculates."""
        cache = self.cache
        if self.mu.something_is_dirty():
            cache.average_rate_known = False
            cache.weight_known = False
            cache.node_pattern_inclusion_known = False
        if self.lam.something_is_dirty():
            cache.weight_known = False
        if self.site_model.is_dirty_calculation():
            cache.average_rate_known = False
            cache.weight_known = False
        if self.branch_rate_model.is_dirty_calculation():
            cache.weight_known = False
        if self.tree.something_is_dirty():
            cache.weight_known = False
        if self.tree.topology_is_dirty():
            cache.post_order_known = False
            cache.node_pattern_inclusion_known = False
        return True

    def store(self) -> None:
        self.cache.store()

    def restore(self) -> None:
        self.cache.restore()
