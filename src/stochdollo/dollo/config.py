"""Configuration for building observation-process likelihoods."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.patterns import SitePatterns
from ..core.pruning import ACCELERATED_BACKENDS, SUPPORTED_BACKENDS
from ..core.site_model import SiteModel
from ..core.trees import TreeStructure
from .likelihood import ObservationProcessLikelihood, validate_parameters
from .observation import OBSERVATION_PROCESSES

logger = logging.getLogger(__name__)


@dataclass
class DolloModelConfig:
    """Settings of a stochastic Dollo likelihood."""

    mu: float = 1.0
    """Per-lineage loss rate."""

    lam: float = 1.0
    """Gain rate of the Poisson process placing characters on the tree."""

    integrate_gain_rate: bool = False
    """Integrate lambda out instead of treating it as fixed."""

    observation_process: str = "any_tip"
    """Either any_tip or single_tip."""

    tip_taxon: Optional[str] = None
    """Taxon every character is present in (single_tip only)."""

    backend: str = "numpy"
    """Partial-likelihood backend."""

    def validate(self) -> None:
        """
        Check the configuration before a likelihood is built.

        Raises:
            ValueError: On invalid parameter domains or unknown names
        """
        validate_parameters(self.mu, self.lam, self.integrate_gain_rate)
        if self.observation_process not in OBSERVATION_PROCESSES:
            raise ValueError(
                f"Unknown observation process {self.observation_process!r}; "
                f"expected one of {OBSERVATION_PROCESSES}"
            )
        if self.observation_process == "single_tip" and self.tip_taxon is None:
            raise ValueError("The single_tip observation process requires tip_taxon")
        if self.backend not in SUPPORTED_BACKENDS + ACCELERATED_BACKENDS:
            raise ValueError(f"Unknown backend {self.backend!r}")


def build_likelihood(
    tree: TreeStructure,
    patterns: SitePatterns,
    site_model: SiteModel,
    config: Optional[DolloModelConfig] = None,
    branch_rate_model=None,
):
    """
    Build an ObservationProcessLikelihood from a configuration.

    Args:
        tree: Tree the characters evolved on
        patterns: Compressed alignment
        site_model: Site model wrapping a MutationDeathModel
        config: Settings (defaults if None)
        branch_rate_model: Optional branch-rate model

    Returns:
        ObservationProcessLikelihood
    """
    config = config or DolloModelConfig()
    config.validate()
    logger.debug(f"Building likelihood from {config}")
    return ObservationProcessLikelihood(
        tree,
        patterns,
        site_model,
        mu=config.mu,
        lam=config.lam,
        integrate_gain_rate=config.integrate_gain_rate,
        observation_process=config.observation_process,
        branch_rate_model=branch_rate_model,
        tip_taxon=config.tip_taxon,
        backend=config.backend,
    )
