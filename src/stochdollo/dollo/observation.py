"""
Observation processes: how Dollo characters come to be in the data.

An observation process is a strategy with two operations:
1. compute_inclusion_mask: which nodes can originate each pattern
2. compute_exposure: the tree exposure feeding the tree weight

"any_tip" keeps every character seen in at least one tip. "single_tip" keeps
only characters present in one designated taxon, which pins the gain to the
path leading to it.
"""

import logging
from typing import Optional, Protocol, Sequence

import numpy as np

from ..core.patterns import SitePatterns
from ..core.trees import TreeStructure
from .inclusion import PatternInclusion
from .tree_weight import any_tip_survival_weight

logger = logging.getLogger(__name__)

OBSERVATION_PROCESSES = ("any_tip", "single_tip")


class ObservationProcess(Protocol):
    """Strategy interface used by ObservationProcessLikelihood."""

    name: str

    def compute_inclusion_mask(self, postorder: Sequence[int], out: np.ndarray) -> np.ndarray:
        ...

    def compute_exposure(self, postorder: Sequence[int], loss: np.ndarray, average_rate: float) -> float:
        ...


class AnyTipObservationProcess:
    """Characters are recorded when present in at least one tip."""

    name = "any_tip"

    def __init__(self, tree: TreeStructure, patterns: SitePatterns, death_state: int):
        self.tree = tree
        self.inclusion = PatternInclusion(tree, patterns, death_state)
        self._u0 = np.empty(tree.n_nodes)

    def compute_inclusion_mask(self, postorder: Sequence[int], out: np.ndarray) -> np.ndarray:
        return self.inclusion.recompute(postorder, out)

    def compute_exposure(self, postorder: Sequence[int], loss: np.ndarray, average_rate: float) -> float:
        weight = any_tip_survival_weight(self.tree, postorder, loss, u0=self._u0)
        return weight / average_rate


class SingleTipObservationProcess:
    """
    Characters are recorded only when present in one designated taxon.

    Attributes:
        taxon: Name of the taxon every recorded character is present in
    """

    name = "single_tip"

    def __init__(self, tree: TreeStructure, patterns: SitePatterns, death_state: int, taxon: str):
        if taxon not in tree.get_tip_index_map():
            raise ValueError(f"Single-tip taxon '{taxon}' is not a tip of the tree")
        self.tree = tree
        self.taxon = taxon
        self.inclusion = PatternInclusion(tree, patterns, death_state)

        tip_idx = tree.get_tip_index_map()[taxon]
        absent = self.inclusion.extant_in_tips_below[tip_idx] == 0
        if absent.any():
            logger.warning(
                f"{int(absent.sum())} patterns are not extant in single-tip taxon '{taxon}'"
            )

    def compute_inclusion_mask(self, postorder: Sequence[int], out: np.ndarray) -> np.ndarray:
        return self.inclusion.recompute(postorder, out)

    def compute_exposure(self, postorder: Sequence[int], loss: np.ndarray, average_rate: float) -> float:
        return 1.0 / average_rate


def make_observation_process(
    name: str,
    tree: TreeStructure,
    patterns: SitePatterns,
    death_state: int,
    tip_taxon: Optional[str] = None,
) -> ObservationProcess:
    """
    Build an observation process by name.

    Raises:
        ValueError: For unknown names, or "single_tip" without a taxon
    """
    if name == "any_tip":
        return AnyTipObservationProcess(tree, patterns, death_state)
    if name == "single_tip":
        if tip_taxon is None:
            raise ValueError("The single_tip observation process requires tip_taxon")
        return SingleTipObservationProcess(tree, patterns, death_state, tip_taxon)
    raise ValueError(f"Unknown observation process {name!r}; expected one of {OBSERVATION_PROCESSES}")
