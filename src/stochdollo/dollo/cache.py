"""
Recomputation cache for the observation-process likelihood.

Four independent validity flags guard the cached quantities:
- average_rate_known: site-model average rate
- node_pattern_inclusion_known: inclusion mask
- weight_known: tree exposure and log tree weight
- post_order_known: postorder traversal

store() snapshots the inclusion mask into a second buffer and restore() swaps
the two buffers back, so a rejected proposal costs no allocation.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class RecomputationCache:
    """Cached scalars and double-buffered inclusion mask."""

    n_nodes: int
    n_patterns: int

    average_rate_known: bool = False
    node_pattern_inclusion_known: bool = False
    weight_known: bool = False
    post_order_known: bool = False

    average_rate: float = 0.0
    exposure: float = 0.0
    log_tree_weight: float = 0.0

    inclusion: np.ndarray = field(init=False, repr=False)
    post_order: np.ndarray = field(init=False, repr=False)
    _stored_inclusion: np.ndarray = field(init=False, repr=False)
    _stored: Optional[Tuple[bool, bool, float, float]] = field(default=None, repr=False)

    def __post_init__(self):
        self.inclusion = np.zeros((self.n_nodes, self.n_patterns), dtype=bool)
        self._stored_inclusion = np.zeros_like(self.inclusion)
        self.post_order = np.empty(self.n_nodes, dtype=np.int64)

    def store(self) -> None:
        """Snapshot the inclusion mask and tree weight."""
        np.copyto(self._stored_inclusion, self.inclusion)
        self._stored = (
            self.node_pattern_inclusion_known,
            self.weight_known,
            self.exposure,
            self.log_tree_weight,
        )

    def restore(self) -> None:
        """
        Swap back to the stored snapshot.

        The average rate and postorder are marked unknown and recomputed on
        next use.
        """
        if self._stored is None:
            raise RuntimeError("restore() called before store()")
        self.inclusion, self._stored_inclusion = self._stored_inclusion, self.inclusion
        (
            self.node_pattern_inclusion_known,
            self.weight_known,
            self.exposure,
            self.log_tree_weight,
        ) = self._stored
        self.average_rate_known = False
        self.post_order_known = False
        logger.debug("Restored cached inclusion mask and tree weight")
