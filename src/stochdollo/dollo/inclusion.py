"""
Node/pattern inclusion mask.

For every (node, pattern) pair the mask records whether the node's subtree
holds every tip at which the character is extant. Only those nodes can be the
origin of the character, so only they contribute to the pattern probability.

Tip counts depend only on the alignment and are computed once. Internal counts
are rebuilt along the postorder whenever the topology changes.
"""

import logging
from typing import Sequence

import numpy as np

from ..core.patterns import SitePatterns
from ..core.trees import TreeStructure

logger = logging.getLogger(__name__)


class PatternInclusion:
    """
    Extant-tip counting over a tree.

    Attributes:
        extant_in_tips_below: (n_nodes, n_patterns) count of extant tips below each node
        extant_in_tips: (n_patterns,) total count of extant tips per pattern
        death_state: State meaning "character absent"
    """

    def __init__(self, tree: TreeStructure, patterns: SitePatterns, death_state: int):
        self.tree = tree
        self.patterns = patterns
        self.death_state = death_state
        self.extant_in_tips_below = np.zeros((tree.n_nodes, patterns.n_patterns), dtype=np.int64)
        self.extant_in_tips = np.zeros(patterns.n_patterns, dtype=np.int64)
        self._set_tip_counts()

    def _set_tip_counts(self) -> None:
        """A tip is extant unless its code is, or may be, the death state."""
        extant_code = np.array(
            [self.death_state not in self.patterns.states_for_code(code)
             for code in range(self.patterns.datatype.code_count)],
            dtype=np.int64,
        )
        for tip_idx, tip_name in zip(self.tree.tip_indices, self.tree.tip_names):
            taxon_idx = self.patterns.get_taxon_index(tip_name)
            self.extant_in_tips_below[tip_idx] = extant_code[self.patterns.patterns[taxon_idx]]
        self.extant_in_tips[:] = self.extant_in_tips_below[: self.tree.n_tips].sum(axis=0)

    def recompute(self, postorder: Sequence[int], out: np.ndarray) -> np.ndarray:
        """
        Rebuild subtree counts and the inclusion mask.

        Args:
            postorder: Node ids with children before parents
            out: (n_nodes, n_patterns) boolean mask to fill

        Returns:
            `out`, with out[i, j] true iff node i's subtree holds every extant
            tip of pattern j
        """
        below = self.extant_in_tips_below
        for node_id in postorder:
            node_id = int(node_id)
            children = self.tree.get_children(node_id)
            if children:
                np.sum(below[children], axis=0, out=below[node_id])
        np.greater_equal(below, self.extant_in_tips[None, :], out=out)
        logger.debug(f"Inclusion mask rebuilt: {int(out.sum())} included node/pattern pairs")
        return out
