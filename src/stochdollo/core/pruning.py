"""
Felsenstein pruning for per-node partial likelihoods.

The observation-process likelihood needs the conditional likelihood vector of
every node, not only the root, because a character may have been gained
anywhere on the tree. This module provides them:
1. Tip partials are indicator vectors over the state set of each observed code
2. Internal partials are the product over children of P(t_child) @ L_child
3. Branch times are branch length x branch rate x site-model average rate

Only the numpy backend is implemented. Accelerated backends are recognised
names so that wiring mistakes fail loudly instead of silently falling back.
"""

import logging
from typing import Optional

import numpy as np

from .patterns import SitePatterns
from .site_model import SiteModel, StrictClockModel
from .trees import TreeStructure

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("numpy",)
ACCELERATED_BACKENDS = ("beagle", "jax")


def check_backend(backend: str, owner: str = "FelsensteinPartials") -> None:
    """
    Reject partial-likelihood backends that are not available.

    Raises:
        RuntimeError: For accelerated backends this engine does not support
        ValueError: For unknown backend names
    """
    if backend in SUPPORTED_BACKENDS:
        return
    if backend in ACCELERATED_BACKENDS:
        raise RuntimeError(f"{owner} does not support the {backend!r} backend yet")
    raise ValueError(
        f"Unknown backend {backend!r}; expected one of {SUPPORTED_BACKENDS + ACCELERATED_BACKENDS}"
    )


class FelsensteinPartials:
    """
    Per-node conditional likelihoods for every site pattern.

    Usage:
        partials = FelsensteinPartials(tree, patterns, site_model)
        partials.update()
        root = partials.get_node_partials(tree.root_index)

    Attributes:
        tree: Tree the partials are computed on
        patterns: Compressed alignment
        site_model: Supplies transition matrices and the average rate
        branch_rate_model: Per-branch rate multipliers (strict clock of 1 if None)
        conditionals: (n_nodes, n_patterns, n_states) partial likelihoods
    """

    def __init__(
        self,
        tree: TreeStructure,
        patterns: SitePatterns,
        site_model: SiteModel,
        branch_rate_model=None,
        backend: str = "numpy",
    ):
        check_backend(backend)
        self.tree = tree
        self.patterns = patterns
        self.site_model = site_model
        self.branch_rate_model = branch_rate_model if branch_rate_model is not None else StrictClockModel()
        self.backend = backend

        self.n_states = patterns.state_count
        self.n_patterns = patterns.n_patterns
        if site_model.substitution_model.n_states != self.n_states:
            raise ValueError(
                f"Substitution model has {site_model.substitution_model.n_states} states, "
                f"data type has {self.n_states}"
            )

        self.conditionals = np.zeros((tree.n_nodes, self.n_patterns, self.n_states))
        self._set_tip_partials()

    def _set_tip_partials(self) -> None:
        """Tip partials never change: 1 for every state a code allows, else 0."""
        code_partials = np.zeros((self.patterns.datatype.code_count, self.n_states))
        for code in range(code_partials.shape[0]):
            code_partials[code, list(self.patterns.states_for_code(code))] = 1.0

        for tip_idx, tip_name in zip(self.tree.tip_indices, self.tree.tip_names):
            try:
                taxon_idx = self.patterns.get_taxon_index(tip_name)
            except KeyError as exc:
                raise ValueError(f"Tree tip '{tip_name}' has no row in the alignment") from exc
            self.conditionals[tip_idx] = code_partials[self.patterns.patterns[taxon_idx]]

    def update(self) -> None:
        """Recompute internal-node partials in postorder."""
        tree = self.tree
        substitution_model = self.site_model.substitution_model
        average_rate = self.site_model.get_average_rate()
        branch_rates = self.branch_rate_model.get_branch_rates(tree.n_nodes)

        for node_id in tree.postorder:
            node_id = int(node_id)
            if tree.is_tip(node_id):
                continue
            cond = np.ones((self.n_patterns, self.n_states))
            for child in tree.get_children(node_id):
                distance = tree.branch_lengths[child] * branch_rates[child] * average_rate
                P = substitution_model.get_transition_matrix(distance)
                cond *= self.conditionals[child] @ P.T
            self.conditionals[node_id] = cond

    def get_node_partials(self, node_id: int, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Partials of a node flattened pattern-major.

        Args:
            node_id: Node to read
            out: Optional (n_patterns * n_states,) buffer to fill

        Returns:
            Array of length n_patterns * n_states; entry [j * n_states + s] is
            the likelihood of the data below the node given state s at pattern j
        """
        flat = self.conditionals[node_id].reshape(-1)
        if out is None:
            return flat.copy()
        if out.shape != flat.shape:
            raise ValueError(f"Partials buffer has shape {out.shape}, expected {flat.shape}")
        np.copyto(out, flat)
        return out
