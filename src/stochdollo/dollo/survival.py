"""
Per-branch loss probabilities.

A character present at the parent end of a branch is lost along it with
probability 1 - exp(-mu * averageRate * branchRate * length). The root has no
branch and is given loss probability 1.0: the gain placed at the root is
weighted in full when node contributions are aggregated.
"""

import numpy as np

from ..core.trees import TreeStructure


def loss_probability(
    branch_length: float,
    branch_rate: float,
    mu: float,
    average_rate: float,
    is_root: bool = False,
) -> float:
    """
    Probability that a character is lost along a single branch.

    Args:
        branch_length: Length of the branch above the node
        branch_rate: Branch-rate multiplier for that branch
        mu: Per-lineage loss rate (>= 0)
        average_rate: Site-model average rate
        is_root: Whether the node is the root

    Returns:
        Probability in [0, 1]; exactly 0 when no loss is possible, 1.0 for the root
    """
    if is_root:
        return 1.0
    death_rate = mu * average_rate
    branch_time = branch_rate * branch_length
    return float(-np.expm1(-death_rate * branch_time))


def loss_probabilities(
    tree: TreeStructure,
    mu: float,
    average_rate: float,
    branch_rates: np.ndarray,
    out: np.ndarray = None,
) -> np.ndarray:
    """
    Loss probability of every node's branch.

    Args:
        tree: Tree supplying branch lengths and the root
        mu: Per-lineage loss rate (>= 0)
        average_rate: Site-model average rate
        branch_rates: (n_nodes,) branch-rate multipliers
        out: Optional (n_nodes,) buffer

    Returns:
        (n_nodes,) array indexed by node id
    """
    branch_time = branch_rates * tree.branch_lengths
    if out is None:
        out = np.empty(tree.n_nodes)
    np.multiply(branch_time, -mu * average_rate, out=out)
    np.expm1(out, out=out)
    np.negative(out, out=out)
    out[tree.root_index] = 1.0
    return out
