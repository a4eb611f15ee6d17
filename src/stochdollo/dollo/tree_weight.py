"""
Tree weight of the stochastic Dollo gain process.

Characters are gained as a Poisson process of rate lambda over the tree and
the unobserved gains are integrated out. The tree weight is the log of the
probability mass of gains that leave a trace:

    logTreeWeight = -lambda * exposure / mu

with `exposure` depending on how the data were collected:
- any tip: sum over nodes of the probability that a gain on the branch above
  survives to at least one tip, divided by the average rate
- single tip: 1 / averageRate, the gain being pinned to one known taxon

`gain_rate_term` folds the tree weight into the log-likelihood, either with a
fixed lambda or with lambda integrated out.
"""

import math
from typing import Optional, Sequence

import numpy as np

from ..core.trees import TreeStructure


def any_tip_survival_weight(
    tree: TreeStructure,
    postorder: Sequence[int],
    loss: np.ndarray,
    u0: Optional[np.ndarray] = None,
) -> float:
    """
    Sum over nodes of the probability that a gain above the node reaches a tip.

    With p = 1 - loss the survival along a branch, u0[i] is the probability
    that a character present at node i survives to no tip: 0 for a tip and
    prod over children c of (1 - p[c] * (1 - u0[c])) otherwise. Tips add
    1 - p[i]; internal nodes add (1 - u0[i]) * (1 - p[i]).

    Args:
        tree: Tree the weight is computed on
        postorder: Node ids with children before parents
        loss: (n_nodes,) loss probabilities, 1.0 at the root
        u0: Optional (n_nodes,) scratch buffer

    Returns:
        Non-negative survival weight
    """
    if u0 is None:
        u0 = np.empty(tree.n_nodes)
    p = 1.0 - loss
    weight = 0.0
    for node_id in postorder:
        node_id = int(node_id)
        if node_id < tree.n_tips:
            u0[node_id] = 0.0
            weight += 1.0 - p[node_id]
        else:
            value = 1.0
            for child in tree.get_children(node_id):
                value *= 1.0 - p[child] * (1.0 - u0[child])
            u0[node_id] = value
            weight += (1.0 - value) * (1.0 - p[node_id])
    return weight


def log_tree_weight(exposure: float, mu: float, lam: float) -> float:
    """-lam * exposure / mu; -inf when mu is zero."""
    if mu == 0.0:
        return -math.inf
    return -exposure * lam / mu


def gain_rate_term(
    exposure: float,
    mu: float,
    lam: float,
    total_patterns: float,
    gamma_norm: float,
    integrate_gain_rate: bool,
) -> float:
    """
    Contribution of the gain process to the log-likelihood.

    With a fixed gain rate this is logTreeWeight + N log(lam / mu). With the
    gain rate integrated out it is -(gammaNorm + log N + N log(exposure)),
    which depends on neither lam nor mu.

    Args:
        exposure: Tree exposure (see module docstring)
        mu: Per-lineage loss rate
        lam: Gain rate
        total_patterns: Weighted number of counted sites N
        gamma_norm: -lnGamma(N + 1)
        integrate_gain_rate: Whether lambda is integrated out

    Returns:
        Log-likelihood term; -inf when the exposure is not positive
    """
    if integrate_gain_rate:
        if exposure <= 0.0:
            return -math.inf
        return -(gamma_norm + math.log(total_patterns) + math.log(exposure) * total_patterns)
    if mu <= 0.0:
        raise ValueError("mu must be > 0 when the gain rate is not integrated out")
    if lam == 0.0:
        return -math.inf if total_patterns > 0 else 0.0
    return log_tree_weight(exposure, mu, lam) + math.log(lam / mu) * total_patterns
