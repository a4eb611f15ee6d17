"""
Post-order traversal of a rooted tree.

The traversal is built iteratively by filling an array from the back: the
root goes into the last slot, then every node that has already been placed
pushes its children into the free slots immediately below the fill cursor.
Every child therefore ends up before its parent and the root is last.
"""

from typing import Optional, Protocol, Sequence

import numpy as np


class TraversableTree(Protocol):
    """Minimal tree interface needed to build a traversal."""

    @property
    def n_nodes(self) -> int:
        ...

    @property
    def root_index(self) -> int:
        ...

    def get_children(self, node_id: int) -> Sequence[int]:
        ...


def post_order_traversal(
    tree: TraversableTree,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Build a post-order visitation sequence over all nodes of `tree`.

    Args:
        tree: Tree exposing n_nodes, root_index and get_children
        out: Optional preallocated (n_nodes,) integer buffer to fill

    Returns:
        (n_nodes,) array of node ids; children precede parents, root last

    Raises:
        ValueError: If `out` has the wrong size or the tree is not connected
    """
    n_nodes = tree.n_nodes
    if out is None:
        out = np.empty(n_nodes, dtype=np.int64)
    elif out.shape != (n_nodes,):
        raise ValueError(f"Traversal buffer has shape {out.shape}, expected ({n_nodes},)")

    idx = n_nodes - 1
    cidx = idx
    out[idx] = tree.root_index

    while cidx > 0:
        for child in tree.get_children(int(out[idx])):
            cidx -= 1
            out[cidx] = child
        idx -= 1
        if 0 < cidx and idx < cidx:
            raise ValueError(
                f"Tree is not connected: only {n_nodes - cidx} of {n_nodes} nodes reachable from root"
            )

    return out
