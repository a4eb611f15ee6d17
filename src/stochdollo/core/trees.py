"""
Core tree utilities for stochdollo.

Provides the rooted tree the observation-process likelihood runs on. Trees are
parsed from Newick and renumbered so that:
1. Tips occupy ids [0, n_tips) in order of appearance
2. Internal nodes follow, children before parents, root last
3. Branch lengths and parents are mirrored into numpy arrays

The tree also carries the change signals an MCMC framework needs: branch-length
edits mark it dirty, subtree exchanges additionally mark the topology dirty, and
store()/restore()/accept() provide proposal undo.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import dendropy
import numpy as np
from dendropy.utility.error import DataParseError

from .traversal import post_order_traversal

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    """
    Generic tree node representation.

    Attributes:
        id: Unique node identifier
        name: Node name (for tips, usually taxon name)
        parent_id: ID of parent node (None for root)
        children_ids: List of child node IDs
        branch_length: Length of branch leading to this node
        is_tip: Whether this is a leaf node
    """
    id: int
    name: Optional[str] = None
    parent_id: Optional[int] = None
    children_ids: List[int] = field(default_factory=list)
    branch_length: float = 0.0
    is_tip: bool = False


@dataclass
class TreeStructure:
    """
    Rooted tree with leaf-first node numbering.

    Attributes:
        n_nodes: Total number of nodes
        n_tips: Number of tip nodes (ids 0..n_tips-1)
        nodes: List of TreeNode objects indexed by id
        root_index: Index of root node
        branch_lengths: Array of branch lengths indexed by node
        parent_indices: Array of parent indices (-1 for root)
        tip_names: Tip names indexed by tip id
    """
    n_nodes: int
    n_tips: int
    nodes: List[TreeNode]
    root_index: int
    branch_lengths: np.ndarray
    parent_indices: np.ndarray
    tip_names: List[str]
    _dirty: bool = field(default=False, repr=False)
    _topology_dirty: bool = field(default=False, repr=False)
    _postorder: Optional[np.ndarray] = field(default=None, repr=False)
    _stored: Optional[Tuple] = field(default=None, repr=False)

    @classmethod
    def from_newick(cls, newick: str) -> 'TreeStructure':
        """
        Parse Newick string into TreeStructure.

        Parsing is done by dendropy, so quoted labels, doubled quotes and
        bracketed comments follow the Newick conventions. Unquoted
        underscores are kept as underscores.

        Args:
            newick: Newick format tree string (trailing semicolon optional)

        Returns:
            TreeStructure instance

        Raises:
            ValueError: If the string is not a well-formed Newick tree
        """
        newick = newick.strip().rstrip(';').strip()
        if not newick:
            raise ValueError("Empty Newick string")

        try:
            tree = dendropy.Tree.get(
                data=newick + ";",
                schema="newick",
                preserve_underscores=True,
                case_sensitive_taxon_labels=True,
            )
        except DataParseError as exc:
            raise ValueError(f"Malformed Newick string {newick!r}: {exc}") from exc

        # Preorder ids, as _build_from_nodes expects
        nodes: List[TreeNode] = []
        node_to_idx = {}
        for i, node in enumerate(tree.preorder_node_iter()):
            node_to_idx[node] = i
            is_tip = node.is_leaf()
            if is_tip:
                if node.taxon is None or not node.taxon.label:
                    raise ValueError("Newick tip without a name")
                name = node.taxon.label
            else:
                name = node.label or None
            try:
                branch_length = float(node.edge_length) if node.edge_length is not None else 0.0
            except ValueError as exc:
                raise ValueError(
                    f"Invalid branch length {node.edge_length!r} in Newick string"
                ) from exc
            parent = node.parent_node
            nodes.append(TreeNode(
                id=i,
                name=name,
                parent_id=node_to_idx[parent] if parent is not None else None,
                branch_length=branch_length,
                is_tip=is_tip,
            ))

        for node in tree.preorder_node_iter():
            nodes[node_to_idx[node]].children_ids = [
                node_to_idx[child] for child in node.child_nodes()
            ]

        return cls._build_from_nodes(nodes, node_to_idx[tree.seed_node])

    @classmethod
    def _build_from_nodes(cls, nodes: List[TreeNode], root_index: int) -> 'TreeStructure':
        """
        Renumber parsed nodes leaf-first and build the array views.

        Parsed ids are in preorder, so reversing the preorder of the internal
        nodes places every internal node after its internal descendants.
        """
        tips = [n.id for n in nodes if n.is_tip]
        internals = [n.id for n in reversed(nodes) if not n.is_tip]
        new_id = {old: new for new, old in enumerate(tips + internals)}

        renumbered = [None] * len(nodes)
        for n in nodes:
            renumbered[new_id[n.id]] = TreeNode(
                id=new_id[n.id],
                name=n.name,
                parent_id=new_id[n.parent_id] if n.parent_id is not None else None,
                children_ids=[new_id[c] for c in n.children_ids],
                branch_length=n.branch_length,
                is_tip=n.is_tip,
            )

        names = [n.name for n in renumbered if n.is_tip]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate tip names in tree")

        return cls(
            n_nodes=len(renumbered),
            n_tips=len(tips),
            nodes=renumbered,
            root_index=new_id[root_index],
            branch_lengths=np.array([n.branch_length for n in renumbered], dtype=float),
            parent_indices=np.array(
                [n.parent_id if n.parent_id is not None else -1 for n in renumbered],
                dtype=np.int64,
            ),
            tip_names=names,
        )

    @property
    def tip_indices(self) -> List[int]:
        return list(range(self.n_tips))

    @property
    def internal_indices(self) -> List[int]:
        return list(range(self.n_tips, self.n_nodes))

    @property
    def postorder(self) -> np.ndarray:
        """Node ids in postorder (tips first, root last); rebuilt after topology changes."""
        if self._postorder is None:
            self._postorder = post_order_traversal(self)
        return self._postorder

    def get_children(self, node_id: int) -> List[int]:
        """Get children of a node."""
        return self.nodes[node_id].children_ids

    def get_parent(self, node_id: int) -> Optional[int]:
        """Get parent of a node (None for the root)."""
        return self.nodes[node_id].parent_id

    def get_branch_length(self, node_id: int) -> float:
        """Get branch length of a node."""
        return self.nodes[node_id].branch_length

    def is_tip(self, node_id: int) -> bool:
        """Check if node is a leaf."""
        return self.nodes[node_id].is_tip

    def get_tip_index_map(self) -> Dict[str, int]:
        """Map tip names to their indices."""
        return {name: idx for idx, name in enumerate(self.tip_names)}

    def is_ancestor(self, ancestor: int, node_id: int) -> bool:
        """Whether `ancestor` lies on the path from `node_id` to the root."""
        current = self.nodes[node_id].parent_id
        while current is not None:
            if current == ancestor:
                return True
            current = self.nodes[current].parent_id
        return False

    # ------------------------------------------------------------------ #
    # Mutation and change signals
    # ------------------------------------------------------------------ #

    def set_branch_length(self, node_id: int, length: float) -> None:
        """Change the length of the branch above `node_id`; marks the tree dirty."""
        if not np.isfinite(length) or length < 0:
            raise ValueError(f"Branch length must be finite and non-negative, got {length}")
        self.nodes[node_id].branch_length = float(length)
        self.branch_lengths[node_id] = float(length)
        self._dirty = True

    def exchange_subtrees(self, node_a: int, node_b: int) -> None:
        """
        Swap the parents of two nodes, moving their subtrees.

        Each node keeps its own branch length. Marks the topology dirty.

        Raises:
            ValueError: If either node is the root, the nodes are siblings, or
                one is an ancestor of the other
        """
        parent_a = self.nodes[node_a].parent_id
        parent_b = self.nodes[node_b].parent_id
        if parent_a is None or parent_b is None:
            raise ValueError("Cannot exchange the root")
        if parent_a == parent_b:
            raise ValueError(f"Nodes {node_a} and {node_b} are siblings; exchange is a no-op")
        if self.is_ancestor(node_a, node_b) or self.is_ancestor(node_b, node_a):
            raise ValueError(f"Nodes {node_a} and {node_b} are on the same lineage")

        children_a = self.nodes[parent_a].children_ids
        children_b = self.nodes[parent_b].children_ids
        children_a[children_a.index(node_a)] = node_b
        children_b[children_b.index(node_b)] = node_a
        self.nodes[node_a].parent_id = parent_b
        self.nodes[node_b].parent_id = parent_a
        self.parent_indices[node_a] = parent_b
        self.parent_indices[node_b] = parent_a

        self._postorder = None
        self._dirty = True
        self._topology_dirty = True
        logger.debug(f"Exchanged subtrees {node_a} <-> {node_b}")

    def something_is_dirty(self) -> bool:
        """Whether topology or branch lengths changed since the last accept/restore."""
        return self._dirty

    def topology_is_dirty(self) -> bool:
        """Whether the topology changed since the last accept/restore."""
        return self._topology_dirty

    def store(self) -> None:
        """Snapshot topology and branch lengths."""
        self._stored = (
            self.parent_indices.copy(),
            [list(n.children_ids) for n in self.nodes],
            self.branch_lengths.copy(),
        )

    def restore(self) -> None:
        """Revert to the last snapshot and clear change signals."""
        if self._stored is None:
            raise RuntimeError("restore() called before store()")
        parents, children, lengths = self._stored
        for n in self.nodes:
            parent = int(parents[n.id])
            n.parent_id = parent if parent >= 0 else None
            n.children_ids = list(children[n.id])
            n.branch_length = float(lengths[n.id])
        self.parent_indices = parents.copy()
        self.branch_lengths = lengths.copy()
        self._postorder = None
        self.accept()

    def accept(self) -> None:
        """Clear change signals after the framework accepts a state."""
        self._dirty = False
        self._topology_dirty = False

    def to_newick(self, precision: int = 6) -> str:
        """Serialize to Newick; names are quoted, root branch length omitted."""
        def quote(name: str) -> str:
            return "'" + name.replace("'", "''") + "'"

        rendered: Dict[int, str] = {}
        for node_id in self.postorder:
            node = self.nodes[int(node_id)]
            if node.is_tip:
                label = quote(node.name)
            else:
                label = "(" + ",".join(rendered[c] for c in node.children_ids) + ")"
                if node.name:
                    label += quote(node.name)
            if node.parent_id is not None:
                label += f":{node.branch_length:.{precision}f}"
            rendered[node.id] = label
        return rendered[self.root_index] + ";"

    def __repr__(self) -> str:
        return f"TreeStructure({self.n_tips} tips, {self.n_nodes} nodes)"


def build_star_tree(taxon_names: Sequence[str], branch_length: float = 1.0) -> TreeStructure:
    """Build a star tree with every taxon attached directly to the root."""
    if not taxon_names:
        raise ValueError("taxon_names cannot be empty")
    root = TreeNode(id=0)
    nodes = [root]
    for name in taxon_names:
        tip = TreeNode(id=len(nodes), name=name, parent_id=0,
                       branch_length=float(branch_length), is_tip=True)
        root.children_ids.append(tip.id)
        nodes.append(tip)
    return TreeStructure._build_from_nodes(nodes, 0)


def load_tree(filepath: Union[str, Path]) -> TreeStructure:
    """
    Load a phylogenetic tree from file.

    This is the main entry point for tree loading in stochdollo.

    Args:
        filepath: Path to Newick file

    Returns:
        TreeStructure ready for likelihood computation
    """
    return TreeStructure.from_newick(Path(filepath).read_text())
