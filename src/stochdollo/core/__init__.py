"""Core phylogenetic collaborators: trees, alignments, and substitution models."""

from stochdollo.core.traversal import post_order_traversal
from stochdollo.core.trees import TreeStructure, TreeNode, load_tree, build_star_tree
from stochdollo.core.datatypes import DataType, MutationDeathType, BINARY, NUCLEOTIDE, encode
from stochdollo.core.patterns import SitePatterns
from stochdollo.core.parameters import RealParameter, as_parameter
from stochdollo.core.substitution import MutationDeathModel
from stochdollo.core.site_model import SiteModel, StrictClockModel, FixedBranchRates
from stochdollo.core.pruning import FelsensteinPartials, check_backend

__all__ = [
    "post_order_traversal",
    "TreeStructure",
    "TreeNode",
    "load_tree",
    "build_star_tree",
    "DataType",
    "MutationDeathType",
    "BINARY",
    "NUCLEOTIDE",
    "encode",
    "SitePatterns",
    "RealParameter",
    "as_parameter",
    "MutationDeathModel",
    "SiteModel",
    "StrictClockModel",
    "FixedBranchRates",
    "FelsensteinPartials",
    "check_backend",
]
