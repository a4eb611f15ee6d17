"""
stochdollo: Stochastic Dollo observation-process likelihoods

Likelihood of presence/absence characters that are gained once on a tree and
lost independently along its branches, conditioned on being observed.
"""

__version__ = "0.1.0"

from stochdollo.core.trees import TreeStructure, TreeNode, load_tree, build_star_tree
from stochdollo.core.datatypes import DataType, MutationDeathType, BINARY, NUCLEOTIDE
from stochdollo.core.patterns import SitePatterns
from stochdollo.core.parameters import RealParameter
from stochdollo.core.substitution import MutationDeathModel
from stochdollo.core.site_model import SiteModel, StrictClockModel, FixedBranchRates
from stochdollo.dollo.likelihood import ObservationProcessLikelihood, validate_parameters
from stochdollo.dollo.config import DolloModelConfig, build_likelihood

__all__ = [
    "TreeStructure",
    "TreeNode",
    "load_tree",
    "build_star_tree",
    "DataType",
    "MutationDeathType",
    "BINARY",
    "NUCLEOTIDE",
    "SitePatterns",
    "RealParameter",
    "MutationDeathModel",
    "SiteModel",
    "StrictClockModel",
    "FixedBranchRates",
    "ObservationProcessLikelihood",
    "validate_parameters",
    "DolloModelConfig",
    "build_likelihood",
    "__version__",
]
