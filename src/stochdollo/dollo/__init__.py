"""Stochastic Dollo observation process: inclusion masks, tree weights, likelihood."""

from stochdollo.dollo.survival import loss_probability, loss_probabilities
from stochdollo.dollo.inclusion import PatternInclusion
from stochdollo.dollo.tree_weight import any_tip_survival_weight, log_tree_weight, gain_rate_term
from stochdollo.dollo.observation import (
    ObservationProcess,
    AnyTipObservationProcess,
    SingleTipObservationProcess,
    make_observation_process,
)
from stochdollo.dollo.cache import RecomputationCache
from stochdollo.dollo.likelihood import ObservationProcessLikelihood, validate_parameters
from stochdollo.dollo.config import DolloModelConfig, build_likelihood

__all__ = [
    "loss_probability",
    "loss_probabilities",
    "PatternInclusion",
    "any_tip_survival_weight",
    "log_tree_weight",
    "gain_rate_term",
    "ObservationProcess",
    "AnyTipObservationProcess",
    "SingleTipObservationProcess",
    "make_observation_process",
    "RecomputationCache",
    "ObservationProcessLikelihood",
    "validate_parameters",
    "DolloModelConfig",
    "build_likelihood",
]
