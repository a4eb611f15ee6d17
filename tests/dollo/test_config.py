import math

import pytest

from stochdollo.core.datatypes import MutationDeathType
from stochdollo.core.patterns import SitePatterns
from stochdollo.core.site_model import SiteModel
from stochdollo.core.substitution import MutationDeathModel
from stochdollo.core.trees import TreeStructure
from stochdollo.dollo.config import DolloModelConfig, build_likelihood
from stochdollo.dollo.likelihood import ObservationProcessLikelihood
from stochdollo.dollo.observation import SingleTipObservationProcess, make_observation_process

DTYPE = MutationDeathType.from_extant_code("1")


def _inputs():
    tree = TreeStructure.from_newick("((A:1,B:1):1,C:2);")
    patterns = SitePatterns.from_sequences({"A": "110", "B": "101", "C": "111"}, DTYPE)
    site_model = SiteModel(MutationDeathModel(death_rate=0.3, frequencies=[0.5, 0.5]))
    return tree, patterns, site_model


def test_default_config():
    config = DolloModelConfig()
    assert config.mu == 1.0
    assert config.lam == 1.0
    assert not config.integrate_gain_rate
    assert config.observation_process == "any_tip"
    assert config.backend == "numpy"
    config.validate()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"mu": -1.0},
        {"lam": -0.5},
        {"mu": 0.0},
        {"observation_process": "every_tip"},
        {"observation_process": "single_tip"},
        {"backend": "opencl"},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        DolloModelConfig(**kwargs).validate()


def test_build_likelihood_from_config():
    tree, patterns, site_model = _inputs()
    config = DolloModelConfig(mu=0.3, lam=2.0, integrate_gain_rate=True)

    likelihood = build_likelihood(tree, patterns, site_model, config)

    assert isinstance(likelihood, ObservationProcessLikelihood)
    assert likelihood.mu.value == 0.3
    assert likelihood.integrate_gain_rate
    assert math.isfinite(likelihood.calculate_log_p())


def test_build_single_tip_likelihood():
    tree, patterns, site_model = _inputs()
    config = DolloModelConfig(mu=0.5, observation_process="single_tip", tip_taxon="C")

    likelihood = build_likelihood(tree, patterns, site_model, config)

    assert isinstance(likelihood.observation_process, SingleTipObservationProcess)
    assert likelihood.observation_process.taxon == "C"


def test_build_with_accelerated_backend_fails_hard():
    tree, patterns, site_model = _inputs()
    with pytest.raises(RuntimeError):
        build_likelihood(tree, patterns, site_model, DolloModelConfig(backend="jax"))


def test_make_observation_process_rejects_unknown_name():
    tree, patterns, _ = _inputs()
    with pytest.raises(ValueError, match="Unknown observation process"):
        make_observation_process("bogus", tree, patterns, DTYPE.death_state)
