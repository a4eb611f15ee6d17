import logging
import math

import numpy as np
import pytest

from stochdollo.core.datatypes import BINARY, MutationDeathType
from stochdollo.core.patterns import SitePatterns
from stochdollo.core.site_model import SiteModel, StrictClockModel
from stochdollo.core.substitution import MutationDeathModel
from stochdollo.core.trees import TreeStructure
from stochdollo.dollo.likelihood import ObservationProcessLikelihood, validate_parameters

DTYPE = MutationDeathType.from_extant_code("1")


def make_two_taxon(observation_a, observation_b, alive_in_equilibrium, lam=1e-11):
    """Two-taxon tree with a near-zero loss rate, gain rate integrated out."""
    tree = TreeStructure.from_newick("(A:1,B:1):1")
    patterns = SitePatterns.from_sequences(
        {"A": str(observation_a), "B": str(observation_b)}, DTYPE
    )
    # Frequencies are in state order: "1" is state 0, "0" is the death state 1
    subst = MutationDeathModel(
        death_rate=1e-11, frequencies=[alive_in_equilibrium, 1.0 - alive_in_equilibrium]
    )
    site_model = SiteModel(subst, shape=1.0)
    return ObservationProcessLikelihood(
        tree,
        patterns,
        site_model,
        mu=1e-11,
        lam=lam,
        integrate_gain_rate=True,
        branch_rate_model=StrictClockModel(),
    )


def make_likelihood(sequences, newick="((A:1,B:2):0.5,C:1.5);", mu=0.5, lam=2.0,
                    death_rate=0.5, frequencies=(0.7, 0.3), patterns=None, **kwargs):
    tree = TreeStructure.from_newick(newick)
    if patterns is None:
        patterns = SitePatterns.from_sequences(sequences, DTYPE)
    site_model = SiteModel(MutationDeathModel(death_rate=death_rate, frequencies=list(frequencies)))
    return ObservationProcessLikelihood(tree, patterns, site_model, mu=mu, lam=lam, **kwargs)


TWO_TAXON_CASES = [
    (0, 0, 0.0, 1.0),
    (0, 1, 0.0, 0.0),
    (1, 0, 0.0, 0.0),
    (1, 1, 0.0, 0.0),
    (0, 0, 1.0, 0.0),
    (0, 1, 1.0, 0.0),
    (1, 0, 1.0, 0.0),
    (1, 1, 1.0, 1.0),
]


@pytest.mark.parametrize("lam", [1e-11, 1.0])
@pytest.mark.parametrize("obs_a, obs_b, alive, expected", TWO_TAXON_CASES)
def test_two_taxon_likelihood(obs_a, obs_b, alive, expected, lam):
    likelihood = make_two_taxon(obs_a, obs_b, alive, lam=lam)
    assert math.exp(likelihood.calculate_log_p()) == pytest.approx(expected, abs=1e-8)


@pytest.mark.parametrize("obs_a, obs_b, alive, expected", TWO_TAXON_CASES)
def test_two_taxon_tip_partials(obs_a, obs_b, alive, expected):
    likelihood = make_two_taxon(obs_a, obs_b, alive)
    observations = [obs_a, obs_b]
    for v in range(2):
        for tip in range(2):
            partials = likelihood.get_node_partials(tip)
            assert partials.shape == (2,)
            assert partials[1 - v] == pytest.approx(1.0 if observations[tip] == v else 0.0, abs=1e-7)


def test_mismatched_tips_with_equal_frequencies_have_near_zero_likelihood():
    likelihood = make_two_taxon(1, 0, 0.5)
    assert math.exp(likelihood.calculate_log_p()) == pytest.approx(0.0, abs=1e-8)


def test_fixed_gain_rate_matches_closed_form():
    # No substitution death: only the root carries the all-present pattern.
    likelihood = make_likelihood(
        {"A": "1", "B": "1"}, newick="(A:1,B:1);", mu=0.5, lam=2.0,
        death_rate=0.0, frequencies=(1.0, 0.0),
    )

    loss = 1 - math.exp(-0.5)
    weight = 2 * loss + 1 - loss ** 2
    expected = -weight * 2.0 / 0.5 + math.log(2.0 / 0.5)

    assert likelihood.calculate_log_p() == pytest.approx(expected)
    assert likelihood.get_log_tree_weight() == pytest.approx(-weight * 4.0)


def test_pattern_order_does_not_change_log_likelihood():
    sequences = {"A": "110101", "B": "101100", "C": "011110"}
    shuffled = {name: "".join(seq[i] for i in [5, 2, 0, 4, 1, 3]) for name, seq in sequences.items()}

    original = make_likelihood(sequences).calculate_log_p()
    reordered = make_likelihood(shuffled).calculate_log_p()

    assert np.isfinite(original)
    assert reordered == pytest.approx(original)


def test_merging_identical_patterns_does_not_change_log_likelihood():
    split = SitePatterns.from_patterns(
        np.array([[0, 0, 1], [0, 0, 0], [1, 1, 0]]), [1, 1, 2], ["A", "B", "C"], DTYPE
    )
    merged = SitePatterns.from_patterns(
        np.array([[0, 1], [0, 0], [1, 0]]), [2, 2], ["A", "B", "C"], DTYPE
    )

    split_log_p = make_likelihood(None, patterns=split).calculate_log_p()
    merged_log_p = make_likelihood(None, patterns=merged).calculate_log_p()

    assert merged_log_p == pytest.approx(split_log_p)


def test_per_pattern_frequencies_match_shared_frequencies():
    likelihood = make_likelihood({"A": "110", "B": "101", "C": "011"})
    likelihood.calculate_log_p()
    freqs = likelihood.site_model.get_frequencies()

    shared = likelihood.pattern_probabilities(freqs)
    per_pattern = likelihood.pattern_probabilities(np.tile(freqs, (likelihood.pattern_count, 1)))

    np.testing.assert_allclose(per_pattern, shared)
    assert np.all(shared > 0)


def test_excluding_zero_probability_pattern_leaves_log_likelihood_unchanged():
    common = dict(newick="(A:1,B:1);", mu=0.0, death_rate=0.0,
                  frequencies=(0.5, 0.5), integrate_gain_rate=True)
    ascertained = make_likelihood(
        None,
        patterns=SitePatterns.from_sequences(
            {"A": "11", "B": "10"}, DTYPE, ascertained=True, exclude_from=1, exclude_to=2
        ),
        **common,
    )
    plain = make_likelihood({"A": "1", "B": "1"}, **common)

    log_p = ascertained.calculate_log_p()
    assert ascertained.pattern_probabilities(np.array([0.5, 0.5]))[1] == 0.0
    assert ascertained.get_ascertainment_correction(np.array([0.5, 0.0])) == 1.0
    assert log_p == pytest.approx(plain.calculate_log_p())
    assert log_p == pytest.approx(math.log(0.5))


def test_ascertainment_correction_without_remaining_mass_is_minus_infinity():
    patterns = SitePatterns.from_sequences(
        {"A": "00", "B": "00"}, DTYPE, ascertained=True, exclude_from=1, exclude_to=2
    )
    likelihood = make_likelihood(
        None, newick="(A:1,B:1);", patterns=patterns, death_rate=0.0,
        frequencies=(0.0, 1.0), integrate_gain_rate=True,
    )
    assert likelihood.calculate_log_p() == -math.inf


def test_zero_pattern_probability_is_minus_infinity():
    likelihood = make_two_taxon(0, 1, 0.0)
    assert likelihood.calculate_log_p() == -math.inf


def test_node_loss_probabilities():
    likelihood = make_likelihood({"A": "1", "B": "1", "C": "0"}, mu=0.4)
    tree = likelihood.tree

    assert likelihood.get_node_loss_probability(tree.root_index) == 1.0
    assert likelihood.get_node_loss_probability(1) == pytest.approx(1 - math.exp(-0.4 * 2.0))
    np.testing.assert_allclose(
        likelihood.get_node_loss_probabilities(),
        [likelihood.get_node_loss_probability(i) for i in range(tree.n_nodes)],
    )


def test_single_tip_tree_weight():
    likelihood = make_likelihood(
        {"A": "11", "B": "10", "C": "01"}, mu=0.5, lam=2.0,
        observation_process="single_tip", tip_taxon="A",
    )
    assert likelihood.get_log_tree_weight() == pytest.approx(-2.0 / 0.5)
    assert np.isfinite(likelihood.calculate_log_p())


def test_single_tip_warns_about_absent_characters(caplog):
    with caplog.at_level(logging.WARNING, logger="stochdollo.dollo.observation"):
        make_likelihood(
            {"A": "10", "B": "11", "C": "01"},
            observation_process="single_tip", tip_taxon="A",
        )
    assert "not extant in single-tip taxon 'A'" in caplog.text


@pytest.mark.parametrize(
    "kwargs",
    [
        {"observation_process": "single_tip"},
        {"observation_process": "single_tip", "tip_taxon": "Z"},
        {"observation_process": "every_tip"},
    ],
)
def test_invalid_observation_process_configuration(kwargs):
    with pytest.raises(ValueError):
        make_likelihood({"A": "1", "B": "1", "C": "1"}, **kwargs)


def test_data_type_without_death_state_falls_back_to_zero(caplog):
    tree = TreeStructure.from_newick("(A:1,B:1);")
    patterns = SitePatterns.from_sequences({"A": "1", "B": "1"}, BINARY)
    site_model = SiteModel(MutationDeathModel(death_rate=0.5, frequencies=[0.5, 0.5]))

    with caplog.at_level(logging.WARNING, logger="stochdollo.dollo.likelihood"):
        likelihood = ObservationProcessLikelihood(tree, patterns, site_model, mu=0.5)

    assert likelihood.death_state == 0
    assert "no death state" in caplog.text


def test_initialisation_is_logged(caplog):
    with caplog.at_level(logging.INFO, logger="stochdollo.dollo.likelihood"):
        make_likelihood({"A": "10", "B": "11", "C": "01"})
    assert "Initialized any_tip observation process" in caplog.text


@pytest.mark.parametrize(
    "mu, lam, integrate",
    [(-1.0, 1.0, False), (1.0, -1.0, False), (0.0, 1.0, False), (math.inf, 1.0, True)],
)
def test_invalid_parameter_domains_rejected(mu, lam, integrate):
    with pytest.raises(ValueError):
        validate_parameters(mu, lam, integrate)


def test_zero_mu_allowed_when_gain_rate_integrated():
    validate_parameters(0.0, 1.0, True)
    with pytest.raises(ValueError):
        make_likelihood({"A": "1", "B": "1", "C": "1"}, mu=0.0)


def test_mu_set_to_zero_is_rejected_at_evaluation():
    likelihood = make_likelihood({"A": "1", "B": "1", "C": "1"})
    likelihood.mu.set_value(0.0)
    with pytest.raises(ValueError):
        likelihood.calculate_log_p()


@pytest.mark.parametrize("backend", ["beagle", "jax"])
def test_accelerated_backends_fail_hard(backend):
    with pytest.raises(RuntimeError, match="does not support"):
        make_likelihood({"A": "1", "B": "1", "C": "1"}, backend=backend)


def test_alignment_without_counted_sites_rejected():
    patterns = SitePatterns.from_sequences(
        {"A": "1", "B": "1"}, DTYPE, ascertained=True, exclude_from=0, exclude_to=1
    )
    with pytest.raises(ValueError, match="no counted sites"):
        make_likelihood(None, newick="(A:1,B:1);", patterns=patterns)


def test_parameter_accessors():
    likelihood = make_likelihood({"A": "1", "B": "1", "C": "1"}, mu=0.25, lam=3.0)
    assert likelihood.get_mu_parameter().value == 0.25
    assert likelihood.get_lam_parameter().value == 3.0
    assert likelihood.gamma_norm == pytest.approx(0.0)
