import numpy as np
import pytest

from stochdollo.core.site_model import FixedBranchRates, SiteModel, StrictClockModel
from stochdollo.core.substitution import MutationDeathModel


def _subst():
    return MutationDeathModel(death_rate=1.0, frequencies=[0.5, 0.5])


def test_single_category_has_unit_rate():
    site_model = SiteModel(_subst())

    np.testing.assert_allclose(site_model.get_category_rates(), [1.0])
    np.testing.assert_allclose(site_model.get_category_proportions(), [1.0])
    assert site_model.get_average_rate() == pytest.approx(1.0)
    np.testing.assert_allclose(site_model.get_frequencies(), [0.5, 0.5])


def test_gamma_categories_are_increasing_with_mean_one():
    site_model = SiteModel(_subst(), category_count=4, shape=0.5)

    rates = site_model.get_category_rates()
    assert rates.shape == (4,)
    assert np.all(np.diff(rates) > 0)
    assert rates.mean() == pytest.approx(1.0)
    assert site_model.get_average_rate() == pytest.approx(1.0)


def test_invariant_category_and_mutation_rate():
    site_model = SiteModel(
        _subst(), category_count=4, shape=2.0, proportion_invariant=0.2, mutation_rate=2.0
    )

    rates = site_model.get_category_rates()
    proportions = site_model.get_category_proportions()
    assert site_model.get_category_count() == 5
    assert rates[0] == 0.0
    assert proportions[0] == pytest.approx(0.2)
    assert proportions.sum() == pytest.approx(1.0)
    assert site_model.get_average_rate() == pytest.approx(2.0)


def test_invalid_site_model_settings():
    with pytest.raises(ValueError):
        SiteModel(_subst(), category_count=0)
    with pytest.raises(ValueError):
        SiteModel(_subst(), proportion_invariant=1.0)


def test_site_model_dirty_tracking_includes_substitution_model():
    site_model = SiteModel(_subst(), category_count=2, shape=1.0)
    assert not site_model.is_dirty_calculation()

    site_model.shape.set_value(3.0)
    assert site_model.is_dirty_calculation()
    site_model.accept()
    assert not site_model.is_dirty_calculation()

    site_model.substitution_model.death_rate.set_value(0.1)
    assert site_model.is_dirty_calculation()


def test_strict_clock_rates():
    clock = StrictClockModel(rate=0.5)
    np.testing.assert_allclose(clock.get_branch_rates(3), [0.5, 0.5, 0.5])
    assert clock.get_rate_for_branch(1) == 0.5

    clock.rate.set_value(1.5)
    assert clock.is_dirty_calculation()


def test_fixed_branch_rates():
    rates = FixedBranchRates([1.0, 2.0, 1.0])
    assert rates.get_rate_for_branch(1) == 2.0

    rates.set_rate(0, 3.0)
    assert rates.is_dirty_calculation()
    rates.accept()
    assert not rates.is_dirty_calculation()

    with pytest.raises(ValueError):
        rates.get_branch_rates(4)
    with pytest.raises(ValueError):
        FixedBranchRates([1.0, -1.0])
    with pytest.raises(ValueError):
        rates.set_rate(0, -2.0)
