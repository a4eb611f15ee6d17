import numpy as np
import pytest

from stochdollo.core.datatypes import MutationDeathType
from stochdollo.core.patterns import SitePatterns

DTYPE = MutationDeathType.from_extant_code("1")


def test_from_sequences_compresses_in_first_appearance_order():
    patterns = SitePatterns.from_sequences({"A": "1101", "B": "1001"}, DTYPE)

    assert patterns.n_taxa == 2
    assert patterns.n_sites == 4
    assert patterns.n_unique == 3
    np.testing.assert_array_equal(patterns.pattern_weights, [2, 1, 1])
    np.testing.assert_array_equal(patterns.site_to_pattern, [0, 1, 2, 0])
    np.testing.assert_array_equal(patterns.patterns[:, 0], [0, 0])
    np.testing.assert_array_equal(patterns.patterns[:, 2], [1, 1])
    assert patterns.compression_ratio == pytest.approx(4 / 3)
    assert not patterns.is_ascertained


def test_ascertained_sites_are_excluded_and_not_counted():
    patterns = SitePatterns.from_sequences(
        {"A": "1101", "B": "1001"}, DTYPE, ascertained=True, exclude_from=3, exclude_to=4
    )

    assert patterns.is_ascertained
    assert patterns.excluded_pattern_indices == frozenset({0})
    np.testing.assert_array_equal(patterns.pattern_weights, [1, 1, 1])
    assert patterns.total_weight == 3


def test_exclusion_range_is_validated():
    with pytest.raises(ValueError):
        SitePatterns.from_sequences(
            {"A": "11", "B": "10"}, DTYPE, ascertained=True, exclude_from=1, exclude_to=5
        )


def test_taxa_order_and_missing_taxon():
    patterns = SitePatterns.from_sequences({"A": "10", "B": "01"}, DTYPE, taxa_order=["B", "A"])
    assert patterns.taxon_names == ["B", "A"]
    assert patterns.get_taxon_index("A") == 1
    assert patterns.get_pattern(0, 0) == DTYPE.code_for_char("0")

    with pytest.raises(KeyError):
        SitePatterns.from_sequences({"A": "10"}, DTYPE, taxa_order=["A", "C"])
    with pytest.raises(KeyError):
        patterns.get_taxon_index("C")


def test_sequence_length_mismatch_raises():
    with pytest.raises(ValueError, match="length mismatch"):
        SitePatterns.from_sequences({"A": "10", "B": "1"}, DTYPE)


def test_from_patterns_keeps_duplicates_and_validates():
    patterns = SitePatterns.from_patterns(
        np.array([[0, 0, 1], [0, 0, 1]]), [1, 1, 3], ["A", "B"], DTYPE, excluded=[2]
    )

    assert patterns.n_patterns == 3
    assert patterns.n_sites == 5
    assert patterns.excluded_pattern_indices == frozenset({2})

    with pytest.raises(ValueError):
        SitePatterns.from_patterns(np.array([[0, 7]]), [1, 1], ["A"], DTYPE)
    with pytest.raises(ValueError):
        SitePatterns.from_patterns(np.array([[0, 1]]), [1], ["A"], DTYPE)
    with pytest.raises(ValueError):
        SitePatterns.from_patterns(np.array([[0, 1]]), [1, 1], ["A"], DTYPE, excluded=[4])
