"""
Site pattern compression.

An alignment of coded characters (taxa x sites) is reduced to its unique
columns ("patterns"), each weighted by the number of sites sharing it.
Patterns keep the order in which they first appear.

Ascertained alignments mark a range of sites (typically appended dummy
columns such as all-absent characters) as excluded: their patterns enter the
likelihood only through the ascertainment correction, and the excluded sites
do not count towards pattern weights.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

import numpy as np

from .datatypes import DataType

logger = logging.getLogger(__name__)


class SitePatterns:
    """
    Weighted unique column patterns of a coded alignment.

    Attributes:
        patterns: (n_taxa, n_unique) array of codes
        pattern_weights: (n_unique,) integer weights
        site_to_pattern: (n_sites,) pattern index of every original site
        excluded_pattern_indices: Patterns excluded by ascertainment
        taxon_names: Row labels
        datatype: Coding of the characters
    """

    def __init__(
        self,
        alignment: np.ndarray,
        taxon_names: Sequence[str],
        datatype: DataType,
        ascertained: bool = False,
        exclude_from: int = 0,
        exclude_to: int = 0,
        exclude_every: int = 1,
    ):
        """
        Compress an alignment.

        Args:
            alignment: (n_taxa, n_sites) array of code indices
            taxon_names: Taxon name for every row
            datatype: Data type the codes refer to
            ascertained: Whether sites in [exclude_from, exclude_to) are excluded
            exclude_from: First excluded site
            exclude_to: One past the last excluded site
            exclude_every: Step between excluded sites
        """
        alignment = np.asarray(alignment, dtype=np.int64)
        if alignment.ndim != 2:
            raise ValueError(f"alignment must be 2D (taxa x sites), got shape {alignment.shape}")
        if alignment.shape[0] != len(taxon_names):
            raise ValueError(
                f"alignment has {alignment.shape[0]} rows but {len(taxon_names)} taxon names"
            )
        if alignment.size and (alignment.min() < 0 or alignment.max() >= datatype.code_count):
            raise ValueError(f"alignment contains codes outside [0, {datatype.code_count})")

        self.datatype = datatype
        self.taxon_names = list(taxon_names)
        self._taxon_to_idx = {name: i for i, name in enumerate(self.taxon_names)}
        if len(self._taxon_to_idx) != len(self.taxon_names):
            raise ValueError("Duplicate taxon names in alignment")
        self.n_sites = alignment.shape[1]

        column_index: Dict[Tuple[int, ...], int] = {}
        columns: List[Tuple[int, ...]] = []
        weights: List[int] = []
        site_to_pattern = np.empty(self.n_sites, dtype=np.int64)
        for site in range(self.n_sites):
            column = tuple(int(c) for c in alignment[:, site])
            idx = column_index.get(column)
            if idx is None:
                idx = len(columns)
                column_index[column] = idx
                columns.append(column)
                weights.append(0)
            weights[idx] += 1
            site_to_pattern[site] = idx

        self.patterns = (
            np.array(columns, dtype=np.int64).T
            if columns else np.zeros((len(self.taxon_names), 0), dtype=np.int64)
        )
        self.pattern_weights = np.array(weights, dtype=np.int64)
        self.site_to_pattern = site_to_pattern

        excluded = set()
        if ascertained:
            if not 0 <= exclude_from <= exclude_to <= self.n_sites:
                raise ValueError(
                    f"Exclusion range [{exclude_from}, {exclude_to}) outside alignment of {self.n_sites} sites"
                )
            if exclude_every < 1:
                raise ValueError("exclude_every must be >= 1")
            for site in range(exclude_from, exclude_to, exclude_every):
                idx = int(site_to_pattern[site])
                excluded.add(idx)
                self.pattern_weights[idx] -= 1
            logger.debug(
                f"Ascertainment: {len(excluded)} excluded patterns from sites [{exclude_from}, {exclude_to})"
            )
        self.excluded_pattern_indices: FrozenSet[int] = frozenset(excluded)

    @classmethod
    def from_sequences(
        cls,
        sequences: Mapping[str, str],
        datatype: DataType,
        taxa_order: Optional[Sequence[str]] = None,
        **kwargs,
    ) -> "SitePatterns":
        """
        Build from a mapping of taxon name to character sequence.

        Args:
            sequences: Mapping from taxon name to sequence string
            datatype: Data type used to decode characters
            taxa_order: Optional ordering of taxa (defaults to insertion order)
            **kwargs: Ascertainment options forwarded to the constructor

        Returns:
            SitePatterns instance
        """
        if not sequences:
            raise ValueError("sequences mapping cannot be empty")
        if taxa_order is None:
            taxa_order = list(sequences.keys())

        n_sites = len(next(iter(sequences.values())))
        alignment = np.zeros((len(taxa_order), n_sites), dtype=np.int64)
        for taxon_idx, taxon in enumerate(taxa_order):
            try:
                seq = sequences[taxon]
            except KeyError as exc:
                raise KeyError(f"Taxon '{taxon}' missing from sequences mapping.") from exc
            if len(seq) != n_sites:
                raise ValueError(f"Sequence length mismatch for taxon '{taxon}'.")
            alignment[taxon_idx] = [datatype.code_for_char(c) for c in seq]

        return cls(alignment, list(taxa_order), datatype, **kwargs)

    @classmethod
    def from_patterns(
        cls,
        patterns: np.ndarray,
        weights: Iterable[int],
        taxon_names: Sequence[str],
        datatype: DataType,
        excluded: Iterable[int] = (),
    ) -> "SitePatterns":
        """
        Build directly from already-compressed patterns.

        Patterns are taken as given (duplicates are not merged) and excluded
        patterns keep the weights they are given.
        """
        patterns = np.asarray(patterns, dtype=np.int64)
        weights = np.asarray(list(weights), dtype=np.int64)
        if patterns.ndim != 2 or patterns.shape[1] != weights.shape[0]:
            raise ValueError(
                f"patterns shape {patterns.shape} does not match {weights.shape[0]} weights"
            )
        if np.any(weights < 0):
            raise ValueError("Pattern weights must be non-negative")
        if patterns.size and (patterns.min() < 0 or patterns.max() >= datatype.code_count):
            raise ValueError(f"patterns contain codes outside [0, {datatype.code_count})")

        obj = cls(np.zeros((len(taxon_names), 0), dtype=np.int64), taxon_names, datatype)
        obj.patterns = patterns
        obj.pattern_weights = weights
        obj.n_sites = int(weights.sum())
        obj.site_to_pattern = np.repeat(np.arange(weights.shape[0]), weights)
        excluded = frozenset(int(i) for i in excluded)
        if any(not 0 <= i < weights.shape[0] for i in excluded):
            raise ValueError("Excluded pattern index out of range")
        obj.excluded_pattern_indices = excluded
        return obj

    @property
    def n_taxa(self) -> int:
        return len(self.taxon_names)

    @property
    def n_unique(self) -> int:
        return self.patterns.shape[1]

    @property
    def n_patterns(self) -> int:
        return self.patterns.shape[1]

    @property
    def state_count(self) -> int:
        return self.datatype.state_count

    @property
    def is_ascertained(self) -> bool:
        return bool(self.excluded_pattern_indices)

    @property
    def total_weight(self) -> int:
        return int(self.pattern_weights.sum())

    @property
    def compression_ratio(self) -> float:
        return self.n_sites / self.n_unique if self.n_unique else 1.0

    def get_taxon_index(self, name: str) -> int:
        try:
            return self._taxon_to_idx[name]
        except KeyError as exc:
            raise KeyError(f"Taxon '{name}' not present in alignment") from exc

    def get_pattern(self, taxon_idx: int, pattern_idx: int) -> int:
        """Code observed for a taxon in a pattern."""
        return int(self.patterns[taxon_idx, pattern_idx])

    def states_for_code(self, code: int) -> Tuple[int, ...]:
        return self.datatype.states_for_code(code)

    def __repr__(self) -> str:
        return (
            f"SitePatterns({self.n_taxa} taxa, {self.n_sites} sites, "
            f"{self.n_unique} patterns, {len(self.excluded_pattern_indices)} excluded)"
        )
