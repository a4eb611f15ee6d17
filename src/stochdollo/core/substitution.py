"""
Mutation-death substitution model.

States are the alive states of an optional base CTMC plus one absorbing death
state (the last state). Along a branch of length t:
- alive -> alive follows exp(Q t), scaled by the survival d = exp(-delta t)
- alive -> death has probability 1 - d
- death is absorbing
"""

from typing import Optional

import numpy as np
from scipy.linalg import expm

from .parameters import RealParameter, as_parameter


class MutationDeathModel:
    """
    Substitution model with an absorbing death state.

    Attributes:
        death_rate: Rate delta at which an alive character dies
        base_rate_matrix: Optional (k, k) rate matrix among alive states
    """

    def __init__(
        self,
        death_rate,
        frequencies,
        base_rate_matrix: Optional[np.ndarray] = None,
    ):
        """
        Args:
            death_rate: Death rate (float or RealParameter), must be >= 0
            frequencies: Equilibrium frequencies in state order, death state last
            base_rate_matrix: Rate matrix among alive states (default: one alive state)
        """
        self.death_rate: RealParameter = as_parameter(death_rate, "deathprob", lower=0.0)

        if base_rate_matrix is None:
            n_alive = 1
        else:
            base_rate_matrix = np.asarray(base_rate_matrix, dtype=float)
            if base_rate_matrix.ndim != 2 or base_rate_matrix.shape[0] != base_rate_matrix.shape[1]:
                raise ValueError(f"base_rate_matrix must be square, got shape {base_rate_matrix.shape}")
            if not np.allclose(base_rate_matrix.sum(axis=1), 0.0):
                raise ValueError("base_rate_matrix rows must sum to zero")
            n_alive = base_rate_matrix.shape[0]
        self.base_rate_matrix = base_rate_matrix
        self._n_states = n_alive + 1
        self.frequencies = frequencies

    @property
    def n_states(self) -> int:
        return self._n_states

    @property
    def death_state(self) -> int:
        return self._n_states - 1

    @property
    def frequencies(self) -> np.ndarray:
        return self._frequencies

    @frequencies.setter
    def frequencies(self, value):
        value = np.asarray(value, dtype=float)
        if value.shape != (self._n_states,):
            raise ValueError(f"Expected {self._n_states} frequencies, got shape {value.shape}")
        if np.any(value < 0) or not np.isclose(value.sum(), 1.0):
            raise ValueError(f"Frequencies must be non-negative and sum to 1, got {value}")
        self._frequencies = value

    def get_transition_matrix(self, distance: float) -> np.ndarray:
        """
        Compute P(t) for an operational branch length.

        Args:
            distance: Branch length already multiplied by all rate factors

        Returns:
            (n_states, n_states) transition probability matrix
        """
        n = self._n_states
        d = np.exp(-self.death_rate.value * distance)
        matrix = np.zeros((n, n))
        if self.base_rate_matrix is None:
            matrix[0, 0] = d
        else:
            matrix[:-1, :-1] = expm(self.base_rate_matrix * distance) * d
        matrix[:-1, -1] = 1.0 - d
        matrix[-1, -1] = 1.0
        return matrix

    def is_dirty_calculation(self) -> bool:
        return self.death_rate.something_is_dirty()

    def accept(self) -> None:
        self.death_rate.accept()

    def __repr__(self) -> str:
        return f"MutationDeathModel({self._n_states} states, deathprob={self.death_rate.value})"
