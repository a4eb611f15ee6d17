"""
Character data types.

A data type maps single-character codes to sets of states. Ambiguity codes map
to more than one state. `MutationDeathType` adds a designated death state,
meaning "character absent", on top of either a plain binary coding or an
existing data type.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class DataType:
    """
    Single-character coding of discrete states.

    Attributes:
        code_map: String whose i-th character is code i
        state_sets: State set for each code (same order as code_map)
        state_count: Number of distinct states
        name: Human-readable description
    """

    code_map: str
    state_sets: Tuple[Tuple[int, ...], ...]
    state_count: int
    name: str = "user"

    def __post_init__(self):
        if len(self.code_map) != len(self.state_sets):
            raise ValueError(
                f"code_map has {len(self.code_map)} codes but {len(self.state_sets)} state sets"
            )
        if len(set(self.code_map)) != len(self.code_map):
            raise ValueError(f"Duplicate codes in code_map {self.code_map!r}")
        for states in self.state_sets:
            for state in states:
                if not 0 <= state < self.state_count:
                    raise ValueError(f"State {state} out of range for {self.state_count} states")

    @property
    def code_count(self) -> int:
        return len(self.code_map)

    def code_for_char(self, char: str) -> int:
        """Get the code index for a character."""
        code = self.code_map.find(char)
        if code < 0:
            raise ValueError(f"Character {char!r} is not a valid code for {self.name} data")
        return code

    def states_for_code(self, code: int) -> Tuple[int, ...]:
        """Get the set of states a code stands for."""
        return self.state_sets[code]

    def is_ambiguous(self, code: int) -> bool:
        return len(self.state_sets[code]) > 1


BINARY = DataType(
    code_map="01-?",
    state_sets=((0,), (1,), (0, 1), (0, 1)),
    state_count=2,
    name="binary",
)

_ACGT = (0, 1, 2, 3)
NUCLEOTIDE = DataType(
    code_map="ACGTURYMWSKBDHVN-?",
    state_sets=(
        (0,), (1,), (2,), (3,), (3,),
        (0, 2), (1, 3), (0, 1), (0, 3), (1, 2), (2, 3),
        (1, 2, 3), (0, 2, 3), (0, 1, 3), (0, 1, 2),
        _ACGT, _ACGT, _ACGT,
    ),
    state_count=4,
    name="nucleotide",
)


@dataclass(frozen=True)
class MutationDeathType(DataType):
    """
    Data type for mutation-death models such as the stochastic Dollo process.

    Attributes:
        death_state: State meaning "character absent"
    """

    death_state: int = 0

    @classmethod
    def from_extant_code(cls, extant_code: str = "1", death_char: str = "0") -> "MutationDeathType":
        """
        Binary presence/absence coding.

        Codes are (extant, death, '-', '?'); the extant code is state 0, the
        death code is state 1, gaps and missing data are ambiguous over both.
        """
        if len(extant_code) != 1 or len(death_char) != 1:
            raise ValueError("extant_code and death_char must be single characters")
        return cls(
            code_map=extant_code + death_char + "-?",
            state_sets=((0,), (1,), (0, 1), (0, 1)),
            state_count=2,
            name="MutationDeathType",
            death_state=1,
        )

    @classmethod
    def extending(cls, base: DataType, death_char: str = "0") -> "MutationDeathType":
        """
        Extend `base` with a death state.

        The death char becomes code 0 and the new last state; base codes follow
        with their original state sets.
        """
        if len(death_char) != 1:
            raise ValueError("death_char must be a single character")
        if death_char in base.code_map:
            raise ValueError(
                f"Death code {death_char!r} is already a valid code in data type {base.code_map!r}"
            )
        death_state = base.state_count
        return cls(
            code_map=death_char + base.code_map,
            state_sets=((death_state,),) + tuple(base.state_sets),
            state_count=base.state_count + 1,
            name="MutationDeathType",
            death_state=death_state,
        )


def encode(sequence: str, datatype: DataType) -> Sequence[int]:
    """Convert a character sequence into code indices."""
    return [datatype.code_for_char(c) for c in sequence]
