"""Scalar model parameters with change tracking."""

import math


class RealParameter:
    """
    Real-valued scalar parameter owned by an inference framework.

    Setting a value marks the parameter dirty until the framework accepts or
    restores the state. Likelihood engines read `value` and poll
    `something_is_dirty()` to decide what to recompute.

    Attributes:
        name: Parameter name used in messages
        lower: Inclusive lower bound
        upper: Inclusive upper bound
    """

    def __init__(
        self,
        value: float,
        lower: float = -math.inf,
        upper: float = math.inf,
        name: str = "parameter",
    ):
        if lower > upper:
            raise ValueError(f"{name}: lower bound {lower} exceeds upper bound {upper}")
        self.name = name
        self.lower = lower
        self.upper = upper
        self._value = self._check(value)
        self._stored_value = self._value
        self._dirty = False

    def _check(self, value: float) -> float:
        value = float(value)
        if math.isnan(value):
            raise ValueError(f"{self.name}: value is NaN")
        if not self.lower <= value <= self.upper:
            raise ValueError(
                f"{self.name}: value {value} outside bounds [{self.lower}, {self.upper}]"
            )
        return value

    @property
    def value(self) -> float:
        return self._value

    @value.setter
    def value(self, value: float):
        self.set_value(value)

    def set_value(self, value: float) -> None:
        self._value = self._check(value)
        self._dirty = True

    def something_is_dirty(self) -> bool:
        return self._dirty

    def store(self) -> None:
        self._stored_value = self._value

    def restore(self) -> None:
        self._value = self._stored_value
        self._dirty = False

    def accept(self) -> None:
        self._dirty = False

    def __float__(self) -> float:
        return self._value

    def __repr__(self) -> str:
        return f"RealParameter({self.name}={self._value})"


def as_parameter(value, name: str, lower: float = -math.inf) -> RealParameter:
    """Wrap a plain number in a RealParameter; parameters pass through unchanged."""
    if isinstance(value, RealParameter):
        return value
    return RealParameter(value, lower=lower, name=name)
