# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Objective functions, as seen by the annealing chain.

An objective provides a subset of the following capabilities:

- :code:`value(x) -> float` (mandatory), along with :code:`wrap(x)` which maps
  perturbed coordinates back into the valid domain (element-wise, must accept scalars and arrays),
- :code:`value_and_gradient(x, gradient) -> float` which fills :code:`gradient` in place,
  required for the local search,
- :code:`value_from_diff((x, value), (index, new_coordinate)) -> float` which computes the value
  the objective would have if coordinate :code:`index` of :code:`x` were :code:`new_coordinate`.
  When missing, it is emulated by mutating :code:`x`, evaluating it and restoring it.
"""

import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common import errors


@tp.runtime_checkable
class ValueOnly(tp.Protocol):
    # pylint: disable=pointless-statement

    def value(self, x: np.ndarray) -> float:
        ...

    def wrap(self, x: tp.Any) -> tp.Any:
        ...


@tp.runtime_checkable
class ValueAndGradient(ValueOnly, tp.Protocol):
    # pylint: disable=pointless-statement

    def value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        ...


@tp.runtime_checkable
class IncrementalValue(ValueOnly, tp.Protocol):
    # pylint: disable=pointless-statement

    def value_from_diff(self, current: tp.Tuple[np.ndarray, float], change: tp.Tuple[int, float]) -> float:
        ...


def capabilities(objective: tp.Any) -> tp.Set[str]:
    """Returns the names of the evaluation methods provided by the objective"""
    if not isinstance(objective, ValueOnly):
        raise errors.DualAnnealValueError(
            f"Objective {objective!r} must at least provide 'value' and 'wrap' methods"
        )
    caps = {"value"}
    if isinstance(objective, ValueAndGradient):
        caps.add("value_and_gradient")
    if isinstance(objective, IncrementalValue):
        caps.add("value_from_diff")
    return caps


def value_from_diff(
    objective: ValueOnly, current: tp.Tuple[np.ndarray, float], change: tp.Tuple[int, float]
) -> float:
    """Value of the objective at the current point with one coordinate changed.
    Uses the incremental evaluation of the objective if available, otherwise
    temporarily sets the coordinate, evaluates and restores it.

    Note
    ----
    The fallback mutates :code:`current[0]` during the evaluation, hence the objective
    must not read it concurrently from another thread.
    """
    if isinstance(objective, IncrementalValue):
        return float(objective.value_from_diff(current, change))
    x, _ = current
    index, coordinate = change
    previous = x[index]
    x[index] = coordinate
    try:
        return float(objective.value(x))
    finally:
        x[index] = previous


def wrap_float32(objective: ValueOnly, x: tp.Any) -> np.ndarray:
    """Wraps x into the domain of the objective and rounds it to float32.
    Rounding can land on an excluded bound of the domain (eg: :code:`4.99999999` becomes
    the upper bound :code:`5.0`), so the rounded values are wrapped a second time, in float64.
    """
    rounded = np.asarray(objective.wrap(x), dtype=np.float32)
    return np.asarray(objective.wrap(rounded.astype(np.float64)), dtype=np.float32)


class PeriodicWrap:
    """Maps values into :code:`[lower, upper)` periodically

    Parameters
    ----------
    lower: float
        lower bound (included)
    upper: float
        upper bound (excluded)
    """

    def __init__(self, lower: float, upper: float) -> None:
        if not lower < upper:
            raise errors.DualAnnealValueError(f"Lower bound {lower} must be strictly below upper bound {upper}")
        self.lower = float(lower)
        self.upper = float(upper)

    @property
    def length(self) -> float:
        return self.upper - self.lower

    def __call__(self, x: tp.Any) -> tp.Any:
        # np.mod returns a result with the sign of the divisor, hence in [0, length)
        return self.lower + np.mod(np.subtract(x, self.lower), self.length)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.lower}, {self.upper})"


class BoxObjective:
    """Base class for objectives defined on the box :code:`[lower, upper)^D`,
    with periodic boundaries. Subclasses must implement :code:`value`.
    """

    def __init__(self, lower: float, upper: float) -> None:
        self._wrap = PeriodicWrap(lower, upper)

    def wrap(self, x: tp.Any) -> tp.Any:
        return self._wrap(x)

    def bounds(self, dimension: int) -> tp.List[tp.Tuple[float, float]]:
        """Box bounds for each of the coordinates (used by bounded local search)"""
        return [(self._wrap.lower, self._wrap.upper)] * dimension

    def value(self, x: np.ndarray) -> float:
        raise NotImplementedError

    def __call__(self, x: tp.ArrayLike) -> float:
        return self.value(np.asarray(x))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._wrap.lower}, {self._wrap.upper})"


class FunctionObjective(BoxObjective):
    """Turns a plain function into an objective on the box :code:`[lower, upper)^D`

    Parameters
    ----------
    function: callable
        function taking a 1d array and returning a float
    lower: float
        lower bound of each coordinate
    upper: float
        upper bound of each coordinate
    gradient: callable, optional
        function taking a 1d array and returning the gradient of :code:`function` as a 1d array.
        The local search can only be used if it is provided.
    """

    def __init__(
        self,
        function: tp.Callable[[np.ndarray], float],
        lower: float,
        upper: float,
        gradient: tp.Optional[tp.Callable[[np.ndarray], tp.ArrayLike]] = None,
    ) -> None:
        super().__init__(lower, upper)
        self._function = function
        self._gradient = gradient
        if gradient is not None:
            self.value_and_gradient = self._value_and_gradient

    def value(self, x: np.ndarray) -> float:
        return float(self._function(x))

    def _value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        assert self._gradient is not None
        gradient[:] = self._gradient(x)
        return self.value(x)

    def __repr__(self) -> str:
        name = getattr(self._function, "__name__", repr(self._function))
        return f"{self.__class__.__name__}({name}, {self._wrap.lower}, {self._wrap.upper})"
