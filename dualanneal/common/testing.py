# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import inspect
import typing as tp
try:
    import pytest
except ImportError:
    pass  # makes most of this module usable without pytest
import numpy as np


def assert_set_equal(estimate: tp.Iterable[tp.Any], reference: tp.Iterable[tp.Any], err_msg: str = "") -> None:
    """Asserts that both sets are equals, with comprehensive error message.
    This function should only be used in tests.
    Parameters
    ----------
    estimate: iterable
        sequence of elements to compare with the reference set of elements
    reference: iterable
        reference sequence of elements
    """
    estimate, reference = (set(x) for x in [estimate, reference])
    elements = [("additional", estimate - reference), ("missing", reference - estimate)]
    messages = ["  - {} element(s): {}.".format(name, s) for (name, s) in elements if s]
    if messages:
        messages = ([err_msg] if err_msg else []) + ["Sets are not equal:"] + messages
        raise AssertionError("\n".join(messages))


class parametrized:
    """Simplified decorator API for specifying named parametrized test with pytests
    See example of use in test_testing

    Parameters
    ----------
    **kwargs:
        name of the argument is converted as id of the experiments, and the provided tuple
        contains a value for each of the arguments of the underlying function (in the definition order).
    """

    def __init__(self, **kwargs: tp.Tuple[tp.Any, ...]):
        self.ids = sorted(kwargs)
        self.params = tuple(kwargs[name] for name in self.ids)
        assert self.params
        self.num_params = len(self.params[0])
        assert all(isinstance(p, (tuple, list)) for p in self.params)
        assert all(self.num_params == len(p) for p in self.params[1:])

    def __call__(self, func: tp.Callable[..., None]) -> tp.Any:  # type is lost here :(
        names = list(inspect.signature(func).parameters.keys())
        assert len(names) == self.num_params, f"Parameter names: {names}"
        return pytest.mark.parametrize(
            ",".join(names), self.params if self.num_params > 1 else [p[0] for p in self.params], ids=self.ids)(func)


class CountingObjective:
    """Wraps an objective and counts the calls to each of its evaluation methods.
    Only the capabilities of the wrapped objective are exposed.
    This class should only be used in tests.
    """

    def __init__(self, objective: tp.Any) -> None:
        self._objective = objective
        self.counts = {"value": 0, "value_and_gradient": 0, "value_from_diff": 0}
        if hasattr(objective, "value_and_gradient"):
            self.value_and_gradient = self._value_and_gradient
        if hasattr(objective, "value_from_diff"):
            self.value_from_diff = self._value_from_diff
        if hasattr(objective, "bounds"):
            self.bounds = objective.bounds

    def value(self, x: np.ndarray) -> float:
        self.counts["value"] += 1
        return self._objective.value(x)

    def wrap(self, x: tp.Any) -> tp.Any:
        return self._objective.wrap(x)

    def _value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        self.counts["value_and_gradient"] += 1
        return self._objective.value_and_gradient(x, gradient)

    def _value_from_diff(self, current: tp.Tuple[np.ndarray, float], change: tp.Tuple[int, float]) -> float:
        self.counts["value_from_diff"] += 1
        return self._objective.value_from_diff(current, change)
