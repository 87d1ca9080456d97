# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common.decorators import Registry
from .base import BoxObjective


registry: Registry[tp.Type[BoxObjective]] = Registry()


@registry.register_with_info(minimum=0.0, gradient=True, incremental=True)
class Rastrigin(BoxObjective):
    """Highly multimodal function with a regular lattice of local minima.
    Global minimum 0 at the origin.
    """

    def __init__(self, amplitude: float = 10.0, lower: float = -5.12, upper: float = 5.12) -> None:
        super().__init__(lower, upper)
        self.amplitude = amplitude

    def _terms(self, x: tp.Any) -> tp.Any:
        x = np.asarray(x, dtype=np.float64)
        return x ** 2 - self.amplitude * np.cos(2 * np.pi * x)

    def value(self, x: np.ndarray) -> float:
        return float(np.sum(self._terms(x)) + self.amplitude * x.size)

    def value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        x64 = np.asarray(x, dtype=np.float64)
        gradient[:] = 2 * x64 + 2 * np.pi * self.amplitude * np.sin(2 * np.pi * x64)
        return self.value(x)

    def value_from_diff(self, current: tp.Tuple[np.ndarray, float], change: tp.Tuple[int, float]) -> float:
        x, value = current
        index, coordinate = change
        return float(value - self._terms(x[index]) + self._terms(coordinate))


@registry.register_with_info(minimum=0.0, gradient=True, incremental=True)
class Sphere(BoxObjective):
    """The most classical continuous optimization testbed.

    If you do not solve that one then you have a bug."""

    def __init__(self, lower: float = -5.0, upper: float = 5.0) -> None:
        super().__init__(lower, upper)

    def value(self, x: np.ndarray) -> float:
        x64 = np.asarray(x, dtype=np.float64)
        return float(x64.dot(x64))

    def value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        gradient[:] = 2 * np.asarray(x, dtype=np.float64)
        return self.value(x)

    def value_from_diff(self, current: tp.Tuple[np.ndarray, float], change: tp.Tuple[int, float]) -> float:
        x, value = current
        index, coordinate = change
        old = float(x[index])
        return value - old ** 2 + float(coordinate) ** 2


@registry.register_with_info(minimum=0.0, gradient=False, incremental=False)
class Ackley(BoxObjective):
    """Multimodal function with a nearly flat outer region and a deep hole at the origin."""

    def __init__(self, lower: float = -32.768, upper: float = 32.768) -> None:
        super().__init__(lower, upper)

    def value(self, x: np.ndarray) -> float:
        x64 = np.asarray(x, dtype=np.float64)
        dim = x64.size
        sum_cos = np.sum(np.cos(2 * np.pi * x64))
        return float(
            -20.0 * np.exp(-0.2 * np.sqrt(x64.dot(x64) / dim)) - np.exp(sum_cos / dim) + 20 + np.exp(1)
        )


@registry.register_with_info(minimum=0.0, gradient=True, incremental=False)
class Rosenbrock(BoxObjective):
    """Classical curved valley, minimum 0 at (1, ..., 1)."""

    def __init__(self, lower: float = -5.0, upper: float = 10.0) -> None:
        super().__init__(lower, upper)

    def value(self, x: np.ndarray) -> float:
        x64 = np.asarray(x, dtype=np.float64)
        x_m_1 = x64[:-1] - 1
        x_diff = x64[:-1] ** 2 - x64[1:]
        return float(100 * x_diff.dot(x_diff) + x_m_1.dot(x_m_1))

    def value_and_gradient(self, x: np.ndarray, gradient: np.ndarray) -> float:
        x64 = np.asarray(x, dtype=np.float64)
        grad = np.zeros_like(x64)
        x_diff = x64[:-1] ** 2 - x64[1:]
        grad[:-1] = 400 * x_diff * x64[:-1] + 2 * (x64[:-1] - 1)
        grad[1:] -= 200 * x_diff
        gradient[:] = grad
        return self.value(x)
