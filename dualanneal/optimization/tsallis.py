# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Tsallis visiting distribution used by Generalized Simulated Annealing.

Sampling follows the exact D-dimensional generator of
Thomas Schanze, "An exact D-dimensional Tsallis random number generator
for generalized simulated annealing", 2006:
:code:`u ~ Gamma(p, 1)`, :code:`y = s * sqrt(u)`, :code:`x ~ Normal(0, 1) / y`
with :code:`p = (3 - q_V) / (2 (q_V - 1))` and :code:`s = sqrt(2 (q_V - 1)) / t_V^(1 / (3 - q_V))`.
"""

import numpy as np
from scipy import special
import dualanneal.common.typing as tp


def _shape(q_V: float) -> float:
    assert 1.0 < q_V < 3.0, f"q_V must be in (1, 3), got {q_V}"
    return (3.0 - q_V) / (2.0 * (q_V - 1.0))


class TsallisParam:
    """Parameters of the Tsallis distribution

    Parameters
    ----------
    q_V: float
        shape of the distribution, in (1, 3)
    t_V: float
        visiting temperature, strictly positive
    """

    __slots__ = ("_q_V", "_t_V", "_s")

    def __init__(self, q_V: float, t_V: float) -> None:
        assert 1.0 < q_V < 3.0, f"q_V must be in (1, 3), got {q_V}"
        assert t_V > 0, f"t_V must be positive, got {t_V}"
        self._q_V = float(q_V)
        self._t_V = float(t_V)
        # in log space: t_V ** (1 / (3 - q_V)) overflows for q_V close to 3
        with np.errstate(over="ignore", under="ignore"):
            self._s = float(np.exp(0.5 * np.log(2.0 * (q_V - 1.0)) - np.log(t_V) / (3.0 - q_V)))

    @property
    def q_V(self) -> float:
        return self._q_V

    @property
    def t_V(self) -> float:
        return self._t_V

    @property
    def s(self) -> float:
        return self._s

    def __eq__(self, other: tp.Any) -> bool:
        if not isinstance(other, TsallisParam):
            return NotImplemented
        return (self._q_V, self._t_V) == (other._q_V, other._t_V)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(q_V={self._q_V}, t_V={self._t_V})"


class TsallisDistribution:
    """Generator of Tsallis distributed perturbations

    Parameters
    ----------
    q_V: float
        shape of the distribution, in (1, 3)
    t_V: float
        visiting temperature, strictly positive

    Note
    ----
    Draws may be infinite or NaN when the gamma draw or the scale :code:`s` underflow
    to 0 or overflow (q_V close to 3, extreme temperatures). Callers must reject them.
    """

    def __init__(self, q_V: float, t_V: float) -> None:
        self._param = TsallisParam(q_V, t_V)
        self._gamma_shape = _shape(q_V)

    def param(self) -> TsallisParam:
        return self._param

    def set_param(self, param: TsallisParam) -> None:
        if param.q_V != self._param.q_V:
            self._gamma_shape = _shape(param.q_V)
        self._param = param

    def _scale(self, rng: np.random.RandomState) -> float:
        u = rng.gamma(self._gamma_shape, 1.0)
        with np.errstate(invalid="ignore"):
            return self._param.s * np.sqrt(u)  # type: ignore

    def one(self, rng: np.random.RandomState) -> float:
        """Draws a single variate"""
        y = self._scale(rng)
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            return np.float64(rng.normal()) / y  # type: ignore

    def many(self, rng: np.random.RandomState, size: int) -> np.ndarray:
        """Draws a D-dimensional variate, all coordinates sharing the same gamma draw"""
        y = self._scale(rng)
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            return rng.normal(0.0, 1.0, size=size) / y  # type: ignore

    def sample(self, rng: np.random.RandomState, size: int) -> np.ndarray:
        """Draws size independent single variates (same distribution as calling :code:`one` size times)"""
        u = rng.gamma(self._gamma_shape, 1.0, size=size)
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            return rng.normal(0.0, 1.0, size=size) / (self._param.s * np.sqrt(u))  # type: ignore

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(q_V={self._param.q_V}, t_V={self._param.t_V})"


def log_density(q_V: float, t_V: float, dimension: int, x: tp.ArrayLike) -> tp.Any:
    """Logarithm of the exact density of the D-dimensional Tsallis distribution.

    Parameters
    ----------
    q_V: float
        shape of the distribution, in (1, 3)
    t_V: float
        visiting temperature
    dimension: int
        dimension D of the distribution
    x: float or array
        a scalar (only if dimension is 1), a point of shape (D,) or a batch of points of shape (N, D)

    Returns
    -------
    float or np.ndarray
        one value per point
    """
    assert 1.0 < q_V < 3.0, f"q_V must be in (1, 3), got {q_V}"
    assert t_V > 0, f"t_V must be positive, got {t_V}"
    x = np.asarray(x, dtype=np.float64)
    if dimension == 1 and (x.ndim == 0 or x.shape[-1] != 1):
        squared_norm = x ** 2
    else:
        assert x.shape[-1] == dimension, f"Expected points of dimension {dimension}, got shape {x.shape}"
        squared_norm = np.sum(x ** 2, axis=-1)
    inv = 1.0 / (q_V - 1.0)
    log_scale = (
        0.5 * dimension * np.log((q_V - 1.0) / np.pi)
        + special.gammaln(inv + 0.5 * (dimension - 1))
        - special.gammaln(inv - 0.5)
        + dimension / (q_V - 3.0) * np.log(t_V)
    )
    # log(1 + a * |x|^2) with a = (q_V - 1) * t_V^(-2 / (3 - q_V)), in log space since a may overflow
    log_a = np.log(q_V - 1.0) - 2.0 / (3.0 - q_V) * np.log(t_V)
    with np.errstate(divide="ignore"):
        log_term = np.logaddexp(0.0, log_a + np.log(squared_norm))
    b = 1.0 / (1.0 - q_V) + 0.5 * (1 - dimension)
    return log_scale + b * log_term


def density(q_V: float, t_V: float, dimension: int, x: tp.ArrayLike) -> tp.Any:
    """Exact density of the D-dimensional Tsallis distribution (see :code:`log_density`)"""
    return np.exp(log_density(q_V, t_V, dimension, x))


class Histogram(tp.NamedTuple):
    """Empirical versus exact 1d densities, evaluated at the bin centers"""

    centers: np.ndarray
    counts: np.ndarray
    empirical_log_density: np.ndarray
    exact_log_density: np.ndarray


def histogram(
    q_V: float,
    t_V: float,
    num_samples: int = 1000000,
    num_bins: int = 400,
    lower: float = -100.0,
    upper: float = 100.0,
    random_state: tp.RandomStateLike = None,
) -> Histogram:
    """Samples the 1d Tsallis distribution and bins the samples, for comparison
    with the exact density. Samples out of [lower, upper] are dropped, empty bins
    have an empirical log-density of -inf.
    """
    rng = random_state if isinstance(random_state, np.random.RandomState) else np.random.RandomState(random_state)
    samples = TsallisDistribution(q_V, t_V).sample(rng, num_samples)
    counts, edges = np.histogram(samples, bins=num_bins, range=(lower, upper))
    centers = 0.5 * (edges[1:] + edges[:-1])
    bin_size = (upper - lower) / num_bins
    with np.errstate(divide="ignore"):
        empirical = np.log(counts / (num_samples * bin_size))
    return Histogram(centers, counts, empirical, log_density(q_V, t_V, 1, centers))
