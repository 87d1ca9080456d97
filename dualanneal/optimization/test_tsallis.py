# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import pytest
from scipy import integrate
from dualanneal.common import testing
from . import tsallis


def test_param() -> None:
    param = tsallis.TsallisParam(1.5, 2.0)
    np.testing.assert_almost_equal(param.s, np.sqrt(1.0) / 2.0 ** (1 / 1.5))
    assert param == tsallis.TsallisParam(1.5, 2.0)
    assert param != tsallis.TsallisParam(1.5, 3.0)
    assert "q_V=1.5" in repr(param)


@testing.parametrized(
    q_V_low=(1.0, 1.0),
    q_V_high=(3.0, 1.0),
    t_V_zero=(2.0, 0.0),
)
def test_param_preconditions(q_V: float, t_V: float) -> None:
    with pytest.raises(AssertionError):
        tsallis.TsallisParam(q_V, t_V)


@testing.parametrized(
    narrow=(1.5, 2.0),
    wide=(1.8, 1.0),
    hot=(2.0, 50.0),
)
def test_density_is_normalized(q_V: float, t_V: float) -> None:
    total, _ = integrate.quad(lambda x: tsallis.density(q_V, t_V, 1, x), -np.inf, np.inf, limit=200)
    np.testing.assert_allclose(total, 1.0, rtol=1e-4)


def test_density_2d_is_normalized() -> None:
    # radial integration in 2d
    total, _ = integrate.quad(
        lambda r: 2 * np.pi * r * tsallis.density(1.5, 2.0, 2, np.array([r, 0.0])), 0, np.inf, limit=200
    )
    np.testing.assert_allclose(total, 1.0, rtol=1e-4)


def test_density_shapes() -> None:
    np.testing.assert_equal(np.ndim(tsallis.density(1.5, 2.0, 1, 0.3)), 0)
    np.testing.assert_equal(tsallis.density(1.5, 2.0, 1, np.zeros(7)).shape, (7,))
    np.testing.assert_equal(tsallis.density(1.5, 2.0, 3, np.zeros((5, 3))).shape, (5,))
    np.testing.assert_almost_equal(
        tsallis.log_density(1.5, 2.0, 3, np.ones(3)), np.log(tsallis.density(1.5, 2.0, 3, np.ones(3)))
    )


def test_histogram_matches_density() -> None:
    hist = tsallis.histogram(1.5, 2.0, num_samples=1000000, num_bins=400, lower=-100, upper=100, random_state=12)
    np.testing.assert_equal(hist.centers.shape, (400,))
    selected = hist.counts >= 2000  # bins with low statistical noise (bulk of the distribution)
    assert selected.sum() > 15
    np.testing.assert_allclose(
        hist.empirical_log_density[selected], hist.exact_log_density[selected], atol=0.1
    )
    # the tails are compared with a looser tolerance
    tails = (hist.counts >= 200) & ~selected
    assert tails.sum() > 10
    np.testing.assert_allclose(hist.empirical_log_density[tails], hist.exact_log_density[tails], atol=0.3)


def test_one_matches_sample() -> None:
    dist = tsallis.TsallisDistribution(2.0, 1.5)
    rng = np.random.RandomState(12)
    ones = np.array([dist.one(rng) for _ in range(50000)])
    samples = dist.sample(np.random.RandomState(13), 50000)
    quantiles = [0.25, 0.5, 0.75]
    np.testing.assert_allclose(np.quantile(ones, quantiles), np.quantile(samples, quantiles), atol=0.15)


def test_many_shares_the_gamma_draw() -> None:
    # joint density of a 2d draw differs from the product of 1d densities
    q_V, t_V = 1.5, 2.0
    dist = tsallis.TsallisDistribution(q_V, t_V)
    rng = np.random.RandomState(24)
    num = 200000
    draws = np.array([dist.many(rng, 2) for _ in range(num)])
    half = 0.25
    inside = np.all(np.abs(draws) < half, axis=1)
    empirical = inside.sum() / num
    expected, _ = integrate.dblquad(
        lambda y, x: tsallis.density(q_V, t_V, 2, np.array([x, y])), -half, half, -half, half
    )
    marginal, _ = integrate.quad(lambda x: tsallis.density(q_V, t_V, 1, x), -half, half)
    assert abs(expected - marginal ** 2) / expected > 0.1
    np.testing.assert_allclose(empirical, expected, rtol=0.07)


def test_set_param() -> None:
    dist = tsallis.TsallisDistribution(2.5, 1.0)
    dist.set_param(tsallis.TsallisParam(1.5, 3.0))
    assert dist.param() == tsallis.TsallisParam(1.5, 3.0)
    samples = dist.sample(np.random.RandomState(1), 100000)
    # reference: sampling with a fresh distribution with the same parameters
    reference = tsallis.TsallisDistribution(1.5, 3.0).sample(np.random.RandomState(1), 100000)
    np.testing.assert_array_equal(samples, reference)


def test_sampling_is_reproducible() -> None:
    dist = tsallis.TsallisDistribution(2.67, 10.0)
    first = dist.many(np.random.RandomState(3), 10)
    second = dist.many(np.random.RandomState(3), 10)
    np.testing.assert_array_equal(first, second)
    assert np.all(np.isfinite(first))


@testing.parametrized(
    underflow=(2.99, 5230.0, 0.0),
    large=(2.99, 1e-3, np.exp(0.5 * np.log(3.98) + 100 * np.log(1e3))),
    overflow=(2.999, 1e-3, float("inf")),
)
def test_param_extreme_scales(q_V: float, t_V: float, expected: float) -> None:
    param = tsallis.TsallisParam(q_V, t_V)
    np.testing.assert_allclose(param.s, expected, rtol=1e-9)


def test_draws_with_vanishing_scale_are_not_finite() -> None:
    dist = tsallis.TsallisDistribution(2.99, 5230.0)
    rng = np.random.RandomState(12)
    assert not np.any(np.isfinite(dist.many(rng, 5)))
    assert not np.isfinite(dist.one(rng))
    assert not np.any(np.isfinite(dist.sample(rng, 5)))


def test_log_density_extreme_temperature() -> None:
    output = tsallis.log_density(2.99, 1e-3, 1, [0.0, 1.0])
    assert np.all(np.isfinite(output))
    assert output[1] < output[0]
    # log(1 + a x^2) with a overflowing is close to log(a) + log(x^2)
    log_a = np.log(1.99) + 200 * np.log(1e3)
    np.testing.assert_allclose(output[0] - output[1], log_a / 1.99, rtol=1e-9)
