# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import pytest
import dualanneal.common.typing as tp
from dualanneal.common import testing
from dualanneal.common import errors
from dualanneal.functions import base as fbase
from dualanneal.functions import corefuncs
from . import buffers
from . import chain as chainlib
from . import localsearch
from .localsearch import LocalSearchStatus as Status


def _make_chain(objective: tp.Any = None, x0: tp.Optional[tp.List[float]] = None) -> chainlib.AnnealingChain:
    objective = corefuncs.Sphere() if objective is None else objective
    x0 = [1.0, -2.0, 0.5] if x0 is None else x0
    workspace = buffers.Buffers(len(x0)).workspace()
    workspace.current.x[:] = x0
    return chainlib.AnnealingChain(objective, workspace, chainlib.AnnealingParams(), np.random.RandomState(12))


class _FakeSolver:
    def __init__(self, status: Status, x: tp.List[float], func: float, num_f_evals: int = 7) -> None:
        self.outcome = localsearch.LocalSearchOutcome(status, np.array(x, dtype=np.float32), func, num_f_evals)
        self.calls: tp.List[tp.Tuple[np.ndarray, tp.Any]] = []

    def __call__(
        self, objective: tp.Any, x0: np.ndarray, params: localsearch.LocalSearchParams, bounds: tp.Any
    ) -> localsearch.LocalSearchOutcome:
        self.calls.append((x0.copy(), bounds))
        return self.outcome


def test_status_properties() -> None:
    soft = {s for s in Status if s.is_soft_failure}
    hard = {s for s in Status if s.is_hard_failure}
    testing.assert_set_equal(
        soft, {Status.MAXIMUM_ITERATIONS_REACHED, Status.MAXIMUM_EVALUATIONS_REACHED, Status.ROUNDING_ERRORS}
    )
    testing.assert_set_equal(hard, {Status.INVALID_OBJECTIVE, Status.SOLVER_ERROR})
    assert not Status.SUCCESS.is_soft_failure
    assert not Status.X_TOLERANCE_REACHED.is_hard_failure


@testing.parametrized(
    converged=(0, "CONVERGENCE: REL_REDUCTION_OF_F_<=_FACTR*EPSMCH", Status.SUCCESS),
    callback=(99, "callback raised StopIteration.", Status.X_TOLERANCE_REACHED),
    max_iter=(1, "STOP: TOTAL NO. of ITERATIONS REACHED LIMIT", Status.MAXIMUM_ITERATIONS_REACHED),
    max_fun=(1, "STOP: TOTAL NO. of f AND g EVALUATIONS EXCEEDS LIMIT", Status.MAXIMUM_EVALUATIONS_REACHED),
    abnormal=(2, "ABNORMAL_TERMINATION_IN_LNSRCH", Status.ROUNDING_ERRORS),
    error=(2, "ERROR: STPMAX .LT. STPMIN", Status.SOLVER_ERROR),
)
def test_status_from_scipy(status: int, message: str, expected: Status) -> None:
    assert localsearch._status_from_scipy(status, message) is expected


@testing.parametrized(
    negative_x_tol=(dict(x_tol=-1.0),),
    zero_m=(dict(m=0),),
    float_max_iter=(dict(max_iter=12.5),),
    zero_max_linesearch=(dict(max_linesearch=0),),
    nan_x_tol=(dict(x_tol=float("nan")),),
    inf_max_iter=(dict(max_iter=float("inf")),),
    nan_max_fun=(dict(max_fun=float("nan")),),
)
def test_params_check(kwargs: tp.Dict[str, tp.Any]) -> None:
    with pytest.raises(errors.DualAnnealValueError):
        localsearch.LocalSearchParams(**kwargs).check()


def test_lbfgs_sphere() -> None:
    outcome = localsearch.lbfgs(corefuncs.Sphere(), np.array([1.0, -2.0, 0.5]), localsearch.LocalSearchParams())
    assert outcome.status in (Status.SUCCESS, Status.X_TOLERANCE_REACHED)
    assert outcome.x.dtype == np.float32
    np.testing.assert_allclose(outcome.x, 0, atol=1e-3)
    assert outcome.func < 1e-6
    assert outcome.num_f_evals > 0


def test_lbfgs_rastrigin_reaches_local_minimum() -> None:
    func = corefuncs.Rastrigin()
    x0 = np.array([1.05, -0.05, 2.02])
    outcome = localsearch.lbfgs(func, x0, localsearch.LocalSearchParams(), bounds=func.bounds(3))
    assert not outcome.status.is_hard_failure
    assert outcome.func < func.value(x0.astype(np.float32))
    # local minima of Rastrigin lie close to the integer lattice
    np.testing.assert_array_less(np.abs(outcome.x - np.round(outcome.x)), 0.05)


def test_lbfgs_max_iter() -> None:
    params = localsearch.LocalSearchParams(x_tol=0, max_iter=1)
    outcome = localsearch.lbfgs(corefuncs.Rosenbrock(), np.array([-1.2, 1.0, -0.5, 2.0]), params)
    assert outcome.status is Status.MAXIMUM_ITERATIONS_REACHED


def test_lbfgs_invalid_objective() -> None:
    func = fbase.FunctionObjective(lambda x: float("nan"), -1, 1, gradient=np.zeros_like)
    outcome = localsearch.lbfgs(func, np.array([0.5, 0.5]), localsearch.LocalSearchParams())
    assert outcome.status is Status.INVALID_OBJECTIVE


def test_x_tolerance_stopper() -> None:
    stopper = localsearch._XToleranceStopper(np.array([0.0, 1.0]), 0.1)
    stopper(np.array([0.5, 1.0]))
    assert not stopper.stopped
    with pytest.raises(StopIteration):
        stopper(np.array([0.55, 0.95]))
    assert stopper.stopped


def test_adapter_requires_gradient() -> None:
    with pytest.raises(AssertionError):
        localsearch.LocalSearchAdapter(_make_chain(corefuncs.Ackley()))


def test_adapter_success() -> None:
    chain = _make_chain()
    solver = _FakeSolver(Status.SUCCESS, [0.0, 0.0, 0.0], 0.0)
    adapter = localsearch.LocalSearchAdapter(chain, solver=solver)
    assert adapter() is Status.SUCCESS
    workspace = chain.workspace
    np.testing.assert_array_equal(workspace.current.x, 0)
    np.testing.assert_equal(workspace.current.func, 0.0)
    np.testing.assert_array_equal(workspace.best.x, 0)
    np.testing.assert_equal(chain.num_f_evals, 1 + 7)
    # the solver starts from the current point, within the bounds of the objective
    np.testing.assert_array_equal(solver.calls[0][0], [1.0, -2.0, 0.5])
    assert solver.calls[0][1] == [(-5.0, 5.0)] * 3
    assert adapter.last_outcome is solver.outcome


def test_adapter_soft_failure_without_improvement() -> None:
    chain = _make_chain()
    before = chain.workspace.current.x.copy()
    solver = _FakeSolver(Status.ROUNDING_ERRORS, [3.0, 3.0, 3.0], 27.0)
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.SUCCESS
    np.testing.assert_array_equal(chain.workspace.current.x, before)
    np.testing.assert_equal(chain.workspace.current.func, 5.25)


def test_adapter_soft_failure_with_equal_value_is_ignored() -> None:
    chain = _make_chain()
    before = chain.workspace.current.x.copy()
    solver = _FakeSolver(Status.MAXIMUM_ITERATIONS_REACHED, [2.0, 1.0, 0.5], 5.25)
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.SUCCESS
    np.testing.assert_array_equal(chain.workspace.current.x, before)


def test_adapter_soft_failure_with_improvement() -> None:
    chain = _make_chain()
    solver = _FakeSolver(Status.MAXIMUM_EVALUATIONS_REACHED, [0.5, -1.0, 0.5], 1.5)
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.SUCCESS
    np.testing.assert_array_equal(chain.workspace.current.x, [0.5, -1.0, 0.5])
    np.testing.assert_equal(chain.workspace.best.func, 1.5)


def test_adapter_hard_failure_leaves_current_untouched() -> None:
    chain = _make_chain()
    before = chain.workspace.current.x.copy()
    solver = _FakeSolver(Status.INVALID_OBJECTIVE, [0.0, 0.0, 0.0], float("nan"))
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.INVALID_OBJECTIVE
    np.testing.assert_array_equal(chain.workspace.current.x, before)
    np.testing.assert_equal(chain.workspace.current.func, 5.25)
    np.testing.assert_equal(chain.workspace.best.func, 5.25)


def test_adapter_with_lbfgs() -> None:
    objective = testing.CountingObjective(corefuncs.Sphere())
    chain = _make_chain(objective)
    assert localsearch.LocalSearchAdapter(chain)() is Status.SUCCESS
    assert chain.workspace.best.func < 1e-6
    np.testing.assert_equal(chain.num_f_evals, 1 + objective.counts["value_and_gradient"])


def test_adapter_wraps_points_out_of_the_domain() -> None:
    objective = testing.CountingObjective(corefuncs.Sphere())
    chain = _make_chain(objective)
    solver = _FakeSolver(Status.SUCCESS, [11.0, 0.5, -10.0], 0.0)
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.SUCCESS
    workspace = chain.workspace
    np.testing.assert_array_equal(workspace.current.x, [1.0, 0.5, 0.0])
    # the value reported by the solver is replaced by the value at the wrapped point
    np.testing.assert_equal(workspace.current.func, 1.25)
    np.testing.assert_equal(workspace.best.func, 1.25)
    np.testing.assert_equal(chain.num_f_evals, 1 + 7 + 1)
    np.testing.assert_equal(objective.counts["value"], 2)


def test_adapter_wrapped_point_can_be_rejected() -> None:
    chain = _make_chain()
    before = chain.workspace.current.x.copy()
    solver = _FakeSolver(Status.SUCCESS, [5.0, 6.0, -7.0], 0.0)
    assert localsearch.LocalSearchAdapter(chain, solver=solver)() is Status.SUCCESS
    # wrapped to [-5, -4, 3], which is worse than the current point
    np.testing.assert_array_equal(chain.workspace.current.x, before)
    np.testing.assert_equal(chain.workspace.current.func, 5.25)
    np.testing.assert_equal(chain.num_f_evals, 1 + 7 + 1)
