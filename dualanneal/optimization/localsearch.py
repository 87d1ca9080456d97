# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import enum
import numbers
import logging
import numpy as np
from scipy import optimize as scipyoptimize
import dualanneal.common.typing as tp
from dualanneal.common import errors
from dualanneal.functions import base as fbase
from .chain import AnnealingChain


logger = logging.getLogger(__name__)


class LocalSearchStatus(enum.Enum):
    """Outcome of a local search"""

    SUCCESS = 0
    X_TOLERANCE_REACHED = 1
    # soft failures: the point may still be usable
    MAXIMUM_ITERATIONS_REACHED = 2
    MAXIMUM_EVALUATIONS_REACHED = 3
    ROUNDING_ERRORS = 4
    # hard failures
    INVALID_OBJECTIVE = 5
    SOLVER_ERROR = 6

    @property
    def is_soft_failure(self) -> bool:
        return self in _SOFT_FAILURES

    @property
    def is_hard_failure(self) -> bool:
        return self in _HARD_FAILURES


_SOFT_FAILURES = {
    LocalSearchStatus.MAXIMUM_ITERATIONS_REACHED,
    LocalSearchStatus.MAXIMUM_EVALUATIONS_REACHED,
    LocalSearchStatus.ROUNDING_ERRORS,
}
_HARD_FAILURES = {LocalSearchStatus.INVALID_OBJECTIVE, LocalSearchStatus.SOLVER_ERROR}


class LocalSearchParams(tp.NamedTuple):
    """Parameters of the L-BFGS-B local search

    Attributes
    ----------
    x_tol: float
        stops when no coordinate moved by more than x_tol during an iteration (0 to deactivate)
    f_tol: float
        stops when the relative reduction of the objective is below f_tol
    g_tol: float
        stops when the largest component of the projected gradient is below g_tol
    m: int
        number of corrections kept to approximate the inverse hessian
    max_iter: int
        maximum number of iterations
    max_fun: int
        maximum number of evaluations of the objective
    max_linesearch: int
        maximum number of evaluations per line search
    """

    x_tol: float = 1e-5
    f_tol: float = 2.2e-9
    g_tol: float = 1e-5
    m: int = 10
    max_iter: int = 15000
    max_fun: int = 15000
    max_linesearch: int = 20

    def check(self) -> None:
        for name in ["x_tol", "f_tol", "g_tol"]:
            if not getattr(self, name) >= 0:  # also rejects NaN
                raise errors.DualAnnealValueError(f"{name} must be non-negative (got {getattr(self, name)})")
        for name in ["m", "max_iter", "max_fun", "max_linesearch"]:
            value = getattr(self, name)
            if not isinstance(value, numbers.Integral) or value < 1:
                raise errors.DualAnnealValueError(f"{name} must be a positive integer (got {value})")


class LocalSearchOutcome(tp.NamedTuple):
    """Status, final point, final value and number of evaluations of a local search"""

    status: LocalSearchStatus
    x: np.ndarray
    func: float
    num_f_evals: int


Solver = tp.Callable[
    [fbase.ValueAndGradient, np.ndarray, LocalSearchParams, tp.Optional[tp.List[tp.Tuple[float, float]]]],
    LocalSearchOutcome,
]


class _XToleranceStopper:
    def __init__(self, x0: np.ndarray, x_tol: float) -> None:
        self._previous = np.array(x0, copy=True)
        self._x_tol = x_tol
        self.stopped = False

    def __call__(self, xk: np.ndarray) -> None:
        reached = np.max(np.abs(xk - self._previous), initial=0.0) <= self._x_tol
        self._previous[:] = xk
        if reached:
            self.stopped = True
            raise StopIteration


def _status_from_scipy(status: int, message: str) -> LocalSearchStatus:
    message = str(message).upper()
    if status == 0:
        return LocalSearchStatus.SUCCESS
    if status == 99:  # callback raised StopIteration
        return LocalSearchStatus.X_TOLERANCE_REACHED
    if status == 1:
        if "ITERATIONS" in message:
            return LocalSearchStatus.MAXIMUM_ITERATIONS_REACHED
        return LocalSearchStatus.MAXIMUM_EVALUATIONS_REACHED
    if status == 2 and "ABNORMAL" in message:
        return LocalSearchStatus.ROUNDING_ERRORS
    return LocalSearchStatus.SOLVER_ERROR


def lbfgs(
    objective: fbase.ValueAndGradient,
    x0: np.ndarray,
    params: LocalSearchParams,
    bounds: tp.Optional[tp.List[tp.Tuple[float, float]]] = None,
) -> LocalSearchOutcome:
    """Quasi-Newton local minimization with scipy's L-BFGS-B.
    The objective is evaluated on float32 copies of the iterates, as in the annealing chain.
    """
    x32 = np.array(x0, dtype=np.float32)
    gradient32 = np.zeros_like(x32)
    num_f_evals = 0

    def value_and_gradient(x: np.ndarray) -> tp.Tuple[float, np.ndarray]:
        nonlocal num_f_evals
        num_f_evals += 1
        x32[:] = x
        value = float(objective.value_and_gradient(x32, gradient32))
        return value, gradient32.astype(np.float64)

    stopper = _XToleranceStopper(x0, params.x_tol) if params.x_tol > 0 else None
    res = scipyoptimize.minimize(
        value_and_gradient,
        np.asarray(x0, dtype=np.float64),
        jac=True,
        method="L-BFGS-B",
        bounds=bounds,
        callback=stopper,
        options=dict(
            maxcor=params.m,
            ftol=params.f_tol,
            gtol=params.g_tol,
            maxiter=params.max_iter,
            maxfun=params.max_fun,
            maxls=params.max_linesearch,
        ),
    )
    func = float(res.fun)
    status = _status_from_scipy(res.status, res.message)
    if stopper is not None and stopper.stopped:
        status = LocalSearchStatus.X_TOLERANCE_REACHED
    if not np.isfinite(func) or not np.all(np.isfinite(res.x)):
        status = LocalSearchStatus.INVALID_OBJECTIVE
    return LocalSearchOutcome(status, np.asarray(res.x, dtype=np.float32), func, num_f_evals)


class LocalSearchAdapter:
    """Runs a local search starting from the current point of the chain,
    and moves the chain to the refined point if it does not worsen the objective.

    Parameters
    ----------
    chain: AnnealingChain
        the chain to refine. Its objective must provide :code:`value_and_gradient`.
    params: LocalSearchParams
        parameters of the solver
    solver: callable
        local solver, with the signature of :code:`lbfgs`
    """

    def __init__(
        self, chain: AnnealingChain, params: LocalSearchParams = LocalSearchParams(), solver: Solver = lbfgs
    ) -> None:
        assert isinstance(chain.objective, fbase.ValueAndGradient), "Local search requires gradients"
        self._chain = chain
        self.params = params
        self._solver = solver
        self.last_outcome: tp.Optional[LocalSearchOutcome] = None

    def __call__(self) -> LocalSearchStatus:
        """Runs the local search, and returns SUCCESS or the status of a hard failure.
        The current point is left untouched in case of failure or if the objective did not improve.
        """
        chain = self._chain
        workspace = chain.workspace
        current, proposed = workspace.current, workspace.proposed
        proposed.assign(current)
        objective = chain.objective
        bounds = objective.bounds(chain.dimension) if hasattr(objective, "bounds") else None
        outcome = self._solver(objective, proposed.x.astype(np.float64), self.params, bounds)  # type: ignore
        self.last_outcome = outcome
        chain.count_evaluations(outcome.num_f_evals)
        logger.debug(
            "Local search from func=%.5e: status=%s, func=%.5e after %s evaluations",
            current.func,
            outcome.status.name,
            outcome.func,
            outcome.num_f_evals,
        )
        if outcome.status.is_hard_failure:
            return outcome.status
        # the solver may leave the domain (unbounded objectives, or points on the upper bound)
        x = fbase.wrap_float32(objective, outcome.x)
        func = outcome.func
        if not np.array_equal(x, outcome.x):
            func = float(objective.value(x))
            chain.count_evaluations(1)
        improved = func < current.func
        if improved or (not outcome.status.is_soft_failure and func <= current.func):
            proposed.x[:] = x
            proposed.func = func
            workspace.swap_current_proposed()
            chain.update_best()
        return LocalSearchStatus.SUCCESS
