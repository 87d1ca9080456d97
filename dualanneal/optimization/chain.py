# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import numbers
import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common import errors
from dualanneal.functions import base as fbase
from .buffers import Workspace
from .tsallis import TsallisDistribution
from .tsallis import TsallisParam


logger = logging.getLogger(__name__)


class AnnealingParams(tp.NamedTuple):
    """Parameters of the Generalized Simulated Annealing

    Attributes
    ----------
    q_V: float
        shape of the visiting (Tsallis) distribution, in (1, 3). Larger values
        give heavier tails, hence longer jumps.
    q_A: float
        shape of the acceptance probability. The smaller, the less likely
        uphill moves are accepted. Must differ from 1.
    t_0: float
        initial visiting temperature
    num_iter: int
        maximum number of iterations of the chain
    patience: int
        number of consecutive iterations without improvement of the best point
        after which the optimization stops
    """

    q_V: float = 2.62
    q_A: float = -5.0
    t_0: float = 5230.0
    num_iter: int = 1000
    patience: int = 1000

    def check(self) -> None:
        """Raises DualAnnealValueError if some parameter is out of range"""
        if not 1.0 < self.q_V < 3.0:
            raise errors.DualAnnealValueError(f"q_V must be in (1, 3) (got {self.q_V})")
        if self.q_A == 1.0:
            raise errors.DualAnnealValueError("q_A must differ from 1")
        if not self.t_0 > 0:
            raise errors.DualAnnealValueError(f"t_0 must be strictly positive (got {self.t_0})")
        for name in ["num_iter", "patience"]:
            value = getattr(self, name)
            if not isinstance(value, numbers.Integral) or value < 0:
                raise errors.DualAnnealValueError(f"{name} must be a non-negative integer (got {value})")


class AnnealingChain:
    """Markov chain of the Generalized Simulated Annealing, running in place on a workspace.

    At construction, the objective is evaluated on :code:`workspace.current.x`, which must
    hold the starting point, and the best point is initialized with it.
    Each call to :code:`advance` then performs one iteration at constant temperature:
    D full moves (all coordinates perturbed at once) followed by D single coordinate moves.

    Parameters
    ----------
    objective: ValueOnly
        the objective function to minimize
    workspace: Workspace
        memory for the current, proposed and best points
    params: AnnealingParams
        parameters of the annealing
    rng: np.random.RandomState
        random state providing uniform, normal and gamma draws
    """

    def __init__(
        self,
        objective: fbase.ValueOnly,
        workspace: Workspace,
        params: AnnealingParams,
        rng: np.random.RandomState,
    ) -> None:
        self.objective = objective
        self.workspace = workspace
        self.params = params
        self._rng = rng
        self._tsallis = TsallisDistribution(params.q_V, params.t_0)
        self._iteration = 0
        self._num_accepted = 0
        self._num_f_evals = 0
        current = workspace.current
        current.func = self._evaluate(current.x)
        workspace.best.assign(current)
        workspace.proposed.x.fill(0)
        workspace.proposed.func = float("nan")

    @property
    def dimension(self) -> int:
        return self.workspace.dimension

    @property
    def iteration(self) -> int:
        """Number of completed iterations"""
        return self._iteration

    @property
    def num_accepted(self) -> int:
        return self._num_accepted

    @property
    def num_f_evals(self) -> int:
        return self._num_f_evals

    def count_evaluations(self, num: int) -> None:
        """Records evaluations of the objective performed outside of the chain (eg: local search)"""
        assert num >= 0
        self._num_f_evals += num

    def acceptance(self) -> float:
        """Ratio of accepted moves (NaN before the first iteration)"""
        if not self._iteration:
            return float("nan")
        return self._num_accepted / (2 * self._iteration * self.dimension)

    def temperature(self, iteration: int) -> float:
        """Visiting temperature t_V at the given iteration"""
        q_V, t_0 = self.params.q_V, self.params.t_0
        return t_0 * (2.0 ** (q_V - 1.0) - 1.0) / ((2.0 + iteration) ** (q_V - 1.0) - 1.0)

    def acceptance_probability(self, delta: float, t_A: float) -> float:
        """Probability of accepting a move changing the objective by delta >= 0
        at acceptance temperature t_A (generalized Metropolis criterion)
        """
        q_A = self.params.q_A
        factor = 1.0 + (q_A - 1.0) * delta / t_A
        return 0.0 if factor <= 0 else float(factor ** (1.0 / (1.0 - q_A)))

    def accept_or_reject(self, delta: float, t_A: float) -> bool:
        """Returns True if a move changing the objective by delta must be accepted.
        Moves decreasing the objective are always accepted, without any random draw.
        """
        if delta < 0:
            return True
        return bool(self._rng.uniform() <= self.acceptance_probability(delta, t_A))

    def _evaluate(self, x: np.ndarray) -> float:
        self._num_f_evals += 1
        return float(self.objective.value(x))

    def update_best(self) -> None:
        """Copies the current point into the best one if it is better"""
        current, best = self.workspace.current, self.workspace.best
        if current.func < best.func:
            best.assign(current)
            logger.debug("Iteration %s: updating best, func=%.5e", self._iteration, best.func)

    def _full_move(self, t_A: float) -> None:
        workspace = self.workspace
        proposed = workspace.proposed
        # perturbation and wrapping in float64, huge jumps would overflow float32
        step = self._tsallis.many(self._rng, self.dimension)
        if not np.all(np.isfinite(step)):
            return  # rejected without evaluation
        proposed.x[:] = fbase.wrap_float32(self.objective, workspace.current.x + step)
        proposed.func = self._evaluate(proposed.x)
        if self.accept_or_reject(proposed.func - workspace.current.func, t_A):
            self._num_accepted += 1
            workspace.swap_current_proposed()
            self.update_best()

    def _coordinate_move(self, index: int, t_A: float) -> None:
        current = self.workspace.current
        variate = self._tsallis.one(self._rng)
        if not np.isfinite(variate):
            return  # rejected without evaluation
        coordinate = np.float32(fbase.wrap_float32(self.objective, variate))
        self._num_f_evals += 1
        func = fbase.value_from_diff(self.objective, (current.x, current.func), (index, coordinate))
        if self.accept_or_reject(func - current.func, t_A):
            self._num_accepted += 1
            current.x[index] = coordinate
            current.func = func
            self.update_best()

    def advance(self) -> None:
        """Performs one iteration of the chain"""
        t_V = self.temperature(self._iteration)
        t_A = t_V / (self._iteration + 1)
        self._tsallis.set_param(TsallisParam(self.params.q_V, t_V))
        for _ in range(self.dimension):
            self._full_move(t_A)
        for index in range(self.dimension):
            self._coordinate_move(index, t_A)
        self._iteration += 1

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(iteration={self._iteration}, best={self.workspace.best.func}, "
            f"current={self.workspace.current.func})"
        )
