# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import warnings
import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common import errors
from dualanneal.functions import base as fbase
from . import buffers
from .chain import AnnealingChain
from .chain import AnnealingParams
from .localsearch import LocalSearchAdapter
from .localsearch import LocalSearchParams
from .localsearch import LocalSearchStatus
from .localsearch import Solver
from .localsearch import lbfgs


logger = logging.getLogger(__name__)
_Callback = tp.Callable[..., None]


class Result(tp.NamedTuple):
    """Outcome of a minimization

    Attributes
    ----------
    x: np.ndarray
        best point found (float32 copy)
    func: float
        value of the objective at x
    num_iter: int
        number of iterations of the annealing chain
    num_f_evals: int
        number of evaluations of the objective (including gradient and incremental evaluations)
    acceptance: float
        ratio of accepted moves in the chain (NaN if no iteration was performed)
    status: LocalSearchStatus
        SUCCESS, or the status of the hard local search failure which ended the run
    """

    x: np.ndarray
    func: float
    num_iter: int
    num_f_evals: int
    acceptance: float
    status: LocalSearchStatus = LocalSearchStatus.SUCCESS

    @property
    def success(self) -> bool:
        return not self.status.is_hard_failure


def _random_state(random_state: tp.RandomStateLike) -> np.random.RandomState:
    if isinstance(random_state, np.random.RandomState):
        return random_state
    return np.random.RandomState(random_state)


class DualAnnealing:
    """Generalized Simulated Annealing, optionally combined with a gradient based local search.

    The annealing chain is advanced one iteration at a time. Whenever the best point
    improves, the patience counter is reset and the local search (if any) is run from the
    current point of the chain. The optimization stops after :code:`params.num_iter` iterations
    or after :code:`params.patience` consecutive iterations without improvement.

    Parameters
    ----------
    params: AnnealingParams
        parameters of the annealing
    local_search: LocalSearchParams or None
        parameters of the local search, or None to deactivate it
    pool: BufferPool or None
        pool providing the workspace memory (defaults to a module-level thread local pool)
    solver: callable
        local search solver (defaults to scipy's L-BFGS-B)

    Note
    ----
    Callbacks can be registered on "iteration" (called with the optimizer and the chain
    after each iteration) and "local_search" (called with the optimizer, the chain and the status).
    Raising :code:`errors.DualAnnealEarlyStopping` in a callback ends the minimization.
    """

    def __init__(
        self,
        params: AnnealingParams = AnnealingParams(),
        local_search: tp.Optional[LocalSearchParams] = None,
        pool: tp.Optional[buffers.BufferPool] = None,
        solver: Solver = lbfgs,
    ) -> None:
        params.check()
        if local_search is not None:
            local_search.check()
        self.params = params
        self.local_search = local_search
        self._pool = pool
        self._solver = solver
        self._callbacks: tp.Dict[str, tp.List[_Callback]] = {}

    def register_callback(self, name: str, callback: _Callback) -> None:
        """Adds a callback called after each "iteration" of the chain, or after each "local_search"

        Parameters
        ----------
        name: str
            name of the event (either :code:`iteration` or :code:`local_search`)
        callback: callable
            a callable taking the optimizer and the chain as parameters (plus the status for local_search)
        """
        assert name in [
            "iteration",
            "local_search",
        ], f'Only "iteration" and "local_search" events are available (not {name})'
        self._callbacks.setdefault(name, []).append(callback)

    def remove_all_callbacks(self) -> None:
        """Removes all registered callables"""
        self._callbacks = {}

    def _notify(self, name: str, *args: tp.Any) -> None:
        for callback in self._callbacks.get(name, []):
            callback(self, *args)

    def _workspace(self, dimension: int) -> tp.Optional[buffers.Workspace]:
        if self._pool is None:
            return buffers.thread_local_workspace(dimension)
        return self._pool.workspace(dimension)

    def minimize(self, objective: fbase.ValueOnly, x: tp.ArrayLike, random_state: tp.RandomStateLike = None) -> Result:
        """Minimizes the objective, starting from x.

        Parameters
        ----------
        objective: ValueOnly
            the objective, optionally providing :code:`value_and_gradient` and :code:`value_from_diff`
        x: array-like
            1d initial point. If it is a writable float32 numpy array, the best point is copied into it.
        random_state: None, int or np.random.RandomState
            source of randomness, for reproducibility

        Returns
        -------
        Result
            the best point and statistics about the run

        Raises
        ------
        AllocationFailure
            if the workspace could not be allocated (x is left untouched)
        """
        caps = fbase.capabilities(objective)
        x0 = np.asarray(x, dtype=np.float32)
        if x0.ndim != 1 or not x0.size:
            raise errors.DualAnnealValueError(f"Initial point must be a non-empty 1d array (got shape {x0.shape})")
        workspace = self._workspace(x0.size)
        if workspace is None:
            raise errors.AllocationFailure(f"Could not allocate a workspace of dimension {x0.size}")
        np.copyto(workspace.current.x, x0)
        chain = AnnealingChain(objective, workspace, self.params, _random_state(random_state))
        adapter: tp.Optional[LocalSearchAdapter] = None
        if self.local_search is not None:
            if "value_and_gradient" in caps:
                adapter = LocalSearchAdapter(chain, self.local_search, solver=self._solver)
            else:
                logger.warning(
                    "Local search is deactivated since %r does not provide value_and_gradient", objective
                )
                warnings.warn(
                    f"Local search is deactivated since {objective!r} does not provide value_and_gradient",
                    errors.DualAnnealRuntimeWarning,
                )
        status = self._run(chain, adapter)
        best = workspace.best
        if isinstance(x, np.ndarray) and x.dtype == np.float32 and x.flags.writeable:
            np.copyto(x, best.x)
        return Result(
            x=best.x.copy(),
            func=best.func,
            num_iter=chain.iteration,
            num_f_evals=chain.num_f_evals,
            acceptance=chain.acceptance(),
            status=status,
        )

    def _local_search(self, chain: AnnealingChain, adapter: LocalSearchAdapter) -> LocalSearchStatus:
        status = adapter()
        if status.is_hard_failure:
            logger.warning("Local search failed with status %s, stopping", status.name)
            warnings.warn(
                f"Local search failed with status {status.name}, returning the best point so far",
                errors.LocalSearchFailureWarning,
            )
        self._notify("local_search", chain, status)
        return status

    def _run(self, chain: AnnealingChain, adapter: tp.Optional[LocalSearchAdapter]) -> LocalSearchStatus:
        workspace = chain.workspace
        status = LocalSearchStatus.SUCCESS
        try:
            if adapter is not None:
                status = self._local_search(chain, adapter)
                if status.is_hard_failure:
                    return status
            best = workspace.best.func
            patience = self.params.patience
            while chain.iteration < self.params.num_iter and patience > 0:
                chain.advance()
                if workspace.best.func < best:
                    patience = self.params.patience
                    if adapter is not None:
                        status = self._local_search(chain, adapter)
                        if status.is_hard_failure:
                            return status
                    best = workspace.best.func
                else:
                    patience -= 1
                self._notify("iteration", chain)
        except errors.DualAnnealEarlyStopping as e:
            logger.info("Early stopping after %s iterations: %s", chain.iteration, e)
        return status


def minimize(
    objective: fbase.ValueOnly,
    x: tp.ArrayLike,
    params: AnnealingParams = AnnealingParams(),
    local_search: tp.Optional[LocalSearchParams] = None,
    random_state: tp.RandomStateLike = None,
    pool: tp.Optional[buffers.BufferPool] = None,
) -> Result:
    """Minimizes the objective with Generalized Simulated Annealing (see :code:`DualAnnealing`)

    Parameters
    ----------
    objective: ValueOnly
        the objective to minimize
    x: array-like
        1d initial point. If it is a writable float32 numpy array, the best point is copied into it.
    params: AnnealingParams
        parameters of the annealing
    local_search: LocalSearchParams or None
        parameters of the L-BFGS-B local search, or None to deactivate it
    random_state: None, int or np.random.RandomState
        source of randomness, for reproducibility
    pool: BufferPool or None
        pool providing the workspace memory
    """
    return DualAnnealing(params, local_search=local_search, pool=pool).minimize(
        objective, x, random_state=random_state
    )
