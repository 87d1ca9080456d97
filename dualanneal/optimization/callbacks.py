# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import time
import logging
import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common import errors
from .chain import AnnealingChain
from .dualannealing import DualAnnealing

global_logger = logging.getLogger(__name__)


class OptimizationPrinter:
    """Printer to register as "iteration" callback in an optimizer, for printing
    the best value regularly.

    Parameters
    ----------
    print_interval_iterations: int
        max number of iterations before performing another print
    print_interval_seconds: float
        max number of seconds before performing another print
    """

    def __init__(self, print_interval_iterations: int = 1, print_interval_seconds: float = 60.0) -> None:
        assert print_interval_iterations > 0
        assert print_interval_seconds > 0
        self._print_interval_iterations = int(print_interval_iterations)
        self._print_interval_seconds = print_interval_seconds
        self._next_iteration = self._print_interval_iterations
        self._next_time = time.time() + print_interval_seconds

    def __call__(self, optimizer: DualAnnealing, chain: AnnealingChain) -> None:
        if time.time() >= self._next_time or chain.iteration >= self._next_iteration:
            self._next_time = time.time() + self._print_interval_seconds
            self._next_iteration = chain.iteration + self._print_interval_iterations
            print(f"After {chain.iteration} iterations, best value is {chain.workspace.best.func}")


class OptimizationLogger:
    """Logger to register as "iteration" callback in an optimizer, for logging
    the best value regularly.

    Parameters
    ----------
    logger:
        given logger that callback will use to log
    log_level:
        log level that logger will write to
    log_interval_iterations: int
        max number of iterations before performing another log
    log_interval_seconds:
        max number of seconds before performing another log
    """

    def __init__(
        self,
        *,
        logger: logging.Logger = global_logger,
        log_level: int = logging.INFO,
        log_interval_iterations: int = 1,
        log_interval_seconds: float = 60.0,
    ) -> None:
        assert log_interval_iterations > 0
        assert log_interval_seconds > 0
        self._logger = logger
        self._log_level = log_level
        self._log_interval_iterations = int(log_interval_iterations)
        self._log_interval_seconds = log_interval_seconds
        self._next_iteration = self._log_interval_iterations
        self._next_time = time.time() + log_interval_seconds

    def __call__(self, optimizer: DualAnnealing, chain: AnnealingChain) -> None:
        if time.time() >= self._next_time or chain.iteration >= self._next_iteration:
            self._next_time = time.time() + self._log_interval_seconds
            self._next_iteration = chain.iteration + self._log_interval_iterations
            self._logger.log(
                self._log_level,
                "After %s iterations (%s evaluations), best value is %s (acceptance %.3f)",
                chain.iteration,
                chain.num_f_evals,
                chain.workspace.best.func,
                chain.acceptance(),
            )


class ProgressRecorder:
    """Records the best and current values after each iteration

    Example
    -------

    .. code-block:: python

        recorder = ProgressRecorder()
        optimizer.register_callback("iteration", recorder)
        optimizer.minimize(objective, x0)
        iterations, best, current = recorder.as_arrays()
    """

    def __init__(self) -> None:
        self.records: tp.List[tp.Tuple[int, float, float]] = []

    def __call__(self, optimizer: DualAnnealing, chain: AnnealingChain) -> None:
        workspace = chain.workspace
        self.records.append((chain.iteration, workspace.best.func, workspace.current.func))

    def as_arrays(self) -> tp.Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if not self.records:
            return np.zeros(0, dtype=int), np.zeros(0), np.zeros(0)
        iterations, best, current = zip(*self.records)
        return np.array(iterations), np.array(best), np.array(current)


class EarlyStopping:
    """Callback for stopping the :code:`minimize` method before the iteration budget
    or the patience is exhausted.

    Parameters
    ----------
    stopping_criterion: func(chain) -> bool
        function that takes the current chain as input and returns True
        if the minimization must be stopped

    Note
    ----
    This callback must be registered on the "iteration" event.

    Example
    -------
    In the following code, the :code:`minimize` method will be stopped after the 4th iteration

    >>> early_stopping = EarlyStopping(lambda chain: chain.iteration >= 4)
    >>> optimizer.register_callback("iteration", early_stopping)
    """

    def __init__(self, stopping_criterion: tp.Callable[[AnnealingChain], bool]) -> None:
        self.stopping_criterion = stopping_criterion

    def __call__(self, optimizer: DualAnnealing, *args: tp.Any) -> None:
        if len(args) != 1:
            raise errors.DualAnnealRuntimeError("EarlyStopping must be registered on the iteration event")
        if self.stopping_criterion(args[0]):
            raise errors.DualAnnealEarlyStopping("Early stopping criterion is reached")

    @classmethod
    def timer(cls, max_duration: float) -> "EarlyStopping":
        """Early stop when max_duration seconds has been reached (from the first iteration)"""
        return cls(_DurationCriterion(max_duration))

    @classmethod
    def target(cls, value: float) -> "EarlyStopping":
        """Early stop as soon as the best value is below or equal to the target value"""
        return cls(lambda chain: chain.workspace.best.func <= value)


class _DurationCriterion:
    def __init__(self, max_duration: float) -> None:
        self._start = float("inf")
        self._max_duration = max_duration

    def __call__(self, chain: AnnealingChain) -> bool:
        if np.isinf(self._start):
            self._start = time.time()
        return time.time() > self._start + self._max_duration
