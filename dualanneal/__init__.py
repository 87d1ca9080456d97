# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .common import typing as typing
from .common import errors as errors
from . import functions as functions
from .optimization import callbacks as callbacks
from .optimization import AnnealingParams
from .optimization import LocalSearchParams
from .optimization import LocalSearchStatus
from .optimization import BufferPool
from .optimization import DualAnnealing
from .optimization import Result
from .optimization import minimize


__all__ = [
    "minimize",
    "DualAnnealing",
    "AnnealingParams",
    "LocalSearchParams",
    "LocalSearchStatus",
    "BufferPool",
    "Result",
    "functions",
    "callbacks",
    "errors",
    "typing",
]


__version__ = "0.1.0"
