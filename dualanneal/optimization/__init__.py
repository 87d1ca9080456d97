# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .buffers import BufferPool
from .buffers import Workspace
from .tsallis import TsallisDistribution
from .chain import AnnealingChain
from .chain import AnnealingParams
from .localsearch import LocalSearchParams
from .localsearch import LocalSearchStatus
from .dualannealing import DualAnnealing
from .dualannealing import Result
from .dualannealing import minimize
