# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .base import ValueOnly
from .base import ValueAndGradient
from .base import IncrementalValue
from .base import PeriodicWrap
from .base import BoxObjective
from .base import FunctionObjective
from .corefuncs import registry
from .corefuncs import Rastrigin
from .corefuncs import Sphere
from .corefuncs import Ackley
from .corefuncs import Rosenbrock
