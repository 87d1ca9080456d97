# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

# base classes


class DualAnnealError(Exception):
    """Base class for error raised by dualanneal"""


class DualAnnealWarning(Warning):
    pass


# errors
# pylint: disable=too-many-ancestors


class DualAnnealEarlyStopping(StopIteration, DualAnnealError):
    """Stops the minimization loop if raised"""


class DualAnnealRuntimeError(RuntimeError, DualAnnealError):
    """Runtime error raised by dualanneal"""


class DualAnnealValueError(ValueError, DualAnnealError):
    """Invalid value provided to dualanneal"""


class AllocationFailure(MemoryError, DualAnnealRuntimeError):
    """The workspace buffers could not be (re)allocated, either because the required
    number of bytes cannot be represented on this platform or because the allocator failed.
    """


# warnings


class DualAnnealRuntimeWarning(RuntimeWarning, DualAnnealWarning):
    """Runtime warning raised by dualanneal"""


class LocalSearchFailureWarning(DualAnnealRuntimeWarning):
    """The local search solver failed in a way which ended the run"""
