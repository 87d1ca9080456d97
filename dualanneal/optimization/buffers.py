# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Memory backing the annealing chain: three points (current, proposed and best)
stored in one aligned arena, so that no allocation happens during the optimization.
"""

import logging
import threading
import numpy as np
import dualanneal.common.typing as tp
from dualanneal.common import errors


logger = logging.getLogger(__name__)
CACHE_LINE_SIZE = 64  # bytes
DTYPE = np.dtype(np.float32)


def align_up(value: int, alignment: int) -> int:
    """Rounds value up to the next multiple of alignment (which must be a power of 2)"""
    assert alignment > 0 and not alignment & (alignment - 1), f"Invalid alignment {alignment}"
    return (value + alignment - 1) & ~(alignment - 1)


class Point:
    """Value of the objective function along with a view on the coordinates.
    The coordinates are not owned by the point, they live in the Buffers arena.

    Parameters
    ----------
    x: np.ndarray
        float32 view on the coordinates
    func: float
        value of the objective at x (NaN if unknown)
    """

    __slots__ = ("func", "x")

    def __init__(self, x: np.ndarray, func: float = float("nan")) -> None:
        self.x = x
        self.func = func

    @property
    def dimension(self) -> int:
        return self.x.size

    def assign(self, other: "Point") -> None:
        """Copies the value and the coordinates of other into this point"""
        if other is self:
            return
        assert self.x.shape == other.x.shape, f"Incompatible dimensions {self.x.shape} and {other.x.shape}"
        self.func = other.func
        np.copyto(self.x, other.x)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(func={self.func}, x={self.x})"


class Workspace:
    """Current, proposed and best points of the annealing chain.

    Roles are mapped to three slots of the arena, so that swapping the current
    and proposed points only swaps slot indices and never copies the coordinates.
    """

    _CURRENT, _PROPOSED, _BEST = range(3)

    def __init__(self, points: tp.Sequence[Point]) -> None:
        assert len(points) == 3, "A workspace needs exactly 3 points"
        assert len({p.x.shape for p in points}) == 1, "All points must have the same dimension"
        assert not any(
            np.shares_memory(a.x, b.x) for k, a in enumerate(points) for b in points[k + 1 :]
        ), "Points must not overlap"
        self._points = tuple(points)
        self._slots = [0, 1, 2]

    @property
    def dimension(self) -> int:
        return self._points[0].dimension

    @property
    def current(self) -> Point:
        return self._points[self._slots[self._CURRENT]]

    @property
    def proposed(self) -> Point:
        return self._points[self._slots[self._PROPOSED]]

    @property
    def best(self) -> Point:
        return self._points[self._slots[self._BEST]]

    def swap_current_proposed(self) -> None:
        slots = self._slots
        slots[self._CURRENT], slots[self._PROPOSED] = slots[self._PROPOSED], slots[self._CURRENT]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(current={self.current}, proposed={self.proposed}, best={self.best})"


class Buffers:
    """Aligned arena holding num_buffers float32 vectors of the same size.
    Each vector starts on a cache line boundary.

    Parameters
    ----------
    size: int
        number of elements of each vector
    num_buffers: int
        number of vectors
    """

    def __init__(self, size: int = 0, num_buffers: int = 3) -> None:
        self._num_buffers = num_buffers
        self._raw: tp.Optional[np.ndarray] = None  # owns the memory
        self._data = np.zeros(0, dtype=DTYPE)
        self._capacity = 0  # in elements, for all buffers
        self._size = 0
        self.resize(size)

    @property
    def size(self) -> int:
        """Number of elements in each buffer"""
        return self._size

    @property
    def capacity(self) -> int:
        """Number of elements which can be stored without reallocation (all buffers together)"""
        return self._capacity

    @property
    def stride(self) -> int:
        """Distance in elements between the starts of two consecutive buffers"""
        return align_up(self._size, CACHE_LINE_SIZE // DTYPE.itemsize)

    def resize(self, size: int) -> None:
        """Resizes the buffers, reallocating only if the capacity is not sufficient.
        All buffers are zeroed in any case.

        Raises
        ------
        AllocationFailure
            if the required memory cannot be represented or allocated.
            Buffers are left unchanged in this case.
        """
        if size < 0:
            raise errors.DualAnnealValueError(f"Buffer size must be non-negative (got {size})")
        required = align_up(size, CACHE_LINE_SIZE // DTYPE.itemsize) * self._num_buffers
        if required > self._capacity:
            self._data, self._raw = self._allocate(required)
            self._capacity = required
        self._size = size
        self._data.fill(0)

    @staticmethod
    def _allocate(num_elements: int) -> tp.Tuple[np.ndarray, np.ndarray]:
        num_bytes = num_elements * DTYPE.itemsize
        if num_bytes + CACHE_LINE_SIZE > np.iinfo(np.intp).max:
            raise errors.AllocationFailure(f"Integer overflow while allocating {num_elements} elements")
        try:
            raw = np.empty(num_bytes + CACHE_LINE_SIZE, dtype=np.uint8)
        except (MemoryError, ValueError) as e:
            raise errors.AllocationFailure(f"Could not allocate {num_bytes} bytes") from e
        offset = -raw.ctypes.data % CACHE_LINE_SIZE
        data = raw[offset : offset + num_bytes].view(DTYPE)
        return data, raw

    def get(self, index: int) -> np.ndarray:
        """View on the buffer #index"""
        assert 0 <= index < self._num_buffers, "index out of bounds"
        start = index * self.stride
        return self._data[start : start + self._size]

    def workspace(self) -> Workspace:
        assert self._num_buffers == 3, "A workspace requires exactly 3 buffers"
        return Workspace([Point(self.get(k)) for k in range(3)])


class BufferPool:
    """Provides one workspace per thread, reusing the memory between runs.
    Threads never share buffers, so no locking is needed.

    Note
    ----
    A workspace obtained from the pool stays valid until the next call to
    :code:`workspace` from the same thread.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def buffers(self) -> Buffers:
        """Buffers of the calling thread"""
        buffers: tp.Optional[Buffers] = getattr(self._local, "buffers", None)
        if buffers is None:
            buffers = Buffers()
            self._local.buffers = buffers
        return buffers

    def workspace(self, size: int) -> tp.Optional[Workspace]:
        """Returns a zeroed workspace of the given dimension,
        or None if the memory could not be allocated.
        """
        buffers = self.buffers()
        try:
            buffers.resize(size)
        except errors.AllocationFailure as e:
            logger.warning("Could not provide a workspace of size %s: %s", size, e)
            return None
        return buffers.workspace()


_DEFAULT_POOL = BufferPool()


def thread_local_workspace(size: int) -> tp.Optional[Workspace]:
    """Workspace of the calling thread from the default pool (None if allocation failed)"""
    return _DEFAULT_POOL.workspace(size)
