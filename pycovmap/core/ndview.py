"""Multi-dimensional views over flat storage."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt


def _c_strides(shape: Sequence[int]) -> tuple[int, ...]:
    """Return row-major element strides for ``shape``."""
    strides = []
    acc = 1
    for n in reversed(shape):
        strides.append(acc)
        acc *= n
    return tuple(reversed(strides))


class NDView:
    """Fixed-shape multi-dimensional view over a flat 1-D buffer.

    The view is described by ``shape``, element ``strides`` and an element
    ``offset`` into ``storage``. Re-slicing along an axis only changes these
    three values, the backing ``storage`` is shared and never copied.

    Parameters
    ----------
    storage : npt.ArrayLike
        Flat 1-D buffer. Never mutated by the view.
    shape : Sequence[int]
        Shape of the view.
    strides : Sequence[int], optional
        Element (not byte) strides for each axis. Defaults to row-major strides for ``shape``.
    offset : int, optional
        Element offset of index ``(0, ..., 0)`` into ``storage``.

    Raises
    ------
    ValueError
        If ``storage`` is not 1-D or the view reaches past the end of ``storage``.

    Examples
    --------
    >>> view = NDView(np.arange(12), (3, 4))
    >>> int(view.get(2, 1))
    9
    >>> sub = view.slice(1, 1, 4, 2)
    >>> sub.shape
    (3, 2)
    >>> int(sub.get(2, 1))
    11
    """

    __slots__ = ("offset", "shape", "storage", "strides")

    storage: np.ndarray
    shape: tuple[int, ...]
    strides: tuple[int, ...]
    offset: int

    def __init__(
        self,
        storage: npt.ArrayLike,
        shape: Sequence[int],
        strides: Sequence[int] | None = None,
        offset: int = 0,
    ) -> None:
        storage = np.asarray(storage)
        if storage.ndim != 1:
            msg = f"Storage must be a flat 1-D array, got {storage.ndim} dimensions"
            raise ValueError(msg)

        self.storage = storage
        self.shape = tuple(int(n) for n in shape)
        self.strides = tuple(int(s) for s in strides) if strides is not None else _c_strides(shape)
        self.offset = int(offset)

        if len(self.strides) != len(self.shape):
            raise ValueError("Length of strides must match length of shape")

        if self.size and self._last_offset() >= storage.size:
            msg = (
                f"View with shape {self.shape} and offset {self.offset} does not fit "
                f"in storage of size {storage.size}"
            )
            raise ValueError(msg)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(shape={self.shape}, strides={self.strides}, "
            f"offset={self.offset}, dtype={self.storage.dtype})"
        )

    def _last_offset(self) -> int:
        return self.offset + sum((n - 1) * s for n, s in zip(self.shape, self.strides))

    @property
    def ndim(self) -> int:
        """Number of dimensions."""
        return len(self.shape)

    @property
    def size(self) -> int:
        """Number of elements in the view."""
        size = 1
        for n in self.shape:
            size *= n
        return size

    @property
    def dtype(self) -> np.dtype:
        """Data type of the backing storage."""
        return self.storage.dtype

    def flat_index(self, index: Sequence[int]) -> int:
        """Resolve an index tuple to an offset into :attr:`storage`.

        Indices are not bounds checked.
        """
        i = self.offset
        for idx, stride in zip(index, self.strides):
            i += idx * stride
        return i

    def get(self, *index: int) -> Any:
        """Return the element at ``index``.

        Indices are not bounds checked.
        """
        return self.storage[self.flat_index(index)]

    def slice(self, axis: int, start: int, stop: int, step: int = 1) -> NDView:
        """Return a view restricted to ``range(start, stop, step)`` along ``axis``.

        This is an O(1) operation, no data is copied.

        Parameters
        ----------
        axis : int
            Axis position.
        start, stop, step : int
            Slice bounds. Must satisfy ``0 <= start < stop <= shape[axis]`` and ``step > 0``.

        Returns
        -------
        NDView
            New view sharing :attr:`storage`.
        """
        n = self.shape[axis]
        if step <= 0 or start < 0 or stop <= start or stop > n:
            msg = f"Invalid slice ({start}, {stop}, {step}) for axis {axis} of length {n}"
            raise ValueError(msg)

        length = len(range(start, stop, step))
        shape = list(self.shape)
        strides = list(self.strides)
        shape[axis] = length
        offset = self.offset + start * strides[axis]
        strides[axis] *= step
        return NDView(self.storage, shape, strides, offset)

    def to_numpy(self) -> np.ndarray:
        """Return a read-only ndarray sharing memory with :attr:`storage`."""
        if self.size == 0:
            return np.empty(self.shape, dtype=self.dtype)

        base = self.storage[self.offset :]
        byte_strides = tuple(s * base.strides[0] for s in self.strides)
        return np.lib.stride_tricks.as_strided(
            base, shape=self.shape, strides=byte_strides, writeable=False
        )
