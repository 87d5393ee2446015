"""Search and scan utilities for 1-D coordinate and value arrays."""

from __future__ import annotations

from typing import Any, overload

import numpy as np
import numpy.typing as npt

from pycovmap.core.exceptions import EmptyArrayError


def _ascending(a: npt.ArrayLike) -> tuple[np.ndarray, bool]:
    """Return an ascending view of ``a`` and whether ``a`` was descending.

    Direction is determined by the first two elements only. A length 1 array
    is considered ascending.
    """
    arr = np.asarray(a)
    if arr.ndim != 1:
        msg = f"Expected a 1-D array, got an array with {arr.ndim} dimensions"
        raise ValueError(msg)
    if arr.size == 0:
        raise EmptyArrayError("Cannot search for nearest indices in an empty array")

    descending = arr.size > 1 and bool(arr[0] > arr[1])
    if descending:
        return arr[::-1], True
    return arr, False


@overload
def indices_of_nearest(a: npt.ArrayLike, x: float) -> tuple[int, int]: ...


@overload
def indices_of_nearest(
    a: npt.ArrayLike, x: np.ndarray
) -> tuple[npt.NDArray[np.intp], npt.NDArray[np.intp]]: ...


def indices_of_nearest(a: npt.ArrayLike, x: Any) -> tuple[Any, Any]:
    """Return the indices of the two neighbors of ``x`` in the monotone array ``a``.

    The array ``a`` must be strictly monotone, either ascending or descending.
    The direction is detected from the first two elements. This is not checked.

    Parameters
    ----------
    a : npt.ArrayLike
        Strictly monotone 1-D array. Numeric and ``datetime64`` arrays are supported.
    x : float | np.ndarray
        Query value or array of query values.

    Returns
    -------
    tuple[int, int] | tuple[npt.NDArray[np.intp], npt.NDArray[np.intp]]
        Index pair ``(lo, hi)`` with ``lo <= hi`` such that ``x`` lies between
        ``a[lo]`` and ``a[hi]``. If ``x`` matches a value of ``a`` exactly,
        ``lo == hi``. If ``x`` is outside the range of ``a``, both indices are
        clamped to ``0`` or ``len(a) - 1``. Python ints are returned for a scalar ``x``.

    Raises
    ------
    EmptyArrayError
        If ``a`` has length zero.

    Examples
    --------
    >>> indices_of_nearest([10, 8, 6, 4, 2], 7)
    (1, 2)

    >>> indices_of_nearest([1, 2, 3], 2)
    (1, 1)

    >>> indices_of_nearest([1, 2, 3], 10)
    (2, 2)
    """
    asc, descending = _ascending(a)
    n = asc.size
    xs = np.asarray(x)

    # side left returns `i`: asc[i-1] < x <= asc[i]
    hi = np.clip(np.searchsorted(asc, xs, side="left"), 0, n - 1)
    exact = asc[hi] == xs
    lo = np.where(exact, hi, np.maximum(hi - 1, 0))

    above = xs > asc[-1]
    lo = np.where(above, n - 1, lo)
    hi = np.where(above, n - 1, hi)

    if descending:
        lo, hi = n - 1 - hi, n - 1 - lo

    if xs.ndim == 0:
        return int(lo), int(hi)
    return lo.astype(np.intp), hi.astype(np.intp)


@overload
def index_of_nearest(a: npt.ArrayLike, x: float) -> int: ...


@overload
def index_of_nearest(a: npt.ArrayLike, x: np.ndarray) -> npt.NDArray[np.intp]: ...


def index_of_nearest(a: npt.ArrayLike, x: Any) -> Any:
    """Return the index of the element of the monotone array ``a`` closest to ``x``.

    Ties are resolved in favor of the lower index.

    Parameters
    ----------
    a : npt.ArrayLike
        Strictly monotone 1-D array, ascending or descending.
    x : float | np.ndarray
        Query value or array of query values.

    Returns
    -------
    int | npt.NDArray[np.intp]
        Index of the nearest element. A Python int is returned for a scalar ``x``.

    Raises
    ------
    EmptyArrayError
        If ``a`` has length zero.

    Examples
    --------
    >>> index_of_nearest([10, 8, 6, 4, 2], 7)
    1

    >>> index_of_nearest([10, 8, 6, 4, 2], 6.9)
    2

    >>> index_of_nearest([0.0, 1.0], -5.0)
    0
    """
    arr = np.asarray(a)
    lo, hi = indices_of_nearest(arr, x)
    xs = np.asarray(x)

    d_lo = np.abs(arr[lo] - xs)
    d_hi = np.abs(arr[hi] - xs)
    idx = np.where(d_hi < d_lo, hi, lo)

    if xs.ndim == 0:
        return int(idx)
    return idx.astype(np.intp)


def min_max(a: npt.ArrayLike) -> tuple[Any, Any]:
    """Return the minimum and maximum of ``a`` ignoring no-data entries.

    No-data is ``nan`` for float arrays and ``None`` for object arrays.

    Parameters
    ----------
    a : npt.ArrayLike
        Array of any shape.

    Returns
    -------
    tuple[Any, Any]
        Python scalars ``(min, max)``, or ``(None, None)`` if every
        entry of ``a`` is no-data or ``a`` is empty.
    """
    arr = np.asarray(a)
    if arr.dtype == object:
        valid = [v for v in arr.ravel() if v is not None]
        if not valid:
            return None, None
        return min(valid), max(valid)

    if arr.size == 0:
        return None, None

    if arr.dtype.kind == "f":
        finite = ~np.isnan(arr)
        if not finite.any():
            return None, None
        arr = arr[finite]

    return arr.min().item(), arr.max().item()


def wrap_longitude(x: Any, lower: float) -> Any:
    """Wrap longitude values into the half-open interval ``[lower, lower + 360)``.

    Parameters
    ----------
    x : float | np.ndarray
        Longitude value(s) in degrees.
    lower : float
        Lower bound of the target interval.

    Returns
    -------
    float | np.ndarray
        Wrapped longitude(s). A Python float is returned for a scalar ``x``.

    Examples
    --------
    >>> wrap_longitude(190.0, -180.0)
    -170.0

    >>> wrap_longitude(-10.0, 0.0)
    350.0
    """
    wrapped = np.mod(np.asarray(x, dtype=np.float64) - lower, 360.0) + lower
    if wrapped.ndim == 0:
        return float(wrapped)
    return wrapped
