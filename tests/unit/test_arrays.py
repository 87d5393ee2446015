"""Test pycovmap.core.arrays module."""

from __future__ import annotations

import numpy as np
import pytest

from pycovmap.core.arrays import indices_of_nearest, index_of_nearest, min_max, wrap_longitude
from pycovmap.core.exceptions import EmptyArrayError


@pytest.mark.parametrize(
    ("a", "x", "expected"),
    [
        ([10, 8, 6, 4, 2], 7, (1, 2)),
        ([10, 8, 6, 4, 2], 6, (2, 2)),
        ([10, 8, 6, 4, 2], 11, (0, 0)),
        ([10, 8, 6, 4, 2], 1, (4, 4)),
        ([1, 2, 3], 2.5, (1, 2)),
        ([1, 2, 3], 1, (0, 0)),
        ([1, 2, 3], -5, (0, 0)),
        ([1, 2, 3], 10, (2, 2)),
        ([5], 3, (0, 0)),
    ],
)
def test_indices_of_nearest(a: list[float], x: float, expected: tuple[int, int]) -> None:
    """Check neighbor indices for ascending and descending arrays."""
    assert indices_of_nearest(a, x) == expected


@pytest.mark.parametrize(
    ("a", "x", "expected"),
    [
        ([10, 8, 6, 4, 2], 7, 1),
        ([10, 8, 6, 4, 2], 6.9, 2),
        ([1, 2, 3], 1.5, 0),
        ([1, 2, 3], 1.51, 1),
        ([0.0, 1.0], -5.0, 0),
        ([0.0, 1.0], 5.0, 1),
    ],
)
def test_index_of_nearest(a: list[float], x: float, expected: int) -> None:
    """Check nearest index and tie breaking toward the lower index."""
    idx = index_of_nearest(a, x)
    assert idx == expected
    assert isinstance(idx, int)


def test_index_of_nearest_vectorized() -> None:
    """Check array queries agree with scalar queries."""
    a = np.array([50.0, 40.0, 30.0])
    x = np.array([[55.0, 45.0], [41.0, 29.0]])

    idx = index_of_nearest(a, x)
    assert idx.shape == x.shape
    assert idx.dtype == np.intp
    expected = [[index_of_nearest(a, float(v)) for v in row] for row in x]
    np.testing.assert_array_equal(idx, expected)


def test_index_of_nearest_datetime() -> None:
    """Check nearest search on a datetime64 axis."""
    times = np.array(["2020-01-01", "2020-01-02", "2020-01-03"], dtype="datetime64[ns]")
    assert index_of_nearest(times, np.datetime64("2020-01-02T20:00", "ns")) == 2


def test_nearest_empty_array() -> None:
    """Check that empty arrays are rejected."""
    with pytest.raises(EmptyArrayError, match="empty array"):
        indices_of_nearest([], 1.0)

    # EmptyArrayError is also a ValueError
    with pytest.raises(ValueError):
        index_of_nearest(np.array([]), 1.0)


def test_min_max() -> None:
    """Check the linear scan ignores no-data."""
    assert min_max(np.array([3.0, np.nan, -1.0, 2.0])) == (-1.0, 3.0)
    assert min_max(np.array([np.nan, np.nan])) == (None, None)
    assert min_max(np.array([], dtype=float)) == (None, None)
    assert min_max(np.array([4, 2, 9])) == (2, 9)

    strings = np.array(["b", None, "a"], dtype=object)
    assert min_max(strings) == ("a", "b")


@pytest.mark.parametrize(
    ("x", "lower", "expected"),
    [
        (190.0, -180.0, -170.0),
        (-10.0, 0.0, 350.0),
        (360.0, 0.0, 0.0),
        (-5.0, -5.0, -5.0),
        (10.0, -5.0, 10.0),
    ],
)
def test_wrap_longitude(x: float, lower: float, expected: float) -> None:
    """Check wrapping into ``[lower, lower + 360)``."""
    assert wrap_longitude(x, lower) == pytest.approx(expected)


def test_wrap_longitude_array() -> None:
    """Check wrapping an array."""
    wrapped = wrap_longitude(np.array([-190.0, 0.0, 185.0]), -180.0)
    np.testing.assert_allclose(wrapped, [170.0, 0.0, -175.0])
