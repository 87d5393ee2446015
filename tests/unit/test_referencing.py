"""Test pycovmap.core.referencing module."""

from __future__ import annotations

from typing import Any

import pytest

from pycovmap.core.domain import Domain, transform_domain
from pycovmap.core.exceptions import CoverageError, UnsupportedCRSError
from pycovmap.core.referencing import (
    CRS84,
    ensure_wgs84_horizontal,
    get_reference_system,
    is_wgs84_geodetic,
)


def _domain(referencing: list[dict[str, Any]]) -> Domain:
    raw = {
        "axes": {"x": {"values": [0]}, "y": {"values": [0]}, "z": {"values": [1, 2]}},
        "referencing": referencing,
    }
    return transform_domain(raw)


def test_get_reference_system() -> None:
    """Check the system covering all requested coordinates is found."""
    vertical = {"type": "VerticalCRS", "cs": {"csAxes": [{"direction": "down"}]}}
    domain = _domain(
        [
            {"coordinates": ["z"], "system": vertical},
            {"coordinates": ["y", "x"], "system": {"type": "GeographicCRS", "id": CRS84}},
        ]
    )
    assert get_reference_system(domain)["id"] == CRS84
    assert get_reference_system(domain, ["z"]) is vertical
    assert get_reference_system(domain, ["x", "z"]) is None


@pytest.mark.parametrize(
    ("system", "expected"),
    [
        ({"type": "GeographicCRS", "id": CRS84}, True),
        ({"type": "GeographicCRS", "id": "http://www.opengis.net/def/crs/EPSG/0/4326"}, True),
        ({"id": "EPSG:4979"}, True),
        ({"type": "ProjectedCRS", "id": "http://www.opengis.net/def/crs/EPSG/0/3857"}, False),
        ({"type": "GeographicCRS", "id": "http://www.opengis.net/def/crs/EPSG/0/4258"}, False),
        ({"type": "GeographicCRS"}, False),
        (None, False),
    ],
)
def test_is_wgs84_geodetic(system: dict[str, Any] | None, expected: bool) -> None:
    """Check WGS84-class system detection."""
    assert is_wgs84_geodetic(system) is expected


def test_ensure_wgs84_horizontal() -> None:
    """Check supported and unsupported horizontal systems."""
    ensure_wgs84_horizontal(_domain([]))
    ensure_wgs84_horizontal(
        _domain([{"coordinates": ["x", "y"], "system": {"type": "GeographicCRS", "id": CRS84}}])
    )

    projected = {"type": "ProjectedCRS", "id": "http://www.opengis.net/def/crs/EPSG/0/27700"}
    with pytest.raises(UnsupportedCRSError, match="27700"):
        ensure_wgs84_horizontal(_domain([{"coordinates": ["x", "y"], "system": projected}]))

    # only x referenced
    with pytest.raises(CoverageError):
        ensure_wgs84_horizontal(
            _domain([{"coordinates": ["x"], "system": {"type": "GeographicCRS", "id": CRS84}}])
        )
