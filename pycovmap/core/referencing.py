"""Reference system lookups on coverage domains."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pycovmap.core.domain import Domain
from pycovmap.core.exceptions import UnsupportedCRSError

logger = logging.getLogger(__name__)

#: OGC CRS84: WGS84 longitude-latitude
CRS84 = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"

#: Identifiers of geodetic reference systems based on the WGS84 datum
WGS84_CRS_IDS = frozenset(
    {
        CRS84,
        "http://www.opengis.net/def/crs/OGC/0/CRS84",
        "http://www.opengis.net/def/crs/EPSG/0/4326",
        "http://www.opengis.net/def/crs/EPSG/0/4979",
        "http://www.opengis.net/def/crs/OGC/0/CRS84h",
        "urn:ogc:def:crs:OGC:1.3:CRS84",
        "urn:ogc:def:crs:EPSG::4326",
        "EPSG:4326",
        "EPSG:4979",
        "CRS:84",
        "OGC:CRS84",
    }
)

#: Horizontal coordinate identifiers, longitude first
HORIZONTAL_COORDINATES = ("x", "y")


def get_reference_system(
    domain: Domain, coordinates: Sequence[str] = HORIZONTAL_COORDINATES
) -> Mapping[str, Any] | None:
    """Return the reference system covering all of ``coordinates``.

    Parameters
    ----------
    domain : Domain
        Domain with ``referencing`` connections.
    coordinates : Sequence[str], optional
        Coordinate identifiers that must all be referenced by the same system.

    Returns
    -------
    Mapping[str, Any] | None
        The ``system`` object of the first matching connection, or ``None``.
    """
    wanted = set(coordinates)
    for connection in domain.referencing:
        if wanted.issubset(connection.get("coordinates", ())):
            return connection.get("system")
    return None


def is_wgs84_geodetic(system: Mapping[str, Any] | None) -> bool:
    """Check if ``system`` is a geodetic reference system on the WGS84 datum."""
    if not system:
        return False
    if system.get("type") not in (None, "GeographicCRS", "GeodeticCRS"):
        return False
    return system.get("id") in WGS84_CRS_IDS


def ensure_wgs84_horizontal(domain: Domain) -> None:
    """Verify that the horizontal coordinates of ``domain`` use a WGS84-class system.

    A domain without any ``referencing`` is assumed to use :attr:`CRS84`.

    Raises
    ------
    UnsupportedCRSError
        If the horizontal coordinates are referenced to any other system,
        or if only some of the horizontal coordinates are referenced.
    """
    if not domain.referencing:
        logger.debug("Domain has no referencing, assuming CRS84")
        return

    system = get_reference_system(domain)
    if not is_wgs84_geodetic(system):
        crs_id = system.get("id") if system else None
        msg = (
            "Only WGS84-class geodetic reference systems are supported for the "
            f"horizontal axes, found {crs_id!r}"
        )
        raise UnsupportedCRSError(msg)
