"""Tiled host maps for coverage layers.

The maps implement the capabilities layers consume: a projection identifier
:attr:`crs`, pixel to geographic conversion with :meth:`unproject`, the
viewport with :meth:`get_bounds` and signals with :meth:`fire` / :meth:`on`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt
import param

from pycovmap.core.events import Eventable
from pycovmap.utils import dependencies

logger = logging.getLogger(__name__)

#: Latitude limit of the spherical Web Mercator projection
MAX_MERCATOR_LATITUDE = 85.0511287798066

#: Projections supported by :class:`TileMap`
TILE_MAP_CRS = ("EPSG:3857", "EPSG:4326")


class BaseMap(Eventable):
    """Signals every host map emits."""

    dataloading = param.Event(doc="A layer started loading data")
    dataload = param.Event(doc="A layer finished loading data, successfully or not")
    moveend = param.Event(doc="The viewport changed")


class TileMap(BaseMap):
    """Tiled map in Web Mercator or plate carrée.

    Global pixel coordinates have their origin at the north west corner of
    the map. At zoom level ``z`` the map is ``tile_size * 2**z`` pixels high.
    In plate carrée (EPSG:4326), the map is twice as wide as high.

    Parameters
    ----------
    crs : str, optional
        One of :attr:`TILE_MAP_CRS`.
    tile_size : int, optional
        Tile edge length in pixels.
    bounds : Sequence[float], optional
        Viewport ``(west, south, east, north)`` in degrees. Defaults to the whole world.

    Examples
    --------
    >>> m = TileMap("EPSG:4326")
    >>> m.unproject(256.0, 128.0, 0)
    (0.0, 0.0)
    """

    def __init__(
        self,
        crs: str = "EPSG:3857",
        tile_size: int = 256,
        bounds: Sequence[float] | None = None,
    ) -> None:
        super().__init__()
        if crs not in TILE_MAP_CRS:
            msg = f"Unsupported tile map projection '{crs}'. Expected one of {TILE_MAP_CRS}."
            raise ValueError(msg)
        self.crs = crs
        self.tile_size = tile_size
        if bounds is None:
            lat = MAX_MERCATOR_LATITUDE if crs == "EPSG:3857" else 90.0
            bounds = (-180.0, -lat, 180.0, lat)
        self.bounds = tuple(float(b) for b in bounds)

    def __repr__(self) -> str:
        return f"TileMap(crs={self.crs!r}, tile_size={self.tile_size})"

    def _size(self, zoom: int) -> tuple[float, float]:
        height = float(self.tile_size * 2**zoom)
        width = 2.0 * height if self.crs == "EPSG:4326" else height
        return width, height

    def unproject(self, px: Any, py: Any, zoom: int) -> tuple[Any, Any]:
        """Convert global pixel coordinates to ``(longitude, latitude)`` in degrees.

        Parameters
        ----------
        px, py : float | npt.ArrayLike
            Pixel coordinates.
        zoom : int
            Zoom level.

        Returns
        -------
        tuple[float | np.ndarray, float | np.ndarray]
            Longitude and latitude. Floats are returned for scalar input.
        """
        width, height = self._size(zoom)
        x = np.asarray(px, dtype=np.float64)
        y = np.asarray(py, dtype=np.float64)

        lon = x / width * 360.0 - 180.0
        if self.crs == "EPSG:3857":
            lat = np.degrees(np.arctan(np.sinh(np.pi * (1.0 - 2.0 * y / height))))
        else:
            lat = 90.0 - y / height * 180.0

        if lon.ndim == 0 and lat.ndim == 0:
            return float(lon), float(lat)
        return lon, lat

    def project(self, lon: Any, lat: Any, zoom: int) -> tuple[Any, Any]:
        """Convert ``(longitude, latitude)`` in degrees to global pixel coordinates.

        Inverse of :meth:`unproject`.
        """
        width, height = self._size(zoom)
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)

        px = (lon + 180.0) / 360.0 * width
        if self.crs == "EPSG:3857":
            lat = np.clip(lat, -MAX_MERCATOR_LATITUDE, MAX_MERCATOR_LATITUDE)
            py = (1.0 - np.arcsinh(np.tan(np.radians(lat))) / np.pi) / 2.0 * height
        else:
            py = (90.0 - lat) / 180.0 * height

        if px.ndim == 0 and py.ndim == 0:
            return float(px), float(py)
        return px, py

    def get_bounds(self) -> tuple[float, float, float, float]:
        """Return the viewport ``(west, south, east, north)`` in degrees."""
        return self.bounds  # type: ignore[return-value]

    def set_view(self, bounds: Sequence[float]) -> None:
        """Set the viewport and fire ``"moveend"``."""
        self.bounds = tuple(float(b) for b in bounds)
        self.fire("moveend", bounds=self.bounds)


class ProjectedTileMap(BaseMap):
    """Tiled map in an arbitrary projection, converted with :mod:`pyproj`.

    Layers unproject every pixel on this map, unless :attr:`crs` is one of
    :attr:`pycovmap.layers.grid.RECTILINEAR_CRS`.

    Parameters
    ----------
    crs : str
        Projection understood by :meth:`pyproj.CRS.from_user_input`, for example "EPSG:3413".
    extent : Sequence[float]
        Projected extent ``(xmin, ymin, xmax, ymax)`` covered by the map at zoom level 0.
    tile_size : int, optional
        Tile edge length in pixels.
    """

    def __init__(self, crs: str, extent: Sequence[float], tile_size: int = 256) -> None:
        pyproj = dependencies.import_optional(
            "pyproj", name="ProjectedTileMap class", pycovmap_optional_package="proj"
        )
        super().__init__()
        self.crs = crs
        self.extent = tuple(float(e) for e in extent)
        self.tile_size = tile_size
        self._transformer = pyproj.Transformer.from_crs(crs, "EPSG:4326", always_xy=True)

        xmin, ymin, xmax, ymax = self.extent
        lon, lat = self._transformer.transform(
            np.linspace(xmin, xmax, 21).repeat(21), np.tile(np.linspace(ymin, ymax, 21), 21)
        )
        lon = np.asarray(lon)[np.isfinite(lon)]
        lat = np.asarray(lat)[np.isfinite(lat)]
        self.bounds = (float(lon.min()), float(lat.min()), float(lon.max()), float(lat.max()))

    def __repr__(self) -> str:
        return f"ProjectedTileMap(crs={self.crs!r}, extent={self.extent})"

    def unproject(self, px: npt.ArrayLike, py: npt.ArrayLike, zoom: int) -> tuple[Any, Any]:
        """Convert global pixel coordinates to ``(longitude, latitude)`` in degrees.

        Pixels outside the valid area of the projection map to ``inf`` or ``nan``.
        """
        xmin, ymin, xmax, ymax = self.extent
        scale = max(xmax - xmin, ymax - ymin) / (self.tile_size * 2**zoom)
        x = xmin + np.asarray(px, dtype=np.float64) * scale
        y = ymax - np.asarray(py, dtype=np.float64) * scale
        lon, lat = self._transformer.transform(x, y)
        return np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64)

    def get_bounds(self) -> tuple[float, float, float, float]:
        """Return the approximate geographic bounds ``(west, south, east, north)`` of the map."""
        return self.bounds
