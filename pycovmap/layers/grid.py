"""Grid coverage layer drawing raster tiles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt

from pycovmap.core.arrays import index_of_nearest, wrap_longitude
from pycovmap.core.domain import Axis, Domain
from pycovmap.layers.base import CoverageLayer, LayerParams

logger = logging.getLogger(__name__)

#: Map projections in which longitude depends only on the pixel column and
#: latitude only on the pixel row
RECTILINEAR_CRS = frozenset({"EPSG:4326", "EPSG:3857", "EPSG:3395"})


@dataclass
class GridLayerParams(LayerParams):
    """Default parameters of :class:`GridLayer`."""

    #: Edge length of square tiles in pixels, used by :meth:`GridLayer.render_tile`
    tile_size: int = 256


def _axis_extent(axis: Axis) -> tuple[float, float]:
    """Return the extent of ``axis`` including half a cell on both ends."""
    if axis.bounds is not None:
        return float(np.nanmin(axis.bounds)), float(np.nanmax(axis.bounds))

    values = axis.values
    lo, hi = float(values.min()), float(values.max())
    if len(values) > 1:
        half = abs(float(values[1] - values[0])) / 2.0
        lo, hi = lo - half, hi + half
    return lo, hi


class GridLayer(CoverageLayer):
    """Layer displaying a parameter of a Grid coverage as raster tiles.

    The host map requests tiles with :meth:`draw_tile`. Tiles are filled by
    mapping each pixel to the nearest grid cell. For host maps in one of
    :attr:`RECTILINEAR_CRS`, longitudes are computed once per tile column
    and latitudes once per tile row. Other projections unproject every pixel.

    Pixels outside the grid's bounding box and pixels with no-data are left
    untouched.

    Parameters
    ----------
    coverage : Coverage
        Grid coverage.
    params : dict[str, Any] | GridLayerParams, optional
        Override layer parameters.
    **params_kwargs : Any
        Override layer parameters with keyword arguments.

    Examples
    --------
    >>> from pycovmap.maps import TileMap
    >>> from pycovmap.utils import coroutines
    >>> layer = GridLayer(coverage, keys=["temperature"])  # doctest: +SKIP
    >>> coroutines.run(layer.add_to(TileMap("EPSG:3857")))  # doctest: +SKIP
    >>> tile = layer.render_tile((0, 0), zoom=0)  # doctest: +SKIP
    """

    default_params = GridLayerParams
    domain_types = ("Grid",)

    def _check_domain(self, domain: Domain) -> None:
        for name in ("x", "y"):
            if name not in domain or domain[name].is_composite:
                msg = f"GridLayer requires a primitive '{name}' axis"
                raise ValueError(msg)

    @property
    def bbox(self) -> tuple[float, float, float, float] | None:
        """Bounding box ``(west, south, east, north)`` of the grid.

        The literal bounding box of the coverage is used if it has one.
        Otherwise the extents of the ``x`` and ``y`` axes are used.
        """
        if self.coverage.bbox is not None:
            west, south, east, north = self.coverage.bbox
            return west, south, east, north
        if self.domain is None:
            return None
        west, east = _axis_extent(self.domain["x"])
        south, north = _axis_extent(self.domain["y"])
        return west, south, east, north

    def _pixel_indices(
        self, px: np.ndarray, py: np.ndarray, zoom: int
    ) -> tuple[npt.NDArray[np.intp], npt.NDArray[np.intp], npt.NDArray[np.bool_]]:
        """Map pixel centers to grid indices.

        Returns row indices, column indices and the mask of pixels inside the
        bounding box, each of shape ``(len(py), len(px))``.
        """
        host = self._map
        domain = self._snapshot.domain
        x = domain["x"].values
        y = domain["y"].values
        west, south, east, north = self.bbox

        with np.errstate(invalid="ignore"):
            if host.crs in RECTILINEAR_CRS:
                lon, _ = host.unproject(px, np.full(px.shape, py[0]), zoom)
                _, lat = host.unproject(np.full(py.shape, px[0]), py, zoom)
                lon = wrap_longitude(lon, west)
                lat = np.asarray(lat, dtype=np.float64)

                col_inside = lon <= east
                row_inside = (lat >= south) & (lat <= north)
                ix, iy = np.meshgrid(index_of_nearest(x, lon), index_of_nearest(y, lat))
                inside = row_inside[:, np.newaxis] & col_inside[np.newaxis, :]
            else:
                gx, gy = np.meshgrid(px, py)
                lon, lat = host.unproject(gx, gy, zoom)
                lon = wrap_longitude(lon, west)
                lat = np.asarray(lat, dtype=np.float64)

                inside = (lon <= east) & (lat >= south) & (lat <= north)
                ix = index_of_nearest(x, lon)
                iy = index_of_nearest(y, lat)

        return iy, ix, inside

    def draw_tile(self, pixels: np.ndarray, origin: tuple[int, int], zoom: int) -> None:
        """Fill an RGBA tile in place.

        Does nothing unless the layer is active.

        Parameters
        ----------
        pixels : np.ndarray
            ``uint8`` array of shape ``(height, width, 4)``.
        origin : tuple[int, int]
            Global pixel coordinates ``(px, py)`` of the upper left tile corner.
        zoom : int
            Zoom level of the host map.
        """
        snapshot = self._snapshot
        if snapshot is None or self._map is None:
            return

        height, width = pixels.shape[:2]
        px = origin[0] + np.arange(width) + 0.5
        py = origin[1] + np.arange(height) + 0.5

        rectilinear = self._map.crs in RECTILINEAR_CRS
        logger.debug(
            "Drawing %sx%s tile at %s, zoom %s (%s path)",
            width,
            height,
            origin,
            zoom,
            "rectilinear" if rectilinear else "general",
        )

        iy, ix, inside = self._pixel_indices(px, py, zoom)
        values = snapshot.range.to_numpy(["y", "x"])
        idx = snapshot.palette_indices(values[iy, ix], self._palette)

        draw = inside & (idx >= 0)
        pixels[draw, :3] = self._palette.colors[idx[draw]]
        pixels[draw, 3] = 255

    def render_tile(self, coords: tuple[int, int], zoom: int) -> np.ndarray:
        """Draw tile ``coords`` of size :attr:`params` ``["tile_size"]`` into a new array.

        Parameters
        ----------
        coords : tuple[int, int]
            Tile column and row.
        zoom : int
            Zoom level.

        Returns
        -------
        np.ndarray
            ``uint8`` RGBA array of shape ``(tile_size, tile_size, 4)``.
        """
        size = self.params["tile_size"]
        pixels = np.zeros((size, size, 4), dtype=np.uint8)
        self.draw_tile(pixels, (coords[0] * size, coords[1] * size), zoom)
        return pixels

    def value_at(self, lon: float, lat: float) -> Any:
        """Return the displayed value of the grid cell nearest to ``(lon, lat)``.

        Returns None outside the bounding box, for no-data and before the
        layer is active.
        """
        snapshot = self._snapshot
        if snapshot is None:
            return None

        west, south, east, north = self.bbox
        lon = wrap_longitude(lon, west)
        if lon > east or not south <= lat <= north:
            return None
        ix = index_of_nearest(snapshot.domain["x"].values, lon)
        iy = index_of_nearest(snapshot.domain["y"].values, lat)
        return snapshot.range.get(x=ix, y=iy)
