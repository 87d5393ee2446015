"""Trajectory coverage layer drawing colored point markers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from pycovmap.core.domain import Domain, IndexRange
from pycovmap.layers.base import CoverageLayer, LayerParams
from pycovmap.utils.json import dataframe_to_geojson_points

logger = logging.getLogger(__name__)


@dataclass
class TrajectoryLayerParams(LayerParams):
    """Default parameters of :class:`TrajectoryLayer`."""

    #: Only return points inside the viewport of the host map
    visible_only: bool = False

    #: Omit points with no-data
    skip_nodata: bool = False


class TrajectoryLayer(CoverageLayer):
    """Layer displaying a parameter of a Trajectory coverage as colored points.

    The domain must provide ``x`` and ``y`` coordinates of equal length, usually
    as components of a composite axis ``(t, x, y[, z])``. Each position is
    colored by palette lookup of its value.
    """

    default_params = TrajectoryLayerParams
    domain_types = ("Trajectory",)

    def _check_domain(self, domain: Domain) -> None:
        super()._check_domain(domain)
        if len(domain.coordinate_values("x")) != len(domain.coordinate_values("y")):
            raise ValueError("Trajectory 'x' and 'y' coordinates must have equal length")

    def _axis_selections(self, domain: Domain) -> dict[str, IndexRange]:
        if self.params["time"] is not None or self.params["vertical"] is not None:
            raise ValueError("TrajectoryLayer does not support selecting 'time' or 'vertical'")
        return {}

    def features(self) -> pd.DataFrame:
        """Return the displayed trajectory points.

        Returns
        -------
        pd.DataFrame
            One row per point with columns "longitude", "latitude", "value",
            "palette_index" and "color" (hex string, None for no color), plus
            "altitude" and "time" where the domain provides ``z`` and ``t``.
            Empty before the layer is active.
        """
        snapshot = self._snapshot
        if snapshot is None:
            columns = ["longitude", "latitude", "value", "palette_index", "color"]
            return pd.DataFrame(columns=columns)

        domain = snapshot.domain
        data: dict[str, Any] = {
            "longitude": domain.coordinate_values("x"),
            "latitude": domain.coordinate_values("y"),
        }
        for coord, column in (("z", "altitude"), ("t", "time")):
            try:
                values = domain.coordinate_values(coord)
            except KeyError:
                continue
            if len(values) == len(data["longitude"]):
                data[column] = values

        values = np.ravel(snapshot.range.to_numpy())
        idx = snapshot.palette_indices(values, self._palette)
        hexes = self._palette.to_hex()
        data["value"] = values
        data["palette_index"] = idx
        colors = [hexes[i] if i >= 0 else None for i in idx.tolist()]
        data["color"] = pd.Series(colors, dtype=object)
        df = pd.DataFrame(data)

        if self.params["skip_nodata"]:
            df = df[df["palette_index"] >= 0]
        if self.params["visible_only"]:
            west, south, east, north = self._map.get_bounds()
            lon = df["longitude"]
            lat = df["latitude"]
            df = df[(lon >= west) & (lon <= east) & (lat >= south) & (lat <= north)]

        logger.debug("Trajectory layer has %s points", len(df))
        return df.reset_index(drop=True)

    def to_geojson(self) -> dict[str, Any]:
        """Return :meth:`features` as a GeoJSON FeatureCollection of points."""
        return dataframe_to_geojson_points(self.features(), properties=["value", "color"])
