"""Vertical profile coverage layer drawing a single colored marker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from pycovmap.core.arrays import index_of_nearest
from pycovmap.core.domain import Domain, IndexRange
from pycovmap.layers.base import CoverageLayer, LayerParams


@dataclass
class VerticalProfileLayerParams(LayerParams):
    """Default parameters of :class:`VerticalProfileLayer`."""

    #: Marker color if no ``vertical`` target is set or the value is no-data
    default_color: str = "#000000"


class VerticalProfileLayer(CoverageLayer):
    """Layer displaying a VerticalProfile coverage as one marker.

    If ``vertical`` is set, the marker is colored by the value at the vertical
    level nearest to it. Otherwise the marker has :attr:`params` ``["default_color"]``.
    """

    default_params = VerticalProfileLayerParams
    domain_types = ("VerticalProfile",)

    def _check_domain(self, domain: Domain) -> None:
        super()._check_domain(domain)
        if "z" not in domain:
            raise ValueError("VerticalProfileLayer requires a 'z' axis")
        for name in ("x", "y"):
            if len(domain[name]) != 1:
                msg = f"VerticalProfile axis '{name}' must have exactly one value"
                raise ValueError(msg)

    def _axis_selections(self, domain: Domain) -> dict[str, IndexRange]:
        selections = super()._axis_selections(domain)
        selections.pop("z", None)
        return selections

    @property
    def vertical(self) -> float | None:
        """Vertical level nearest to the target, None if no target is set."""
        target = self.params["vertical"]
        if target is None or self.domain is None:
            return target
        z = self.domain["z"].values
        return float(z[index_of_nearest(z, target)])

    @vertical.setter
    def vertical(self, vertical: float | None) -> None:
        CoverageLayer.vertical.fset(self, vertical)  # type: ignore[attr-defined]

    def marker(self) -> dict[str, Any] | None:
        """Return the marker to draw.

        Returns
        -------
        dict[str, Any] | None
            Mapping with "longitude", "latitude", "vertical", "value" and
            "color" (hex string). None before the layer is active.
        """
        snapshot = self._snapshot
        if snapshot is None:
            return None

        domain = snapshot.domain
        marker: dict[str, Any] = {
            "longitude": float(domain["x"].values[0]),
            "latitude": float(domain["y"].values[0]),
            "vertical": None,
            "value": None,
            "color": self.params["default_color"],
        }

        target = self.params["vertical"]
        if target is None:
            return marker

        iz = index_of_nearest(domain["z"].values, target)
        value = snapshot.range.get(z=iz)
        marker["vertical"] = float(domain["z"].values[iz])
        marker["value"] = value
        if value is not None:
            idx = int(snapshot.palette_indices(np.array([value]), self._palette)[0])
            if idx >= 0:
                marker["color"] = self._palette.to_hex()[idx]
        return marker

    def profile(self) -> pd.DataFrame:
        """Return the displayed profile with columns "vertical" and "value"."""
        snapshot = self._snapshot
        if snapshot is None:
            return pd.DataFrame(columns=["vertical", "value"])
        return pd.DataFrame(
            {
                "vertical": snapshot.domain["z"].values,
                "value": np.ravel(snapshot.range.to_numpy(["z"])),
            }
        )
