"""Map layers rendering coverages."""

from pycovmap.layers.base import CoverageLayer, DisplaySettings, LayerParams, LayerState
from pycovmap.layers.grid import GridLayer, GridLayerParams
from pycovmap.layers.profile import VerticalProfileLayer, VerticalProfileLayerParams
from pycovmap.layers.trajectory import TrajectoryLayer, TrajectoryLayerParams

__all__ = [
    "CoverageLayer",
    "DisplaySettings",
    "GridLayer",
    "GridLayerParams",
    "LayerParams",
    "LayerState",
    "TrajectoryLayer",
    "TrajectoryLayerParams",
    "VerticalProfileLayer",
    "VerticalProfileLayerParams",
]
