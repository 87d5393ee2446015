"""Test TrajectoryLayer and VerticalProfileLayer."""

from __future__ import annotations

import numpy as np
import pytest

from pycovmap.core.coverage import Coverage
from pycovmap.core.palette import palettes
from pycovmap.layers import LayerState, TrajectoryLayer, VerticalProfileLayer
from pycovmap.maps import TileMap
from pycovmap.utils import coroutines

# ----------
# Trajectory
# ----------


def test_trajectory_features(trajectory_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check every position is returned with its color."""
    layer = TrajectoryLayer(trajectory_coverage)
    assert layer.features().empty

    coroutines.run(layer.add_to(plate_carree_map))
    assert layer.palette_extent == (1.0, 4.0)

    df = layer.features()
    assert len(df) == 4
    assert {"longitude", "latitude", "altitude", "time", "value", "color"}.issubset(df)
    np.testing.assert_array_equal(df["longitude"], [0.0, 1.0, 2.0, 3.0])
    np.testing.assert_array_equal(df["altitude"], [100.0, 200.0, 300.0, 400.0])
    assert df["time"].iloc[1] == np.datetime64("2020-01-01T00:10:00")

    blues = palettes["blues"].to_hex()
    assert df["color"].iloc[0] == blues[0]
    assert df["color"].iloc[3] == blues[-1]
    assert df["palette_index"].iloc[2] == -1
    assert df["color"].iloc[2] is None
    assert df["color"].dtype == object


def test_trajectory_skip_nodata(trajectory_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check positions with no-data can be omitted."""
    layer = TrajectoryLayer(trajectory_coverage, skip_nodata=True)
    coroutines.run(layer.add_to(plate_carree_map))

    df = layer.features()
    assert len(df) == 3
    np.testing.assert_array_equal(df["value"], [1.0, 2.0, 4.0])


def test_trajectory_visible_only(
    trajectory_coverage: Coverage, plate_carree_map: TileMap
) -> None:
    """Check positions outside the viewport can be omitted."""
    layer = TrajectoryLayer(trajectory_coverage, visible_only=True)
    coroutines.run(layer.add_to(plate_carree_map))
    assert len(layer.features()) == 4

    moves: list[tuple[float, ...]] = []
    plate_carree_map.on("moveend", lambda **kw: moves.append(kw["bounds"]))
    plate_carree_map.set_view((-1.0, 49.0, 1.5, 60.0))
    assert moves == [(-1.0, 49.0, 1.5, 60.0)]

    df = layer.features()
    np.testing.assert_array_equal(df["latitude"], [50.0, 51.0])


def test_trajectory_geojson(trajectory_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check GeoJSON output of the positions."""
    layer = TrajectoryLayer(trajectory_coverage)
    coroutines.run(layer.add_to(plate_carree_map))

    fc = layer.to_geojson()
    assert fc["type"] == "FeatureCollection"
    assert len(fc["features"]) == 4

    feature = fc["features"][1]
    assert feature["geometry"] == {"type": "Point", "coordinates": [1.0, 51.0, 200.0]}
    assert feature["properties"]["time"] == "2020-01-01T00:10:00"
    assert feature["properties"]["value"] == 2.0
    assert fc["features"][2]["properties"] == {
        "time": "2020-01-01T00:20:00",
        "value": None,
        "color": None,
    }


def test_trajectory_rejects_axis_selection(
    trajectory_coverage: Coverage, plate_carree_map: TileMap
) -> None:
    """Check time and vertical selections are rejected."""
    layer = TrajectoryLayer(trajectory_coverage, time="2020-01-01T00:00:00Z")
    with pytest.raises(ValueError, match="does not support selecting"):
        coroutines.run(layer.add_to(plate_carree_map))
    assert layer.state is LayerState.CONSTRUCTING


# ----------------
# Vertical profile
# ----------------


def test_profile_marker_default(profile_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check the marker without a vertical target."""
    layer = VerticalProfileLayer(profile_coverage)
    assert layer.marker() is None

    coroutines.run(layer.add_to(plate_carree_map))
    assert layer.vertical is None
    assert layer.marker() == {
        "longitude": 5.0,
        "latitude": 52.0,
        "vertical": None,
        "value": None,
        "color": "#000000",
    }


def test_profile_marker_vertical(profile_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check the marker is colored by the value nearest to the vertical target."""
    layer = VerticalProfileLayer(profile_coverage, vertical=22, default_color="#ffffff")
    assert layer.vertical == 22

    coroutines.run(layer.add_to(plate_carree_map))
    assert layer.vertical == 20.0
    assert layer.palette_extent == (6.0, 15.0)

    marker = layer.marker()
    assert marker["vertical"] == 20.0
    assert marker["value"] == 12.0
    assert marker["color"] != "#ffffff"

    redraws: list[str] = []
    layer.on("repaint", lambda **kw: redraws.append(kw["type"]))
    layer.vertical = 38
    assert redraws == ["repaint"]

    marker = layer.marker()
    assert marker["value"] == 6.0
    assert marker["color"] == "#deebf7"


def test_profile_dataframe(profile_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check the full profile is available."""
    layer = VerticalProfileLayer(profile_coverage)
    assert layer.profile().empty

    coroutines.run(layer.add_to(plate_carree_map))
    df = layer.profile()
    np.testing.assert_array_equal(df["vertical"], [10.0, 20.0, 30.0, 40.0])
    np.testing.assert_array_equal(df["value"], [15.0, 12.0, 9.0, 6.0])


def test_profile_rejects_grid(grid_coverage: Coverage) -> None:
    """Check the coverage type is validated."""
    with pytest.raises(ValueError, match="VerticalProfile"):
        VerticalProfileLayer(grid_coverage)
