"""Test pycovmap.layers base life cycle and GridLayer."""

from __future__ import annotations

import json
from typing import Any

import numpy as np
import pytest

from pycovmap.core.coverage import Coverage
from pycovmap.core.exceptions import UnsupportedCRSError
from pycovmap.core.palette import palettes, scale
from pycovmap.datalib import covjson
from pycovmap.layers import GridLayer, LayerState, TrajectoryLayerParams
from pycovmap.layers.base import estimate_extent
from pycovmap.maps import BaseMap, TileMap
from pycovmap.utils import coroutines
from tests.unit import get_static_path


class GeneralHost(BaseMap):
    """Host map reporting a projection outside the rectilinear set."""

    crs = "urn:test:general"

    def __init__(self) -> None:
        super().__init__()
        self._map = TileMap("EPSG:4326", tile_size=64)

    def unproject(self, px: Any, py: Any, zoom: int) -> tuple[Any, Any]:
        return self._map.unproject(px, py, zoom)

    def get_bounds(self) -> tuple[float, float, float, float]:
        return self._map.get_bounds()


@pytest.fixture()
def grid_layer(grid_coverage: Coverage, plate_carree_map: TileMap) -> GridLayer:
    """Active GridLayer on the plate carrée map."""
    layer = GridLayer(grid_coverage)
    coroutines.run(layer.add_to(plate_carree_map))
    return layer


# ----------
# Parameters
# ----------


def test_layer_params(grid_coverage: Coverage) -> None:
    """Check parameter loading from dicts and keyword arguments."""
    layer = GridLayer(grid_coverage, {"tile_size": 128}, redraw="manual")
    assert layer.params["tile_size"] == 128
    assert layer.params["redraw"] == "manual"
    assert layer.params["palette_extent"] == "full"
    assert layer.parameter.key == "temperature"
    assert layer.state is LayerState.CONSTRUCTING
    assert layer.palette is palettes["blues"]

    with pytest.raises(KeyError, match="Unknown parameter 'not_a_param'"):
        GridLayer(grid_coverage, not_a_param=1)

    with pytest.raises(TypeError, match="GridLayerParams"):
        GridLayer(grid_coverage, TrajectoryLayerParams())


def test_layer_keys(grid_coverage: Coverage) -> None:
    """Check exactly one existing parameter must be selected."""
    assert GridLayer(grid_coverage, keys=["temperature"]).parameter.key == "temperature"

    with pytest.raises(ValueError, match="Exactly one parameter key"):
        GridLayer(grid_coverage, keys=["temperature", "salinity"])
    with pytest.raises(ValueError, match="Exactly one parameter key"):
        GridLayer(grid_coverage, keys="temperature")
    with pytest.raises(KeyError, match="no parameter 'salinity'"):
        GridLayer(grid_coverage, keys=["salinity"])


def test_layer_rejects_coverage(trajectory_coverage: Coverage) -> None:
    """Check the coverage type is validated on construction."""
    with pytest.raises(ValueError, match="domain type Grid"):
        GridLayer(trajectory_coverage)
    with pytest.raises(TypeError, match="requires a Coverage"):
        GridLayer({"type": "Coverage"})  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("extent", "error"),
    [("fov", NotImplementedError), ("widest", ValueError), ((5.0, 1.0), ValueError)],
)
def test_layer_rejects_extent(grid_coverage: Coverage, extent: Any, error: type) -> None:
    """Check palette extent validation."""
    with pytest.raises(error):
        GridLayer(grid_coverage, palette_extent=extent)


def test_layer_rejects_redraw_mode(grid_coverage: Coverage) -> None:
    """Check redraw mode validation."""
    with pytest.raises(ValueError, match="Unknown redraw mode"):
        GridLayer(grid_coverage, redraw="sometimes")


def test_estimate_extent() -> None:
    """Check exact and subsampled extents."""
    assert estimate_extent(np.array([np.nan, np.nan])) is None
    assert estimate_extent(np.array([[1.0, 5.0], [np.nan, -2.0]])) == (-2.0, 5.0)

    values = np.arange(10_000, dtype=np.float64).reshape(100, 100)
    lo, hi = estimate_extent(values, threshold=100, buffer=0.0)
    assert lo == 0.0
    assert hi < 9999.0

    lo, hi = estimate_extent(values, threshold=100, buffer=0.1)
    assert lo < 0.0


# ----------
# Life cycle
# ----------


def test_add_to(grid_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check signals and state while adding a layer."""
    layer = GridLayer(grid_coverage)
    events: list[tuple[str, str]] = []
    plate_carree_map.on(
        ["dataloading", "dataload"], lambda **kw: events.append(("host", kw["type"]))
    )
    layer.on(["loading", "added"], lambda **kw: events.append(("layer", kw["type"])))

    assert coroutines.run(layer.add_to(plate_carree_map)) is layer
    assert events == [
        ("host", "dataloading"),
        ("layer", "loading"),
        ("host", "dataload"),
        ("layer", "added"),
    ]
    assert layer.state is LayerState.ACTIVE
    assert layer.host is plate_carree_map
    assert layer.palette_extent == (270.0, 317.0)

    with pytest.raises(RuntimeError, match="cannot be added"):
        coroutines.run(layer.add_to(plate_carree_map))


def test_add_to_unsupported_crs(plate_carree_map: TileMap) -> None:
    """Check a failed load fires "error" and the layer can be added again."""
    coverage = Coverage(
        {
            "domainType": "Grid",
            "axes": {"x": {"values": [0, 1]}, "y": {"values": [0]}},
            "rangeAxisOrder": ["y", "x"],
            "referencing": [
                {
                    "coordinates": ["x", "y"],
                    "system": {
                        "type": "ProjectedCRS",
                        "id": "http://www.opengis.net/def/crs/EPSG/0/27700",
                    },
                }
            ],
        },
        {"elevation": {"type": "NdArray", "values": [1.0, 2.0]}},
    )
    layer = GridLayer(coverage)
    errors: list[Exception] = []
    loads: list[str] = []
    layer.on("error", lambda **kw: errors.append(kw["error"]))
    plate_carree_map.on("dataload", lambda **kw: loads.append(kw["type"]))

    with pytest.raises(UnsupportedCRSError):
        coroutines.run(layer.add_to(plate_carree_map))

    assert len(errors) == 1
    assert isinstance(errors[0], UnsupportedCRSError)
    assert loads == ["dataload"]
    assert layer.state is LayerState.CONSTRUCTING
    assert layer.host is None
    assert layer.snapshot is None


def test_remove_while_loading(plate_carree_map: TileMap) -> None:
    """Check results arriving after removal are ignored."""
    layers: list[GridLayer] = []

    async def loader(url: str) -> dict[str, Any]:
        doc = await covjson.fetch_json(str(get_static_path(url)))
        if url.startswith("range"):
            layers[0].remove()
        return doc

    coverage = Coverage(
        "domain.covjson",
        {"temperature": "range_temperature.covjson"},
        domain_type="Grid",
        loader=loader,
    )
    layer = GridLayer(coverage)
    layers.append(layer)

    added: list[str] = []
    loads: list[str] = []
    layer.on("added", lambda **kw: added.append(kw["type"]))
    plate_carree_map.on("dataload", lambda **kw: loads.append(kw["type"]))

    assert coroutines.run(layer.add_to(plate_carree_map)) is layer
    assert layer.state is LayerState.REMOVED
    assert layer.snapshot is None
    assert added == []
    assert loads == ["dataload"]


def test_remove(grid_layer: GridLayer) -> None:
    """Check removal releases data and stops drawing."""
    removed: list[str] = []
    grid_layer.on("removed", lambda **kw: removed.append(kw["type"]))

    grid_layer.remove()
    assert removed == ["removed"]
    assert grid_layer.state is LayerState.REMOVED
    assert grid_layer.snapshot is None
    assert grid_layer.host is None
    assert not grid_layer.listens("removed")

    tile = grid_layer.render_tile((1, 0), 0)
    assert not tile.any()

    # removing twice is a no-op
    grid_layer.remove()


# ------------------
# Display properties
# ------------------


def test_time(grid_layer: GridLayer) -> None:
    """Check selecting a time step by exact match."""
    assert grid_layer.time == np.datetime64("2020-01-01T00:00:00", "ns")
    assert grid_layer.snapshot.range.get(y=0, x=0) == 270.0

    redraws: list[str] = []
    grid_layer.on("repaint", lambda **kw: redraws.append(kw["type"]))
    grid_layer.time = "2020-01-02T00:00:00Z"
    assert redraws == ["repaint"]
    assert grid_layer.snapshot.range.get(y=0, x=0) == 294.0

    with pytest.raises(ValueError, match="is not a value of the 't' axis"):
        grid_layer.time = "2020-01-03T00:00:00Z"
    assert redraws == ["repaint"]


def test_vertical(grid_layer: GridLayer) -> None:
    """Check selecting the nearest vertical level."""
    assert grid_layer.vertical == 1000.0

    grid_layer.vertical = 600
    assert grid_layer.vertical == 500.0
    assert grid_layer.snapshot.range.get(y=0, x=0) == 282.0


def test_display_settings(grid_layer: GridLayer) -> None:
    """Check display settings changed together trigger a single redraw."""
    redraws: list[str] = []
    grid_layer.on("repaint", lambda **kw: redraws.append(kw["type"]))

    grid_layer.settings.param.update(time="2020-01-02T00:00:00Z", vertical=600)
    assert redraws == ["repaint"]
    assert grid_layer.params["vertical"] == 600
    assert grid_layer.vertical == 500.0
    assert grid_layer.snapshot.range.get(y=0, x=0) == 306.0


def test_manual_redraw(grid_coverage: Coverage, plate_carree_map: TileMap) -> None:
    """Check property changes only redraw on request in manual mode."""
    layer = GridLayer(grid_coverage, redraw="manual")
    coroutines.run(layer.add_to(plate_carree_map))
    redraws: list[str] = []
    layer.on("repaint", lambda **kw: redraws.append(kw["type"]))

    layer.time = "2020-01-02T00:00:00Z"
    layer.palette = "rainbow"
    assert redraws == []
    assert layer.palette is palettes["rainbow"]

    layer.redraw()
    assert redraws == ["repaint"]


def test_palette_extent(grid_layer: GridLayer) -> None:
    """Check palette extent policies and literal extents."""
    grid_layer.palette_extent = "subset"
    assert grid_layer.palette_extent == (270.0, 281.0)

    grid_layer.palette_extent = (0, 10)
    assert grid_layer.palette_extent == (0.0, 10.0)

    with pytest.raises(NotImplementedError):
        grid_layer.palette_extent = "fov"


def test_categorical_palette(
    categorical_coverage: Coverage, plate_carree_map: TileMap
) -> None:
    """Check categorical parameters map raw values through the category encoding."""
    layer = GridLayer(categorical_coverage)
    assert layer.palette.to_hex() == ["#0000ff", "#00ff00", "#ff0000"]

    with pytest.raises(ValueError, match="3 categories"):
        layer.palette = "grayscale"

    coroutines.run(layer.add_to(plate_carree_map))
    snapshot = layer.snapshot
    assert snapshot.extent is None
    idx = snapshot.palette_indices([1, 2, 3, 4, 5, np.nan], layer.palette)
    np.testing.assert_array_equal(idx, [0, 1, 2, 2, -1, -1])


def test_categories_without_encoding(plate_carree_map: TileMap) -> None:
    """Check categories without an encoding are scaled against the palette extent."""
    doc = json.loads(get_static_path("categorical_grid.covjson").read_text())
    del doc["parameters"]["landcover"]["categoryEncoding"]
    layer = GridLayer(covjson.read(doc))
    coroutines.run(layer.add_to(plate_carree_map))

    snapshot = layer.snapshot
    assert snapshot.category_lookup is None
    assert layer.palette_extent == (1.0, 4.0)
    idx = snapshot.palette_indices([1, 2, 3, 4, np.nan], layer.palette)
    np.testing.assert_array_equal(idx, [0, 0, 1, 2, -1])


# ---------
# Rendering
# ---------


def test_bbox(grid_coverage: Coverage, grid_layer: GridLayer) -> None:
    """Check the bounding box spans half a cell beyond the outer coordinates."""
    assert GridLayer(grid_coverage).bbox is None
    assert grid_layer.bbox == (-5.0, 25.0, 35.0, 55.0)


def test_render_tile(grid_layer: GridLayer) -> None:
    """Check pixels are colored by the nearest grid cell."""
    tile = grid_layer.render_tile((1, 0), 0)
    assert tile.shape == (256, 256, 4)
    assert tile.dtype == np.uint8

    # (20.04, 39.73) is nearest to x=20, y=40
    expected = grid_layer.palette.colors[scale(276.0, grid_layer.palette, (270.0, 317.0))]
    np.testing.assert_array_equal(tile[71, 28, :3], expected)
    assert tile[71, 28, 3] == 255

    # no-data at x=10, y=40
    assert tile[71, 14, 3] == 0

    # north of the bounding box
    assert not tile[0].any()

    # western tile only reaches into the bounding box at its eastern edge
    tile = grid_layer.render_tile((0, 0), 0)
    assert not tile[:, :240].any()
    assert tile[71, 255, 3] == 255


def test_render_tile_general_projection(grid_coverage: Coverage) -> None:
    """Check unprojecting every pixel matches the per row and column shortcut."""
    rectilinear = GridLayer(grid_coverage, tile_size=64)
    coroutines.run(rectilinear.add_to(TileMap("EPSG:4326", tile_size=64)))
    general = GridLayer(grid_coverage, tile_size=64)
    coroutines.run(general.add_to(GeneralHost()))

    for coords, zoom in (((4, 1), 2), ((9, 2), 3)):
        expected = rectilinear.render_tile(coords, zoom)
        assert expected[..., 3].any()
        np.testing.assert_array_equal(general.render_tile(coords, zoom), expected)


def test_render_tile_mercator(grid_coverage: Coverage, mercator_map: TileMap) -> None:
    """Check drawing on a Web Mercator map."""
    layer = GridLayer(grid_coverage)
    coroutines.run(layer.add_to(mercator_map))

    tile = layer.render_tile((0, 0), 0)
    px, py = mercator_map.project(20.0, 40.0, 0)
    assert tile[int(py), int(px), 3] == 255
    assert tile[250, 128, 3] == 0


def test_draw_tile_into_buffer(grid_layer: GridLayer) -> None:
    """Check pixels outside the grid keep their color."""
    pixels = np.full((16, 16, 4), 7, dtype=np.uint8)
    grid_layer.draw_tile(pixels, (0, 0), 0)
    assert (pixels == 7).all()


def test_value_at(grid_coverage: Coverage, grid_layer: GridLayer) -> None:
    """Check value lookup by position."""
    assert GridLayer(grid_coverage).value_at(20.0, 40.0) is None

    assert grid_layer.value_at(20.0, 40.0) == 276.0
    assert grid_layer.value_at(380.0, 40.0) == 276.0
    assert grid_layer.value_at(10.0, 40.0) is None
    assert grid_layer.value_at(100.0, 0.0) is None
