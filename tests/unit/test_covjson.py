"""Test pycovmap.datalib.covjson module."""

from __future__ import annotations

import json
import pathlib
from typing import Any

import numpy as np
import pytest

from pycovmap.core.coverage import Coverage, CoverageCollection
from pycovmap.datalib import covjson
from pycovmap.utils import coroutines
from tests import AIOHTTP_AVAILABLE
from tests.unit import get_static_path


@pytest.mark.parametrize("source", ["dict", "text", "path", "str"])
def test_read_sources(grid_doc: dict[str, Any], source: str) -> None:
    """Test reading from a dict, JSON text and local paths."""
    path = get_static_path("grid.covjson")
    obj: Any = {
        "dict": grid_doc,
        "text": json.dumps(grid_doc),
        "path": path,
        "str": str(path),
    }[source]

    cov = covjson.read(obj)
    assert isinstance(cov, Coverage)
    assert cov.id == "urn:pycovmap:test:grid"
    rng = coroutines.run(cov.load_range("temperature"))
    assert rng.get(t=0, z=0, y=0, x=0) == 270.0


def test_read_invalid_type() -> None:
    """Test documents that are not coverages are rejected."""
    with pytest.raises(ValueError, match="got type 'Domain'"):
        covjson.read(get_static_path("domain.covjson"))


def test_read_collection_inherits(point_collection: CoverageCollection) -> None:
    """Test members inherit the collection domain type, referencing and parameters."""
    assert isinstance(point_collection, CoverageCollection)
    assert point_collection.id == "urn:pycovmap:test:points"
    assert point_collection.profiles == ("PointCoverageCollection",)
    assert point_collection.parameters["temperature"].unit.symbol == "K"

    cov = point_collection[0]
    assert cov.domain_type == "Point"
    assert cov.coverage_type == "PointCoverage"
    assert cov.parameters["temperature"] is point_collection.parameters["temperature"]

    domain = coroutines.run(cov.load_domain())
    assert domain.domain_type == "Point"
    assert domain.referencing[0]["coordinates"] == ["x", "y"]
    assert coroutines.run(cov.load_range("temperature")).get() == 281.5


def test_read_by_reference(static_loader: Any) -> None:
    """Test domains and ranges given by reference load lazily."""
    cov = covjson.read(get_static_path("referenced.covjson"), loader=static_loader)
    assert cov.domain_type == "Grid"
    assert static_loader.calls == []

    rng = coroutines.run(cov.load_range("temperature"))
    assert sorted(static_loader.calls) == ["domain.covjson", "range_temperature.covjson"]
    assert rng.get(y=1, x=2) == 6.5


def test_fetch_json_local_file() -> None:
    """Test fetching local paths, with and without the file scheme."""
    path = get_static_path("domain.covjson")
    doc = coroutines.run(covjson.fetch_json(str(path)))
    assert doc["type"] == "Domain"

    doc = coroutines.run(covjson.fetch_json(path.resolve().as_uri()))
    assert doc["rangeAxisOrder"] == ["y", "x"]

    with pytest.raises(FileNotFoundError):
        coroutines.run(covjson.fetch_json(str(path.with_name("missing.covjson"))))


@pytest.mark.skipif(not AIOHTTP_AVAILABLE, reason="aiohttp not available")
def test_fetch_json_http(grid_doc: dict[str, Any]) -> None:
    """Test fetching from a server and mapping 404 to FileNotFoundError."""
    from aiohttp import web

    async def handler(request: web.Request) -> web.Response:
        return web.json_response(grid_doc, content_type=covjson.MEDIA_TYPE)

    async def main() -> dict[str, Any]:
        app = web.Application()
        app.router.add_get("/grid.covjson", handler)
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", 0).start()
        try:
            base = f"http://127.0.0.1:{runner.addresses[0][1]}"
            with pytest.raises(FileNotFoundError, match="not found"):
                await covjson.fetch_json(f"{base}/missing.covjson")
            return await covjson.fetch_json(f"{base}/grid.covjson")
        finally:
            await runner.cleanup()

    doc = coroutines.run(main())
    assert doc["id"] == "urn:pycovmap:test:grid"


def test_fetch(tmp_path: pathlib.Path, grid_doc: dict[str, Any]) -> None:
    """Test synchronous fetch and read."""
    path = tmp_path / "grid.covjson"
    path.write_text(json.dumps(grid_doc))

    cov = covjson.fetch(str(path), cache_ranges=True)
    assert isinstance(cov, Coverage)
    assert cov.cache_ranges


def test_coverage_to_covjson(grid_coverage: Coverage) -> None:
    """Test writing a loaded coverage and reading it back."""
    doc = coroutines.run(covjson.coverage_to_covjson(grid_coverage))
    assert doc["type"] == "Coverage"
    assert doc["domainType"] == "Grid"
    assert doc["domain"]["axes"]["x"] == {"values": [0.0, 10.0, 20.0, 30.0]}
    assert doc["domain"]["axes"]["t"]["values"][1] == "2020-01-02T00:00:00Z"
    assert doc["parameters"]["temperature"]["unit"]["symbol"] == "K"

    values = doc["ranges"]["temperature"]["values"]
    assert values[5] is None
    assert values[47] == 317.0

    text = covjson.dumps(doc)
    cov = covjson.read(text)
    rng = coroutines.run(cov.load_range("temperature"))
    np.testing.assert_array_equal(
        rng.to_numpy(), coroutines.run(grid_coverage.load_range("temperature")).to_numpy()
    )


def test_coverage_to_covjson_subset(grid_coverage: Coverage) -> None:
    """Test writing a subset writes only the selected values."""
    sub = coroutines.run(grid_coverage.subset_by_index({"t": 1, "z": 0, "x": [2, 3]}))
    doc = coroutines.run(covjson.coverage_to_covjson(sub))
    assert doc["domain"]["axes"]["x"]["values"] == [20.0, 30.0]
    assert doc["ranges"]["temperature"]["shape"] == [1, 1, 3, 2]
    assert doc["ranges"]["temperature"]["values"] == [296.0, 297.0, 300.0, 301.0, 304.0, 305.0]


def test_coverage_to_covjson_categorical(categorical_coverage: Coverage) -> None:
    """Test categorical parameters and integer ranges are written."""
    doc = coroutines.run(covjson.coverage_to_covjson(categorical_coverage))
    param = doc["parameters"]["landcover"]
    assert len(param["observedProperty"]["categories"]) == 3
    assert param["categoryEncoding"]["http://example.com/def/landcover/urban"] == [3, 4]
    assert param["categoryEncoding"]["http://example.com/def/landcover/forest"] == 1
    assert doc["ranges"]["landcover"]["values"] == [1, 2, 3, 4, 2, None]


def test_coverage_to_covjson_scaled() -> None:
    """Test scaled integer ranges are written as decoded floats."""
    doc = {
        "type": "Coverage",
        "domain": {
            "type": "Domain",
            "domainType": "Grid",
            "axes": {"x": {"values": [0, 1, 2]}, "y": {"values": [0]}},
            "rangeAxisOrder": ["y", "x"],
        },
        "parameters": {
            "height": {"type": "Parameter", "observedProperty": {"label": {"en": "Height"}}}
        },
        "ranges": {
            "height": {
                "type": "NdArray",
                "dataType": "integer",
                "values": [6, 9, -3],
                "offset": 0,
                "factor": 0.25,
            }
        },
    }
    out = coroutines.run(covjson.coverage_to_covjson(covjson.read(doc)))
    assert out["ranges"]["height"]["dataType"] == "float"
    assert out["ranges"]["height"]["values"] == [1.5, 2.25, -0.75]


def test_composite_axis_to_covjson(trajectory_coverage: Coverage) -> None:
    """Test tuple axes are written with their coordinates."""
    doc = coroutines.run(covjson.coverage_to_covjson(trajectory_coverage))
    axis = doc["domain"]["axes"]["composite"]
    assert axis["dataType"] == "tuple"
    assert axis["coordinates"] == ["t", "x", "y", "z"]
    assert axis["values"][1] == ["2020-01-01T00:10:00Z", 1, 51, 200]


def test_collection_to_covjson() -> None:
    """Test assembling a collection document."""
    member = {"type": "Coverage", "domain": {"axes": {"x": {"values": [1]}}}, "ranges": {}}
    doc = covjson.collection_to_covjson(
        [member],
        {},
        domain_type="Point",
        referencing=[{"coordinates": ["x"], "system": {"type": "GeographicCRS"}}],
        id="urn:collection",
    )
    assert doc["type"] == "CoverageCollection"
    assert doc["domainType"] == "Point"
    assert doc["id"] == "urn:collection"
    assert doc["coverages"] == [member]
    assert doc["coverages"][0] is not member
