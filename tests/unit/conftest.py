"""Load fixtures and paths corresponding to files in static directory."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from pycovmap.core.coverage import Coverage, CoverageCollection
from pycovmap.datalib import covjson
from pycovmap.maps import TileMap
from tests.unit import get_static_path


def _load(filename: str) -> dict[str, Any]:
    with get_static_path(filename).open() as f:
        return json.load(f)


@pytest.fixture()
def grid_doc() -> dict[str, Any]:
    """Load the Grid CoverageJSON document.

    The Grid has axes ``t`` (2), ``z`` (2), ``y`` (3, descending) and ``x`` (4).
    Parameter "temperature" holds ``270 + i`` at flat index ``i`` in
    ``(t, z, y, x)`` order, except for a null at flat index 5.

    Returns
    -------
    dict[str, Any]
    """
    return _load("grid.covjson")


@pytest.fixture()
def grid_coverage(grid_doc: dict[str, Any]) -> Coverage:
    """Read the Grid coverage.

    Returns
    -------
    Coverage
    """
    return covjson.read(grid_doc)  # type: ignore[return-value]


@pytest.fixture()
def categorical_coverage() -> Coverage:
    """Read the Grid coverage with a categorical "landcover" parameter.

    Returns
    -------
    Coverage
    """
    return covjson.read(get_static_path("categorical_grid.covjson"))  # type: ignore[return-value]


@pytest.fixture()
def trajectory_coverage() -> Coverage:
    """Read the Trajectory coverage with a composite ``(t, x, y, z)`` axis.

    Returns
    -------
    Coverage
    """
    return covjson.read(get_static_path("trajectory.covjson"))  # type: ignore[return-value]


@pytest.fixture()
def profile_coverage() -> Coverage:
    """Read the VerticalProfile coverage.

    Returns
    -------
    Coverage
    """
    return covjson.read(get_static_path("profile.covjson"))  # type: ignore[return-value]


@pytest.fixture()
def point_collection() -> CoverageCollection:
    """Read the Point coverage collection.

    Returns
    -------
    CoverageCollection
    """
    return covjson.read(get_static_path("point_collection.covjson"))  # type: ignore[return-value]


@pytest.fixture()
def static_loader() -> Callable[[str], Any]:
    """Loader resolving references relative to the static directory.

    Returns
    -------
    Callable[[str], Any]
        Coroutine function recording the requested references in ``calls``.
    """
    calls: list[str] = []

    async def loader(url: str) -> dict[str, Any]:
        calls.append(url)
        return await covjson.fetch_json(str(get_static_path(url)))

    loader.calls = calls  # type: ignore[attr-defined]
    return loader


@pytest.fixture()
def mercator_map() -> TileMap:
    """Web Mercator host map.

    Returns
    -------
    TileMap
    """
    return TileMap("EPSG:3857")


@pytest.fixture()
def plate_carree_map() -> TileMap:
    """Plate carrée host map, 512 x 256 pixels at zoom level 0.

    Returns
    -------
    TileMap
    """
    return TileMap("EPSG:4326")
