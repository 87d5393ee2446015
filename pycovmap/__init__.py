"""
``pycovmap`` public API.

Copyright 2026 The pycovmap contributors

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

   http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from __future__ import annotations

import logging
from importlib import metadata

from pycovmap.core.coverage import Coverage, CoverageCollection
from pycovmap.core.domain import Axis, Domain, IndexRange, transform_domain
from pycovmap.core.palette import Palette, PaletteManager, palettes
from pycovmap.core.parameter import Parameter
from pycovmap.core.range import Range, transform_range
from pycovmap.datalib.covjson import read
from pycovmap.layers import GridLayer, TrajectoryLayer, VerticalProfileLayer
from pycovmap.maps import ProjectedTileMap, TileMap

__version__ = metadata.version("pycovmap")
__license__ = "Apache-2.0"

log = logging.getLogger(__name__)


__all__ = [
    "Axis",
    "Coverage",
    "CoverageCollection",
    "Domain",
    "GridLayer",
    "IndexRange",
    "Palette",
    "PaletteManager",
    "Parameter",
    "ProjectedTileMap",
    "Range",
    "TileMap",
    "TrajectoryLayer",
    "VerticalProfileLayer",
    "palettes",
    "read",
    "transform_domain",
    "transform_range",
]
