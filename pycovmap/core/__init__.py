"""Core data structures: coverages, domains, ranges, parameters and palettes."""

from pycovmap.core.coverage import Coverage, CoverageCollection, CoverageSubset
from pycovmap.core.domain import Axis, Domain, IndexRange, transform_domain
from pycovmap.core.events import Eventable
from pycovmap.core.ndview import NDView
from pycovmap.core.palette import Palette, PaletteManager, palettes
from pycovmap.core.parameter import Category, ObservedProperty, Parameter, Unit
from pycovmap.core.range import Range, transform_range

__all__ = [
    "Axis",
    "Category",
    "Coverage",
    "CoverageCollection",
    "CoverageSubset",
    "Domain",
    "Eventable",
    "IndexRange",
    "NDView",
    "ObservedProperty",
    "Palette",
    "PaletteManager",
    "Parameter",
    "Range",
    "Unit",
    "palettes",
    "transform_domain",
    "transform_range",
]
