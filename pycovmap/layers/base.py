"""Map layer base class, layer parameters and the layer life cycle."""

from __future__ import annotations

import dataclasses
import enum
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, fields
from typing import Any, Protocol

import numpy as np
import numpy.typing as npt
import pandas as pd
import param

from pycovmap.core.arrays import index_of_nearest, min_max
from pycovmap.core.coverage import Coverage, domain_type_name
from pycovmap.core.domain import Domain, IndexRange
from pycovmap.core.events import Eventable
from pycovmap.core.palette import Palette, direct_palette, linear_palette, palettes, scale_array
from pycovmap.core.parameter import Parameter
from pycovmap.core.range import Range
from pycovmap.core.referencing import ensure_wgs84_horizontal
from pycovmap.utils.types import PaletteExtentSpec, type_guard

logger = logging.getLogger(__name__)

#: Palette extent policies computed from the data
EXTENT_POLICIES = ("full", "subset")

#: Accepted values of the ``redraw`` parameter
REDRAW_MODES = ("onchange", "manual")

#: Display settings watched by :class:`CoverageLayer`
DISPLAY_SETTINGS = ("palette", "palette_extent", "time", "vertical")


class HostMap(Protocol):
    """Capabilities a map must provide to host coverage layers."""

    #: Identifier of the map projection, for example "EPSG:3857"
    crs: str

    def unproject(self, px: Any, py: Any, zoom: int) -> tuple[Any, Any]:
        """Convert pixel coordinates to ``(longitude, latitude)``."""

    def get_bounds(self) -> tuple[float, float, float, float]:
        """Return the viewport as ``(west, south, east, north)``."""

    def fire(self, event: str, **data: Any) -> None:
        """Emit ``event``."""


# ------------
# Layer Params
# ------------


@dataclass
class LayerParams:
    """Default layer parameters.

    Implementing classes must still use the ``@dataclass`` operator.
    """

    #: Parameter keys to display. Exactly one key is supported. If None,
    #: the coverage must have exactly one parameter.
    keys: Sequence[str] | None = None

    #: Time coordinate to display. Must match a value of the ``t`` axis exactly.
    #: If None, the first time step is displayed.
    time: Any = None

    #: Vertical coordinate to display. The nearest value of the ``z`` axis is used.
    #: If None, the first vertical level is displayed.
    vertical: float | None = None

    #: A :class:`Palette` or name of a registered palette. If None, categorical
    #: parameters use the preferred colors of their categories (or a rainbow
    #: with one color per category) and continuous parameters use "blues".
    palette: Palette | str | None = None

    #: Value extent mapped onto the palette. Either a literal ``(low, high)`` pair,
    #: ``"full"`` to scan the whole range or ``"subset"`` to scan the displayed
    #: time step and vertical level. ``"fov"`` (field of view) is not implemented.
    palette_extent: PaletteExtentSpec = "full"

    #: ``"onchange"`` to redraw when a display property changes, ``"manual"``
    #: to only redraw on :meth:`CoverageLayer.redraw`.
    redraw: str = "onchange"

    #: Ranges with more values than this are subsampled when scanning for the
    #: palette extent.
    extent_subsample_threshold: int = 1_000_000

    #: Relative buffer added to both ends of a subsampled palette extent.
    extent_buffer: float = 0.1

    def as_dict(self) -> dict[str, Any]:
        """Convert object to dictionary.

        We use this method instead of `dataclasses.asdict`
        to use a shallow/unrecursive copy.

        Returns
        -------
        dict[str, Any]
            Dictionary version of self.
        """
        return {(name := field.name): getattr(self, name) for field in fields(self)}


def update_param_dict(param_dict: dict[str, Any], new_params: dict[str, Any]) -> None:
    """Update parameter dictionary in place.

    Parameters
    ----------
    param_dict : dict[str, Any]
        Active layer parameter dictionary
    new_params : dict[str, Any]
        Layer parameters to update, as a dictionary

    Raises
    ------
    KeyError
        Raises when ``new_params`` key is not found in ``param_dict``
    """
    for param, value in new_params.items():
        if param not in param_dict:
            msg = (
                f"Unknown parameter '{param}' passed into layer. Possible "
                f"parameters include {', '.join(param_dict)}."
            )
            raise KeyError(msg)
        param_dict[param] = value


# ---------
# Extent
# ---------


def estimate_extent(
    values: npt.ArrayLike, threshold: int = 1_000_000, buffer: float = 0.1
) -> tuple[float, float] | None:
    """Estimate the value extent of ``values`` for palette scaling.

    Arrays with at most ``threshold`` values are scanned exactly. Larger arrays
    are subsampled with an equal stride along every axis, and the resulting
    extent is widened by ``buffer`` times its width on both ends.

    Parameters
    ----------
    values : npt.ArrayLike
        Values with ``nan`` as no-data.
    threshold : int, optional
        Maximum number of values scanned exactly.
    buffer : float, optional
        Relative buffer for subsampled extents.

    Returns
    -------
    tuple[float, float] | None
        Extent ``(low, high)``, or None if every value is no-data.

    Examples
    --------
    >>> estimate_extent(np.array([3.0, np.nan, -1.0]))
    (-1.0, 3.0)
    >>> estimate_extent(np.arange(100.0), threshold=10)
    (-9.0, 99.0)
    """
    arr = np.asarray(values)
    sampled = arr.size > threshold
    if sampled:
        stride = math.ceil((arr.size / threshold) ** (1.0 / max(arr.ndim, 1)))
        arr = arr[tuple(slice(None, None, stride) for _ in range(arr.ndim))]

    lo, hi = min_max(arr)
    if lo is None:
        return None
    if sampled:
        pad = (hi - lo) * buffer
        lo, hi = lo - pad, hi + pad
    return float(lo), float(hi)


def _validate_extent(spec: PaletteExtentSpec) -> PaletteExtentSpec:
    if isinstance(spec, str):
        if spec == "fov":
            raise NotImplementedError("The field of view palette extent is not implemented")
        if spec not in EXTENT_POLICIES:
            msg = f"Unknown palette extent '{spec}'. Expected one of {EXTENT_POLICIES} or a pair."
            raise ValueError(msg)
        return spec

    try:
        lo, hi = (float(v) for v in spec)
    except (TypeError, ValueError) as e:
        msg = f"Palette extent must be a policy name or a (low, high) pair, got {spec!r}"
        raise ValueError(msg) from e
    if not lo <= hi:
        msg = f"Palette extent must satisfy low <= high, got ({lo}, {hi})"
        raise ValueError(msg)
    return lo, hi


def _coerce_coordinate(value: Any, values: np.ndarray) -> Any:
    if values.dtype.kind == "M":
        ts = pd.Timestamp(value)
        if ts.tz is not None:
            ts = ts.tz_convert(None)
        return ts.to_datetime64()
    return value


# -----
# Layer
# -----


class LayerState(enum.Enum):
    """Life cycle states of a :class:`CoverageLayer`."""

    CONSTRUCTING = "constructing"
    ADDING = "adding"
    ACTIVE = "active"
    REMOVED = "removed"


@dataclasses.dataclass(frozen=True)
class LayerSnapshot:
    """Immutable display state of an active layer.

    A new snapshot replaces the previous one whenever the displayed time
    step, vertical level or palette extent changes.
    """

    #: Domain restricted to the displayed time step and vertical level
    domain: Domain

    #: Range restricted like :attr:`domain`
    range: Range

    #: Palette extent, None for parameters with a category encoding or all no-data
    extent: tuple[float, float] | None

    #: Sorted raw category values and their palette indices, for categorical parameters
    category_lookup: tuple[np.ndarray, np.ndarray] | None = None

    def palette_indices(self, values: npt.ArrayLike, palette: Palette) -> npt.NDArray[np.intp]:
        """Map decoded values to palette indices, with ``-1`` for values without a color."""
        vals = np.asarray(values, dtype=np.float64)
        if self.category_lookup is not None:
            keys, positions = self.category_lookup
            idx = np.clip(np.searchsorted(keys, vals), 0, keys.size - 1)
            return np.where(keys[idx] == vals, positions[idx], -1)

        if self.extent is None:
            return np.full(vals.shape, -1, dtype=np.intp)
        lo, hi = self.extent
        if lo == hi:
            return np.where(np.isnan(vals), -1, 0)
        return scale_array(vals, palette, self.extent)


class DisplaySettings(param.Parameterized):
    """Requested display state of a :class:`CoverageLayer`.

    The layer watches every parameter: a change rebuilds the snapshot
    (except for ``palette``) and asks the host map to redraw unless the
    layer redraws manually.
    """

    palette = param.Parameter(default=None, doc="Palette or name of a registered palette")
    palette_extent = param.Parameter(default="full", doc="Extent policy or (low, high) pair")
    time = param.Parameter(default=None, doc="Time coordinate, None for the first step")
    vertical = param.Number(default=None, allow_None=True, doc="Target vertical coordinate")


class CoverageLayer(Eventable):
    """Base class of map layers displaying one parameter of a :class:`Coverage`.

    Life cycle: a layer is constructed (validating the coverage type, the
    palette and the palette extent), added to a host map with :meth:`add_to`
    (loading the domain and range), drawn while active, and finally removed
    with :meth:`remove`.

    Signals fired on the layer are the :class:`param.Event` parameters below.
    The host map receives ``"dataloading"`` and ``"dataload"`` for every load,
    including failed loads.

    Parameters
    ----------
    coverage : Coverage
        Coverage to display.
    params : dict[str, Any] | LayerParams, optional
        Override layer parameters. By default, layer is instantiated with
        :attr:`default_params`.
    **params_kwargs : Any
        Override layer parameters with keyword arguments.
    """

    loading = param.Event(doc="Loading of the domain and range started")
    added = param.Event(doc="Loading finished and the layer is active")
    error = param.Event(doc="Loading failed, the payload holds ``error``")
    repaint = param.Event(doc="The host map should redraw the layer")
    removed = param.Event(doc="The layer was removed from its map")

    #: Default layer parameter dataclass
    default_params: type[LayerParams] = LayerParams

    #: Domain types this layer can display
    domain_types: tuple[str, ...] = ()

    #: Instantiated layer parameters, in dictionary form
    params: dict[str, Any]

    def __init__(
        self,
        coverage: Coverage,
        params: LayerParams | dict[str, Any] | None = None,
        **params_kwargs: Any,
    ) -> None:
        super().__init__()
        self._load_params(params, **params_kwargs)

        coverage = type_guard(
            coverage, Coverage, f"{type(self).__name__} requires a Coverage, got {type(coverage)}"
        )
        name = domain_type_name(coverage.domain_type)
        if name not in self.domain_types:
            msg = (
                f"{type(self).__name__} requires a coverage with domain type "
                f"{' or '.join(self.domain_types)}, got {coverage.domain_type!r}"
            )
            raise ValueError(msg)

        if self.params["redraw"] not in REDRAW_MODES:
            msg = f"Unknown redraw mode '{self.params['redraw']}'. Expected one of {REDRAW_MODES}."
            raise ValueError(msg)

        self.coverage = coverage
        self.parameter = self._select_parameter(coverage, self.params["keys"])
        self._palette = self._resolve_palette(self.params["palette"])
        self.params["palette_extent"] = _validate_extent(self.params["palette_extent"])

        self.settings = DisplaySettings(**{key: self.params[key] for key in DISPLAY_SETTINGS})
        self.settings.param.watch(
            self._on_settings_change, list(DISPLAY_SETTINGS), onlychanged=False
        )

        self.state = LayerState.CONSTRUCTING
        self._map: HostMap | None = None
        self.domain: Domain | None = None
        self._range: Range | None = None
        self._snapshot: LayerSnapshot | None = None

    def __repr__(self) -> str:
        key = self.parameter.key
        return f"{type(self).__name__}(parameter={key!r}, state={self.state.value})"

    def _load_params(
        self, params: LayerParams | dict[str, Any] | None = None, **params_kwargs: Any
    ) -> None:
        """Load parameters to layer :attr:`params`.

        Load order:

        1. If ``params`` is a :attr:`default_params` instance, use as is. Otherwise
           instantiate as :attr:`default_params`.
        2. ``params`` input dict
        3. ``params_kwargs`` override keys in params

        Raises
        ------
        KeyError
            Unknown parameter passed into layer
        TypeError
            ``params`` is a :class:`LayerParams` of another layer
        """
        if isinstance(params, self.default_params):
            base_params = params
            params = None
        elif isinstance(params, LayerParams):
            msg = f"Layer parameters must be of type {self.default_params.__name__} or dict"
            raise TypeError(msg)
        else:
            base_params = self.default_params()

        self.params = base_params.as_dict()
        update_param_dict(self.params, params or {})
        update_param_dict(self.params, params_kwargs)

    @staticmethod
    def _select_parameter(coverage: Coverage, keys: Sequence[str] | None) -> Parameter:
        if keys is None:
            keys = coverage.parameter_keys
            if len(keys) != 1:
                msg = f"Coverage has {len(keys)} parameters, select one with 'keys'"
                raise ValueError(msg)
        elif isinstance(keys, str) or len(keys) != 1:
            msg = f"Exactly one parameter key must be given in 'keys', got {keys!r}"
            raise ValueError(msg)

        key = keys[0]
        if key not in coverage.parameter_keys:
            available = ", ".join(coverage.parameter_keys)
            msg = f"Coverage has no parameter '{key}'. Available parameters: {available}"
            raise KeyError(msg)
        return coverage.parameters[key]

    def _resolve_palette(self, palette: Palette | str | None) -> Palette:
        categories = self.parameter.categories
        if palette is None:
            if not categories:
                return palettes["blues"]
            colors = [cat.preferred_color for cat in categories]
            if all(colors):
                return direct_palette(colors)
            return linear_palette(["#0000ff", "#00ff00", "#ff0000"], steps=len(categories))

        if isinstance(palette, str):
            palette = palettes[palette]
        if categories and palette.steps != len(categories):
            msg = (
                f"Palette has {palette.steps} colors but parameter '{self.parameter.key}' "
                f"has {len(categories)} categories"
            )
            raise ValueError(msg)
        return palette

    # ----------
    # Life cycle
    # ----------

    async def add_to(self, host: HostMap) -> CoverageLayer:
        """Add the layer to ``host`` and load the data to display.

        Parameters
        ----------
        host : HostMap
            Map hosting the layer.

        Returns
        -------
        CoverageLayer
            This layer.

        Raises
        ------
        UnsupportedCRSError
            If the horizontal axes do not use a WGS84-class geodetic system.
        RuntimeError
            If the layer has already been added.
        """
        if self.state is not LayerState.CONSTRUCTING:
            msg = f"Layer in state '{self.state.value}' cannot be added"
            raise RuntimeError(msg)

        self._map = host
        self.state = LayerState.ADDING
        logger.info("Adding %r", self)
        host.fire("dataloading")
        self.fire("loading")
        try:
            domain = await self.coverage.load_domain()
            ensure_wgs84_horizontal(domain)
            self._check_domain(domain)
            rng = await self.coverage.load_range(self.parameter.key)

            if self.state is LayerState.REMOVED:
                logger.warning("%r was removed before loading finished, ignoring result", self)
                return self

            snapshot = self._build_snapshot(domain, rng)
            self.domain, self._range, self._snapshot = domain, rng, snapshot
            self.state = LayerState.ACTIVE
        except Exception as e:
            if self.state is LayerState.ADDING:
                self.state = LayerState.CONSTRUCTING
                self._map = None
                self.fire("error", error=e)
            raise
        finally:
            host.fire("dataload")

        logger.info("%r is active", self)
        self.fire("added")
        return self

    def remove(self) -> None:
        """Remove the layer from its map and release the loaded data."""
        if self.state is LayerState.REMOVED:
            return
        self.state = LayerState.REMOVED
        logger.info("Removed %r", self)
        self.fire("removed")
        self.off()
        self._map = None
        self.domain = self._range = self._snapshot = None

    def redraw(self) -> None:
        """Ask the host map to redraw the layer."""
        if self.state is LayerState.ACTIVE:
            self.fire("repaint")

    def _on_settings_change(self, *events: param.parameterized.Event) -> None:
        for event in events:
            self.params[event.name] = event.new
        if self.state is not LayerState.ACTIVE:
            return
        if any(event.name != "palette" for event in events):
            self._snapshot = self._build_snapshot(self.domain, self._range)
        if self.params["redraw"] == "onchange":
            self.redraw()

    # --------
    # Snapshot
    # --------

    def _check_domain(self, domain: Domain) -> None:
        """Verify that ``domain`` has the axes this layer needs."""
        for name in ("x", "y"):
            try:
                domain.coordinate_values(name)
            except KeyError:
                msg = f"{type(self).__name__} requires a domain with an '{name}' coordinate"
                raise ValueError(msg) from None

    def _axis_selections(self, domain: Domain) -> dict[str, IndexRange]:
        """Return index selections of the displayed time step and vertical level."""
        selections = {}
        if "t" in domain:
            i = self._time_index(domain, self.params["time"])
            selections["t"] = IndexRange(i, i + 1)
        elif self.params["time"] is not None:
            raise ValueError("Cannot select a time step, the domain has no 't' axis")

        if "z" in domain:
            i = self._vertical_index(domain, self.params["vertical"])
            selections["z"] = IndexRange(i, i + 1)
        elif self.params["vertical"] is not None:
            raise ValueError("Cannot select a vertical level, the domain has no 'z' axis")
        return selections

    @staticmethod
    def _time_index(domain: Domain, time: Any) -> int:
        if time is None:
            return 0
        values = domain["t"].values
        matches = np.flatnonzero(values == _coerce_coordinate(time, values))
        if not matches.size:
            msg = f"Time {time!r} is not a value of the 't' axis"
            raise ValueError(msg)
        return int(matches[0])

    @staticmethod
    def _vertical_index(domain: Domain, vertical: float | None) -> int:
        if vertical is None:
            return 0
        return index_of_nearest(domain["z"].values, vertical)

    def _build_snapshot(self, domain: Domain, rng: Range) -> LayerSnapshot:
        selections = self._axis_selections(domain)
        sub_range = rng.subset(selections)

        lookup = None
        extent = None
        if self.parameter.is_categorical and self.parameter.category_encoding:
            table = self.parameter.category_lookup()
            keys = np.array(sorted(table), dtype=np.float64)
            positions = np.array([table[k] for k in sorted(table)], dtype=np.intp)
            lookup = keys, positions
        else:
            spec = self.params["palette_extent"]
            if isinstance(spec, str):
                scanned = rng if spec == "full" else sub_range
                extent = estimate_extent(
                    scanned.to_numpy(),
                    self.params["extent_subsample_threshold"],
                    self.params["extent_buffer"],
                )
            else:
                extent = spec

        logger.debug("Built snapshot of %r with extent %s", self, extent)
        return LayerSnapshot(domain.subset(selections), sub_range, extent, lookup)

    # ----------
    # Properties
    # ----------

    @property
    def snapshot(self) -> LayerSnapshot | None:
        """Current display state, None unless the layer is active."""
        return self._snapshot

    @property
    def host(self) -> HostMap | None:
        """Map hosting the layer."""
        return self._map

    @property
    def palette(self) -> Palette:
        """Palette used to color values."""
        return self._palette

    @palette.setter
    def palette(self, palette: Palette | str | None) -> None:
        self._palette = self._resolve_palette(palette)
        self.settings.palette = palette

    @property
    def palette_extent(self) -> tuple[float, float] | None:
        """Palette extent in use, None before the layer is active."""
        return self._snapshot.extent if self._snapshot is not None else None

    @palette_extent.setter
    def palette_extent(self, spec: PaletteExtentSpec) -> None:
        self.settings.palette_extent = _validate_extent(spec)

    @property
    def time(self) -> Any:
        """Displayed time coordinate."""
        if self.params["time"] is None and self.domain is not None and "t" in self.domain:
            return self.domain["t"].values[0]
        return self.params["time"]

    @time.setter
    def time(self, time: Any) -> None:
        if self.domain is not None:
            if "t" not in self.domain:
                raise ValueError("Cannot select a time step, the domain has no 't' axis")
            self._time_index(self.domain, time)
        self.settings.time = time

    @property
    def vertical(self) -> float | None:
        """Displayed vertical coordinate."""
        if self.domain is not None and "z" in self.domain:
            z = self.domain["z"].values
            return float(z[self._vertical_index(self.domain, self.params["vertical"])])
        return self.params["vertical"]

    @vertical.setter
    def vertical(self, vertical: float | None) -> None:
        if self.domain is not None and "z" not in self.domain and vertical is not None:
            raise ValueError("Cannot select a vertical level, the domain has no 'z' axis")
        self.settings.vertical = vertical
