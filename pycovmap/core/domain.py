"""Coverage domain data structures and the domain transformer."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, NamedTuple

import numpy as np
import numpy.typing as npt
import pandas as pd

from pycovmap.core.exceptions import InvalidAxisError, MissingAxisOrderError

logger = logging.getLogger(__name__)

#: Numeric representation of coordinate values
COORD_DTYPE = np.float64


class IndexRange(NamedTuple):
    """Index selection ``range(start, stop, step)`` along one axis."""

    start: int
    stop: int
    step: int = 1


#: An axis selection is either an :class:`IndexRange` or an explicit index list
AxisSelection = IndexRange | Sequence[int]


def _to_coordinate_array(key: str, values: Any) -> np.ndarray:
    """Convert literal axis values to a fixed-precision array.

    Numeric values become :attr:`COORD_DTYPE`. ISO 8601 strings become ``datetime64[ns]``
    in UTC. Any other values are kept as an object array.
    """
    arr = np.asarray(values)
    if arr.ndim != 1:
        msg = f"Values of axis '{key}' must be one-dimensional"
        raise InvalidAxisError(msg)
    if arr.size == 0:
        msg = f"Axis '{key}' must have at least one value"
        raise InvalidAxisError(msg)

    if arr.dtype.kind in "biuf":
        return arr.astype(COORD_DTYPE)
    if arr.dtype.kind == "M":
        return arr.astype("datetime64[ns]")

    if any(v is None for v in arr):
        msg = f"Axis '{key}' contains null values"
        raise InvalidAxisError(msg)

    try:
        return arr.astype(COORD_DTYPE)
    except (TypeError, ValueError):
        pass

    try:
        times = pd.to_datetime(arr, utc=True, format="ISO8601")
    except (TypeError, ValueError):
        return arr.astype(object)
    return times.tz_convert(None).to_numpy().astype("datetime64[ns]")


class Axis:
    """A named coordinate dimension of a :class:`Domain`.

    Parameters
    ----------
    key : str
        Axis name, for example ``"x"``, ``"t"`` or ``"composite"``.
    values : np.ndarray
        Coordinate values. For tuple-valued (composite) axes this is an object
        array of tuples, one per coordinate.
    data_type : str, optional
        One of ``"primitive"``, ``"tuple"`` or ``"polygon"``.
    coordinates : Sequence[str], optional
        Coordinate identifiers of a tuple-valued axis, in tuple order.
    bounds : np.ndarray, optional
        Cell bounds of shape ``(len(values), 2)``.
    """

    __slots__ = ("bounds", "coordinates", "data_type", "key", "values")

    def __init__(
        self,
        key: str,
        values: np.ndarray,
        data_type: str = "primitive",
        coordinates: Sequence[str] = (),
        bounds: np.ndarray | None = None,
    ) -> None:
        self.key = key
        self.values = values
        self.data_type = data_type
        self.coordinates = tuple(coordinates) if coordinates else (key,)
        self.bounds = bounds

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"Axis(key={self.key!r}, length={len(self)}, data_type={self.data_type!r})"

    @property
    def is_composite(self) -> bool:
        """Whether axis values are coordinate tuples."""
        return self.data_type == "tuple"

    def component(self, coordinate: str) -> np.ndarray:
        """Return the values of one coordinate of this axis.

        For a primitive axis the only coordinate is the axis key itself.

        Parameters
        ----------
        coordinate : str
            Coordinate identifier.

        Returns
        -------
        np.ndarray
            Coordinate values, converted as for a primitive axis.

        Raises
        ------
        KeyError
            If ``coordinate`` is not a coordinate of this axis.
        """
        if coordinate not in self.coordinates:
            msg = f"Axis '{self.key}' has no coordinate '{coordinate}'"
            raise KeyError(msg)
        if not self.is_composite:
            return self.values

        i = self.coordinates.index(coordinate)
        return _to_coordinate_array(coordinate, [v[i] for v in self.values])

    def select(self, selection: AxisSelection) -> Axis:
        """Return an axis restricted to ``selection``.

        An :class:`IndexRange` spanning the full axis with ``step == 1``
        returns ``self``. A contiguous range returns an axis whose values are a
        view into the original values. Strided ranges and explicit index lists
        materialize new value arrays.
        """
        if isinstance(selection, IndexRange):
            start, stop, step = selection
            if start == 0 and stop >= len(self) and step == 1:
                return self
            sl = slice(start, stop, step)
            values = self.values[sl]
            bounds = self.bounds[sl] if self.bounds is not None else None
            if step != 1:
                values = values.copy()
                bounds = bounds.copy() if bounds is not None else None
        else:
            idx = np.asarray(selection, dtype=np.intp)
            values = self.values[idx]
            bounds = self.bounds[idx] if self.bounds is not None else None

        return Axis(self.key, values, self.data_type, self.coordinates, bounds)


class Domain:
    """Coordinate space of a coverage.

    Instances are immutable by convention. Use :func:`transform_domain` to build
    a :class:`Domain` from a raw CoverageJSON-like description.

    Parameters
    ----------
    axes : Mapping[str, Axis]
        Ordered mapping of axis name to :class:`Axis`.
    range_axis_order : Sequence[str]
        Axis names defining how flattened range storage is indexed.
    domain_type : str, optional
        Domain type tag, for example ``"Grid"`` or a full domain type URI.
    referencing : Sequence[Mapping[str, Any]], optional
        Reference system connections. Each has ``coordinates`` and ``system`` keys.
    """

    __slots__ = ("axes", "domain_type", "range_axis_order", "referencing")

    def __init__(
        self,
        axes: Mapping[str, Axis],
        range_axis_order: Sequence[str],
        domain_type: str | None = None,
        referencing: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self.axes = dict(axes)
        self.range_axis_order = tuple(range_axis_order)
        self.domain_type = domain_type
        self.referencing = tuple(referencing)

    def __repr__(self) -> str:
        axes = ", ".join(f"{k}: {len(a)}" for k, a in self.axes.items())
        return f"Domain(type={self.domain_type!r}, axes={{{axes}}})"

    def __getitem__(self, key: str) -> Axis:
        return self.axes[key]

    def __contains__(self, key: object) -> bool:
        return key in self.axes

    def __iter__(self) -> Iterator[str]:
        return iter(self.axes)

    @property
    def range_shape(self) -> tuple[int, ...]:
        """Axis lengths in :attr:`range_axis_order`."""
        return tuple(len(self.axes[k]) for k in self.range_axis_order)

    @property
    def shape(self) -> dict[str, int]:
        """Mapping of axis name to axis length, in declaration order."""
        return {k: len(a) for k, a in self.axes.items()}

    def coordinate_values(self, coordinate: str) -> npt.NDArray[Any]:
        """Return the values of ``coordinate``, searching composite axes as well.

        Raises
        ------
        KeyError
            If no axis provides ``coordinate``.
        """
        if coordinate in self.axes:
            return self.axes[coordinate].component(coordinate)
        for axis in self.axes.values():
            if coordinate in axis.coordinates:
                return axis.component(coordinate)
        msg = f"Domain has no coordinate '{coordinate}'"
        raise KeyError(msg)

    def subset(self, selections: Mapping[str, AxisSelection]) -> Domain:
        """Return a new domain restricted by ``selections``.

        Axes missing from ``selections`` are kept unchanged. Selections must
        already be validated against the axis lengths.
        """
        axes = {
            key: axis.select(selections[key]) if key in selections else axis
            for key, axis in self.axes.items()
        }
        return Domain(axes, self.range_axis_order, self.domain_type, self.referencing)


def _transform_axis(key: str, raw: Mapping[str, Any]) -> Axis:
    if not isinstance(raw, Mapping):
        msg = f"Axis '{key}' must be a mapping, got {type(raw).__name__}"
        raise InvalidAxisError(msg)

    data_type = raw.get("dataType", "primitive")
    coordinates = raw.get("coordinates", ())

    if "values" in raw:
        if data_type in ("tuple", "polygon"):
            values = np.empty(len(raw["values"]), dtype=object)
            values[:] = [tuple(v) if data_type == "tuple" else v for v in raw["values"]]
            if values.size == 0:
                msg = f"Axis '{key}' must have at least one value"
                raise InvalidAxisError(msg)
            if data_type == "tuple":
                if not coordinates:
                    msg = f"Tuple axis '{key}' must list its coordinates"
                    raise InvalidAxisError(msg)
                if any(len(v) != len(coordinates) for v in values):
                    msg = f"Tuples of axis '{key}' must have {len(coordinates)} elements"
                    raise InvalidAxisError(msg)
        else:
            values = _to_coordinate_array(key, raw["values"])

    elif {"start", "stop", "num"}.issubset(raw):
        start = raw["start"]
        stop = raw["stop"]
        num = raw["num"]
        if not isinstance(num, (int, np.integer)) or num < 1:
            msg = f"Regular axis '{key}' must have a positive integer 'num', got {num!r}"
            raise InvalidAxisError(msg)
        if num == 1 and start != stop:
            msg = f"Regular axis '{key}' has num=1 but start ({start}) != stop ({stop})"
            raise InvalidAxisError(msg)
        values = np.linspace(start, stop, num, dtype=COORD_DTYPE)

    else:
        msg = f"Axis '{key}' must define 'values' or 'start', 'stop' and 'num'"
        raise InvalidAxisError(msg)

    bounds = raw.get("bounds")
    if bounds is not None:
        bounds = np.asarray(bounds, dtype=COORD_DTYPE).reshape(-1, 2)
        if len(bounds) != len(values):
            msg = f"Axis '{key}' has {len(values)} values but {len(bounds)} bounds"
            raise InvalidAxisError(msg)

    return Axis(key, values, data_type, coordinates, bounds)


def transform_domain(raw: Mapping[str, Any] | Domain) -> Domain:
    """Build a canonical :class:`Domain` from a raw domain description.

    Regular axes ``{"start", "stop", "num"}`` are expanded into ``num`` evenly
    spaced values. Literal axis values are converted with :attr:`COORD_DTYPE`
    (or ``datetime64[ns]`` for ISO 8601 strings).

    The transform is idempotent: passing a :class:`Domain` returns it unchanged.

    Parameters
    ----------
    raw : Mapping[str, Any] | Domain
        Raw description ``{"axes": {...}, "rangeAxisOrder": [...]}``. The
        ``domainType`` (or ``profile``) and ``referencing`` keys are read if present.

    Returns
    -------
    Domain
        Canonical domain.

    Raises
    ------
    InvalidAxisError
        If an axis description is malformed or ``rangeAxisOrder`` names unknown axes.
    MissingAxisOrderError
        If more than one axis has length > 1 and ``rangeAxisOrder`` is not given.

    Examples
    --------
    >>> domain = transform_domain({"axes": {"x": {"start": 0, "stop": 10, "num": 5}}})
    >>> domain["x"].values
    array([ 0. ,  2.5,  5. ,  7.5, 10. ])
    >>> domain.range_shape
    (5,)
    """
    if isinstance(raw, Domain):
        return raw

    raw_axes = raw.get("axes")
    if not isinstance(raw_axes, Mapping) or not raw_axes:
        raise InvalidAxisError("Domain must define at least one axis")

    axes = {key: _transform_axis(key, ax) for key, ax in raw_axes.items()}
    varying = [key for key, axis in axes.items() if len(axis) > 1]

    order = raw.get("rangeAxisOrder")
    if order is None:
        if len(varying) > 1:
            msg = (
                f"Domain has more than one varying axis ({', '.join(varying)}). "
                "An explicit 'rangeAxisOrder' is required."
            )
            raise MissingAxisOrderError(msg)
        order = list(axes)
    else:
        unknown = [key for key in order if key not in axes]
        if unknown:
            msg = f"'rangeAxisOrder' contains unknown axes: {unknown}"
            raise InvalidAxisError(msg)
        missing = [key for key in varying if key not in order]
        if missing:
            msg = f"'rangeAxisOrder' is missing varying axes: {missing}"
            raise InvalidAxisError(msg)

    domain_type = raw.get("domainType", raw.get("profile"))
    domain = Domain(axes, order, domain_type, raw.get("referencing", ()))
    logger.debug("Transformed domain %s with range shape %s", domain, domain.range_shape)
    return domain
