"""Coverages: a domain plus lazily loaded parameter ranges."""

from __future__ import annotations

import asyncio
import itertools
import logging
import sys
from collections.abc import Awaitable, Callable, Coroutine, Iterator, Mapping, Sequence, Set
from typing import TYPE_CHECKING, Any

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

import numpy as np
import pandas as pd

from pycovmap.core.arrays import index_of_nearest
from pycovmap.core.domain import AxisSelection, Domain, IndexRange, transform_domain
from pycovmap.core.exceptions import InvalidConstraintError
from pycovmap.core.parameter import Parameter
from pycovmap.core.range import Range, transform_range
from pycovmap.utils import coroutines
from pycovmap.utils.types import IndexConstraint

if TYPE_CHECKING:
    import xarray as xr

logger = logging.getLogger(__name__)

#: Namespace of CoverageJSON domain types
DOMAIN_TYPE_PREFIX = "http://covjson.org/def/domainTypes#"

#: Namespace of CoverageJSON core terms, used for collection profiles
COVJSON_PREFIX = "http://covjson.org/def/core#"

#: Coroutine function resolving a URL to a parsed JSON document
Loader = Callable[[str], Awaitable[Mapping[str, Any]]]


def domain_type_name(tag: str | None) -> str | None:
    """Return the short name of a domain type or profile tag.

    Examples
    --------
    >>> domain_type_name("http://covjson.org/def/domainTypes#Grid")
    'Grid'
    >>> domain_type_name("VerticalProfile")
    'VerticalProfile'
    >>> domain_type_name(None) is None
    True
    """
    if tag is None:
        return None
    return tag.rsplit("#", 1)[-1]


def _as_index(axis: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        msg = f"Index constraint on axis '{axis}' must contain integers, got {value!r}"
        raise InvalidConstraintError(msg)
    if value < 0:
        msg = f"Index constraint on axis '{axis}' must be non-negative, got {value}"
        raise InvalidConstraintError(msg)
    return int(value)


def _normalize_constraint(axis: str, constraint: Any) -> AxisSelection:
    if isinstance(constraint, IndexRange):
        constraint = constraint._asdict()

    if isinstance(constraint, Mapping):
        unknown = set(constraint) - {"start", "stop", "step"}
        if unknown:
            msg = f"Unknown keys {sorted(unknown)} in index constraint on axis '{axis}'"
            raise InvalidConstraintError(msg)
        if "stop" not in constraint:
            msg = f"Index constraint on axis '{axis}' must define 'stop'"
            raise InvalidConstraintError(msg)

        start = _as_index(axis, constraint.get("start", 0))
        stop = _as_index(axis, constraint["stop"])
        step = constraint.get("step", 1)
        if isinstance(step, bool) or not isinstance(step, (int, np.integer)) or step <= 0:
            msg = f"Step of index constraint on axis '{axis}' must be a positive integer"
            raise InvalidConstraintError(msg)
        if stop <= start:
            msg = f"Index constraint on axis '{axis}' must satisfy start < stop"
            raise InvalidConstraintError(msg)
        return IndexRange(start, stop, int(step))

    if isinstance(constraint, (int, np.integer)) and not isinstance(constraint, bool):
        i = _as_index(axis, constraint)
        return IndexRange(i, i + 1)

    if isinstance(constraint, Set):
        constraint = sorted(_as_index(axis, i) for i in constraint)

    if isinstance(constraint, (Sequence, np.ndarray)) and not isinstance(constraint, str):
        indices = [_as_index(axis, i) for i in constraint]
        if not indices:
            msg = f"Index list constraint on axis '{axis}' is empty"
            raise InvalidConstraintError(msg)
        if all(b - a == 1 for a, b in itertools.pairwise(indices)):
            return IndexRange(indices[0], indices[-1] + 1)
        return tuple(indices)

    msg = (
        f"Invalid index constraint on axis '{axis}': {constraint!r}. Expected an integer, "
        "a list of integers or a mapping with 'start', 'stop' and 'step'."
    )
    raise InvalidConstraintError(msg)


def normalize_index_constraints(
    constraints: Mapping[str, IndexConstraint],
) -> dict[str, AxisSelection]:
    """Normalize per-axis index constraints.

    Normalization rules:

    - An integer ``i`` or a one-element list ``[i]`` becomes ``IndexRange(i, i + 1)``.
    - A list of consecutive ascending integers becomes an :class:`IndexRange`.
    - Any other list is kept as a tuple of indices.
    - A set of integers is sorted, then treated like a list.
    - A mapping ``{"start", "stop", "step"}`` becomes an :class:`IndexRange`.
      ``start`` defaults to 0 and ``step`` to 1.

    Axis lengths are not known here, so bounds are checked later against the domain.
    Constraints on every axis are checked, including axes the domain turns out
    not to have.

    Parameters
    ----------
    constraints : Mapping[str, IndexConstraint]
        Index constraints keyed by axis name.

    Returns
    -------
    dict[str, AxisSelection]
        Normalized selections keyed by axis name.

    Raises
    ------
    InvalidConstraintError
        If any constraint is malformed, for example ``step <= 0``, ``stop <= start``,
        a negative index or an empty list.

    Examples
    --------
    >>> normalize_index_constraints({"y": [4, 5, 6], "t": [0, 2]})
    {'y': IndexRange(start=4, stop=7, step=1), 't': (0, 2)}
    """
    return {axis: _normalize_constraint(axis, c) for axis, c in constraints.items()}


def _resolve_selections(
    domain: Domain, selections: Mapping[str, AxisSelection]
) -> dict[str, AxisSelection]:
    """Check normalized selections against ``domain``.

    Selections on axes not in ``domain`` are dropped. The stop of an
    :class:`IndexRange` is clamped to the axis length.
    """
    resolved: dict[str, AxisSelection] = {}
    for name, sel in selections.items():
        if name not in domain:
            logger.debug("Ignoring index constraint on unknown axis '%s'", name)
            continue

        n = len(domain[name])
        if isinstance(sel, IndexRange):
            if sel.start >= n:
                msg = f"Start index {sel.start} is out of bounds for axis '{name}' of length {n}"
                raise InvalidConstraintError(msg)
            resolved[name] = IndexRange(sel.start, min(sel.stop, n), sel.step)
        else:
            if max(sel) >= n:
                msg = f"Index {max(sel)} is out of bounds for axis '{name}' of length {n}"
                raise InvalidConstraintError(msg)
            resolved[name] = sel
    return resolved


def _coerce_value(axis: str, value: Any, values: np.ndarray) -> Any:
    """Convert a constraint value to the representation of ``values``."""
    if values.dtype.kind == "M":
        ts = pd.Timestamp(value)
        if ts.tz is not None:
            ts = ts.tz_convert(None)
        return ts.to_datetime64()
    if values.dtype.kind == "f":
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            msg = f"Value constraint on numeric axis '{axis}' must be numeric, got {value!r}"
            raise InvalidConstraintError(msg) from e
    return value


class Coverage:
    """One domain and a set of lazily loaded parameter ranges.

    The domain and each range may be given inline (a raw mapping or an already
    decoded :class:`Domain` / :class:`Range`) or by reference (a URL string),
    in which case they are resolved with ``loader`` on first access.

    Parameters
    ----------
    domain : Domain | Mapping[str, Any] | str
        Domain, raw domain description or URL of a domain document.
    ranges : Mapping[str, Range | Mapping[str, Any] | str]
        Range, raw range description or URL per parameter key.
    parameters : Mapping[str, Parameter], optional
        Parameter metadata. Keys of ``ranges`` without metadata get a bare :class:`Parameter`.
    id : str, optional
        Coverage identifier.
    domain_type : str, optional
        Domain type tag, for example ``"Grid"``. Defaults to the tag of ``domain``.
    coverage_type : str, optional
        Coverage type tag, for example ``"GridCoverage"``.
    bbox : Sequence[float], optional
        Literal horizontal bounding box ``(west, south, east, north)``.
    cache_ranges : bool, optional
        Keep loaded ranges for reuse. Defaults to False.
    loader : Loader, optional
        Coroutine function fetching referenced documents. Defaults to
        :func:`pycovmap.datalib.covjson.fetch_json`.
    provenance : Mapping[str, Any], optional
        Description of the activity that generated the coverage, for example
        the CoverageJSON ``wasGeneratedBy`` member.
    """

    __slots__ = (
        "_domain",
        "_domain_future",
        "_range_cache",
        "_raw_domain",
        "_raw_ranges",
        "bbox",
        "cache_ranges",
        "coverage_type",
        "domain_type",
        "id",
        "loader",
        "parameters",
        "provenance",
    )

    def __init__(
        self,
        domain: Domain | Mapping[str, Any] | str,
        ranges: Mapping[str, Range | Mapping[str, Any] | str],
        parameters: Mapping[str, Parameter] | None = None,
        *,
        id: str | None = None,
        domain_type: str | None = None,
        coverage_type: str | None = None,
        bbox: Sequence[float] | None = None,
        cache_ranges: bool = False,
        loader: Loader | None = None,
        provenance: Mapping[str, Any] | None = None,
    ) -> None:
        self._raw_domain = domain
        self._raw_ranges = dict(ranges)
        self._domain: Domain | None = domain if isinstance(domain, Domain) else None
        self._domain_future: asyncio.Future[Domain] | None = None
        self._range_cache: dict[str, Range] = {}

        self.parameters = dict(parameters or {})
        for key in self._raw_ranges:
            self.parameters.setdefault(key, Parameter(key))

        if domain_type is None:
            if isinstance(domain, Domain):
                domain_type = domain.domain_type
            elif isinstance(domain, Mapping):
                domain_type = domain.get("domainType", domain.get("profile"))

        self.id = id
        self.domain_type = domain_type
        self.coverage_type = coverage_type
        self.bbox = tuple(bbox) if bbox is not None else None
        self.cache_ranges = cache_ranges
        self.loader = loader
        self.provenance = provenance

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.id!r}, domain_type={self.domain_type!r}, "
            f"parameters={list(self.parameters)})"
        )

    @property
    def parameter_keys(self) -> tuple[str, ...]:
        """Keys of the parameters with range data."""
        return tuple(self._raw_ranges)

    async def _fetch(self, url: str) -> Mapping[str, Any]:
        loader = self.loader
        if loader is None:
            from pycovmap.datalib.covjson import fetch_json

            loader = fetch_json
        logger.debug("Fetching %s for coverage %s", url, self.id)
        return await loader(url)

    async def _resolve_domain(self) -> Domain:
        try:
            raw = self._raw_domain
            if isinstance(raw, str):
                raw = await self._fetch(raw)
            domain = transform_domain(raw)
            if self.domain_type is None:
                self.domain_type = domain.domain_type
            self._domain = domain
            return domain
        finally:
            self._domain_future = None

    async def load_domain(self) -> Domain:
        """Load and decode the domain.

        Concurrent callers share one load. A failed load is not cached, so
        calling again retries.

        Returns
        -------
        Domain
            Canonical domain.
        """
        if self._domain is not None:
            return self._domain

        if self._domain_future is None:
            self._domain_future = asyncio.ensure_future(self._resolve_domain())
        return await self._domain_future

    async def load_range(self, key: str) -> Range:
        """Load and decode the range of parameter ``key``.

        The domain is always loaded and decoded first.

        Parameters
        ----------
        key : str
            Parameter key.

        Returns
        -------
        Range
            Decoded range. Kept for reuse if :attr:`cache_ranges` is set.

        Raises
        ------
        KeyError
            If the coverage has no range for ``key``.
        """
        if key in self._range_cache:
            return self._range_cache[key]

        try:
            raw = self._raw_ranges[key]
        except KeyError:
            msg = f"Coverage has no range '{key}'. Available ranges: {', '.join(self._raw_ranges)}"
            raise KeyError(msg) from None

        if isinstance(raw, str):
            domain, raw = await coroutines.join(self.load_domain(), self._fetch(raw))
        else:
            domain = await self.load_domain()

        rng = transform_range(raw, domain)
        if self.cache_ranges:
            self._range_cache[key] = rng
        return rng

    async def load_ranges(self, keys: Sequence[str] | None = None) -> dict[str, Range]:
        """Load the ranges of several parameters.

        Parameters
        ----------
        keys : Sequence[str], optional
            Parameter keys. Defaults to all parameters with range data.

        Returns
        -------
        dict[str, Range]
            Decoded ranges keyed by parameter key.
        """
        keys = list(self.parameter_keys if keys is None else keys)
        ranges = await coroutines.join(*(self.load_range(key) for key in keys))
        return dict(zip(keys, ranges))

    def subset_by_index(
        self, constraints: Mapping[str, IndexConstraint]
    ) -> Coroutine[Any, Any, CoverageSubset]:
        """Derive a coverage restricted by per-axis index constraints.

        Constraints are validated immediately, before any asynchronous work.
        See :func:`normalize_index_constraints` for the accepted forms. Axes
        without a constraint keep their full extent and well formed constraints
        on axes that are not part of the domain are ignored. The domain is not
        loaded yet when constraints are validated, so a malformed constraint
        raises even if its axis is not part of the domain.

        Ranges of the derived coverage are views over the ranges of this
        coverage. Loading ranges of a coverage subset by an explicit index
        list is not supported and raises :class:`NotImplementedError`.

        Parameters
        ----------
        constraints : Mapping[str, IndexConstraint]
            Index constraints keyed by axis name.

        Returns
        -------
        Coroutine[Any, Any, CoverageSubset]
            Awaitable resolving to the derived coverage.

        Raises
        ------
        InvalidConstraintError
            If a constraint is malformed. Raised synchronously. Out of bounds
            start indices are reported when the returned coroutine is awaited.
        """
        selections = normalize_index_constraints(constraints)
        return self._subset_by_index(selections)

    async def _subset_by_index(self, selections: Mapping[str, AxisSelection]) -> CoverageSubset:
        domain = await self.load_domain()
        resolved = _resolve_selections(domain, selections)
        return CoverageSubset(self, domain.subset(resolved), resolved)

    async def subset_by_value(self, constraints: Mapping[str, Any]) -> CoverageSubset:
        """Derive a coverage restricted by per-axis coordinate value constraints.

        Accepted forms per axis:

        - a bare value: the coordinate equal to the value, which must exist
        - ``{"target": v}``: the coordinate nearest to ``v``
        - ``{"start": a, "stop": b}``: all coordinates in the closed interval ``[a, b]``

        Values on time axes may be any input accepted by :class:`pandas.Timestamp`.

        Parameters
        ----------
        constraints : Mapping[str, Any]
            Value constraints keyed by axis name.

        Returns
        -------
        CoverageSubset
            Derived coverage, see :meth:`subset_by_index`.

        Raises
        ------
        InvalidConstraintError
            If no coordinate satisfies a constraint or a constraint is malformed.
        """
        domain = await self.load_domain()

        index_constraints: dict[str, IndexRange] = {}
        for name, constraint in constraints.items():
            if name not in domain:
                logger.debug("Ignoring value constraint on unknown axis '%s'", name)
                continue
            axis = domain[name]
            if axis.is_composite:
                msg = f"Cannot subset composite axis '{name}' by value"
                raise InvalidConstraintError(msg)
            values = axis.values

            if isinstance(constraint, Mapping) and "target" in constraint:
                target = _coerce_value(name, constraint["target"], values)
                if values.dtype == object:
                    msg = f"Nearest value search is not supported on non-numeric axis '{name}'"
                    raise InvalidConstraintError(msg)
                i = index_of_nearest(values, target)
                index_constraints[name] = IndexRange(i, i + 1)

            elif isinstance(constraint, Mapping):
                if set(constraint) != {"start", "stop"}:
                    msg = (
                        f"Value constraint on axis '{name}' must be a value, "
                        "{'target': v} or {'start': a, 'stop': b}"
                    )
                    raise InvalidConstraintError(msg)
                lo = _coerce_value(name, constraint["start"], values)
                hi = _coerce_value(name, constraint["stop"], values)
                idx = np.flatnonzero((values >= lo) & (values <= hi))
                if not idx.size:
                    msg = f"No coordinates of axis '{name}' lie within [{lo}, {hi}]"
                    raise InvalidConstraintError(msg)
                index_constraints[name] = IndexRange(int(idx[0]), int(idx[-1]) + 1)

            else:
                value = _coerce_value(name, constraint, values)
                idx = np.flatnonzero(values == value)
                if not idx.size:
                    msg = f"Axis '{name}' has no coordinate equal to {constraint!r}"
                    raise InvalidConstraintError(msg)
                index_constraints[name] = IndexRange(int(idx[0]), int(idx[0]) + 1)

        return await self.subset_by_index(index_constraints)

    async def to_xarray(self, keys: Sequence[str] | None = None) -> xr.Dataset:
        """Load the domain and ranges into an :class:`xarray.Dataset`.

        Components of composite axes become coordinates along the composite
        dimension. Parameter labels and units are kept as variable attributes.

        Parameters
        ----------
        keys : Sequence[str], optional
            Parameter keys to include. Defaults to all parameters with range data.

        Returns
        -------
        xr.Dataset
        """
        import xarray as xr

        domain, ranges = await coroutines.join(self.load_domain(), self.load_ranges(keys))

        coords: dict[str, Any] = {}
        for name, axis in domain.axes.items():
            if axis.is_composite:
                for coord in axis.coordinates:
                    coords[coord] = (name, axis.component(coord))
            else:
                coords[name] = (name, axis.values)

        data_vars = {}
        for key, rng in ranges.items():
            param = self.parameters[key]
            attrs = {"units": str(param.unit)}
            if param.label:
                attrs["long_name"] = param.label
            data_vars[key] = (rng.axis_names, rng.to_numpy(), attrs)

        attrs = {"domain_type": domain_type_name(self.domain_type) or ""}
        if self.id:
            attrs["id"] = self.id
        return xr.Dataset(data_vars, coords=coords, attrs=attrs)


class CoverageSubset(Coverage):
    """Coverage derived from a parent coverage by index selections.

    Created by :meth:`Coverage.subset_by_index`. Ranges are loaded from the
    parent and re-sliced without copying values.
    """

    __slots__ = ("parent", "selections")

    def __init__(
        self, parent: Coverage, domain: Domain, selections: Mapping[str, AxisSelection]
    ) -> None:
        super().__init__(
            domain,
            parent._raw_ranges,
            parent.parameters,
            id=parent.id,
            domain_type=parent.domain_type,
            coverage_type=parent.coverage_type,
            cache_ranges=parent.cache_ranges,
            loader=parent.loader,
        )
        self.parent = parent
        self.selections = dict(selections)

    @override
    async def load_range(self, key: str) -> Range:
        if key in self._range_cache:
            return self._range_cache[key]

        rng = await self.parent.load_range(key)
        if any(not isinstance(sel, IndexRange) for sel in self.selections.values()):
            raise NotImplementedError(
                "Loading ranges of a coverage subset by explicit index lists is not supported"
            )

        rng = rng.subset(self.selections)
        if self.cache_ranges:
            self._range_cache[key] = rng
        return rng


class CoverageCollection(Sequence[Coverage]):
    """Ordered collection of coverages with shared parameter metadata.

    Parameters
    ----------
    coverages : Sequence[Coverage]
        Member coverages.
    parameters : Mapping[str, Parameter], optional
        Parameter metadata shared by the members.
    id : str, optional
        Collection identifier.
    profiles : Sequence[str], optional
        Collection profile tags, for example ``"PointCoverageCollection"``.
    """

    __slots__ = ("coverages", "id", "parameters", "profiles")

    def __init__(
        self,
        coverages: Sequence[Coverage],
        parameters: Mapping[str, Parameter] | None = None,
        *,
        id: str | None = None,
        profiles: Sequence[str] = (),
    ) -> None:
        self.coverages = list(coverages)
        self.parameters = dict(parameters or {})
        self.id = id
        self.profiles = tuple(profiles)

    def __repr__(self) -> str:
        return f"CoverageCollection(id={self.id!r}, coverages={len(self)})"

    def __getitem__(self, i):  # type: ignore[no-untyped-def]
        return self.coverages[i]

    def __len__(self) -> int:
        return len(self.coverages)

    def __iter__(self) -> Iterator[Coverage]:
        return iter(self.coverages)

    def has_profile(self, name: str) -> bool:
        """Whether the collection carries profile ``name``, with or without namespace."""
        return any(domain_type_name(p) == domain_type_name(name) for p in self.profiles)

    async def load_domains(self) -> list[Domain]:
        """Load the domains of all members."""
        return await coroutines.join(*(cov.load_domain() for cov in self.coverages))
