"""Coverage range data structures and the range transformer."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from pycovmap.core.arrays import min_max
from pycovmap.core.domain import Domain, IndexRange
from pycovmap.core.exceptions import InvalidRangeEncodingError
from pycovmap.core.ndview import NDView

logger = logging.getLogger(__name__)

#: Supported range data types
DATA_TYPES = ("integer", "float", "string")

#: Supported missing value modes
MISSING_MODES = ("nonvalid",)


class Range:
    """Decoded, indexable values of one parameter over a :class:`Domain`.

    No-data is stored as ``nan`` (numeric data) or ``None`` (string data) and
    reported as ``None`` by :meth:`get`.

    Parameters
    ----------
    view : NDView
        Decoded values shaped by ``axis_names``.
    axis_names : Sequence[str]
        Axis names in storage order.
    data_type : str
        One of :attr:`DATA_TYPES`.
    valid_min, valid_max : Any, optional
        Valid (decoded) value bounds.
    """

    __slots__ = ("axis_names", "data_type", "valid_max", "valid_min", "view")

    def __init__(
        self,
        view: NDView,
        axis_names: Sequence[str],
        data_type: str = "float",
        valid_min: Any = None,
        valid_max: Any = None,
    ) -> None:
        self.view = view
        self.axis_names = tuple(axis_names)
        self.data_type = data_type
        self.valid_min = valid_min
        self.valid_max = valid_max

    def __repr__(self) -> str:
        return f"Range(shape={self.shape}, data_type={self.data_type!r})"

    @property
    def shape(self) -> dict[str, int]:
        """Mapping of axis name to length."""
        return dict(zip(self.axis_names, self.view.shape))

    def get(self, index: Mapping[str, int] | None = None, /, **indices: int) -> Any:
        """Return the decoded value at an axis-name keyed index.

        Axes missing from the index default to 0. Indices are not bounds checked.

        Parameters
        ----------
        index : Mapping[str, int], optional
            Index keyed by axis name.
        **indices : int
            Index keyed by axis name, merged over ``index``.

        Returns
        -------
        Any
            Python scalar, or ``None`` for no-data.

        Examples
        --------
        >>> rng.get({"x": 2, "y": 0})  # doctest: +SKIP
        12.5
        >>> rng.get(x=2)  # doctest: +SKIP
        12.5
        """
        if index:
            indices = {**index, **indices}
        value = self.view.get(*(indices.get(name, 0) for name in self.axis_names))
        return _to_python(value, self.data_type)

    def to_numpy(self, axes: Sequence[str] | None = None) -> np.ndarray:
        """Return a read-only ndarray view of the decoded values.

        Parameters
        ----------
        axes : Sequence[str], optional
            Axis order of the returned array. Storage axes not listed are fixed
            at index 0. Listed axes not in storage are added with length 1.
            By default, all storage axes are returned in storage order.

        Returns
        -------
        np.ndarray
            Array sharing memory with the decoded storage.
        """
        arr = self.view.to_numpy()
        if axes is None:
            return arr

        names = list(self.axis_names)
        arr = arr[tuple(slice(None) if name in axes else 0 for name in names)]
        kept = [name for name in names if name in axes]
        for name in axes:
            if name not in kept:
                arr = arr[..., np.newaxis]
                kept.append(name)
        return arr.transpose([kept.index(name) for name in axes])

    def subset(self, selections: Mapping[str, IndexRange]) -> Range:
        """Return a range restricted by :class:`IndexRange` selections.

        This re-slices the underlying :class:`NDView`. No values are copied.
        Selections on axes that are not part of the storage order are ignored.
        """
        view = self.view
        for pos, name in enumerate(self.axis_names):
            if name not in selections:
                continue
            start, stop, step = selections[name]
            if start == 0 and stop >= view.shape[pos] and step == 1:
                continue
            view = view.slice(pos, start, min(stop, view.shape[pos]), step)
        return Range(view, self.axis_names, self.data_type, self.valid_min, self.valid_max)


def _to_python(value: Any, data_type: str) -> Any:
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if data_type == "integer":
            return int(value)
    return value


def _to_storage(values: Any, data_type: str) -> np.ndarray:
    """Convert raw range values to a flat array.

    Null entries in numeric data force a float array with ``nan`` no-data.
    """
    if data_type == "string":
        storage = np.empty(len(values), dtype=object)
        storage[:] = list(values)
        return storage

    if isinstance(values, np.ndarray):
        storage = values.reshape(-1)
        if storage.dtype.kind not in "biuf":
            msg = f"Numeric range values must have a numeric dtype, got {storage.dtype}"
            raise InvalidRangeEncodingError(msg)
        return storage

    storage = np.asarray(values)
    if storage.dtype == object:
        try:
            storage = np.array(values, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidRangeEncodingError("Range values must be numeric or null") from e
    elif storage.dtype.kind not in "biuf":
        msg = f"Numeric range values must be numeric, got {storage.dtype}"
        raise InvalidRangeEncodingError(msg)
    return storage.reshape(-1)


def transform_range(raw: Mapping[str, Any] | Range, domain: Domain) -> Range:
    """Decode a raw range description into a :class:`Range`.

    Decoding steps:

    #. Values outside ``[validMin, validMax]`` become no-data when ``missing`` is
       ``"nonvalid"``. Null values are always no-data.
    #. Scaled values are decoded as ``value * factor + offset``. The decoded
       range has data type ``"float"``.
    #. If ``validMin`` or ``validMax`` is not given, it is computed from the decoded values.

    When neither scaling nor masking is declared, the raw storage is used directly.

    Parameters
    ----------
    raw : Mapping[str, Any] | Range
        Raw description with keys ``values``, ``dataType`` and optionally
        ``offset``, ``factor``, ``missing``, ``validMin``, ``validMax``,
        ``axisNames`` and ``shape``. A :class:`Range` is returned unchanged.
    domain : Domain
        Canonical domain providing the range shape.

    Returns
    -------
    Range
        Decoded range.

    Raises
    ------
    InvalidRangeEncodingError
        If decode parameters conflict, the data type is unknown, or the number of
        values does not match the domain's range shape.
    """
    if isinstance(raw, Range):
        return raw

    data_type = raw.get("dataType", "float")
    if data_type not in DATA_TYPES:
        msg = f"Unknown range data type '{data_type}'. Expected one of {DATA_TYPES}."
        raise InvalidRangeEncodingError(msg)

    axis_names = tuple(raw.get("axisNames") or domain.range_axis_order)
    unknown = [name for name in axis_names if name not in domain]
    if unknown:
        msg = f"Range axis names {unknown} are not axes of the domain"
        raise InvalidRangeEncodingError(msg)
    shape = tuple(len(domain[name]) for name in axis_names)
    if "shape" in raw and tuple(raw["shape"]) != shape:
        msg = f"Range shape {tuple(raw['shape'])} does not match domain shape {shape}"
        raise InvalidRangeEncodingError(msg)

    if raw.get("values") is None:
        raise InvalidRangeEncodingError("Range must define 'values'")
    storage = _to_storage(raw["values"], data_type)

    expected = math.prod(shape)
    if storage.size != expected:
        msg = f"Range has {storage.size} values but the domain shape {shape} requires {expected}"
        raise InvalidRangeEncodingError(msg)

    offset = raw.get("offset")
    factor = raw.get("factor")
    scaled = offset is not None or factor is not None
    if scaled and (offset is None or factor is None):
        raise InvalidRangeEncodingError("Scaled ranges must define both 'offset' and 'factor'")
    if scaled and data_type == "string":
        raise InvalidRangeEncodingError("String ranges cannot be scaled")

    missing = raw.get("missing")
    if missing is not None and missing not in MISSING_MODES:
        msg = f"Unknown missing value mode '{missing}'. Expected one of {MISSING_MODES}."
        raise InvalidRangeEncodingError(msg)

    valid_min = raw.get("validMin")
    valid_max = raw.get("validMax")
    masked = missing == "nonvalid" and (valid_min is not None or valid_max is not None)
    if masked and data_type == "string":
        raise InvalidRangeEncodingError("String ranges cannot use 'nonvalid' masking")

    if scaled or masked:
        decoded = storage.astype(np.float64)
        if masked:
            invalid = np.zeros(decoded.shape, dtype=bool)
            with np.errstate(invalid="ignore"):
                if valid_min is not None:
                    invalid |= decoded < valid_min
                if valid_max is not None:
                    invalid |= decoded > valid_max
            decoded[invalid] = np.nan
        if scaled:
            decoded *= factor
            decoded += offset
            if valid_min is not None:
                valid_min = valid_min * factor + offset
            if valid_max is not None:
                valid_max = valid_max * factor + offset
            if factor < 0:
                valid_min, valid_max = valid_max, valid_min
            data_type = "float"
        storage = decoded
    else:
        # read-only view so the caller's buffer is never written through the range
        storage = storage.view()

    storage.flags.writeable = False

    if data_type != "string" and (valid_min is None or valid_max is None):
        lo, hi = min_max(storage)
        valid_min = lo if valid_min is None else valid_min
        valid_max = hi if valid_max is None else valid_max

    logger.debug(
        "Decoded %s range with shape %s (scaled=%s, masked=%s)", data_type, shape, scaled, masked
    )
    return Range(NDView(storage, shape), axis_names, data_type, valid_min, valid_max)
