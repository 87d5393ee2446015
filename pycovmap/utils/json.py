"""JSON utilities."""

from __future__ import annotations

import json
from typing import Any

import numpy as np
import pandas as pd

#: Coordinate columns recognized by :func:`dataframe_to_geojson_points`
COORDINATE_COLUMNS = ("longitude", "latitude", "altitude", "time")


class NumpyEncoder(json.JSONEncoder):
    """JSONEncoder for numpy and pandas types found in coverage data.

    Examples
    --------
    >>> import json
    >>> json.dumps({"values": np.array([0.5, np.nan])}, cls=NumpyEncoder)
    '{"values": [0.5, null]}'

    >>> json.dumps(np.datetime64("2009-02-13T23:31:30"), cls=NumpyEncoder)
    '"2009-02-13T23:31:30Z"'
    """

    def default(self, obj: Any) -> Any:
        """Encode numpy data types.

        Float ``nan`` becomes ``null``. ``datetime64`` values become ISO 8601
        strings in UTC with a ``Z`` suffix.
        """
        if isinstance(obj, np.integer):
            return int(obj)

        if isinstance(obj, np.floating):
            return None if np.isnan(obj) else float(obj)

        if isinstance(obj, np.bool_):
            return bool(obj)

        if isinstance(obj, np.datetime64):
            return _isoformat(obj)

        if isinstance(obj, np.ndarray):
            if obj.dtype.kind == "M":
                return [_isoformat(t) for t in obj.ravel()]
            if obj.dtype.kind == "f":
                return [None if np.isnan(v) else v for v in obj.ravel().tolist()]
            return [self.default(v) if isinstance(v, np.generic) else v for v in obj.ravel()]

        if isinstance(obj, (pd.Series, pd.Index)):
            return self.default(obj.to_numpy())

        if isinstance(obj, tuple):
            return list(obj)

        return json.JSONEncoder.default(self, obj)

    def iterencode(self, o: Any, _one_shot: bool = False) -> Any:
        """Encode, replacing top-level and nested float ``nan`` with ``null``."""
        return super().iterencode(_replace_nan(o), _one_shot)


def _isoformat(t: np.datetime64) -> str:
    if np.isnat(t):
        return None  # type: ignore[return-value]
    return str(np.datetime_as_string(t, unit="s")) + "Z"


def _replace_nan(obj: Any) -> Any:
    if isinstance(obj, float) and obj != obj:
        return None
    if isinstance(obj, dict):
        return {k: _replace_nan(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_replace_nan(v) for v in obj]
    return obj


def dataframe_to_geojson_points(
    df: pd.DataFrame,
    properties: list[str] | None = None,
    filter_nan: bool | list[str] = False,
) -> dict[str, Any]:
    """Convert a pandas DataFrame to a GeoJSON-like FeatureCollection of points.

    Parameters
    ----------
    df : pd.DataFrame
        Must contain "longitude" and "latitude" columns. Optional "altitude"
        and "time" columns are used as third coordinate and "time" property.
    properties : list[str], optional
        Columns to include as feature properties.
        By default, all columns that are not coordinate columns.
    filter_nan : bool | list[str], optional
        Drop rows with nan values in any column, or only in the listed columns.

    Returns
    -------
    dict[str, Any]
        GeoJSON FeatureCollection

    Raises
    ------
    KeyError
        If ``df`` lacks a coordinate column, or ``properties`` or ``filter_nan``
        contains a column label that does not exist in ``df``.
    """
    missing = [c for c in ("longitude", "latitude") if c not in df.columns]
    if missing:
        raise KeyError(f"{missing} do not exist in dataframe")

    if properties is None:
        properties = [c for c in df.columns if c not in COORDINATE_COLUMNS]
    elif missing := [c for c in properties if c not in df.columns]:
        raise KeyError(f"{missing} do not exist in dataframe")

    if isinstance(filter_nan, list):
        if missing := [c for c in filter_nan if c not in df.columns]:
            raise KeyError(f"{missing} do not exist in dataframe")
        df = df.dropna(subset=filter_nan)
    elif filter_nan:
        df = df.dropna()

    has_altitude = "altitude" in df.columns
    has_time = "time" in df.columns

    features = []
    for row in df.itertuples(index=False):
        row_dict = row._asdict()
        point = [round(float(row_dict["longitude"]), 6), round(float(row_dict["latitude"]), 6)]
        if has_altitude and pd.notna(row_dict["altitude"]):
            point.append(round(float(row_dict["altitude"]), 4))

        props: dict[str, Any] = {}
        if has_time and pd.notna(row_dict["time"]):
            props["time"] = pd.Timestamp(row_dict["time"]).isoformat()
        for k in properties:
            v = row_dict[k]
            props[k] = None if isinstance(v, float) and np.isnan(v) else v

        geometry = {"type": "Point", "coordinates": point}
        features.append({"type": "Feature", "geometry": geometry, "properties": props})

    return {"type": "FeatureCollection", "features": features}
