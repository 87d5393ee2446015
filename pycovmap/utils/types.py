"""Type aliases for constraints and palette extents, and a runtime type check."""

from __future__ import annotations

from collections.abc import Sequence, Set
from typing import Any, TypeVar

#: Index constraint on one axis: an index, a list or set of indices or a start/stop/step mapping
IndexConstraint = int | Sequence[int] | Set[int] | dict[str, int]

#: Palette extent specification: a policy name or a literal (low, high) pair
PaletteExtentSpec = str | Sequence[float]

_Object = TypeVar("_Object")


def type_guard(
    obj: Any,
    type_: type[_Object] | tuple[type[_Object], ...],
    error_message: str | None = None,
) -> _Object:
    """Return ``obj`` narrowed to ``type_``, raising if it is not an instance.

    Used where an input would otherwise fail later with a less helpful
    error, for example a layer constructed from a raw CoverageJSON dict
    instead of a :class:`pycovmap.core.coverage.Coverage`.

    Parameters
    ----------
    obj : Any
        Value to check.
    type_ : type[_Object] | tuple[type[_Object], ...]
        Accepted type or types.
    error_message : str, optional
        Message of the raised error. Defaults to one naming both types.

    Returns
    -------
    _Object
        ``obj`` itself.

    Raises
    ------
    TypeError
        If ``obj`` is not an instance of ``type_``.
    """
    if isinstance(obj, type_):
        return obj
    raise TypeError(error_message or f"Expected an instance of {type_}, got {type(obj)}")
