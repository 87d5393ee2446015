"""Parameter metadata of observed quantities."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def i18n(label: str | Mapping[str, str] | None, language: str = "en") -> str | None:
    """Resolve a possibly language-tagged label.

    Parameters
    ----------
    label : str | Mapping[str, str] | None
        Plain label or mapping of language tag to label.
    language : str, optional
        Preferred language tag.

    Returns
    -------
    str | None
        Label in ``language`` if available, otherwise the first available label.

    Examples
    --------
    >>> i18n({"de": "Temperatur", "en": "Temperature"})
    'Temperature'
    >>> i18n("Salinity")
    'Salinity'
    """
    if label is None or isinstance(label, str):
        return label
    if language in label:
        return label[language]
    return next(iter(label.values()), None)


@dataclass(frozen=True)
class Unit:
    """Unit of measure."""

    #: Unit label, possibly language-tagged
    label: str | Mapping[str, str] | None = None

    #: Unit symbol, for example "K"
    symbol: str | None = None

    @classmethod
    def from_covjson(cls, raw: Mapping[str, Any] | None) -> Unit:
        """Create from a CoverageJSON unit object."""
        if not raw:
            return cls()
        symbol = raw.get("symbol")
        if isinstance(symbol, Mapping):
            symbol = symbol.get("value")
        return cls(label=raw.get("label"), symbol=symbol)

    def __str__(self) -> str:
        return self.symbol or i18n(self.label) or ""


@dataclass(frozen=True)
class Category:
    """One member of a categorical enumeration."""

    #: Category identifier, usually a URI
    id: str

    #: Category label, possibly language-tagged
    label: str | Mapping[str, str] | None = None

    #: Preferred display color as a hex string, if any
    preferred_color: str | None = None

    #: Category description
    description: str | Mapping[str, str] | None = None


@dataclass(frozen=True)
class ObservedProperty:
    """The quantity a :class:`Parameter` observes."""

    #: Property label, possibly language-tagged
    label: str | Mapping[str, str] | None = None

    #: Property identifier, usually a URI
    id: str | None = None

    #: Property description
    description: str | Mapping[str, str] | None = None

    #: Finite enumeration of values, if the property is categorical
    categories: tuple[Category, ...] | None = None


@dataclass(frozen=True)
class Parameter:
    """Metadata of an observed quantity of a coverage.

    Use :meth:`from_covjson` to build from a CoverageJSON parameter object.
    """

    #: Parameter key, matching the range key in the coverage
    key: str

    #: Observed property
    observed_property: ObservedProperty = dataclasses.field(default_factory=ObservedProperty)

    #: Unit of measure
    unit: Unit = dataclasses.field(default_factory=Unit)

    #: Mapping of category id to the raw encoded values representing it
    category_encoding: Mapping[str, tuple[Any, ...]] | None = None

    @property
    def categories(self) -> tuple[Category, ...] | None:
        """Categories of the observed property, if categorical."""
        return self.observed_property.categories

    @property
    def is_categorical(self) -> bool:
        """Whether this parameter has discrete categories."""
        return bool(self.categories)

    @property
    def label(self) -> str | None:
        """Label of the observed property."""
        return i18n(self.observed_property.label)

    def category_lookup(self) -> dict[Any, int]:
        """Return a mapping of raw encoded value to category position.

        Returns
        -------
        dict[Any, int]
            Mapping of raw value to the 0-based position of its category in
            :attr:`categories`.

        Raises
        ------
        ValueError
            If the parameter is not categorical, has no category encoding,
            or the encoding refers to unknown categories.
        """
        if not self.categories:
            msg = f"Parameter '{self.key}' is not categorical"
            raise ValueError(msg)
        if not self.category_encoding:
            msg = f"Parameter '{self.key}' has no category encoding"
            raise ValueError(msg)

        positions = {cat.id: i for i, cat in enumerate(self.categories)}
        lookup: dict[Any, int] = {}
        for cat_id, raw_values in self.category_encoding.items():
            try:
                pos = positions[cat_id]
            except KeyError:
                msg = f"Category encoding of '{self.key}' refers to unknown category '{cat_id}'"
                raise ValueError(msg) from None
            for value in raw_values:
                lookup[value] = pos
        return lookup

    @classmethod
    def from_covjson(cls, key: str, raw: Mapping[str, Any]) -> Parameter:
        """Create from a CoverageJSON parameter object.

        Parameters
        ----------
        key : str
            Parameter key.
        raw : Mapping[str, Any]
            Parameter object with ``observedProperty`` and optional ``unit``
            and ``categoryEncoding`` keys.

        Returns
        -------
        Parameter
        """
        raw_prop = raw.get("observedProperty", {})
        categories = None
        if raw_prop.get("categories"):
            categories = tuple(
                Category(
                    id=cat["id"],
                    label=cat.get("label"),
                    preferred_color=cat.get("preferredColor"),
                    description=cat.get("description"),
                )
                for cat in raw_prop["categories"]
            )
        observed_property = ObservedProperty(
            label=raw_prop.get("label"),
            id=raw_prop.get("id"),
            description=raw_prop.get("description"),
            categories=categories,
        )

        encoding = None
        if raw.get("categoryEncoding"):
            encoding = {
                cat_id: tuple(v) if isinstance(v, (list, tuple)) else (v,)
                for cat_id, v in raw["categoryEncoding"].items()
            }

        return cls(
            key=key,
            observed_property=observed_property,
            unit=Unit.from_covjson(raw.get("unit")),
            category_encoding=encoding,
        )
