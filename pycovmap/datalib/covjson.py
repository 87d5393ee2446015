"""Read, fetch and write CoverageJSON documents.

CoverageJSON documents hold a single ``Coverage`` or a ``CoverageCollection``.
Domains and ranges may be embedded or given by URL. Referenced parts are
fetched lazily, when the coverage loads them, with :func:`fetch_json`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import pathlib
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from pycovmap.core.coverage import Coverage, CoverageCollection, Loader
from pycovmap.core.domain import Axis, Domain
from pycovmap.core.parameter import Parameter
from pycovmap.core.range import Range
from pycovmap.utils import coroutines, dependencies
from pycovmap.utils.json import NumpyEncoder

if TYPE_CHECKING:
    import aiohttp

logger = logging.getLogger(__name__)

#: Media type of CoverageJSON documents
MEDIA_TYPE = "application/prs.coverage+json"


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _load_document(obj: Mapping[str, Any] | str | pathlib.Path) -> dict[str, Any]:
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, str) and obj.lstrip().startswith("{"):
        return json.loads(obj)

    path = pathlib.Path(obj)
    with path.open(encoding="utf-8") as f:
        return json.load(f)


def read(
    obj: Mapping[str, Any] | str | pathlib.Path,
    *,
    loader: Loader | None = None,
    cache_ranges: bool = False,
) -> Coverage | CoverageCollection:
    """Read a CoverageJSON document.

    Parameters
    ----------
    obj : Mapping[str, Any] | str | pathlib.Path
        Parsed document, JSON text or path of a local file. Use :func:`fetch`
        for documents on a server.
    loader : Loader, optional
        Coroutine function resolving domains and ranges given by URL.
        Defaults to :func:`fetch_json`.
    cache_ranges : bool, optional
        Passed to each :class:`Coverage`.

    Returns
    -------
    Coverage | CoverageCollection

    Raises
    ------
    ValueError
        If the document is not a ``Coverage`` or ``CoverageCollection``.
    """
    doc = _load_document(obj)
    doc_type = doc.get("type")

    if doc_type == "Coverage":
        return coverage_from_covjson(doc, loader=loader, cache_ranges=cache_ranges)

    if doc_type == "CoverageCollection":
        parameters = _parameters_from_covjson(doc.get("parameters", {}))
        inherited = {k: doc[k] for k in ("domainType", "referencing") if k in doc}
        coverages = [
            coverage_from_covjson(
                cov,
                parameters=parameters,
                inherited=inherited,
                loader=loader,
                cache_ranges=cache_ranges,
            )
            for cov in doc.get("coverages", [])
        ]
        profiles = doc.get("profile", ())
        if isinstance(profiles, str):
            profiles = (profiles,)
        if "domainType" in doc:
            profiles = (*profiles, f"{doc['domainType']}CoverageCollection")

        logger.debug("Read coverage collection with %s coverages", len(coverages))
        return CoverageCollection(coverages, parameters, id=doc.get("id"), profiles=profiles)

    msg = f"Expected a CoverageJSON 'Coverage' or 'CoverageCollection', got type {doc_type!r}"
    raise ValueError(msg)


def _parameters_from_covjson(raw: Mapping[str, Any]) -> dict[str, Parameter]:
    return {key: Parameter.from_covjson(key, param) for key, param in raw.items()}


def coverage_from_covjson(
    doc: Mapping[str, Any],
    *,
    parameters: Mapping[str, Parameter] | None = None,
    inherited: Mapping[str, Any] | None = None,
    loader: Loader | None = None,
    cache_ranges: bool = False,
) -> Coverage:
    """Create a :class:`Coverage` from a CoverageJSON coverage object.

    Parameters
    ----------
    doc : Mapping[str, Any]
        CoverageJSON ``Coverage`` object.
    parameters : Mapping[str, Parameter], optional
        Parameters of the enclosing collection. Parameters of ``doc`` take precedence.
    inherited : Mapping[str, Any], optional
        ``domainType`` and ``referencing`` of the enclosing collection. These
        apply to an embedded domain that does not define its own.
    loader : Loader, optional
        Passed to :class:`Coverage`.
    cache_ranges : bool, optional
        Passed to :class:`Coverage`.

    Returns
    -------
    Coverage
    """
    inherited = inherited or {}
    domain = doc["domain"]
    if isinstance(domain, Mapping):
        domain = {**inherited, **domain}

    domain_type = doc.get("domainType")
    if domain_type is None and isinstance(domain, Mapping):
        domain_type = domain.get("domainType")
    if domain_type is None:
        domain_type = inherited.get("domainType")

    params = dict(parameters or {})
    params.update(_parameters_from_covjson(doc.get("parameters", {})))

    coverage_type = doc.get("profile")
    if coverage_type is None and domain_type is not None:
        coverage_type = f"{domain_type}Coverage"

    return Coverage(
        domain,
        doc.get("ranges", {}),
        params,
        id=doc.get("id"),
        domain_type=domain_type,
        coverage_type=coverage_type,
        bbox=doc.get("bbox"),
        cache_ranges=cache_ranges,
        loader=loader,
        provenance=doc.get("wasGeneratedBy"),
    )


async def fetch_json(
    url: str, session: aiohttp.ClientSession | None = None
) -> dict[str, Any]:
    """Fetch and parse a JSON document.

    HTTP(S) URLs are requested with :mod:`aiohttp`. Any other location is read
    as a local path (an optional ``file://`` prefix is removed) in a worker thread.

    Parameters
    ----------
    url : str
        Document location.
    session : aiohttp.ClientSession, optional
        Session to reuse. By default, a session is created for the request.

    Returns
    -------
    dict[str, Any]
        Parsed document.

    Raises
    ------
    FileNotFoundError
        If the server responds with status 404 or a local file does not exist.
    RuntimeError
        If the request fails for any other reason.
    """
    if not _is_url(url):
        path = url.removeprefix("file://")
        logger.debug("Reading %s", path)
        return await asyncio.to_thread(_load_document, pathlib.Path(path))

    aiohttp = dependencies.import_optional(
        "aiohttp", name="fetch_json function", pycovmap_optional_package="fetch"
    )

    logger.debug("Requesting %s", url)
    headers = {"Accept": f"{MEDIA_TYPE}, application/json"}
    try:
        async with (
            _use_or_create_session(session) as _session,
            _session.get(url, headers=headers) as response,
        ):
            return await response.json(content_type=None)
    except aiohttp.ClientResponseError as e:
        if e.status == 404:
            msg = f"Remote document {url} not found."
            raise FileNotFoundError(msg) from e
        msg = f"Error while requesting {url}"
        raise RuntimeError(msg) from e
    except aiohttp.ClientError as e:
        msg = f"Error while requesting {url}"
        raise RuntimeError(msg) from e


@contextlib.asynccontextmanager
async def _use_or_create_session(
    session: aiohttp.ClientSession | None,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Provide session for async requests, using an existing session if provided."""
    if session is None:
        import aiohttp

        session = aiohttp.ClientSession(raise_for_status=True)
        local_session = True
    else:
        local_session = False

    try:
        yield session
    finally:
        if local_session:
            await session.close()


def fetch(url: str, **read_kwargs: Any) -> Coverage | CoverageCollection:
    """Fetch and read a CoverageJSON document synchronously.

    Parameters
    ----------
    url : str
        Document URL or local path.
    **read_kwargs : Any
        Passed to :func:`read`.

    Returns
    -------
    Coverage | CoverageCollection
    """
    return read(coroutines.run(fetch_json(url)), **read_kwargs)


# -------
# Writing
# -------


def _isoformat(values: np.ndarray) -> list[str]:
    return [f"{t}Z" for t in np.datetime_as_string(values, unit="s")]


def _axis_to_covjson(axis: Axis) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if axis.is_composite:
        out["dataType"] = "tuple"
        out["coordinates"] = list(axis.coordinates)
        out["values"] = [list(v) for v in axis.values]
    elif axis.data_type == "polygon":
        out["dataType"] = "polygon"
        out["values"] = list(axis.values)
    elif axis.values.dtype.kind == "M":
        out["values"] = _isoformat(axis.values)
    else:
        out["values"] = axis.values.tolist()

    if axis.bounds is not None:
        out["bounds"] = axis.bounds.ravel().tolist()
    return out


def _domain_to_covjson(domain: Domain) -> dict[str, Any]:
    out: dict[str, Any] = {"type": "Domain"}
    if domain.domain_type:
        out["domainType"] = domain.domain_type
    out["axes"] = {key: _axis_to_covjson(axis) for key, axis in domain.axes.items()}
    out["rangeAxisOrder"] = list(domain.range_axis_order)
    if domain.referencing:
        out["referencing"] = [dict(r) for r in domain.referencing]
    return out


def _range_to_covjson(rng: Range) -> dict[str, Any]:
    arr = np.ascontiguousarray(rng.to_numpy()).ravel()
    if arr.dtype == object:
        values = arr.tolist()
    else:
        valid = ~np.isnan(arr) if arr.dtype.kind == "f" else np.ones(arr.shape, dtype=bool)
        cast = int if rng.data_type == "integer" else float
        values = [cast(v) if ok else None for v, ok in zip(arr.tolist(), valid.tolist())]

    return {
        "type": "NdArray",
        "dataType": rng.data_type,
        "axisNames": list(rng.axis_names),
        "shape": list(rng.view.shape),
        "values": values,
    }


def _parameter_to_covjson(param: Parameter) -> dict[str, Any]:
    prop = param.observed_property
    observed: dict[str, Any] = {"label": prop.label if prop.label is not None else param.key}
    if prop.id:
        observed["id"] = prop.id
    if prop.description:
        observed["description"] = prop.description
    if prop.categories:
        observed["categories"] = [
            {
                k: v
                for k, v in (
                    ("id", cat.id),
                    ("label", cat.label),
                    ("preferredColor", cat.preferred_color),
                    ("description", cat.description),
                )
                if v is not None
            }
            for cat in prop.categories
        ]

    out: dict[str, Any] = {"type": "Parameter", "observedProperty": observed}
    if param.unit.label is not None or param.unit.symbol is not None:
        out["unit"] = {
            k: v for k, v in (("label", param.unit.label), ("symbol", param.unit.symbol)) if v
        }
    if param.category_encoding:
        out["categoryEncoding"] = {
            cat_id: list(values) if len(values) > 1 else values[0]
            for cat_id, values in param.category_encoding.items()
        }
    return out


async def coverage_to_covjson(
    coverage: Coverage, keys: Sequence[str] | None = None
) -> dict[str, Any]:
    """Load a coverage and convert it to a CoverageJSON ``Coverage`` object.

    Domain and ranges are embedded. Serialize the result with :func:`dumps`.

    Parameters
    ----------
    coverage : Coverage
        Coverage to convert.
    keys : Sequence[str], optional
        Parameters to include. Defaults to all parameters with range data.

    Returns
    -------
    dict[str, Any]
        CoverageJSON document.
    """
    domain, ranges = await coroutines.join(coverage.load_domain(), coverage.load_ranges(keys))

    doc: dict[str, Any] = {"type": "Coverage"}
    if coverage.id:
        doc["id"] = coverage.id
    if coverage.domain_type:
        doc["domainType"] = coverage.domain_type
    if coverage.bbox is not None:
        doc["bbox"] = list(coverage.bbox)
    if coverage.provenance is not None:
        doc["wasGeneratedBy"] = dict(coverage.provenance)
    doc["domain"] = _domain_to_covjson(domain)
    doc["parameters"] = {key: _parameter_to_covjson(coverage.parameters[key]) for key in ranges}
    doc["ranges"] = {key: _range_to_covjson(rng) for key, rng in ranges.items()}
    return doc


def collection_to_covjson(
    coverages: Sequence[Mapping[str, Any]],
    parameters: Mapping[str, Parameter],
    *,
    domain_type: str | None = None,
    referencing: Sequence[Mapping[str, Any]] = (),
    **extra: Any,
) -> dict[str, Any]:
    """Assemble CoverageJSON coverage objects into a ``CoverageCollection`` object.

    Parameters
    ----------
    coverages : Sequence[Mapping[str, Any]]
        CoverageJSON ``Coverage`` objects.
    parameters : Mapping[str, Parameter]
        Shared parameters.
    domain_type : str, optional
        Domain type of all members.
    referencing : Sequence[Mapping[str, Any]], optional
        Shared reference system connections.
    **extra : Any
        Additional top-level members.

    Returns
    -------
    dict[str, Any]
        CoverageJSON document.
    """
    doc: dict[str, Any] = {"type": "CoverageCollection"}
    if domain_type:
        doc["domainType"] = domain_type
    doc["parameters"] = {key: _parameter_to_covjson(p) for key, p in parameters.items()}
    if referencing:
        doc["referencing"] = [dict(r) for r in referencing]
    doc.update(extra)
    doc["coverages"] = [dict(c) for c in coverages]
    return doc


def dumps(doc: Mapping[str, Any], **kwargs: Any) -> str:
    """Serialize a CoverageJSON document, encoding numpy values and ``nan`` as ``null``."""
    return json.dumps(doc, cls=NumpyEncoder, **kwargs)
