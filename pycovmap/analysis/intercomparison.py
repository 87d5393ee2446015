"""Model and observation intercomparison statistics.

A model is a Grid coverage. Observations are a collection of Point or
VerticalProfile coverages. For every observation, the model grid cell nearest
to the observation position is compared against the observed values, and the
root mean square error is reported as a Point coverage.
"""

from __future__ import annotations

import enum
import logging
import math
from typing import Any, NamedTuple

import numpy as np

from pycovmap.core.arrays import index_of_nearest
from pycovmap.core.coverage import Coverage, CoverageCollection, domain_type_name
from pycovmap.core.domain import Domain
from pycovmap.core.parameter import ObservedProperty, Parameter
from pycovmap.core.range import Range
from pycovmap.core.referencing import get_reference_system
from pycovmap.datalib import covjson
from pycovmap.utils import coroutines

logger = logging.getLogger(__name__)

#: Axis along which model and observation values are matched up
STATISTICS_AXIS = "z"

#: Key of the statistics parameter in the result
RMSE_KEY = "rmse"

#: Collection profiles holding observations
OBSERVATION_PROFILES = ("PointCoverageCollection", "VerticalProfileCoverageCollection")

#: JSON-LD context of the provenance members of the result
PROVENANCE_CONTEXT = {
    "prov": "http://www.w3.org/ns/prov#",
    "wasGeneratedBy": "prov:wasGeneratedBy",
    "qualifiedUsage": "prov:qualifiedUsage",
    "entity": {"@id": "prov:entity", "@type": "@id"},
    "hadRole": {"@id": "prov:hadRole", "@type": "@vocab"},
    "covstats": "http://covstats#",
    "ModelObservationComparisonActivity": "covstats:ModelObservationComparisonActivity",
    "modelToCompareAgainst": "covstats:modelToCompareAgainst",
    "observationToCompareAgainst": "covstats:observationToCompareAgainst",
}


class DataRole(enum.Enum):
    """Role of a dataset in an intercomparison."""

    MODEL = "model"
    OBSERVATIONS = "observations"


class ClassifiedData(NamedTuple):
    """Dataset with its intercomparison role."""

    role: DataRole
    data: Coverage | CoverageCollection


def classify_for_intercomparison(
    data: Coverage | CoverageCollection,
) -> ClassifiedData | None:
    """Determine if ``data`` is a model or observations.

    A Grid coverage, or a collection holding exactly one Grid coverage, is a
    model. The Grid coverage itself is returned as data in both cases. A Point
    or VerticalProfile coverage collection holds observations.

    Parameters
    ----------
    data : Coverage | CoverageCollection
        Dataset to classify.

    Returns
    -------
    ClassifiedData | None
        Role and data, or None if ``data`` is neither or has no
        non-categorical parameters.
    """
    res = None
    if isinstance(data, CoverageCollection):
        if any(data.has_profile(p) for p in OBSERVATION_PROFILES):
            res = ClassifiedData(DataRole.OBSERVATIONS, data)
        if len(data) == 1 and domain_type_name(data[0].domain_type) == "Grid":
            res = ClassifiedData(DataRole.MODEL, data[0])
    elif domain_type_name(data.domain_type) == "Grid":
        res = ClassifiedData(DataRole.MODEL, data)

    if res is not None and not any(not p.is_categorical for p in res.data.parameters.values()):
        return None
    return res


def _rmse(model_values: list[Any], observed_values: list[Any]) -> float:
    """Return ``sqrt(sum((m - o)**2) / n)``. No-data propagates as ``nan``."""
    m = np.array(model_values, dtype=np.float64)
    o = np.array(observed_values, dtype=np.float64)
    return math.sqrt(float(np.sum((m - o) ** 2)) / m.size)


def _check_observation_domain(domain: Domain) -> None:
    for key, axis in domain.axes.items():
        if key != STATISTICS_AXIS and len(axis) > 1:
            msg = f"Only {STATISTICS_AXIS} can be a varying axis in observations, not: {key}"
            raise ValueError(msg)


async def _compare(
    model: Coverage,
    model_key: str,
    model_z: np.ndarray | None,
    observation: Coverage,
    domain: Domain,
    rng: Range,
) -> dict[str, Any]:
    """Compare one observation against the model and return a Point coverage object."""
    _check_observation_domain(domain)

    x = domain.coordinate_values("x")[0]
    y = domain.coordinate_values("y")[0]
    obs_z = domain[STATISTICS_AXIS].values if STATISTICS_AXIS in domain else None

    if obs_z is not None and len(obs_z) > 1 and model_z is None:
        msg = (
            f"Model grid must have a {STATISTICS_AXIS} axis if observations have a "
            f"varying {STATISTICS_AXIS} axis"
        )
        raise ValueError(msg)
    if obs_z is None and model_z is not None and len(model_z) > 1:
        msg = (
            f"Model grid must not have a varying {STATISTICS_AXIS} axis if observations "
            f"have no {STATISTICS_AXIS} axis"
        )
        raise ValueError(msg)

    subset = await model.subset_by_value({"x": {"target": x}, "y": {"target": y}})
    model_range = await subset.load_range(model_key)

    if model_z is None or len(model_z) == 1:
        model_values = [model_range.get()]
        if obs_z is None or len(obs_z) == 1:
            observed_values = [rng.get()]
        else:
            # varying observation z, closest to the fixed model z
            observed_values = [rng.get(z=index_of_nearest(obs_z, model_z[0]))]
    else:
        model_values = [model_range.get(z=index_of_nearest(model_z, z)) for z in obs_z]
        observed_values = [rng.get(z=i) for i in range(len(obs_z))]

    rmse = _rmse(model_values, observed_values)
    logger.debug("RMSE at (%s, %s) over %s levels: %s", x, y, len(model_values), rmse)

    return {
        "type": "Coverage",
        "domainType": "Point",
        "wasGeneratedBy": {
            "type": "ModelObservationComparisonActivity",
            "qualifiedUsage": [
                {"entity": model.id, "hadRole": "modelToCompareAgainst"},
                {"entity": observation.id, "hadRole": "observationToCompareAgainst"},
            ],
        },
        "domain": {
            "type": "Domain",
            "domainType": "Point",
            "axes": {"x": {"values": [float(x)]}, "y": {"values": [float(y)]}},
        },
        "ranges": {
            RMSE_KEY: {"type": "NdArray", "dataType": "float", "values": [rmse]},
        },
    }


async def derive_intercomparison_statistics(
    model: Coverage,
    observations: CoverageCollection,
    model_key: str,
    observation_key: str,
) -> CoverageCollection:
    """Compute the RMSE between a model grid and each observation.

    For each observation, the model is subset to the grid cell nearest to the
    observation position. Values are matched up along the ``z`` axis:

    - If both have a varying ``z`` axis, the model level nearest to each
      observed level is used.
    - If one has a fixed ``z`` axis and the other a varying one, the observed
      level nearest to the model level is used.
    - Otherwise the single values are compared.

    The RMSE over ``n`` matched values is ``sqrt(sum((m_i - o_i)**2) / n)``,
    which is the absolute difference for ``n == 1``.

    Parameters
    ----------
    model : Coverage
        Model Grid coverage. Only ``x``, ``y`` and ``z`` may have more than one value.
    observations : CoverageCollection
        Point or VerticalProfile coverages. Only ``z`` may have more than one value.
    model_key : str
        Model parameter key.
    observation_key : str
        Observation parameter key.

    Returns
    -------
    CoverageCollection
        Point coverages with an ``"rmse"`` parameter, one per observation. The
        provenance of each result names the model and the observation coverage ids.

    Raises
    ------
    ValueError
        If the axes of the inputs cannot be matched up.
    """
    model_domain, obs_domains, obs_ranges = await coroutines.join(
        model.load_domain(),
        coroutines.join(*(cov.load_domain() for cov in observations)),
        coroutines.join(*(cov.load_range(observation_key) for cov in observations)),
    )

    for key, axis in model_domain.axes.items():
        if key not in ("x", "y", STATISTICS_AXIS) and len(axis) > 1:
            msg = f"Only x, y, {STATISTICS_AXIS} can be varying axes in the model grid, not: {key}"
            raise ValueError(msg)

    model_z = None
    if STATISTICS_AXIS in model_domain:
        model_z = model_domain[STATISTICS_AXIS].values

    results = await coroutines.join(
        *(
            _compare(model, model_key, model_z, cov, domain, rng)
            for cov, domain, rng in zip(observations, obs_domains, obs_ranges)
        )
    )

    model_param = model.parameters[model_key]
    rmse_param = Parameter(
        RMSE_KEY,
        observed_property=ObservedProperty(label={"en": f"RMSE of {model_param.label}"}),
        unit=model_param.unit,
    )

    referencing = []
    system = get_reference_system(model_domain)
    if system is not None:
        referencing.append({"coordinates": ["x", "y"], "system": system})

    doc = covjson.collection_to_covjson(
        results,
        {RMSE_KEY: rmse_param},
        domain_type="Point",
        referencing=referencing,
        **{"@context": PROVENANCE_CONTEXT},
    )
    logger.info("Derived intercomparison statistics for %s observations", len(results))
    return covjson.read(doc)  # type: ignore[return-value]
