"""Display columns attached to boundary features before they are mapped in a report."""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from .engine import EngineError
from .fips import (
    BLOCKGROUP_BUILT_TYPES,
    fips_lead_zero,
    fips_to_state_abbr,
    fips_to_state_name,
    fips_type,
)
from .geometry import sqmeters_to_sqmi

logger = logging.getLogger(__name__)

ATTRIBUTE_COLUMNS = ("fipstype", "pop", "NAME", "STATE_ABBR", "STATE_NAME", "SQMI", "POP_SQMI")

SORTED_COLUMNS = (
    "ejam_uniq_id", "FIPS", "NAME", "STATE_ABBR", "STATE_NAME",
    "fipstype", "pop", "SQMI", "POP_SQMI",
)

# Bookkeeping fields from TIGER files and ArcGIS feature services
DROPPED_COLUMNS = (
    "OBJECTID", "FID", "GEOID", "GEOIDFQ", "AFFGEOID", "STATEFP", "STATENS", "COUNTYFP",
    "COUNTYNS", "STUSPS", "LSAD", "ALAND", "AWATER", "MTFCC", "FUNCSTAT",
    "Shape_Length", "Shape_Area", "Shape__Length", "Shape__Area",
)

FIPS_ALIASES = ("fips", "GEOID", "geoid", "FIPS_CODE", "fips_code", "FIPSCODE", "bgfips", "countyfips")

# Lookup failures that degrade a single column to null
LOOKUP_ERRORS = (EngineError, ValueError, TypeError, KeyError, AttributeError)


def _column_names(features: Sequence[Dict[str, Any]]) -> List[str]:
    names: List[str] = []
    for feature in features:
        for key in (feature.get("properties") or {}):
            if key not in names:
                names.append(key)
    return names


def drop_columns(features: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Remove service bookkeeping fields from every feature's properties."""
    for feature in features:
        props = feature.get("properties") or {}
        feature["properties"] = {k: v for k, v in props.items() if k not in DROPPED_COLUMNS}
    return features


def sort_columns(features: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Put the standard columns first in a fixed order, others after in their original order."""
    for feature in features:
        props = feature.get("properties") or {}
        ordered = {k: props[k] for k in SORTED_COLUMNS if k in props}
        ordered.update((k, v) for k, v in props.items() if k not in ordered)
        feature["properties"] = ordered
    return features


def _fips_values(features: List[Dict[str, Any]], fips_column: str) -> List[Optional[str]]:
    """The FIPS value of each feature, found under the named column or a known alias."""
    columns = _column_names(features)
    if fips_column in columns:
        column = fips_column
    else:
        column = next((alias for alias in FIPS_ALIASES if alias in columns), None)
        if column is None:
            logger.warning("Cannot find a FIPS column, so using null for columns like STATE_ABBR or STATE_NAME")
            return [None] * len(features)
        logger.warning(f"{fips_column} is not a column, using {column} as the FIPS column")

    return [fips_lead_zero((feature.get("properties") or {}).get(column)) for feature in features]


async def _lookup(column: str, fips: Optional[str], lookup: Callable) -> Any:
    if fips is None:
        return None
    try:
        return await lookup(fips)
    except LOOKUP_ERRORS as e:
        logger.warning(f"Could not look up {column} for {fips}: {e}")
        return None


async def add_columns(
    features: List[Dict[str, Any]],
    engine,
    add_these: Sequence[str] = ATTRIBUTE_COLUMNS,
    fips_column: str = "FIPS",
    pop_column: str = "pop",
    overwrite: bool = False,
) -> List[Dict[str, Any]]:
    """
    Attach name, state, population and area columns to boundary features.

    Each column is filled independently; a failed lookup leaves null in that
    column for that feature and the rest carry on.

    Args:
        features: GeoJSON features, modified in place
        engine: Analysis engine client for name, population and area lookups
        add_these: Columns to add
        fips_column: Name of the column holding the codes
        pop_column: Name of the population column used for density
        overwrite: Replace columns that already exist

    Returns:
        The same features
    """
    existing = _column_names(features)
    if not overwrite:
        add_these = [column for column in add_these if column not in existing]
    if not add_these:
        return features

    fips_values = _fips_values(features, fips_column)

    async def name_lookup(fips: str) -> Optional[str]:
        if fips_type(fips) == "state":
            return fips_to_state_name(fips)
        return await engine.fips_to_name(fips)

    async def sqmi_lookup(fips: str) -> Optional[float]:
        if fips_type(fips) not in BLOCKGROUP_BUILT_TYPES:
            return None
        return round(sqmeters_to_sqmi(await engine.blockgroup_arealand(fips)), 2)

    for feature, fips in zip(features, fips_values):
        props = feature.setdefault("properties", {})

        if "fipstype" in add_these:
            props["fipstype"] = fips_type(fips) if fips else None
        if "NAME" in add_these:
            props["NAME"] = await _lookup("NAME", fips, name_lookup)
        if "STATE_ABBR" in add_these:
            props["STATE_ABBR"] = fips_to_state_abbr(fips)
        if "STATE_NAME" in add_these:
            props["STATE_NAME"] = fips_to_state_name(fips)
        if "pop" in add_these:
            props["pop"] = await _lookup("pop", fips, engine.fips_to_pop)
        if "SQMI" in add_these:
            props["SQMI"] = await _lookup("SQMI", fips, sqmi_lookup)
        if "POP_SQMI" in add_these:
            props["POP_SQMI"] = _density(props.get("SQMI"), props.get(pop_column))

    return features


def _density(sqmi: Any, pop: Any) -> Optional[float]:
    if sqmi is None or pop is None:
        return None
    try:
        sqmi = float(sqmi)
        pop = float(pop)
    except (TypeError, ValueError):
        return None
    if sqmi == 0:
        return None
    return round(pop / sqmi, 2)
