"""Boundary polygons for census codes: pre-loaded states, remote counties and TIGERweb."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import RetryError, retry, stop_after_attempt, wait_exponential

from .config import get_settings
from .fips import fips_lead_zero, fips_type
from .geometry import make_feature

logger = logging.getLogger(__name__)

COUNTY_OUT_FIELDS = "NAME,FIPS,STATE_ABBR,STATE_NAME"

# tigerWMS_Current layer ids
TIGERWEB_LAYERS = {
    "tract": 8,
    "blockgroup": 10,
}


class BoundaryFetchError(Exception):
    """Raised when a boundary service query fails."""
    pass


class StateBoundaries:
    """Read-only table of state boundary features keyed by GEOID."""

    def __init__(self, features: List[Dict[str, Any]]):
        self._by_geoid: Dict[str, Dict[str, Any]] = {}
        for feature in features:
            props = feature.get("properties") or {}
            geoid = fips_lead_zero(props.get("GEOID") or props.get("STATEFP"))
            if geoid:
                self._by_geoid[geoid] = feature

    @classmethod
    def from_feature_collection(cls, collection: Dict[str, Any]) -> "StateBoundaries":
        return cls(collection.get("features") or [])

    def __len__(self) -> int:
        return len(self._by_geoid)

    def get(self, fips: str) -> Optional[Dict[str, Any]]:
        """Copy of the state's feature, or None when the code is not a known state."""
        feature = self._by_geoid.get(fips_lead_zero(fips))
        if feature is None:
            return None
        return make_feature(feature.get("properties") or {}, feature.get("geometry"))


def build_county_query_url(fips: str, base_url: Optional[str] = None) -> str:
    """
    Build the feature-service query for one county boundary.

    Args:
        fips: Five-digit county code
        base_url: Feature layer query endpoint

    Returns:
        Full query URL asking for GeoJSON with name and state fields
    """
    base_url = base_url or get_settings().county_boundaries_url
    where = quote(f"FIPS='{fips}'", safe="")
    out_fields = quote(COUNTY_OUT_FIELDS, safe="")
    return f"{base_url}?where={where}&outFields={out_fields}&returnGeometry=true&f=geojson"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10)
)
async def _get_geojson(url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """GET a feature-service query and return its GeoJSON."""
    try:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error during boundary query: {e}")
        raise BoundaryFetchError(f"HTTP error during boundary query: {e}")
    except httpx.RequestError as e:
        logger.error(f"Request error during boundary query: {e}")
        raise BoundaryFetchError(f"Request error during boundary query: {e}")
    except ValueError as e:
        raise BoundaryFetchError(f"Invalid JSON from boundary service: {e}")

    if "error" in data:
        error_msg = data["error"].get("message", "Unknown feature service error")
        raise BoundaryFetchError(f"Feature service error: {error_msg}")

    if "features" not in data:
        raise BoundaryFetchError("No features in feature service response")

    return data


async def fetch_county_boundaries(fips: str) -> Dict[str, Any]:
    url = build_county_query_url(fips)
    logger.info(f"Fetching county boundary for {fips}")
    return await _get_geojson(url)


async def county_boundary_feature(fips: str) -> Dict[str, Any]:
    """
    The boundary feature for one county, FIPS forced to the requested code.

    A failed or empty fetch yields a feature with no geometry rather than
    an error, so a report can still be rendered without the outline.
    """
    matched: Optional[Dict[str, Any]] = None
    try:
        collection = await fetch_county_boundaries(fips)
        for feature in collection.get("features", []):
            props = feature.get("properties") or {}
            if fips_lead_zero(props.get("FIPS")) == fips:
                matched = feature
                break
    except (BoundaryFetchError, RetryError) as e:
        logger.warning(f"County boundary fetch failed for {fips}, mapping without geometry: {e}")

    if matched is None:
        logger.warning(f"No boundary returned for county {fips}")
        properties: Dict[str, Any] = {}
        geometry = None
    else:
        properties = dict(matched.get("properties") or {})
        geometry = matched.get("geometry")

    properties["FIPS"] = fips
    return make_feature(properties, geometry)


def _chunk_codes(codes: List[str], chunk_size: int = 100) -> List[List[str]]:
    """Split codes into chunks to keep the where clause under URL limits."""
    return [codes[i:i + chunk_size] for i in range(0, len(codes), chunk_size)]


async def query_tigerweb_boundaries(codes: List[str], fips_kind: str) -> Dict[str, Any]:
    """
    Query TIGERweb for tract or block group polygons by GEOID.

    Args:
        codes: Codes of a single geography type
        fips_kind: "tract" or "blockgroup"

    Returns:
        Mapping of GEOID to GeoJSON geometry for the codes found
    """
    layer = TIGERWEB_LAYERS[fips_kind]
    url = f"{get_settings().tigerweb_base_url}/{layer}/query"

    geometries = {}
    for chunk in _chunk_codes(codes):
        quoted = ",".join(f"'{code}'" for code in chunk)
        params = {
            "f": "geojson",
            "where": f"GEOID IN ({quoted})",
            "outFields": "GEOID",
            "returnGeometry": "true",
            "outSR": "4326",
        }
        data = await _get_geojson(url, params=params)

        for feature in data["features"]:
            geoid = (feature.get("properties") or {}).get("GEOID")
            if geoid:
                geometries[geoid] = feature.get("geometry")
    logger.info(f"TIGERweb returned {len(geometries)} of {len(codes)} {fips_kind} boundaries")
    return geometries


async def shapes_from_fips(codes: List[str], states: Optional[StateBoundaries]) -> List[Optional[Dict[str, Any]]]:
    """
    One GeoJSON geometry (or None) per code, in the order given.

    States come from the pre-loaded table, counties from the county feature
    service, tracts and block groups from TIGERweb. Other types and failed
    lookups give None.
    """
    codes = [fips_lead_zero(code) for code in codes]
    found: Dict[str, Any] = {}

    by_kind: Dict[str, List[str]] = {}
    for code in codes:
        by_kind.setdefault(fips_type(code), []).append(code)

    for kind, kind_codes in by_kind.items():
        if kind == "state":
            for code in kind_codes:
                feature = states.get(code) if states is not None else None
                found[code] = feature["geometry"] if feature else None
        elif kind == "county":
            for code in kind_codes:
                found[code] = (await county_boundary_feature(code))["geometry"]
        elif kind in TIGERWEB_LAYERS:
            try:
                found.update(await query_tigerweb_boundaries(kind_codes, kind))
            except (BoundaryFetchError, RetryError) as e:
                logger.warning(f"TIGERweb {kind} query failed, returning empty geometries: {e}")
        else:
            logger.warning(f"No boundary source for {kind} codes: {kind_codes}")

    return [found.get(code) for code in codes]
