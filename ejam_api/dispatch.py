"""Input method dispatch: validate the request and make the single engine call."""

import json
import logging
import math
from typing import Any, Dict, Optional

import pandas as pd
from geojson_pydantic.geometries import parse_geometry_obj
from shapely.geometry import shape

from .fips import resolve
from .geometry import make_feature, make_feature_collection

logger = logging.getLogger(__name__)

BUFFER_MESSAGE = "Please select a buffer of 15 miles or less."
COORDINATES_MESSAGE = "Invalid coordinates provided."
GEOJSON_MESSAGE = "Invalid GeoJSON provided."
METHOD_MESSAGE = "Invalid method specified."


class ValidationError(Exception):
    """Raised for request input the service cannot act on."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(ValidationError):
    """Raised when the area does not fit the input method."""
    pass


class ParseError(InvalidInputError):
    """Raised when a shape is not valid GeoJSON."""

    def __init__(self, message: str = GEOJSON_MESSAGE):
        super().__init__(message)


class UnsupportedMethodError(ValidationError):
    """Raised for an input method other than latlon, SHP or FIPS."""

    def __init__(self, message: str = METHOD_MESSAGE):
        super().__init__(message)


def validate_buffer(buffer: Any, max_miles: float = 15.0) -> float:
    """
    Check a buffer radius and return it as miles.

    Args:
        buffer: Radius as a number or numeric string
        max_miles: Largest radius allowed

    Returns:
        Radius in miles

    Raises:
        ValidationError: If the radius is not a number, negative or too large
    """
    if isinstance(buffer, bool):
        raise ValidationError(BUFFER_MESSAGE)
    try:
        miles = float(buffer)
    except (TypeError, ValueError):
        raise ValidationError(BUFFER_MESSAGE)

    if math.isnan(miles) or miles > max_miles:
        raise ValidationError(BUFFER_MESSAGE)
    if miles < 0:
        raise ValidationError("Buffer radius cannot be negative.")
    return miles


def parse_geojson(area: Any) -> Dict[str, Any]:
    """
    Parse a submitted shape into a GeoJSON FeatureCollection.

    Accepts GeoJSON text or a decoded object. A bare geometry or a single
    Feature is wrapped so callers always see one feature per site.

    Raises:
        ParseError: If the input is not valid GeoJSON with at least one geometry
    """
    try:
        data = json.loads(area) if isinstance(area, (str, bytes)) else area
        if not isinstance(data, dict):
            raise ValueError("GeoJSON must be an object")

        geojson_type = data.get("type")
        if geojson_type == "FeatureCollection":
            raw_features = data.get("features")
        elif geojson_type == "Feature":
            raw_features = [data]
        else:
            raw_features = [{"type": "Feature", "properties": {}, "geometry": data}]

        if not isinstance(raw_features, list) or not raw_features:
            raise ValueError("GeoJSON has no features")

        features = []
        for raw in raw_features:
            if not isinstance(raw, dict) or raw.get("geometry") is None:
                raise ValueError("Feature without geometry")
            geometry = parse_geometry_obj(raw["geometry"]).model_dump(mode="json", exclude_none=True)
            # shapely rejects degenerate rings geojson_pydantic lets through
            shape(geometry)
            features.append(make_feature(raw.get("properties") or {}, geometry))

    except (ValueError, TypeError, AttributeError, KeyError) as e:
        logger.info(f"Rejected shape input: {e}")
        raise ParseError()

    return make_feature_collection(features)


async def dispatch(
    engine,
    area: Any,
    method: str,
    buffer: Any = 0,
    scale: Optional[str] = None,
    endpoint: str = "report"
) -> Dict[str, Any]:
    """
    Route one request to the engine according to its input method.

    Args:
        engine: Analysis engine client
        area: Site table (latlon), GeoJSON (SHP) or name/code (FIPS)
        method: One of "latlon", "SHP", "FIPS"
        buffer: Buffer radius in miles
        scale: Geography type to analyze FIPS input at (data endpoint only)
        endpoint: "data" or "report"

    Returns:
        The engine's result, unmodified
    """
    radius = validate_buffer(buffer)

    if method == "latlon":
        if not isinstance(area, pd.DataFrame) or not {"lat", "lon"} <= set(area.columns) or area.empty:
            raise InvalidInputError(COORDINATES_MESSAGE)
        logger.info(f"Analyzing {len(area)} site point(s) with a {radius} mile buffer")
        return await engine.ejamit(sitepoints=area, radius=radius)

    if method == "SHP":
        shapes = parse_geojson(area)
        logger.info(f"Analyzing {len(shapes['features'])} shape(s) with a {radius} mile buffer")
        return await engine.ejamit(shapefile=shapes, radius=radius)

    if method == "FIPS":
        if endpoint == "data":
            fips_codes = await resolve(area, scale, engine)
        else:
            # reports map the single submitted code
            fips_codes = area
        logger.info(f"Analyzing FIPS {fips_codes} with a {radius} mile buffer")
        return await engine.ejamit(fips=fips_codes, radius=radius)

    raise UnsupportedMethodError()
