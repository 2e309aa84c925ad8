"""Build the map overlay for a community report and render it through the engine."""

import html
import logging
from typing import Any, Dict, Optional

from .attributes import add_columns, drop_columns, sort_columns
from .boundaries import StateBoundaries, county_boundary_feature
from .dispatch import parse_geojson
from .fips import fips_lead_zero
from .geometry import make_feature, make_feature_collection

logger = logging.getLogger(__name__)

ERROR_TEMPLATE = "<html><body><h3>Error</h3><p>{message}</p></body></html>"


def error_html(message: str) -> str:
    return ERROR_TEMPLATE.format(message=html.escape(message))


def _state_feature(fips: str, states: Optional[StateBoundaries]) -> Dict[str, Any]:
    feature = states.get(fips) if states is not None else None
    if feature is None:
        logger.warning(f"No pre-loaded boundary for state {fips}")
        return make_feature({"FIPS": fips}, None)

    props = feature["properties"]
    props["FIPS"] = fips_lead_zero(props.pop("GEOID", fips))
    return feature


def draws_state(method: str, area: Any) -> bool:
    """Whether the report overlay for this request is a state boundary."""
    # Codes are typed by width only; a bad code fails in the engine first
    return method == "FIPS" and len(str(area).strip()) == 2


async def _display_columns(feature: Dict[str, Any], engine) -> Dict[str, Any]:
    features = drop_columns([feature])
    features = await add_columns(features, engine)
    return make_feature_collection(sort_columns(features))


async def map_overlay(
    method: str,
    area: Any,
    engine,
    states: Optional[StateBoundaries] = None
) -> Optional[Dict[str, Any]]:
    """
    The geometry the report should draw for the submitted area.

    Args:
        method: Input method of the request
        area: The area as submitted
        engine: Analysis engine client, for the display column lookups
        states: Pre-loaded state boundaries

    Returns:
        A FeatureCollection, or None when the renderer draws the sites itself
    """
    if method == "FIPS":
        fips = str(area).strip()
        if draws_state(method, area):
            return await _display_columns(_state_feature(fips, states), engine)
        if len(fips) == 5:
            return await _display_columns(await county_boundary_feature(fips), engine)
        return None

    if method == "SHP":
        overlay = parse_geojson(area)
        for site_id, feature in enumerate(overlay["features"], start=1):
            feature["properties"]["ejam_uniq_id"] = site_id
        return overlay

    return None


async def render_report(
    engine,
    result: Dict[str, Any],
    method: str,
    area: Any,
    report_title: str,
    states: Optional[StateBoundaries] = None
) -> str:
    """Render the single-site HTML report for an engine result."""
    to_map = await map_overlay(method, area, engine, states)

    return await engine.render_report(
        result,
        sitenumber=1,
        return_html=True,
        launch_browser=False,
        submitted_upload_method=method,
        shp=to_map,
        report_title=report_title,
    )
