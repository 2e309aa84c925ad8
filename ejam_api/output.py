"""Shape engine results into the JSON returned by the data endpoint."""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from .boundaries import StateBoundaries, shapes_from_fips
from .dispatch import parse_geojson
from .geometry import create_buffer_circle, geometry_to_geojson
from .schemas import AreaSpecification, GeographyCode, Points, Shape

logger = logging.getLogger(__name__)


class GeometryMismatchError(Exception):
    """Raised when the number of site geometries differs from the number of result rows."""

    def __init__(self, rows: int, geometries: int):
        self.message = f"Found {geometries} geometries for {rows} result rows."
        super().__init__(self.message)


def result_error(result: Any) -> Optional[str]:
    """The engine's error message when the result carries one."""
    if not isinstance(result, dict) or "error" not in result:
        return None
    error = result["error"]
    if isinstance(error, list):
        error = error[0] if error else ""
    return str(error)


def results_bysite(result: Dict[str, Any]) -> pd.DataFrame:
    return pd.DataFrame(result.get("results_bysite") or [])


def frame_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows as JSON-ready dicts, missing values as None."""
    return frame.astype(object).where(pd.notnull(frame), None).to_dict(orient="records")


async def site_geometries(
    area: AreaSpecification,
    buffer: float,
    rows: pd.DataFrame,
    states: Optional[StateBoundaries]
) -> List[Optional[Dict[str, Any]]]:
    """
    One GeoJSON geometry per analyzed site, in site order.

    Args:
        area: What the request analyzed
        buffer: Buffer radius in miles
        rows: Per-site result table
        states: Pre-loaded state boundaries

    Returns:
        Buffer circles for points, the submitted features for shapes, or
        boundary polygons for each code in the result
    """
    if isinstance(area, Points):
        return [
            geometry_to_geojson(create_buffer_circle(site.lat, site.lon, buffer))
            for site in area.sites.itertuples(index=False)
        ]

    if isinstance(area, Shape):
        return [feature["geometry"] for feature in parse_geojson(area.geojson)["features"]]

    if isinstance(area, GeographyCode):
        if "ejam_uniq_id" not in rows.columns:
            logger.warning("Result rows have no ejam_uniq_id column to match boundaries on")
            return []
        codes = [str(code) for code in rows["ejam_uniq_id"].tolist()]
        return await shapes_from_fips(codes, states)

    raise TypeError(f"Unknown area specification: {area!r}")


def bind_geometries(rows: pd.DataFrame, geometries: List[Optional[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Column-bind a geometry onto each result row."""
    if len(geometries) != len(rows):
        raise GeometryMismatchError(len(rows), len(geometries))

    records = frame_records(rows)
    for record, geometry in zip(records, geometries):
        record["geometry"] = geometry
    return records


async def data_payload(
    result: Dict[str, Any],
    area: AreaSpecification,
    buffer: float,
    geometries: bool,
    states: Optional[StateBoundaries] = None
) -> List[Dict[str, Any]]:
    """Per-site rows, joined with site geometries when asked for."""
    rows = results_bysite(result)
    if not geometries:
        return frame_records(rows)

    site_shapes = await site_geometries(area, buffer, rows, states)
    logger.info(f"Joining {len(site_shapes)} geometries to {len(rows)} result rows")
    return bind_geometries(rows, site_shapes)
