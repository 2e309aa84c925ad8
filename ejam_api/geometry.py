"""Geometry utilities for UTM projection, site buffers and GeoJSON output."""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
from pyproj import CRS, Transformer
from shapely.geometry import Point, Polygon, mapping
from shapely.ops import transform

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.344
SQMETERS_PER_SQMI = METERS_PER_MILE ** 2


def get_utm_zone(longitude: float, latitude: float) -> int:
    """
    Get UTM zone for given longitude and latitude.

    Args:
        longitude: Longitude in degrees
        latitude: Latitude in degrees

    Returns:
        UTM zone number
    """
    # UTM zones are 6 degrees wide, starting at -180
    zone = int((longitude + 180) / 6) + 1

    if zone < 1:
        zone = 1
    elif zone > 60:
        zone = 60

    return zone


def get_utm_crs(longitude: float, latitude: float) -> CRS:
    """
    Get UTM CRS for given coordinates.

    Args:
        longitude: Longitude in degrees
        latitude: Latitude in degrees

    Returns:
        UTM CRS object
    """
    zone = get_utm_zone(longitude, latitude)
    hemisphere = "north" if latitude >= 0 else "south"

    return CRS.from_dict({
        "proj": "utm",
        "zone": zone,
        "ellps": "WGS84",
        "datum": "WGS84",
        "units": "m",
        "no_defs": True,
        "south": hemisphere == "south"
    })


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def sqmeters_to_sqmi(area_m2: float) -> float:
    return area_m2 / SQMETERS_PER_SQMI


def create_buffer_circle(
    center_lat: float,
    center_lon: float,
    radius_miles: float,
    resolution: int = 64
) -> Any:
    """
    Create a circular buffer around a site.

    The circle is drawn in the site's UTM zone so the radius is a true
    distance, then projected back to WGS84.

    Args:
        center_lat: Site latitude in degrees
        center_lon: Site longitude in degrees
        radius_miles: Buffer radius in miles; 0 yields the bare point
        resolution: Number of vertices on the circle

    Returns:
        Shapely Polygon (or Point for a zero radius) in EPSG:4326
    """
    if radius_miles <= 0:
        return Point(center_lon, center_lat)

    utm_crs = get_utm_crs(center_lon, center_lat)
    wgs84_crs = CRS.from_epsg(4326)

    wgs84_to_utm = Transformer.from_crs(wgs84_crs, utm_crs, always_xy=True)
    utm_to_wgs84 = Transformer.from_crs(utm_crs, wgs84_crs, always_xy=True)

    center_x, center_y = wgs84_to_utm.transform(center_lon, center_lat)
    radius_m = miles_to_meters(radius_miles)

    angles = np.linspace(0, 2 * np.pi, resolution, endpoint=False)
    xs = center_x + radius_m * np.cos(angles)
    ys = center_y + radius_m * np.sin(angles)

    circle_utm = Polygon(zip(xs, ys))
    return transform(lambda x, y: utm_to_wgs84.transform(x, y), circle_utm)


def geometry_to_geojson(geometry: Any) -> Optional[Dict[str, Any]]:
    """GeoJSON mapping for a shapely geometry; None for missing or empty ones."""
    if geometry is None or geometry.is_empty:
        return None
    return mapping(geometry)


def make_feature(properties: Dict[str, Any], geometry: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "Feature", "properties": dict(properties), "geometry": geometry}


def make_feature_collection(features: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": list(features)}
