"""Pydantic schemas for request/response models and the area each request analyzes."""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Union

import pandas as pd
from pydantic import BaseModel, Field


class SitePoint(BaseModel):
    """One site location."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lon: float = Field(..., ge=-180, le=180, description="Longitude")


class DataRequest(BaseModel):
    """Request schema for /data endpoint."""

    # Exactly one of sites, shape or fips is expected
    sites: Optional[List[SitePoint]] = Field(None, description="Site coordinates")
    shape: Optional[Union[str, Dict[str, Any]]] = Field(None, description="GeoJSON text or object")
    fips: Optional[Union[str, int]] = Field(None, description="Census FIPS code or place name")

    buffer: Any = Field(0, description="Buffer radius in miles (15 or less)")
    geometries: bool = Field(False, description="Include site geometries in the output")
    scale: Optional[str] = Field(None, description="Census geography to return results at (blockgroup or county)")


class ErrorResponse(BaseModel):
    """Error payload for the data endpoint."""
    error: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: str


class VersionResponse(BaseModel):
    """Version information response."""
    version: str
    api_version: str = "v1"


@dataclass(frozen=True, eq=False)
class Points:
    """Site coordinates, one row per site."""
    sites: pd.DataFrame
    method: ClassVar[str] = "latlon"

    @property
    def value(self) -> pd.DataFrame:
        return self.sites


@dataclass(frozen=True)
class Shape:
    """Submitted polygon(s) as GeoJSON."""
    geojson: Any
    method: ClassVar[str] = "SHP"

    @property
    def value(self) -> Any:
        return self.geojson


@dataclass(frozen=True)
class GeographyCode:
    """A census code or place name."""
    code: str
    method: ClassVar[str] = "FIPS"

    @property
    def value(self) -> str:
        return self.code


AreaSpecification = Union[Points, Shape, GeographyCode]


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def sites_frame(sites: List[Any]) -> pd.DataFrame:
    """Site table with lat/lon columns from SitePoint models or plain mappings."""
    rows = []
    for site in sites:
        if isinstance(site, BaseModel):
            site = site.model_dump()
        rows.append({"lat": site["lat"], "lon": site["lon"]})
    return pd.DataFrame(rows, columns=["lat", "lon"])


def area_from_inputs(
    sites: Optional[Union[List[Any], pd.DataFrame]] = None,
    shape: Any = None,
    fips: Any = None,
) -> Optional[AreaSpecification]:
    """
    Build the area to analyze from whichever input was supplied.

    Sites win over a shape, and a shape over a code, when more than one
    is given. Returns None when nothing usable was supplied.
    """
    if sites is not None:
        frame = sites if isinstance(sites, pd.DataFrame) else sites_frame(sites)
        return Points(frame)
    if _present(shape):
        return Shape(shape)
    if _present(fips):
        return GeographyCode(str(fips).strip())
    return None
