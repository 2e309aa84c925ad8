"""Environment-driven settings for the EJAM API."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

DEFAULT_ASSETS_DIR = str(Path(__file__).resolve().parents[1] / "assets")
DEFAULT_ENGINE_URL = "http://localhost:8081"
DEFAULT_COUNTY_BOUNDARIES_URL = (
    "https://services.arcgis.com/P3ePLMYs2RVChkJx/ArcGIS/rest/services/"
    "USA_Boundaries_2022/FeatureServer/2/query"
)
DEFAULT_TIGERWEB_BASE_URL = (
    "https://tigerweb.geo.census.gov/arcgis/rest/services/TIGERweb/tigerWMS_Current/MapServer"
)


@dataclass(frozen=True)
class Settings:
    engine_url: str = DEFAULT_ENGINE_URL
    engine_timeout: Optional[float] = None
    county_boundaries_url: str = DEFAULT_COUNTY_BOUNDARIES_URL
    tigerweb_base_url: str = DEFAULT_TIGERWEB_BASE_URL
    assets_dir: str = DEFAULT_ASSETS_DIR
    cors_origins: tuple = ("*",)
    log_level: str = "INFO"
    report_title: str = "EJSCREEN Community Report"
    default_report_buffer: float = 3.0


def _parse_origins(raw: str) -> List[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    """Empty, "none" or non-positive values mean no timeout."""
    if raw is None or raw.strip().lower() in ("", "none"):
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


@lru_cache()
def get_settings() -> Settings:
    """Read settings from the environment once per process."""
    return Settings(
        engine_url=os.getenv("EJAM_ENGINE_URL", DEFAULT_ENGINE_URL).rstrip("/"),
        engine_timeout=_parse_timeout(os.getenv("EJAM_ENGINE_TIMEOUT")),
        county_boundaries_url=os.getenv("COUNTY_BOUNDARIES_URL", DEFAULT_COUNTY_BOUNDARIES_URL),
        tigerweb_base_url=os.getenv("TIGERWEB_BASE_URL", DEFAULT_TIGERWEB_BASE_URL).rstrip("/"),
        assets_dir=os.getenv("ASSETS_DIR", DEFAULT_ASSETS_DIR),
        cors_origins=tuple(_parse_origins(os.getenv("CORS_ORIGINS", "*"))),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        report_title=os.getenv("REPORT_TITLE", "EJSCREEN Community Report"),
    )
