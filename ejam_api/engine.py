"""Client for the EJAM analysis engine and its census lookup services."""

import logging
from typing import Any, Dict, List, Optional, Union

import httpx
import pandas as pd

from .config import get_settings

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Raised when the analysis engine rejects a request or cannot be reached."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _error_message(response: httpx.Response) -> str:
    """Pull the engine's own error text out of a failed response."""
    try:
        payload = response.json()
    except ValueError:
        text = " ".join(response.text.split())
        return text or f"Analysis engine returned HTTP {response.status_code}"

    if isinstance(payload, dict) and payload.get("error"):
        error = payload["error"]
        # plumber serializes scalars as length-1 arrays
        if isinstance(error, list) and error:
            error = error[0]
        return str(error)
    return f"Analysis engine returned HTTP {response.status_code}"


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


class AnalysisEngineClient:
    """Thin async client over the engine's HTTP contract.

    The engine owns every demographic computation and the report renderer;
    this client only moves requests and results across the wire.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.engine_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.engine_timeout
        self._transport = transport

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        url = self._build_url(path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=payload)
        except httpx.RequestError as e:
            logger.error(f"Request error during engine call to {url}: {e}")
            raise EngineError(f"Analysis engine unavailable: {e}")

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(f"Engine call to {url} failed with HTTP {response.status_code}: {message}")
            raise EngineError(message)

        return response

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._make_request("GET", path, params=params)
        try:
            return response.json()
        except ValueError:
            raise EngineError(f"Invalid JSON from analysis engine at {path}")

    async def _get_field(self, path: str, key: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """One field of a lookup reply; a bare array is taken as the field itself."""
        data = await self._get_json(path, params=params)
        if isinstance(data, dict):
            return data.get(key)
        if isinstance(data, list):
            return data
        raise EngineError(f"Unexpected reply from analysis engine at {path}: {data!r}")

    async def ejamit(
        self,
        sitepoints: Optional[pd.DataFrame] = None,
        shapefile: Optional[Dict[str, Any]] = None,
        fips: Optional[Union[str, List[str]]] = None,
        radius: float = 0,
    ) -> Dict[str, Any]:
        """
        Run the engine analysis for exactly one kind of site input.

        Args:
            sitepoints: Site coordinates with lat/lon columns
            shapefile: GeoJSON FeatureCollection of polygons
            fips: One census code or a list of them
            radius: Buffer radius in miles

        Returns:
            The engine's result object, untouched
        """
        payload: Dict[str, Any] = {"radius": radius}
        if sitepoints is not None:
            payload["sitepoints"] = sitepoints.to_dict(orient="records")
        if shapefile is not None:
            payload["shapefile"] = shapefile
        if fips is not None:
            payload["fips"] = [fips] if isinstance(fips, str) else list(fips)

        response = await self._make_request("POST", "ejamit", payload=payload)
        try:
            return response.json()
        except ValueError:
            raise EngineError("Invalid JSON from analysis engine")

    async def render_report(
        self,
        result: Dict[str, Any],
        sitenumber: int = 1,
        return_html: bool = True,
        launch_browser: bool = False,
        submitted_upload_method: Optional[str] = None,
        shp: Optional[Dict[str, Any]] = None,
        report_title: Optional[str] = None,
    ) -> str:
        """Render the engine's community report and return the HTML."""
        payload = {
            "result": result,
            "sitenumber": sitenumber,
            "return_html": return_html,
            "launch_browser": launch_browser,
            "submitted_upload_method": submitted_upload_method,
            "shp": shp,
            "report_title": report_title,
        }
        response = await self._make_request("POST", "ejam2report", payload=payload)
        return response.text

    async def name2fips(self, name: str) -> List[str]:
        """Codes matching a place name; empty when the engine does not know the name."""
        codes = await self._get_field("fips/name2fips", "fips", params={"name": name})
        return [str(code) for code in (codes or []) if code]

    async def counties_in_state(self, state_fips: str) -> List[str]:
        codes = await self._get_field("fips/counties", "fips", params={"fips": state_fips})
        return [str(code) for code in (codes or [])]

    async def blockgroups_in_fips(self, fips: str) -> List[str]:
        codes = await self._get_field("fips/blockgroups", "fips", params={"fips": fips})
        return [str(code) for code in (codes or [])]

    async def fips_to_name(self, fips: str) -> Optional[str]:
        return _first(await self._get_field("fips/name", "name", params={"fips": fips}))

    async def fips_to_pop(self, fips: str) -> Optional[float]:
        pop = _first(await self._get_field("fips/pop", "pop", params={"fips": fips}))
        return float(pop) if pop is not None else None

    async def blockgroup_arealand(self, fips: str) -> float:
        """Total land area in square meters of the block groups inside a code."""
        arealand = await self._get_field("fips/arealand", "arealand", params={"fips": fips})
        return float(_first(arealand) or 0.0)

    async def load_state_boundaries(self) -> Dict[str, Any]:
        """Download the engine's state boundary table as a FeatureCollection."""
        data = await self._get_json("data/states_shapefile")
        if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
            raise EngineError("State boundaries are not a GeoJSON FeatureCollection")
        return data
