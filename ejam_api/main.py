"""Main FastAPI application."""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import pandas as pd
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from .boundaries import StateBoundaries
from .config import get_settings
from .dispatch import ValidationError, dispatch, validate_buffer
from .engine import AnalysisEngineClient, EngineError
from .output import GeometryMismatchError, data_payload, result_error
from .report import draws_state, error_html, render_report
from .schemas import DataRequest, ErrorResponse, HealthResponse, VersionResponse, area_from_inputs

MISSING_DATA_MESSAGE = "You must provide valid points, a shape, or a FIPS code."
MISSING_REPORT_MESSAGE = "You must provide valid coordinates, a shape, or a FIPS code."
INTERNAL_ERROR_MESSAGE = "Internal server error."

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="EJAM API",
    description="JSON data and HTML community reports from the EJAM analysis engine",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global engine client and reference data, set once at startup
engine_client = None
state_boundaries = None


def get_engine() -> AnalysisEngineClient:
    """Get or create the analysis engine client."""
    global engine_client
    if engine_client is None:
        engine_client = AnalysisEngineClient()
    return engine_client


async def _load_state_boundaries(engine: AnalysisEngineClient) -> Optional[StateBoundaries]:
    try:
        boundaries = StateBoundaries.from_feature_collection(await engine.load_state_boundaries())
    except EngineError as e:
        logger.warning(f"State boundaries unavailable, state reports will map without outlines: {e}")
        return None
    logger.info(f"Loaded {len(boundaries)} state boundaries")
    return boundaries


StatesLoader = Callable[[], Awaitable[Optional[StateBoundaries]]]


def get_state_boundaries(engine: AnalysisEngineClient = Depends(get_engine)) -> StatesLoader:
    """
    Loader for the state boundary table.

    Only requests that draw a state call it, so a failed startup load is
    retried there and nowhere else.
    """
    async def load() -> Optional[StateBoundaries]:
        global state_boundaries
        if state_boundaries is None:
            state_boundaries = await _load_state_boundaries(engine)
        return state_boundaries

    return load


@app.on_event("startup")
async def startup_event():
    """Initialize the engine client and state boundaries on startup."""
    global engine_client, state_boundaries
    engine_client = AnalysisEngineClient()
    logger.info(f"Analysis engine client initialized for {engine_client.base_url}")
    state_boundaries = await _load_state_boundaries(engine_client)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed parameters as 400s in the endpoint's own error format."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    message = "Invalid request parameters. " + "; ".join(problems)

    if request.url.path.startswith("/report"):
        return HTMLResponse(content=error_html(message), status_code=400)
    return JSONResponse(status_code=400, content={"error": message})


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(timestamp=datetime.now(timezone.utc).isoformat())


@app.get("/version", response_model=VersionResponse)
async def get_version():
    """Version information endpoint."""
    return VersionResponse(
        version="0.1.0",
        api_version="v1"
    )


@app.post("/data", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def get_data(
    request: Optional[DataRequest] = None,
    engine: AnalysisEngineClient = Depends(get_engine),
    load_states: StatesLoader = Depends(get_state_boundaries),
):
    """
    Return EJAM analysis results as JSON.

    Args:
        request: Sites, a shape or a FIPS code, plus buffer and output options

    Returns:
        Per-site result rows, with geometries when requested
    """
    request = request or DataRequest()
    area = area_from_inputs(request.sites, request.shape, request.fips)
    if area is None:
        return JSONResponse(status_code=400, content={"error": MISSING_DATA_MESSAGE})

    try:
        result = await dispatch(
            engine,
            area=area.value,
            method=area.method,
            buffer=request.buffer,
            scale=request.scale,
            endpoint="data",
        )

        if result_error(result) is not None:
            return JSONResponse(status_code=400, content=result)

        # state codes in the result need the state table for their geometry
        states = await load_states() if request.geometries and area.method == "FIPS" else None
        return await data_payload(
            result,
            area,
            validate_buffer(request.buffer),
            request.geometries,
            states,
        )

    except (ValidationError, EngineError, GeometryMismatchError) as e:
        logger.info(f"Rejected data request ({area.method}): {e.message}")
        return JSONResponse(status_code=400, content={"error": e.message})
    except Exception:
        logger.exception("Error in get_data")
        return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


@app.get("/report", response_class=HTMLResponse)
async def get_report(
    lat: Optional[float] = Query(None, description="Latitude of the site"),
    lon: Optional[float] = Query(None, description="Longitude of the site"),
    shape: Optional[str] = Query(None, description="GeoJSON of the area of interest"),
    fips: Optional[str] = Query(None, description="Census FIPS code"),
    buffer: Optional[str] = Query(None, description="Buffer radius in miles"),
    engine: AnalysisEngineClient = Depends(get_engine),
    load_states: StatesLoader = Depends(get_state_boundaries),
):
    """Generate an EJAM community report for one site as HTML."""
    sites = pd.DataFrame({"lat": [lat], "lon": [lon]}) if lat is not None and lon is not None else None
    area = area_from_inputs(sites, shape, fips)
    if area is None:
        return HTMLResponse(content=error_html(MISSING_REPORT_MESSAGE), status_code=400)

    if buffer is None:
        buffer = settings.default_report_buffer

    try:
        result = await dispatch(
            engine,
            area=area.value,
            method=area.method,
            buffer=buffer,
            endpoint="report",
        )

        message = result_error(result)
        if message is not None:
            return HTMLResponse(content=error_html(message), status_code=400)

        states = await load_states() if draws_state(area.method, area.value) else None
        html = await render_report(
            engine,
            result,
            method=area.method,
            area=area.value,
            report_title=settings.report_title,
            states=states,
        )
        return HTMLResponse(content=html)

    except (ValidationError, EngineError) as e:
        logger.info(f"Rejected report request ({area.method}): {e.message}")
        return HTMLResponse(content=error_html(e.message), status_code=400)
    except Exception:
        logger.exception("Error in get_report")
        return HTMLResponse(content=error_html(INTERNAL_ERROR_MESSAGE), status_code=500)


# Static assets at the root, after the API routes so they take precedence
app.mount("/", StaticFiles(directory=settings.assets_dir, html=True, check_dir=False), name="assets")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
