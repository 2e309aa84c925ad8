"""Shared fixtures: an in-memory analysis engine and a wired-up test client."""

import copy

import pytest
from fastapi.testclient import TestClient

from ejam_api.boundaries import StateBoundaries
from ejam_api.engine import EngineError

CALIFORNIA = {
    "type": "Feature",
    "properties": {
        "STATEFP": "06",
        "STATENS": "01779778",
        "AFFGEOID": "0400000US06",
        "GEOID": "06",
        "STUSPS": "CA",
        "NAME": "California",
        "LSAD": "00",
        "ALAND": 403673617862,
        "AWATER": 20291712025,
    },
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[-124.4, 32.5], [-114.1, 32.5], [-114.1, 42.0], [-124.4, 42.0], [-124.4, 32.5]]],
    },
}

DELAWARE = {
    "type": "Feature",
    "properties": {"GEOID": "10", "NAME": "Delaware"},
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[-75.8, 38.4], [-75.0, 38.4], [-75.0, 39.8], [-75.8, 39.8], [-75.8, 38.4]]],
    },
}

SQUARE_POLYGON = {
    "type": "Polygon",
    "coordinates": [[[-84.40, 33.74], [-84.38, 33.74], [-84.38, 33.76], [-84.40, 33.76], [-84.40, 33.74]]],
}

DELAWARE_COUNTIES = ["10001", "10003", "10005"]


class FakeEngine:
    """Stands in for the analysis engine; records every call it receives."""

    def __init__(self):
        self.calls = []
        self.result = None
        self.ejamit_error = None
        self.failing_lookups = set()
        self.names = {"06075": "San Francisco County", "10001": "Kent County"}
        self.pops = {"06": 39356104.0, "06075": 836321.0, "10": 1003384.0}
        # square meters
        self.arealand = {"06": 403673617862.0, "06075": 121485107.0}

    def _record(self, call, **kwargs):
        self.calls.append((call, kwargs))

    def calls_to(self, call):
        return [kwargs for name, kwargs in self.calls if name == call]

    def _check(self, name):
        if name in self.failing_lookups:
            raise EngineError(f"{name} lookup failed")

    async def ejamit(self, sitepoints=None, shapefile=None, fips=None, radius=0):
        self._record("ejamit", sitepoints=sitepoints, shapefile=shapefile, fips=fips, radius=radius)
        if self.ejamit_error:
            raise EngineError(self.ejamit_error)
        if self.result is not None:
            return copy.deepcopy(self.result)

        if sitepoints is not None:
            ids = list(range(1, len(sitepoints) + 1))
        elif shapefile is not None:
            ids = list(range(1, len(shapefile["features"]) + 1))
        else:
            ids = [fips] if isinstance(fips, str) else list(fips)
        rows = [{"ejam_uniq_id": site_id, "pop": 1000 * (n + 1), "radius.miles": radius} for n, site_id in enumerate(ids)]
        return {"results_bysite": rows, "results_overall": {"pop": sum(row["pop"] for row in rows)}}

    async def render_report(self, result, sitenumber=1, return_html=True, launch_browser=False,
                            submitted_upload_method=None, shp=None, report_title=None):
        self._record(
            "render_report",
            result=result,
            sitenumber=sitenumber,
            return_html=return_html,
            launch_browser=launch_browser,
            submitted_upload_method=submitted_upload_method,
            shp=shp,
            report_title=report_title,
        )
        cells = ""
        if shp is not None:
            for feature in shp["features"]:
                for key, value in feature["properties"].items():
                    cells += f"<tr><td>{key}</td><td>{value}</td></tr>"
        return f"<html><body><h1>{report_title}</h1><p>{submitted_upload_method}</p><table>{cells}</table></body></html>"

    async def name2fips(self, name):
        self._record("name2fips", name=name)
        return {"san francisco county, ca": ["6075"]}.get(name.lower(), [])

    async def counties_in_state(self, state_fips):
        self._record("counties_in_state", state_fips=state_fips)
        return {"10": list(DELAWARE_COUNTIES), "06": ["06001", "06075"]}.get(state_fips, [])

    async def blockgroups_in_fips(self, fips):
        self._record("blockgroups_in_fips", fips=fips)
        return [f"{fips}0001001", f"{fips}0001002"] if len(fips) == 5 else []

    async def fips_to_name(self, fips):
        self._check("fips_to_name")
        return self.names.get(fips)

    async def fips_to_pop(self, fips):
        self._check("fips_to_pop")
        return self.pops.get(fips)

    async def blockgroup_arealand(self, fips):
        self._check("blockgroup_arealand")
        return self.arealand.get(fips, 0.0)

    async def load_state_boundaries(self):
        self._record("load_state_boundaries")
        return {"type": "FeatureCollection", "features": [copy.deepcopy(CALIFORNIA), copy.deepcopy(DELAWARE)]}


@pytest.fixture()
def fake_engine():
    return FakeEngine()


@pytest.fixture()
def states():
    return StateBoundaries([copy.deepcopy(CALIFORNIA), copy.deepcopy(DELAWARE)])


@pytest.fixture()
def client(fake_engine, states):
    """TestClient with the engine and state boundaries replaced by fakes."""
    from ejam_api.main import app, get_engine, get_state_boundaries

    async def load_states():
        return states

    app.dependency_overrides[get_engine] = lambda: fake_engine
    app.dependency_overrides[get_state_boundaries] = lambda: load_states
    yield TestClient(app)
    app.dependency_overrides.clear()
