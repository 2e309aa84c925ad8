"""Integration tests for the FastAPI application."""

import json

import pytest
from fastapi.testclient import TestClient

import ejam_api.boundaries as boundaries
from conftest import SQUARE_POLYGON
from ejam_api.boundaries import BoundaryFetchError


class TestAPIEndpoints:
    """Test service endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    def test_version_endpoint(self, client):
        response = client.get("/version")
        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "0.1.0"
        assert data["api_version"] == "v1"

    def test_static_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "EJAM API" in response.text


class TestDataEndpoint:
    """Test POST /data."""

    def test_missing_input(self, client, fake_engine):
        response = client.post("/data", json={"buffer": 1})

        assert response.status_code == 400
        assert response.json() == {"error": "You must provide valid points, a shape, or a FIPS code."}
        assert fake_engine.calls_to("ejamit") == []

    def test_missing_body(self, client):
        response = client.post("/data")

        assert response.status_code == 400
        assert response.json()["error"] == "You must provide valid points, a shape, or a FIPS code."

    @pytest.mark.parametrize("buffer", [16, "lots"])
    def test_invalid_buffer(self, client, fake_engine, buffer):
        response = client.post("/data", json={"sites": [{"lat": 33.7, "lon": -84.4}], "buffer": buffer})

        assert response.status_code == 400
        assert response.json() == {"error": "Please select a buffer of 15 miles or less."}
        assert fake_engine.calls_to("ejamit") == []

    def test_invalid_coordinates(self, client):
        response = client.post("/data", json={"sites": [{"lat": 133.7, "lon": -84.4}]})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_malformed_geojson(self, client):
        response = client.post("/data", json={"shape": "{not valid json"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid GeoJSON provided."}

    def test_sites(self, client, fake_engine):
        response = client.post("/data", json={
            "sites": [{"lat": 33.7, "lon": -84.4}, {"lat": 33.8, "lon": -84.3}],
            "buffer": 2,
        })

        assert response.status_code == 200
        rows = response.json()
        assert [row["ejam_uniq_id"] for row in rows] == [1, 2]
        assert "geometry" not in rows[0]
        assert fake_engine.calls_to("ejamit")[0]["radius"] == 2.0

    def test_sites_with_geometries(self, client):
        response = client.post("/data", json={
            "sites": [{"lat": 33.7, "lon": -84.4}, {"lat": 33.8, "lon": -84.3}],
            "buffer": 1,
            "geometries": True,
        })

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 2
        assert all(row["geometry"]["type"] == "Polygon" for row in rows)

    def test_shape_with_geometries(self, client):
        response = client.post("/data", json={"shape": json.dumps(SQUARE_POLYGON), "geometries": True})

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["geometry"] == SQUARE_POLYGON

    def test_fips_name_at_county_scale(self, client, fake_engine, monkeypatch):
        async def fake_get_geojson(url, params=None):
            code = url.split("%27")[1]
            return {"features": [{"properties": {"FIPS": code}, "geometry": SQUARE_POLYGON}]}

        monkeypatch.setattr(boundaries, "_get_geojson", fake_get_geojson)

        response = client.post("/data", json={"fips": "Delaware", "scale": "county", "geometries": True})

        assert response.status_code == 200
        rows = response.json()
        assert [row["ejam_uniq_id"] for row in rows] == ["10001", "10003", "10005"]
        assert all(row["geometry"] == SQUARE_POLYGON for row in rows)

    def test_state_with_geometries(self, client):
        response = client.post("/data", json={"fips": "06", "geometries": True})

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["geometry"]["type"] == "Polygon"

    def test_engine_error(self, client, fake_engine):
        fake_engine.ejamit_error = "No valid FIPS codes found."

        response = client.post("/data", json={"fips": "99999"})

        assert response.status_code == 400
        assert response.json() == {"error": "No valid FIPS codes found."}

    def test_error_marker_in_result(self, client, fake_engine):
        fake_engine.result = {"error": "Too many sites"}

        response = client.post("/data", json={"sites": [{"lat": 33.7, "lon": -84.4}]})

        assert response.status_code == 400
        assert response.json() == {"error": "Too many sites"}

    def test_repeated_requests_are_equal(self, client):
        body = {"sites": [{"lat": 33.7, "lon": -84.4}], "buffer": 3, "geometries": True}

        first = client.post("/data", json=body)
        second = client.post("/data", json=body)

        assert first.status_code == 200
        assert first.json() == second.json()


class TestReportEndpoint:
    """Test GET /report."""

    def test_missing_input(self, client):
        response = client.get("/report")

        assert response.status_code == 400
        assert response.text == (
            "<html><body><h3>Error</h3><p>You must provide valid coordinates, a shape, or a FIPS code.</p></body></html>"
        )

    def test_lat_without_lon(self, client):
        response = client.get("/report", params={"lat": 33.7})
        assert response.status_code == 400

    def test_non_numeric_lat(self, client):
        response = client.get("/report", params={"lat": "north", "lon": -84.4})

        assert response.status_code == 400
        assert response.text.startswith("<html><body><h3>Error</h3>")

    def test_buffer_too_large(self, client, fake_engine):
        response = client.get("/report", params={"lat": 33.7, "lon": -84.4, "buffer": 20})

        assert response.status_code == 400
        assert "Please select a buffer of 15 miles or less." in response.text
        assert fake_engine.calls_to("ejamit") == []

    def test_latlon_report(self, client, fake_engine):
        response = client.get("/report", params={"lat": 33.7, "lon": -84.4})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")

        render = fake_engine.calls_to("render_report")[0]
        assert render["shp"] is None
        assert render["sitenumber"] == 1
        assert render["return_html"] is True
        assert render["launch_browser"] is False
        assert render["submitted_upload_method"] == "latlon"
        assert render["report_title"] == "EJSCREEN Community Report"
        # default buffer
        assert fake_engine.calls_to("ejamit")[0]["radius"] == 3.0

    def test_state_report(self, client, fake_engine):
        response = client.get("/report", params={"fips": "06"})

        assert response.status_code == 200
        assert "<td>STATE_ABBR</td><td>CA</td>" in response.text

        overlay = fake_engine.calls_to("render_report")[0]["shp"]
        props = overlay["features"][0]["properties"]
        assert props["FIPS"] == "06"
        assert "GEOID" not in props
        assert "STATEFP" not in props
        assert list(props)[:5] == ["FIPS", "NAME", "STATE_ABBR", "STATE_NAME", "fipstype"]

    def test_county_report_with_failed_fetch(self, client, fake_engine, monkeypatch):
        requested = []

        async def failing_get_geojson(url, params=None):
            requested.append(url)
            raise BoundaryFetchError("service unavailable")

        monkeypatch.setattr(boundaries, "_get_geojson", failing_get_geojson)

        response = client.get("/report", params={"fips": "06075"})

        assert response.status_code == 200
        assert "FIPS%3D%2706075%27" in requested[0]
        assert "<td>FIPS</td><td>06075</td>" in response.text

        feature = fake_engine.calls_to("render_report")[0]["shp"]["features"][0]
        assert feature["properties"]["FIPS"] == "06075"
        assert feature["properties"]["STATE_ABBR"] == "CA"
        assert feature["geometry"] is None

    def test_shape_report_numbers_sites(self, client, fake_engine):
        response = client.get("/report", params={"shape": json.dumps(SQUARE_POLYGON), "buffer": 0})

        assert response.status_code == 200
        overlay = fake_engine.calls_to("render_report")[0]["shp"]
        assert overlay["features"][0]["properties"]["ejam_uniq_id"] == 1

    def test_malformed_shape(self, client):
        response = client.get("/report", params={"shape": "{not valid json"})

        assert response.status_code == 400
        assert response.text == "<html><body><h3>Error</h3><p>Invalid GeoJSON provided.</p></body></html>"

    def test_engine_error(self, client, fake_engine):
        fake_engine.ejamit_error = "FIPS code not found"

        response = client.get("/report", params={"fips": "99"})

        assert response.status_code == 400
        assert "FIPS code not found" in response.text


class TestStateBoundaryLoading:
    """Test that only state requests load the state table when startup could not."""

    @pytest.fixture()
    def engine_client(self, fake_engine, monkeypatch):
        import ejam_api.main as main

        monkeypatch.setattr(main, "state_boundaries", None)
        main.app.dependency_overrides[main.get_engine] = lambda: fake_engine
        yield TestClient(main.app)
        main.app.dependency_overrides.clear()

    def test_point_and_shape_requests_skip_state_table(self, engine_client, fake_engine):
        engine_client.post("/data", json={"sites": [{"lat": 33.7, "lon": -84.4}], "geometries": True})
        engine_client.post("/data", json={"shape": json.dumps(SQUARE_POLYGON)})
        engine_client.get("/report", params={"lat": 33.7, "lon": -84.4})

        assert fake_engine.calls_to("load_state_boundaries") == []

    def test_state_report_loads_table_once(self, engine_client, fake_engine):
        first = engine_client.get("/report", params={"fips": "06"})
        second = engine_client.get("/report", params={"fips": "10"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(fake_engine.calls_to("load_state_boundaries")) == 1
        assert fake_engine.calls_to("render_report")[0]["shp"]["features"][0]["geometry"]["type"] == "Polygon"
