import json

import pytest
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from app.area_jobs.tracker import InMemoryAreaResultStore
from app.city_service import service as service_module
from app.city_service.errors import (
    AreaResultConflictError,
    CityNotFoundError,
    CityPairNotFoundError,
    GeoServiceError,
)
from app.city_service.service import GeoService
from app.dataset.store import CityStore
from app.main import create_app
from app.models.city import City

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}

CITIES = [
    City(guid="origin", name="Origin", latitude=0.0, longitude=0.0, tags=["hub", "port"], isActive=True),
    City(guid="north", name="North", latitude=1.0, longitude=0.0, tags=["hub"], isActive=False),
    City(guid="east", latitude=0.0, longitude=2.0, tags=["port"], isActive=True),
    City(guid="far", name="Far", latitude=45.0, longitude=90.0, tags=["hub"], isActive=True),
]


@pytest.fixture
def service():
    return GeoService(
        CityStore(CITIES), InMemoryAreaResultStore(), "http://testserver"
    )


@pytest.fixture
def client(service):
    return TestClient(create_app(service, auth_token=TOKEN))


@pytest.mark.parametrize(
    "path",
    [
        "/cities-by-tag?tag=hub&isActive=true",
        "/distance?from=origin&to=north",
        "/area?from=origin&distance=10",
        "/area-result/anything",
        "/all-cities",
        "/health",
        "/does-not-exist",
    ],
)
@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": TOKEN},
        {"Authorization": f"Bearer {TOKEN} extra"},
    ],
)
def test_requests_without_valid_token_are_rejected(client, path, headers):
    response = client.get(path, headers=headers)
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_unauthorized_area_request_creates_no_job(client, service, monkeypatch):
    submitted = []
    monkeypatch.setattr(service, "submit_area_job", lambda guid: submitted.append(guid))
    response = client.get("/area", params={"from": "origin", "distance": 500})
    assert response.status_code == 401
    assert submitted == []


def test_cities_by_tag(client):
    response = client.get(
        "/cities-by-tag", params={"tag": "hub", "isActive": "true"}, headers=AUTH
    )
    assert response.status_code == 200
    assert [c["guid"] for c in response.json()["cities"]] == ["origin", "far"]


@pytest.mark.parametrize("is_active", [None, "false", "True", "1"])
def test_cities_by_tag_non_true_is_inactive(client, is_active):
    params = {"tag": "hub"}
    if is_active is not None:
        params["isActive"] = is_active
    response = client.get("/cities-by-tag", params=params, headers=AUTH)
    assert response.status_code == 200
    assert [c["guid"] for c in response.json()["cities"]] == ["north"]


def test_cities_by_tag_without_match(client):
    response = client.get(
        "/cities-by-tag", params={"tag": "desert", "isActive": "true"}, headers=AUTH
    )
    assert response.status_code == 200
    assert response.json() == {"cities": []}


def test_cities_by_tag_omits_fields_missing_from_dataset(client):
    response = client.get(
        "/cities-by-tag", params={"tag": "port", "isActive": "true"}, headers=AUTH
    )
    assert response.json()["cities"][1] == {
        "guid": "east",
        "latitude": 0.0,
        "longitude": 2.0,
        "tags": ["port"],
        "isActive": True,
    }


def test_cities_by_tag_requires_tag(client):
    response = client.get("/cities-by-tag", headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"] == "Bad Request"


def test_distance(client):
    response = client.get("/distance", params={"from": "origin", "to": "north"}, headers=AUTH)
    assert response.status_code == 200
    data = response.json()
    assert data["from"]["guid"] == "origin"
    assert data["to"]["guid"] == "north"
    assert data["unit"] == "km"
    assert data["distance"] == pytest.approx(111.19, abs=0.01)


@pytest.mark.parametrize("pair", [("missing", "north"), ("origin", "missing")])
def test_distance_unknown_city(client, pair):
    response = client.get(
        "/distance", params={"from": pair[0], "to": pair[1]}, headers=AUTH
    )
    assert response.status_code == 400
    assert response.json() == {"error": "City not found!"}


def test_distance_missing_parameter(client):
    response = client.get("/distance", params={"from": "origin"}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"] == "Bad Request"


def test_area_unknown_city(client):
    response = client.get("/area", params={"from": "missing", "distance": 10}, headers=AUTH)
    assert response.status_code == 404
    assert response.json() == {"error": "City not found"}


@pytest.mark.parametrize("distance", ["far", "-1"])
def test_area_invalid_distance(client, distance):
    response = client.get(
        "/area", params={"from": "origin", "distance": distance}, headers=AUTH
    )
    assert response.status_code == 400


def test_area_submission_and_polling(client):
    response = client.get("/area", params={"from": "origin", "distance": 250}, headers=AUTH)
    assert response.status_code == 202
    results_url = response.json()["resultsUrl"]
    assert results_url.startswith("http://testserver/area-result/")

    # TestClient runs background tasks before returning the response
    result = client.get(results_url, headers=AUTH)
    assert result.status_code == 200
    assert [c["guid"] for c in result.json()["cities"]] == ["north", "east"]


def test_area_boundary_is_inclusive(client):
    response = client.get(
        "/area", params={"from": "origin", "distance": 111.19}, headers=AUTH
    )
    result = client.get(response.json()["resultsUrl"], headers=AUTH)
    assert [c["guid"] for c in result.json()["cities"]] == ["north"]


def test_area_with_no_neighbours_returns_empty_list(client):
    response = client.get("/area", params={"from": "origin", "distance": 0}, headers=AUTH)
    result = client.get(response.json()["resultsUrl"], headers=AUTH)
    assert result.status_code == 200
    assert result.json() == {"cities": []}


def test_concurrent_area_jobs_do_not_collide(client):
    near = client.get("/area", params={"from": "origin", "distance": 150}, headers=AUTH)
    wide = client.get("/area", params={"from": "origin", "distance": 500}, headers=AUTH)
    assert near.json()["resultsUrl"] != wide.json()["resultsUrl"]
    near_result = client.get(near.json()["resultsUrl"], headers=AUTH).json()
    wide_result = client.get(wide.json()["resultsUrl"], headers=AUTH).json()
    assert [c["guid"] for c in near_result["cities"]] == ["north"]
    assert [c["guid"] for c in wide_result["cities"]] == ["north", "east"]


def test_area_result_pending(client, service, monkeypatch):
    monkeypatch.setattr(service_module, "new_job_id", lambda: "job-1")
    monkeypatch.setattr(service, "compute_area", lambda job_id, origin, radius_km: None)
    response = client.get("/area", params={"from": "origin", "distance": 250}, headers=AUTH)
    assert response.json() == {"resultsUrl": "http://testserver/area-result/job-1"}

    result = client.get("/area-result/job-1", headers=AUTH)
    assert result.status_code == 202
    assert result.json() == {"status": "Processing"}


def test_area_result_unknown_job(client):
    response = client.get("/area-result/unknown", headers=AUTH)
    assert response.status_code == 202
    assert response.json() == {"status": "Processing"}


def test_all_cities_export(client, service):
    response = client.get("/all-cities", headers=AUTH)
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    assert (
        response.headers["content-disposition"]
        == "attachment; filename=all-cities.json"
    )
    assert response.text == service.export_json()
    assert [c["guid"] for c in json.loads(response.text)] == [
        "origin",
        "north",
        "east",
        "far",
    ]
    assert response.text == client.get("/all-cities", headers=AUTH).text


def test_health(client):
    response = client.get("/health", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "cities": 4,
        "dependencies": {"dataset": "available", "area_results": "available"},
    }


def test_health_with_empty_dataset():
    service = GeoService(CityStore([]), InMemoryAreaResultStore(), "http://testserver")
    client = TestClient(create_app(service, auth_token=TOKEN))
    response = client.get("/health", headers=AUTH)
    assert response.json()["dependencies"]["dataset"] == "not_available"


def test_metrics(client):
    client.get("/area-result/unknown", headers=AUTH)
    response = client.get("/metrics", headers=AUTH)
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "area_jobs_submitted_total" in response.text


def test_request_id_is_echoed(client):
    response = client.get(
        "/area-result/unknown", headers={**AUTH, "x-request-id": "req-123"}
    )
    assert response.headers["x-request-id"] == "req-123"


def test_unexpected_error_returns_500(service, monkeypatch):
    client = TestClient(create_app(service, auth_token=TOKEN), raise_server_exceptions=False)

    def boom(tag, is_active):
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "cities_by_tag", boom)
    response = client.get("/cities-by-tag", params={"tag": "hub"}, headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_service_error_returns_500(client, service, monkeypatch):
    def conflict(tag, is_active):
        raise AreaResultConflictError("job-1")

    monkeypatch.setattr(service, "cities_by_tag", conflict)
    response = client.get("/cities-by-tag", params={"tag": "hub"}, headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_exception_handlers_are_registered_per_app(service):
    application = create_app(service, auth_token=TOKEN)
    assert {
        CityPairNotFoundError,
        CityNotFoundError,
        RequestValidationError,
        GeoServiceError,
        Exception,
    } <= set(application.exception_handlers)
