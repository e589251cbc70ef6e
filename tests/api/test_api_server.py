"""
API Adapter Tests

DTO shapes and the error mapping of the HTTP adapter.
"""

import pytest
from decimal import Decimal

from fastapi.testclient import TestClient

from mwledger.api.mapper import format_value
from mwledger.api.server import create_app
from mwledger.contracts.base import CategoryError, StorageError
from mwledger.engine import SeriesLedger

from ..fixtures import T1, T2, arrivals, make_ledger

BASE = "/api/v1/categories/consumption"

SCENARIO = {
    "entries": [
        {"value": "1.25", "instant": "2024-01-01T06:00:00Z"},
        {"value": None, "instant": "2024-01-01T06:15:00Z"},
        {"value": 1.3, "instant": "2024-01-01T06:30:00Z"},
    ]
}


@pytest.fixture
def client():
    return TestClient(create_app(make_ledger([T1, T2, *arrivals(3, start=T2)])))


def points_by_instant(body):
    return {p["instant"]: p["value"] for p in body["points"]}


class TestFormatValue:

    @pytest.mark.parametrize("value,expected", [
        (Decimal("0.00"), "0.00"),
        (Decimal("1.3"), "1.30"),
        (Decimal("7"), "7.00"),
        (Decimal("1.125"), "1.125"),
        (Decimal("1E+2"), "100.00"),
    ])
    def test_at_least_two_decimals(self, value, expected):
        assert format_value(value) == expected


class TestIngestion:

    def test_append_returns_receipt(self, client):
        response = client.post(f"{BASE}/events", json=SCENARIO)
        assert response.status_code == 201
        assert response.json() == {"event_id": 1, "arrival_timestamp": "2024-01-01T08:00:00Z"}

    def test_negative_value_is_422(self, client):
        response = client.post(f"{BASE}/events", json={
            "entries": [{"value": "-1", "instant": "2024-01-01T06:00:00Z"}]
        })
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "NEGATIVE_VALUE"

    def test_misaligned_instant_is_422_and_nothing_stored(self, client):
        response = client.post(f"{BASE}/events", json={
            "entries": [
                {"value": "1", "instant": "2024-01-01T06:00:00Z"},
                {"value": "1", "instant": "2024-01-01T06:05:00Z"},
            ]
        })
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "MISALIGNED_INSTANT"
        assert client.get("/health").json()["head_event_id"] == 0

    def test_missing_entries_is_422(self, client):
        assert client.post(f"{BASE}/events", json={}).status_code == 422

    @pytest.mark.parametrize("flag", [True, False])
    def test_boolean_value_is_422(self, client, flag):
        response = client.post(f"{BASE}/events", json={
            "entries": [{"value": flag, "instant": "2024-01-01T06:00:00Z"}]
        })
        assert response.status_code == 422
        assert client.get("/health").json()["event_count"] == 0

    def test_json_numbers_are_accepted(self, client):
        response = client.post(f"{BASE}/events", json={
            "entries": [
                {"value": 3, "instant": "2024-01-01T06:00:00Z"},
                {"value": 0.5, "instant": "2024-01-01T06:15:00Z"},
            ]
        })
        assert response.status_code == 201
        values = points_by_instant(client.get(f"{BASE}/series/2024-01-01").json())
        assert values["2024-01-01T06:00:00Z"] == "3.00"
        assert values["2024-01-01T06:15:00Z"] == "0.50"


class FailingLedger(SeriesLedger):
    def __init__(self, error):
        super().__init__()
        self._error = error

    def append(self, category, entries):
        raise self._error


class TestErrorMapping:

    def test_category_error_is_400(self):
        client = TestClient(create_app(FailingLedger(CategoryError("bad category"))))
        response = client.post(f"{BASE}/events", json=SCENARIO)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_CATEGORY"

    def test_storage_error_is_503(self):
        client = TestClient(create_app(FailingLedger(StorageError("disk full"))))
        response = client.post(f"{BASE}/events", json=SCENARIO)
        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "STORAGE_FAILURE"

    def test_bad_date_is_422(self, client):
        response = client.get(f"{BASE}/series/yesterday")
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_QUERY"

    def test_bad_cutoff_is_422(self, client):
        response = client.get(f"{BASE}/series/2024-01-01", params={"cutoff": "soon"})
        assert response.status_code == 422


class TestQueries:

    def test_series_scenario(self, client):
        client.post(f"{BASE}/events", json=SCENARIO)
        client.post(f"{BASE}/events", json={
            "entries": [{"value": "2.00", "instant": "2024-01-01T06:00:00Z"}]
        })

        at_t1 = client.get(f"{BASE}/series/2024-01-01", params={"cutoff": "2024-01-01T08:00:00Z"})
        assert at_t1.status_code == 200
        body = at_t1.json()
        assert body["cutoff"] == "2024-01-01T08:00:00Z"
        assert len(body["points"]) == 96
        values = points_by_instant(body)
        assert values["2024-01-01T06:00:00Z"] == "1.25"
        assert values["2024-01-01T06:15:00Z"] == "0.00"
        assert values["2024-01-01T06:30:00Z"] == "1.30"
        assert values["2024-01-01T00:00:00Z"] == "0.00"

        latest = points_by_instant(client.get(f"{BASE}/series/2024-01-01").json())
        assert latest["2024-01-01T06:00:00Z"] == "2.00"

    def test_unknown_category_is_all_zero(self, client):
        body = client.get("/api/v1/categories/unknown/series/2024-01-01").json()
        assert body["cutoff"] is None
        assert {p["value"] for p in body["points"]} == {"0.00"}

    def test_summary(self, client):
        client.post(f"{BASE}/events", json=SCENARIO)
        body = client.get(f"{BASE}/series/2024-01-01/summary").json()
        assert body["total"] == "2.55"
        assert body["peak"] == "1.30"
        assert body["count"] == 96
        assert body["reported"] == 2

    def test_revisions(self, client):
        client.post(f"{BASE}/events", json=SCENARIO)
        client.post(f"{BASE}/events", json={
            "entries": [{"value": "2", "instant": "2024-01-01T06:00:00Z"}]
        })
        body = client.get(f"{BASE}/revisions", params={"instant": "2024-01-01T06:00:00Z"}).json()
        assert [r["value"] for r in body["revisions"]] == ["1.25", "2.00"]
        assert [r["event_id"] for r in body["revisions"]] == [1, 2]

    def test_categories(self, client):
        client.post(f"{BASE}/events", json=SCENARIO)
        assert client.get("/api/v1/categories").json() == {
            "categories": [{"category": "consumption", "dates": ["2024-01-01"]}]
        }

    def test_health(self, client):
        client.post(f"{BASE}/events", json=SCENARIO)
        assert client.get("/health").json() == {
            "status": "online", "head_event_id": 1, "event_count": 1
        }


class TestLifespan:

    def test_ledger_built_from_environment(self, monkeypatch, storage_dir):
        monkeypatch.setenv("MWL_STORAGE_BACKEND", "file")
        monkeypatch.setenv("MWL_STORAGE_DIR", storage_dir)

        with TestClient(create_app()) as client:
            assert client.post(f"{BASE}/events", json=SCENARIO).status_code == 201
            assert client.get("/health").json()["event_count"] == 1

        # A fresh app hydrates from the same directory
        with TestClient(create_app()) as client:
            assert client.get("/health").json()["head_event_id"] == 1

    def test_not_initialized_is_503(self):
        client = TestClient(create_app())
        assert client.get("/health").status_code == 503
