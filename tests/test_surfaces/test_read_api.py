"""
Tests for the read-only HTTP API

Health probes for the container platform and the JSON views of NITs, works,
ledger totals and certificates, through Flask's test client.
"""

import sqlite3

import pytest

from tender_lifecycle import read_api
from tender_lifecycle.read_api import app, initialize_read_api
from tests.helpers import awarded_work, ok, open_work, published_nit


@pytest.fixture
def client():
    """Flask test client"""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def initialized_api(temp_db, desk):
    """Read API serving the test desk"""
    initialize_read_api(temp_db, desk)
    yield desk
    # Reset global state after test
    read_api._db_path = None
    read_api._desk = None


# =============================================================================
# Health probes
# =============================================================================


def test_liveness(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.get_json() == {"status": "alive", "service": "tender-lifecycle"}


def test_readiness_before_initialization(client):
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_path_not_initialized"


def test_readiness_with_missing_file(client, tmp_path):
    initialize_read_api(tmp_path / "gone.db")
    try:
        response = client.get("/health/ready")
    finally:
        read_api._db_path = None

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_file_not_found"


def test_readiness_with_broken_database(client, tmp_path):
    db_path = tmp_path / "empty.db"
    sqlite3.connect(str(db_path)).close()
    initialize_read_api(db_path)
    try:
        response = client.get("/health/ready")
    finally:
        read_api._db_path = None

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_error"


def test_readiness_counts_events(client, initialized_api):
    published_nit(initialized_api)

    response = client.get("/health/ready")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ready"
    # memo claim, booking, publication
    assert body["event_count"] == 3


# =============================================================================
# Views
# =============================================================================


def test_views_need_a_desk(client):
    response = client.get("/works")

    assert response.status_code == 503
    assert response.get_json()["error"]["code"] == "DeskNotInitialized"


def test_nit_views(client, initialized_api):
    nit_id = published_nit(initialized_api)

    listing = client.get("/nits?fy=2024-25").get_json()
    detail = client.get(f"/nits/{nit_id}").get_json()

    assert [nit["nit_id"] for nit in listing["value"]] == [nit_id]
    assert detail["value"]["reference"] == "12/GP/2024"
    assert client.get("/nits?fy=24-25").status_code == 400


def test_work_views(client, initialized_api):
    work_id = open_work(initialized_api)
    ok(initialized_api.register_bid(work_id, "agency-1"))

    detail = client.get(f"/works/{work_id}").get_json()["value"]
    listing = client.get("/works?status=TechnicalBidOpening").get_json()["value"]
    summary = client.get("/works/summary").get_json()["value"]

    assert detail["tender_status"] == "TechnicalBidOpening"
    assert detail["qualification"]["outcome"] == "pending_evaluation"
    assert [w["work_id"] for w in listing] == [work_id]
    assert summary["TechnicalBidOpening"] == 1


def test_error_statuses(client, initialized_api):
    work_id = open_work(initialized_api)

    missing = client.get("/works/nope")
    bad_status = client.get("/works?status=Finished")
    not_certifiable = client.get(f"/works/{work_id}/certificate")

    assert missing.status_code == 404
    assert missing.get_json()["error"]["code"] == "WorkNotFound"
    assert bad_status.status_code == 400
    assert not_certifiable.status_code == 409
    assert not_certifiable.get_json()["error"]["code"] == "CompletionNotCertifiable"


def test_totals_with_anomaly(client, initialized_api):
    work_id, _ = awarded_work(initialized_api)
    ok(initialized_api.record_payment(work_id, "110000"))

    body = client.get(f"/works/{work_id}/totals").get_json()

    assert body["ok"] is True
    assert body["value"]["total_paid"] == "110000"
    assert body["anomalies"][0]["code"] == "OverpaymentAnomaly"
