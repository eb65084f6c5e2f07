"""
Read-only HTTP API for the tender desk.

Liveness/readiness probes for the container platform plus JSON views of
NITs, works, ledger totals and completion certificates for the office
dashboard. Nothing here writes; every mutation goes through the desk.

Usage:
    tender-desk serve --db tenders.db --port 8080
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, request

from tender_lifecycle.desk import TenderDesk
from tender_lifecycle.kernel.logging import get_logger
from tender_lifecycle.kernel.results import ActionResult

logger = get_logger(__name__)

app = Flask(__name__)

# Global state - set by initialize_read_api()
_db_path: Path | None = None
_desk: TenderDesk | None = None

# HTTP status per error category
_STATUS_BY_CATEGORY = {
    "validation": 400,
    "not_found": 404,
    "business_rule": 409,
    "concurrency": 409,
    "infrastructure": 503,
}


def initialize_read_api(db_path: str | Path, desk: TenderDesk | None = None) -> None:
    """
    Initialize the read API with a database path and desk.

    Args:
        db_path: Path to the SQLite tender record store
        desk: Desk serving the JSON views (probes work without one)
    """
    global _db_path, _desk
    _db_path = Path(db_path)
    _desk = desk
    logger.info("Read API initialized", db_path=str(_db_path))


def _respond(result: ActionResult) -> tuple[Any, int]:
    error = result.error
    if error is None:
        body: dict[str, Any] = {"ok": True, "value": result.value}
        if result.anomalies:
            body["anomalies"] = [anomaly.model_dump() for anomaly in result.anomalies]
        return jsonify(body), 200

    status = _STATUS_BY_CATEGORY.get(error.category, 500)
    return jsonify({"ok": False, "error": error.model_dump()}), status


def _require_desk() -> TenderDesk | None:
    if _desk is None:
        logger.error("Read API called before a desk was configured")
    return _desk


def _desk_unavailable() -> tuple[Any, int]:
    return jsonify({"ok": False, "error": {"code": "DeskNotInitialized"}}), 503


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """
    Liveness probe - the process is running.

    Returns:
        JSON response with status and 200 OK
    """
    return jsonify({"status": "alive", "service": "tender-lifecycle"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - the tender record store answers queries.

    Returns:
        200 with the event count when ready, 503 otherwise
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify({"status": "not_ready", "reason": "database_error", "error": str(e)}),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return jsonify({"status": "ready", "database": "accessible", "event_count": event_count}), 200


@app.route("/nits", methods=["GET"])
def list_nits() -> tuple[Any, int]:
    """NITs, optionally of one financial year (?fy=2024-25)"""
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.list_nits(request.args.get("fy")))


@app.route("/nits/<nit_id>", methods=["GET"])
def get_nit(nit_id: str) -> tuple[Any, int]:
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.get_nit(nit_id))


@app.route("/works", methods=["GET"])
def list_works() -> tuple[Any, int]:
    """Works, optionally filtered by ?status= and ?nit="""
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.list_works(request.args.get("status"), nit_id=request.args.get("nit")))


@app.route("/works/summary", methods=["GET"])
def tender_status_summary() -> tuple[Any, int]:
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.tender_status_summary())


@app.route("/works/<work_id>", methods=["GET"])
def get_work(work_id: str) -> tuple[Any, int]:
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.get_work(work_id))


@app.route("/works/<work_id>/totals", methods=["GET"])
def work_totals(work_id: str) -> tuple[Any, int]:
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.compute_totals(work_id))


@app.route("/works/<work_id>/certificate", methods=["GET"])
def work_certificate(work_id: str) -> tuple[Any, int]:
    desk = _require_desk()
    if desk is None:
        return _desk_unavailable()
    return _respond(desk.completion_certificate(work_id))
