"""Flask application exposing the booking ledger as a small JSON API."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from flask import Flask, abort, jsonify, request

from kattepension.ledger.records import parse_date
from kattepension.ledger.storage import SQLiteStore
from kattepension.ledger.system import KENNEL_ID, BookingLedger, ValidationError

logger = logging.getLogger(__name__)

MAX_CAPACITY_SPAN_DAYS = 366


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object")
    return payload


def _found(record: dict | None) -> Any:
    if record is None:
        abort(404)
    return jsonify(record)


def create_app(database_path: str | None = None) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.from_mapping(
        KENNEL_ID=KENNEL_ID,
        DATABASE_PATH="kattepension.db",
    )
    app.config.from_prefixed_env("KATTEPENSION")
    if database_path is not None:
        app.config["DATABASE_PATH"] = database_path

    store = SQLiteStore(app.config["DATABASE_PATH"])
    ledger = BookingLedger(store)
    app.extensions["ledger"] = ledger
    kennel_id = app.config["KENNEL_ID"]
    logger.info(
        "Booking ledger for %s at %s (schema v%d)",
        kennel_id,
        app.config["DATABASE_PATH"],
        store.schema_version,
    )

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError) -> Any:
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(404)
    def handle_not_found(exc: Exception) -> Any:
        return jsonify({"error": "Not found"}), 404

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    @app.get("/api/bookings")
    def list_bookings() -> Any:
        bookings = ledger.list_bookings_for_kennel(kennel_id)
        status = request.args.get("status")
        if status:
            bookings = [booking for booking in bookings if booking["status"] == status]
        return jsonify(bookings)

    @app.post("/api/bookings")
    def create_booking() -> Any:
        return jsonify(ledger.create_booking(kennel_id, _json_body())), 201

    @app.post("/api/booking-requests")
    def create_booking_request() -> Any:
        return jsonify(ledger.create_booking_request(_json_body(), kennel_id)), 201

    @app.get("/api/bookings/<booking_id>")
    def get_booking(booking_id: str) -> Any:
        return _found(ledger.get_booking(booking_id))

    @app.patch("/api/bookings/<booking_id>")
    def update_booking(booking_id: str) -> Any:
        if ledger.get_booking(booking_id) is None:
            abort(404)
        return jsonify(ledger.update_booking({**_json_body(), "id": booking_id}))

    @app.post("/api/bookings/<booking_id>/accept")
    def accept_booking(booking_id: str) -> Any:
        return _found(ledger.accept_booking(booking_id))

    @app.post("/api/bookings/<booking_id>/cancel")
    def cancel_booking(booking_id: str) -> Any:
        return _found(ledger.cancel_booking(booking_id))

    @app.post("/api/bookings/<booking_id>/status")
    def set_booking_status(booking_id: str) -> Any:
        status = _json_body().get("status")
        return _found(ledger.set_booking_status(booking_id, status))

    @app.get("/api/bookings/<booking_id>/capacity-check")
    def capacity_check(booking_id: str) -> Any:
        booking = ledger.get_booking(booking_id)
        if booking is None:
            abort(404)
        return jsonify(
            {
                "booking_id": booking_id,
                "has_capacity": ledger.has_capacity_for_booking(kennel_id, booking),
            }
        )

    @app.post("/api/bookings/<booking_id>/checkin")
    def check_in(booking_id: str) -> Any:
        booking = ledger.get_booking(booking_id)
        if booking is None:
            abort(404)
        overrides = request.get_json(silent=True)
        if not isinstance(overrides, dict):
            overrides = {}
        return jsonify(ledger.create_stay_from_booking(booking, overrides)), 201

    # ------------------------------------------------------------------
    # Stays
    # ------------------------------------------------------------------
    @app.get("/api/stays")
    def list_stays() -> Any:
        return jsonify(ledger.list_stays_for_kennel(kennel_id))

    @app.patch("/api/stays/<stay_id>")
    def update_stay(stay_id: str) -> Any:
        if ledger.get_stay(stay_id) is None:
            abort(404)
        return jsonify(ledger.update_stay({**_json_body(), "id": stay_id}))

    @app.post("/api/stays/<stay_id>/checkout")
    def check_out(stay_id: str) -> Any:
        return _found(ledger.check_out_stay(stay_id))

    @app.post("/api/stays/<stay_id>/cage")
    def assign_cage(stay_id: str) -> Any:
        cage_id = _json_body().get("cage_id") or None
        if cage_id is not None and ledger.get_cage(cage_id) is None:
            raise ValidationError("Cage not found")
        return _found(ledger.assign_cage_to_stay(stay_id, cage_id))

    @app.post("/api/stays/reconcile")
    def reconcile() -> Any:
        return jsonify({"repaired": ledger.reconcile_converted_bookings(kennel_id)})

    # ------------------------------------------------------------------
    # Cages
    # ------------------------------------------------------------------
    @app.get("/api/cages")
    def list_cages() -> Any:
        return jsonify(ledger.list_cages_for_kennel(kennel_id))

    @app.post("/api/cages")
    def upsert_cage() -> Any:
        return jsonify(ledger.upsert_cage(kennel_id, _json_body()))

    @app.delete("/api/cages/<cage_id>")
    def delete_cage(cage_id: str) -> Any:
        ledger.delete_cage(kennel_id, cage_id)
        return "", 204

    # ------------------------------------------------------------------
    # Profile & capacity
    # ------------------------------------------------------------------
    @app.get("/api/profile")
    def get_profile() -> Any:
        return jsonify(ledger.load_kennel_profile(kennel_id))

    @app.put("/api/profile")
    def save_profile() -> Any:
        ledger.save_kennel_profile({**_json_body(), "id": kennel_id})
        return jsonify(ledger.load_kennel_profile(kennel_id))

    @app.get("/api/capacity")
    def capacity() -> Any:
        today = dt.date.today()
        start = request.args.get("start") or today.isoformat()
        end = request.args.get("end") or (today + dt.timedelta(days=6)).isoformat()
        first, last = parse_date(start), parse_date(end)
        if first and last and (last - first).days + 1 > MAX_CAPACITY_SPAN_DAYS:
            raise ValidationError(f"Capacity can be shown for at most {MAX_CAPACITY_SPAN_DAYS} days")
        return jsonify(ledger.get_capacity_for_range(kennel_id, start, end))

    return app


__all__ = ["create_app"]
