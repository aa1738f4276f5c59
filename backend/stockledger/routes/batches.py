# Overview: Flask API routes for batch intake and stock movements.

from flask import Blueprint, request
from sqlalchemy import Integer, String, Text, Date, DateTime

from ..models import Batch, StockTransaction
from ..services import batch_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_batch_receive,
    enforce_rules_movement,
)
from .errors import error_response

RECEIVE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "production_date", "initial_quantity", "unit_cost_cents", "received_at", "notes"},
    required_on_create={"product_id", "initial_quantity", "unit_cost_cents"},
    extra_fields={"received_at": DateTime(), "notes": Text()},
)

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "reason", "notes", "occurred_at"},
    required_on_create={"quantity", "reason"},
    extra_fields={"quantity": Integer(), "reason": String(32), "occurred_at": DateTime(), "product_id": Integer()},
)

batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


@batches_bp.post("")
def receive_batch_route():
    """
    Receive a new batch.

    Body:
    - product_id, initial_quantity, unit_cost_cents (required)
    - production_date: "YYYY-MM-DD" (required for INGREDIENT)
    - received_at: ISO-8601 (optional, backfill)
    - notes (optional)
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Batch, payload=payload, policy=RECEIVE_POLICY, partial=False)
        enforce_rules_batch_receive(patch)
        batch = batch_service.receive_batch(
            product_id=patch["product_id"],
            initial_quantity=patch["initial_quantity"],
            unit_cost_cents=patch["unit_cost_cents"],
            production_date=patch.get("production_date"),
            received_at=patch.get("received_at"),
            notes=patch.get("notes") or None,
        )
    except Exception as e:
        return error_response(e)

    return batch.to_dict(), 201


@batches_bp.get("/<int:batch_id>")
def get_batch_route(batch_id: int):
    try:
        batch = batch_service.get_batch(batch_id)
    except Exception as e:
        return error_response(e)
    return batch.to_dict()


@batches_bp.post("/<int:batch_id>/movements")
def record_movement_route(batch_id: int):
    """
    Record a signed movement on one batch.

    Body:
    - quantity: int, non-zero (negative = consumption, positive = correction increase)
    - reason: SALE | SPOILAGE | INTERNAL_USE | ADJUSTMENT_DECREASE
    - product_id: int (optional; defaults to the batch's product)
    - occurred_at: ISO-8601 (optional, backfill)
    - notes (optional)
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockTransaction, payload=payload, policy=MOVEMENT_POLICY, partial=False)
        enforce_rules_movement(patch)
        product_id = patch.get("product_id")
        if product_id is None:
            product_id = batch_service.get_batch(batch_id).product_id
        tx = batch_service.record_movement(
            product_id=product_id,
            batch_id=batch_id,
            quantity=patch["quantity"],
            reason=patch["reason"],
            notes=patch.get("notes") or None,
            occurred_at=patch.get("occurred_at"),
        )
    except Exception as e:
        return error_response(e)

    return {
        "transaction": tx.to_dict(),
        "batch": batch_service.get_batch(batch_id).to_dict(),
    }, 201
