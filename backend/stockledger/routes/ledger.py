# Overview: Flask API routes for reading the stock ledger and reconciling it against batches.

from flask import Blueprint, request

from ..services.ledger_service import list_transactions, verify_ledger_consistency
from ..validation import ValidationError
from stockledger.time_utils import parse_iso_datetime, to_utc_z, utcnow
from .errors import error_response

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _parse_dt_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@ledger_bp.get("/transactions")
def list_transactions_route():
    """
    Query params (all optional):
    - product_id, batch_id: int
    - type: IN | OUT
    - reason: SALE | SPOILAGE | INTERNAL_USE | ADJUSTMENT_DECREASE
    - start, end: ISO-8601 (inclusive)
    - limit: int (default 200, max 1000)
    """
    try:
        rows = list_transactions(
            product_id=request.args.get("product_id", type=int),
            batch_id=request.args.get("batch_id", type=int),
            type=request.args.get("type") or None,
            reason=request.args.get("reason") or None,
            start=_parse_dt_arg("start"),
            end=_parse_dt_arg("end"),
            limit=request.args.get("limit", default=200, type=int),
        )
    except Exception as e:
        return error_response(e)

    return {"items": [t.to_dict() for t in rows], "count": len(rows)}


@ledger_bp.get("/ledger/verify")
def verify_ledger_route():
    """Compare stored batch quantities with the ledger; 200 either way, `consistent` tells."""
    try:
        mismatches = verify_ledger_consistency(product_id=request.args.get("product_id", type=int))
    except Exception as e:
        return error_response(e)

    return {
        "checked_at": to_utc_z(utcnow()),
        "consistent": not mismatches,
        "mismatches": mismatches,
    }
