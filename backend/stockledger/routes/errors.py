# Overview: Maps service-layer exceptions to JSON error responses.

from flask import current_app

from ..validation import (
    ConflictError,
    ExceedsReceivedQuantity,
    InsufficientStock,
    NotFoundError,
    StorageError,
    ValidationError,
)


def error_response(e: Exception):
    """
    ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409,
    StorageError (and anything unexpected) -> 500 with the cause logged.
    """
    if isinstance(e, InsufficientStock):
        return {"error": str(e), "batch_id": e.batch_id, "available": e.available}, 409
    if isinstance(e, ExceedsReceivedQuantity):
        return {"error": str(e), "batch_id": e.batch_id, "headroom": e.headroom}, 409
    if isinstance(e, ConflictError):
        return {"error": str(e)}, 409
    if isinstance(e, NotFoundError):
        return {"error": str(e)}, 404
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    if isinstance(e, StorageError):
        current_app.logger.exception("Storage failure: %s", e)
        return {"error": "storage failure; no changes were applied"}, 500
    if isinstance(e, ValueError):
        return {"error": str(e)}, 400
    current_app.logger.exception("Unexpected error")
    return {"error": "internal error"}, 500
