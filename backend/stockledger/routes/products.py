# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Product
from ..services import products_service, batch_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from .errors import error_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "unit", "shelf_life_days", "low_stock_threshold", "image_url"},
    required_on_create={"name", "category", "unit"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - include_archived: bool (optional, default false)
    """
    include_archived = request.args.get("include_archived", "false").lower() in {"1", "true", "yes"}
    items = products_service.list_products(include_archived=include_archived)
    return {"items": [p.to_dict() for p in items], "count": len(items)}


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(**patch)
    except Exception as e:
        return error_response(e)

    return created.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except Exception as e:
        return error_response(e)

    data = product.to_dict()
    data["most_recent_unit_cost_cents"] = batch_service.get_most_recent_unit_cost(product_id)
    return data


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id, patch)
    except Exception as e:
        return error_response(e)

    return updated.to_dict()


@products_bp.post("/<int:product_id>/archive")
def archive_product_route(product_id: int):
    try:
        product = products_service.archive_product(product_id)
    except Exception as e:
        return error_response(e)
    return product.to_dict()


@products_bp.post("/<int:product_id>/unarchive")
def unarchive_product_route(product_id: int):
    try:
        product = products_service.unarchive_product(product_id)
    except Exception as e:
        return error_response(e)
    return product.to_dict()


@products_bp.get("/<int:product_id>/batches")
def list_product_batches_route(product_id: int):
    """
    Query params:
    - include_depleted: bool (optional, default false)
    """
    include_depleted = request.args.get("include_depleted", "false").lower() in {"1", "true", "yes"}
    try:
        batches = batch_service.list_batches(product_id, include_depleted=include_depleted)
    except Exception as e:
        return error_response(e)
    return {"items": [b.to_dict() for b in batches], "count": len(batches)}
