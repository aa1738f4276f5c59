# backend/stockledger/services/products_service.py
"""
Product Catalog Service

- Names are unique among non-archived products (case-insensitive).
- Category is fixed at creation; INGREDIENT requires shelf_life_days > 0,
  NON_INGREDIENT never carries one.
- Products are archived, never deleted. Archived products cannot receive
  batches but their history stays readable.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductCategory
from ..validation import (
    DuplicateName,
    InvalidShelfLife,
    ProductNotFound,
    ValidationError,
    coerce_enum,
)
from .concurrency import run_write
from stockledger.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "unit", "shelf_life_days", "low_stock_threshold", "image_url"}


def _clean_text(value, *, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} cannot be blank")
    return str(value).strip()


def _check_name_available(name: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter(
        func.lower(Product.name) == name.lower(),
        Product.is_archived.is_(False),
    )
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise DuplicateName(f"an active product named '{name}' already exists")


def _normalize_shelf_life(category: ProductCategory, shelf_life_days):
    if category == ProductCategory.INGREDIENT:
        if shelf_life_days is None:
            raise InvalidShelfLife("shelf_life_days is required for INGREDIENT products")
        if isinstance(shelf_life_days, bool) or not isinstance(shelf_life_days, int) or shelf_life_days <= 0:
            raise InvalidShelfLife("shelf_life_days must be a positive integer")
        return shelf_life_days
    # NON_INGREDIENT products never expire
    return None


def _normalize_threshold(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("low_stock_threshold must be an integer >= 0")
    return value


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"product {product_id} not found")
    return product


def list_products(*, include_archived: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_archived:
        q = q.filter(Product.is_archived.is_(False))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(
    *,
    name: str,
    category,
    unit: str,
    shelf_life_days: int | None = None,
    low_stock_threshold: int | None = 0,
    image_url: str | None = None,
) -> Product:
    cat = coerce_enum(ProductCategory, category, field_name="category")
    clean_name = _clean_text(name, field_name="name")
    clean_unit = _clean_text(unit, field_name="unit")
    shelf_life = _normalize_shelf_life(cat, shelf_life_days)
    threshold = _normalize_threshold(low_stock_threshold)

    def _op(attempt):
        _check_name_available(clean_name)
        now = utcnow()
        p = Product(
            name=clean_name,
            category=cat,
            unit=clean_unit,
            shelf_life_days=shelf_life,
            low_stock_threshold=threshold,
            image_url=(image_url or None),
            is_archived=False,
            created_at=now,
            updated_at=now,
        )
        db.session.add(p)
        attempt.flush()
        return p

    product = run_write(_op, what="create_product")
    current_app.logger.info("product created: id=%s name=%r category=%s", product.id, product.name, product.category.value)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    """
    Apply an edit to name, unit, shelf life, threshold or image.

    Existing batch expiry dates are not recomputed when shelf life changes;
    they were fixed at receipt.
    """
    patch = dict(patch or {})

    if "category" in patch:
        product = get_product(product_id)
        requested = coerce_enum(ProductCategory, patch["category"], field_name="category")
        if requested != product.category:
            raise ValidationError("category cannot be changed after creation")
        patch.pop("category")

    unknown = sorted(k for k in patch if k not in PRODUCT_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    def _op(attempt):
        product = get_product(product_id)

        if "name" in patch:
            new_name = _clean_text(patch["name"], field_name="name")
            if not product.is_archived:
                _check_name_available(new_name, exclude_id=product.id)
            product.name = new_name
        if "unit" in patch:
            product.unit = _clean_text(patch["unit"], field_name="unit")
        if "shelf_life_days" in patch:
            product.shelf_life_days = _normalize_shelf_life(product.category, patch["shelf_life_days"])
        if "low_stock_threshold" in patch:
            product.low_stock_threshold = _normalize_threshold(patch["low_stock_threshold"])
        if "image_url" in patch:
            product.image_url = patch["image_url"] or None

        product.updated_at = utcnow()
        attempt.flush()
        return product

    return run_write(_op, what="update_product")


def archive_product(product_id: int) -> Product:
    def _op(attempt):
        product = get_product(product_id)
        if not product.is_archived:
            product.is_archived = True
            product.updated_at = utcnow()
            attempt.flush()
            current_app.logger.info("product archived: id=%s", product.id)
        return product

    return run_write(_op, what="archive_product")


def unarchive_product(product_id: int) -> Product:
    def _op(attempt):
        product = get_product(product_id)
        if product.is_archived:
            # Another active product may have taken the name meanwhile
            _check_name_available(product.name, exclude_id=product.id)
            product.is_archived = False
            product.updated_at = utcnow()
            attempt.flush()
            current_app.logger.info("product unarchived: id=%s", product.id)
        return product

    return run_write(_op, what="unarchive_product")
