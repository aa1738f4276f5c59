from __future__ import annotations

import enum

from ..extensions import db
from stockledger.time_utils import to_iso_date, to_utc_z


class ProductCategory(str, enum.Enum):
    INGREDIENT = "INGREDIENT"
    NON_INGREDIENT = "NON_INGREDIENT"


class TransactionType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class OutflowReason(str, enum.Enum):
    SALE = "SALE"
    SPOILAGE = "SPOILAGE"
    INTERNAL_USE = "INTERNAL_USE"
    ADJUSTMENT_DECREASE = "ADJUSTMENT_DECREASE"


def _enum_column(enum_cls, **kwargs):
    # Stored as plain strings (no native DB enum) so SQLite and Postgres behave alike
    return db.Column(
        db.Enum(enum_cls, native_enum=False, length=32, validate_strings=True),
        **kwargs,
    )


class Product(db.Model):
    """
    Product master data.

    NAME: unique among non-archived products only. An archived product
    keeps its name so old batches and transactions still read correctly,
    but the name can be reused by a new active product.

    CATEGORY: fixed at creation. INGREDIENT products carry a shelf life and
    every batch gets an expiry date; NON_INGREDIENT products do not.

    Never hard-deleted: is_archived hides the product from active listings
    and from new receipts.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name_archived", "name", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = _enum_column(ProductCategory, nullable=False)
    unit = db.Column(db.String(32), nullable=False)

    # Required and > 0 for INGREDIENT, NULL otherwise
    shelf_life_days = db.Column(db.Integer, nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.Text, nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_ingredient(self) -> bool:
        return self.category == ProductCategory.INGREDIENT

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category={self.category.value if self.category else None}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value if self.category else None,
            "unit": self.unit,
            "shelf_life_days": self.shelf_life_days,
            "low_stock_threshold": self.low_stock_threshold,
            "image_url": self.image_url,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Batch(db.Model):
    """
    A received lot of one product.

    COST LAYERING: unit_cost_cents is fixed at receipt and never changes.
    Stock value is always the sum of each batch at its own cost.

    QUANTITY: current_quantity moves only together with a ledger entry
    (see services/batch_service.py). 0 <= current_quantity <= initial_quantity.

    version_id is the optimistic lock that stops two movements on the same
    batch from both passing the stock check.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.Index("ix_batches_product_created", "product_id", "created_at"),
        db.CheckConstraint("initial_quantity > 0", name="initial_quantity_positive"),
        db.CheckConstraint(
            "current_quantity >= 0 AND current_quantity <= initial_quantity",
            name="current_quantity_bounds",
        ),
        db.CheckConstraint("unit_cost_cents >= 0", name="unit_cost_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot of the product name at receipt, for display resilience
    product_name = db.Column(db.String(255), nullable=False)

    production_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True, index=True)

    initial_quantity = db.Column(db.Integer, nullable=False)
    current_quantity = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def value_cents(self) -> int:
        return self.current_quantity * self.unit_cost_cents

    def __repr__(self) -> str:
        return (
            f"<Batch id={self.id} product_id={self.product_id} "
            f"qty={self.current_quantity}/{self.initial_quantity} cost={self.unit_cost_cents}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "production_date": to_iso_date(self.production_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "initial_quantity": self.initial_quantity,
            "current_quantity": self.current_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "value_cents": self.value_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class StockTransaction(db.Model):
    """
    Append-only stock movement ledger.

    quantity is always >= 0. Direction comes from type, plus
    is_correction_increase for OUT rows that actually put stock back.
    unit_cost_cents_at_transaction and product_name are copied at write
    time so history survives later edits.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stocktx_product_timestamp", "product_id", "timestamp"),
        db.Index("ix_stocktx_batch_timestamp", "batch_id", "timestamp"),
        db.CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=True, index=True)

    type = _enum_column(TransactionType, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Business time; for IN rows equal to the batch's created_at
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    reason = _enum_column(OutflowReason, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    unit_cost_cents_at_transaction = db.Column(db.Integer, nullable=True)
    is_correction_increase = db.Column(db.Boolean, nullable=False, default=False)

    # System time
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    batch = db.relationship("Batch", backref=db.backref("transactions", lazy=True))

    @property
    def signed_quantity(self) -> int:
        if self.type == TransactionType.IN or self.is_correction_increase:
            return self.quantity
        return -self.quantity

    @property
    def is_consumption(self) -> bool:
        return self.type == TransactionType.OUT and not self.is_correction_increase

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_id": self.batch_id,
            "type": self.type.value if self.type else None,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "timestamp": to_utc_z(self.timestamp),
            "reason": self.reason.value if self.reason else None,
            "notes": self.notes,
            "unit_cost_cents_at_transaction": self.unit_cost_cents_at_transaction,
            "is_correction_increase": bool(self.is_correction_increase),
            "created_at": to_utc_z(self.created_at),
        }
