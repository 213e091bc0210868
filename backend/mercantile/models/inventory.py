from __future__ import annotations

from ..extensions import db
from mercantile.time_utils import to_utc_z, decimal_str


class Stock(db.Model):
    """
    On-hand quantity per store, always in the product's base unit.

    UNIQUENESS:
    - Standard product: one row per (store_id, item_id) with item_variation_id NULL.
    - Variable product: one row per (store_id, item_variation_id); never a bare
      product-level row.

    Both keys are partial unique indexes so the database rejects a second row
    even if two writers race past the application-level upsert.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.Index(
            "stock_store_item_unique_idx",
            "store_id",
            "item_id",
            unique=True,
            sqlite_where=db.text("item_variation_id IS NULL"),
            postgresql_where=db.text("item_variation_id IS NULL"),
        ),
        db.Index(
            "stock_store_variation_unique_idx",
            "store_id",
            "item_variation_id",
            unique=True,
            sqlite_where=db.text("item_variation_id IS NOT NULL"),
            postgresql_where=db.text("item_variation_id IS NOT NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(
        db.Integer,
        db.ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_variation_id = db.Column(
        db.Integer,
        db.ForeignKey("item_variations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    quantity = db.Column(db.Numeric(12, 4), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store")
    product = db.relationship("Product", back_populates="stock_rows")
    variation = db.relationship("ProductVariation", back_populates="stock_rows")

    def __repr__(self) -> str:
        return (
            f"<Stock id={self.id} store_id={self.store_id} item_id={self.item_id} "
            f"variation_id={self.item_variation_id} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "item_id": self.item_id,
            "item_variation_id": self.item_variation_id,
            "quantity": decimal_str(self.quantity),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
