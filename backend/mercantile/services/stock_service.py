# Overview: Stock ledger accessor - per-store on-hand quantities in base units.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Product, ProductVariation, Stock
from ..validation import (
    QUANTITY_PLACES,
    NotFoundError,
    ValidationError,
    check_scale,
    enforce_rules_stock_adjust,
    parse_int,
)
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .product_unit_service import convert_to_base
from .store_service import require_store
"""
Stock invariants (authoritative)

- Quantities are stored in the product's base unit.
- Standard product: stock is keyed on (store_id, item_id), item_variation_id NULL.
- Variable product: stock is keyed on (store_id, item_variation_id); the
  variation must belong to the product. No product-level rows.
- Adjustments upsert: the first one creates the row, later ones accumulate.
- On-hand may never go negative.
- Each adjustment appends a stock.adjusted ledger event in the same transaction.
"""

ZERO = Decimal("0")


def _stock_query(store_id: int, product_id: int, variation_id: int | None):
    q = db.session.query(Stock).filter(Stock.store_id == store_id, Stock.item_id == product_id)
    if variation_id is None:
        return q.filter(Stock.item_variation_id.is_(None))
    return q.filter(Stock.item_variation_id == variation_id)


def get_stock(store_id: int, product_id: int, variation_id: int | None = None) -> Decimal:
    row = _stock_query(store_id, product_id, variation_id).first()
    if row is None:
        return ZERO
    return Decimal(row.quantity)


def _check_stock_key(product: Product, variation_id: int | None) -> ProductVariation | None:
    if not product.is_variable:
        if variation_id is not None:
            raise ValidationError("A Standard item does not take a variation_id.")
        return None

    if variation_id is None:
        raise ValidationError("Stock for a Variable item is tracked per variation; variation_id is required.")
    variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
    if variation is None or variation.item_id != product.id:
        raise NotFoundError("Variation not found for this item.")
    return variation


def apply_stock_delta(
    *,
    store_id: int,
    product: Product,
    variation: ProductVariation | None,
    delta: Decimal,
    note: str | None = None,
) -> Stock:
    """
    Upsert the stock row for the key and add delta (base units).

    Flushes but never commits; product saves call this inside their own
    unit-of-work.
    """
    variation_id = variation.id if variation is not None else None
    row = lock_for_update(_stock_query(store_id, product.id, variation_id)).first()
    if row is None:
        row = Stock(store_id=store_id, item_id=product.id, item_variation_id=variation_id, quantity=ZERO)
        db.session.add(row)

    new_quantity = Decimal(row.quantity or 0) + delta
    if new_quantity < 0:
        raise ValidationError(
            f"Insufficient stock: on hand {Decimal(row.quantity or 0)}, adjustment {delta}."
        )
    row.quantity = new_quantity
    db.session.flush()

    append_ledger_event(
        event_type="stock.adjusted",
        event_category="inventory",
        entity_type="stock",
        entity_id=row.id,
        store_id=store_id,
        note=note or f"item={product.id} variation={variation_id} delta={delta}",
    )
    return row


def adjust_stock(
    *,
    store_id,
    product_id,
    delta,
    variation_id=None,
    unit_id=None,
    note: str | None = None,
) -> Stock:
    """
    Add delta to on-hand stock.

    delta is expressed in unit_id (base unit when omitted) and converted to
    base units before it is applied.

    Raises:
        ValidationError: zero/missing delta, wrong key for the item type,
            unconfigured unit, or a negative result
        NotFoundError: store, product or variation missing
    """
    def _op():
        parsed_delta = enforce_rules_stock_adjust(delta)
        parsed_store_id = parse_int(store_id, "store_id")
        parsed_product_id = parse_int(product_id, "product_id")
        parsed_variation_id = parse_int(variation_id, "variation_id") if variation_id not in (None, "") else None
        parsed_unit_id = parse_int(unit_id, "unit_id") if unit_id not in (None, "") else None

        require_store(parsed_store_id)
        product = db.session.query(Product).filter_by(id=parsed_product_id).first()
        if product is None:
            raise NotFoundError("Product not found")
        variation = _check_stock_key(product, parsed_variation_id)

        base_delta = convert_to_base(product.id, parsed_unit_id, parsed_delta)
        check_scale(base_delta, QUANTITY_PLACES, "quantity_delta in base units")
        row = apply_stock_delta(
            store_id=parsed_store_id,
            product=product,
            variation=variation,
            delta=base_delta,
            note=note,
        )
        db.session.commit()
        return row

    return run_with_retry(_op)


def list_stock(store_id: int | None = None, product_id: int | None = None) -> list[Stock]:
    q = db.session.query(Stock)
    if store_id is not None:
        q = q.filter(Stock.store_id == store_id)
    if product_id is not None:
        q = q.filter(Stock.item_id == product_id)
    return q.order_by(Stock.store_id.asc(), Stock.item_id.asc(), Stock.item_variation_id.asc()).all()
