# Overview: Product-unit configuration manager - per-product conversion factors.
"""
Product-unit configuration invariants (authoritative)

- 1 unit_id = conversion_factor x base unit, per product.
- (product_id, unit_id) is unique.
- conversion_factor > 0.
- Every saved product has exactly one is_base_unit row: unit_id ==
  items.base_unit_id and conversion_factor == 1.
- The base row cannot be removed, and no removal may leave the product
  without a conversion_factor = 1 row. This is checked on removal as well as
  on product save.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Product, ProductUnit
from ..validation import (
    BaseUnitRemovalForbiddenError,
    DuplicateConfigurationError,
    MissingBaseUnitConfigurationError,
    NotFoundError,
    ValidationError,
    enforce_rules_unit_config,
    parse_bool,
)
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .unit_service import require_unit

ONE = Decimal("1")


def is_base_config(unit_id: int, conversion_factor: Decimal, base_unit_id: int | None) -> bool:
    return base_unit_id is not None and unit_id == base_unit_id and conversion_factor == ONE


def check_base_unit_configuration(configs: Iterable, base_unit_id: int | None) -> None:
    """
    Save-time scan over configured units (rows or drafts).

    Raises MissingBaseUnitConfigurationError if no configuration has
    conversion_factor == 1, or none of those is the product's base unit.
    """
    configs = list(configs)
    if not configs:
        raise MissingBaseUnitConfigurationError("Item must have at least one unit configuration.")
    if not any(Decimal(c.conversion_factor) == ONE for c in configs):
        raise MissingBaseUnitConfigurationError(
            "You must add at least one unit with a conversion factor of 1 (the base unit)."
        )
    if not any(is_base_config(c.unit_id, Decimal(c.conversion_factor), base_unit_id) for c in configs):
        raise MissingBaseUnitConfigurationError(
            "The product's base unit must be configured with a conversion factor of 1."
        )


def _require_product(product_id: int, *, lock: bool = False) -> Product:
    q = db.session.query(Product).filter_by(id=product_id)
    if lock:
        q = lock_for_update(q)
    product = q.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_unit_configs(product_id: int) -> list[ProductUnit]:
    _require_product(product_id)
    return (
        db.session.query(ProductUnit)
        .filter(ProductUnit.product_id == product_id)
        .order_by(ProductUnit.is_base_unit.desc(), ProductUnit.conversion_factor.asc(), ProductUnit.id.asc())
        .all()
    )


def add_unit_config(
    product_id: int,
    unit_id,
    conversion_factor,
    is_purchase_unit=False,
    is_sales_unit=False,
) -> ProductUnit:
    """
    Configure an alternate unit for a saved product.

    Raises:
        ValidationError: unit_id/conversion_factor missing, or factor <= 0
        NotFoundError: product or unit does not exist
        DuplicateConfigurationError: unit already configured for the product
    """
    def _op():
        parsed_unit_id, factor = enforce_rules_unit_config(unit_id, conversion_factor)
        product = _require_product(product_id, lock=True)
        require_unit(parsed_unit_id)

        existing = (
            db.session.query(ProductUnit)
            .filter_by(product_id=product.id, unit_id=parsed_unit_id)
            .first()
        )
        if existing:
            raise DuplicateConfigurationError(
                f"Unit ID {parsed_unit_id} is already configured for item ID {product.id}."
            )
        if parsed_unit_id == product.base_unit_id and factor != ONE:
            raise ValidationError("The base unit must have a conversion factor of 1.")

        config = ProductUnit(
            unit_id=parsed_unit_id,
            base_unit_id=product.base_unit_id,
            conversion_factor=factor,
            is_purchase_unit=parse_bool(is_purchase_unit),
            is_sales_unit=parse_bool(is_sales_unit),
            is_base_unit=is_base_config(parsed_unit_id, factor, product.base_unit_id),
        )
        product.unit_configs.append(config)
        db.session.flush()

        append_ledger_event(
            event_type="product.unit_added",
            event_category="product",
            entity_type="product",
            entity_id=product.id,
            store_id=product.store_id,
            note=f"Unit {parsed_unit_id} = {factor} x base unit {product.base_unit_id}",
        )
        db.session.commit()
        return config

    return run_with_retry(_op)


def update_unit_config(
    config_id: int,
    *,
    product_id: int | None = None,
    conversion_factor=None,
    is_purchase_unit=None,
    is_sales_unit=None,
) -> ProductUnit:
    """Change the factor or usage flags. The base row keeps factor 1."""
    def _op():
        config = _require_config(config_id, product_id)

        if conversion_factor is not None:
            _, factor = enforce_rules_unit_config(config.unit_id, conversion_factor)
            if config.is_base_unit and factor != ONE:
                raise ValidationError("The base unit must have a conversion factor of 1.")
            if factor != ONE:
                _ensure_other_factor_one_row(config, "change its conversion factor")
            config.conversion_factor = factor
        if is_purchase_unit is not None:
            config.is_purchase_unit = parse_bool(is_purchase_unit)
        if is_sales_unit is not None:
            config.is_sales_unit = parse_bool(is_sales_unit)

        append_ledger_event(
            event_type="product.unit_updated",
            event_category="product",
            entity_type="product",
            entity_id=config.product_id,
            note=f"Unit config {config.id} updated",
        )
        db.session.commit()
        return config

    return run_with_retry(_op)


def _require_config(config_id: int, product_id: int | None) -> ProductUnit:
    config = lock_for_update(db.session.query(ProductUnit).filter_by(id=config_id)).first()
    if config is None or (product_id is not None and config.product_id != product_id):
        raise NotFoundError("Item unit configuration not found.")
    return config


def _ensure_other_factor_one_row(config: ProductUnit, action: str) -> None:
    others = (
        db.session.query(ProductUnit.id)
        .filter(
            ProductUnit.product_id == config.product_id,
            ProductUnit.id != config.id,
            ProductUnit.conversion_factor == ONE,
        )
        .first()
    )
    if others is None:
        raise BaseUnitRemovalForbiddenError(
            f"Cannot {action}: the product must keep at least one unit with a conversion factor of 1."
        )


def remove_unit_config(config_id: int, *, product_id: int | None = None) -> None:
    """
    Delete a configuration.

    Raises:
        NotFoundError: configuration missing (or belongs to another product)
        BaseUnitRemovalForbiddenError: row is the base unit row, or it is the
            last conversion_factor = 1 row
    """
    def _op():
        config = _require_config(config_id, product_id)

        if config.is_base_unit:
            current_app.logger.info("Refusing to remove base unit config %s", config.id)
            raise BaseUnitRemovalForbiddenError(
                "Cannot delete base unit. Reassign the product's base unit first."
            )
        if Decimal(config.conversion_factor) == ONE:
            _ensure_other_factor_one_row(config, "delete this unit")

        append_ledger_event(
            event_type="product.unit_removed",
            event_category="product",
            entity_type="product",
            entity_id=config.product_id,
            note=f"Removed unit {config.unit_id}",
        )
        config.product.unit_configs.remove(config)
        db.session.commit()

    run_with_retry(_op)


def convert_to_base(product_id: int, unit_id: int | None, quantity: Decimal) -> Decimal:
    """
    Express a quantity given in unit_id in the product's base unit.

    unit_id None means the quantity is already in base units.
    """
    product = _require_product(product_id)
    if unit_id is None or unit_id == product.base_unit_id:
        return quantity

    config = (
        db.session.query(ProductUnit)
        .filter_by(product_id=product.id, unit_id=unit_id)
        .first()
    )
    if config is None:
        raise ValidationError(f"Unit {unit_id} is not configured for product {product.id}.")
    return quantity * Decimal(config.conversion_factor)
