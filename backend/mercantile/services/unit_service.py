# Overview: Unit registry - a plain list of unit names.
"""
Unit registry.

Units carry no conversion data; conversions are per product (ProductUnit).
A unit referenced by a product (as base unit) or by any product-unit
configuration cannot be deleted.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Unit, Product, ProductUnit
from ..validation import ConflictError, NotFoundError, ReferentialIntegrityError, ValidationError
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event

MAX_UNIT_NAME_LENGTH = 100


def _clean_name(name: str | None) -> str:
    if name is None or not isinstance(name, str) or not name.strip():
        raise ValidationError("Unit name is required.")
    clean = name.strip()
    if len(clean) > MAX_UNIT_NAME_LENGTH:
        raise ValidationError(f"Unit name exceeds max length {MAX_UNIT_NAME_LENGTH}")
    return clean


def _ensure_name_available(name: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Unit).filter(db.func.lower(Unit.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Unit.id != exclude_id)
    if q.first():
        raise ConflictError(f'Unit name "{name}" already exists.')


def list_units() -> list[Unit]:
    return db.session.query(Unit).order_by(Unit.name.asc()).all()


def get_unit(unit_id: int) -> Unit | None:
    return db.session.query(Unit).filter_by(id=unit_id).first()


def require_unit(unit_id: int) -> Unit:
    unit = get_unit(unit_id)
    if unit is None:
        raise NotFoundError(f"Unit {unit_id} not found")
    return unit


def create_unit(name: str | None) -> Unit:
    def _op():
        clean = _clean_name(name)
        _ensure_name_available(clean)

        unit = Unit(name=clean)
        db.session.add(unit)
        db.session.flush()

        append_ledger_event(
            event_type="unit.created",
            event_category="unit",
            entity_type="unit",
            entity_id=unit.id,
            note=f"Created unit {unit.name}",
        )
        db.session.commit()
        return unit

    return run_with_retry(_op)


def update_unit(unit_id: int, name: str | None) -> Unit:
    def _op():
        unit = require_unit(unit_id)
        clean = _clean_name(name)
        _ensure_name_available(clean, exclude_id=unit.id)

        old_name = unit.name
        unit.name = clean
        append_ledger_event(
            event_type="unit.renamed",
            event_category="unit",
            entity_type="unit",
            entity_id=unit.id,
            note=f"Renamed unit {old_name} -> {clean}",
        )
        db.session.commit()
        return unit

    return run_with_retry(_op)


def is_unit_in_use(unit_id: int) -> bool:
    """True if any product or product-unit configuration references the unit."""
    if db.session.query(Product.id).filter(Product.base_unit_id == unit_id).first():
        return True
    in_config = (
        db.session.query(ProductUnit.id)
        .filter((ProductUnit.unit_id == unit_id) | (ProductUnit.base_unit_id == unit_id))
        .first()
    )
    return in_config is not None


def delete_unit(unit_id: int) -> None:
    """
    Delete an unreferenced unit.

    Raises:
        NotFoundError: unit does not exist
        ReferentialIntegrityError: unit is used by a product or configuration
    """
    def _op():
        unit = require_unit(unit_id)
        if is_unit_in_use(unit.id):
            current_app.logger.info("Refusing to delete unit %s: still referenced", unit.id)
            raise ReferentialIntegrityError(
                f'Cannot delete unit "{unit.name}": it is used by one or more products.'
            )

        append_ledger_event(
            event_type="unit.deleted",
            event_category="unit",
            entity_type="unit",
            entity_id=unit.id,
            note=f"Deleted unit {unit.name}",
        )
        db.session.delete(unit)
        db.session.commit()

    run_with_retry(_op)
