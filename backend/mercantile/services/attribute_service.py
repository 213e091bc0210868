# Overview: Attribute registry - variation dimensions and their permitted values.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Attribute, AttributeValue, VariationAttributeValue
from ..validation import ConflictError, NotFoundError, ReferentialIntegrityError, ValidationError
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Attribute name is required and must be a non-empty string.")
    return name.strip()


def _clean_values(values) -> list[str]:
    """Trim and de-duplicate, keeping first-seen order."""
    if values is None:
        return []
    if not isinstance(values, list) or not all(isinstance(v, str) and v.strip() for v in values):
        raise ValidationError("Values must be an array of non-empty strings.")
    return list(dict.fromkeys(v.strip() for v in values))


def _ensure_name_available(name: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Attribute).filter(db.func.lower(Attribute.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Attribute.id != exclude_id)
    if q.first():
        raise ConflictError(f'Attribute with name "{name}" already exists.')


def _values_in_use(attribute_id: int, values: list[str] | None = None) -> list[str]:
    q = (
        db.session.query(AttributeValue.value)
        .join(VariationAttributeValue, VariationAttributeValue.attribute_value_id == AttributeValue.id)
        .filter(AttributeValue.attribute_id == attribute_id)
    )
    if values is not None:
        q = q.filter(AttributeValue.value.in_(values))
    return sorted({row[0] for row in q.distinct().all()})


def list_attributes() -> list[Attribute]:
    return db.session.query(Attribute).order_by(Attribute.name.asc()).all()


def get_attribute(attribute_id: int) -> Attribute | None:
    return db.session.query(Attribute).filter_by(id=attribute_id).first()


def require_attribute(attribute_id: int) -> Attribute:
    attribute = get_attribute(attribute_id)
    if attribute is None:
        raise NotFoundError("Attribute not found.")
    return attribute


def create_attribute(name, values=None) -> Attribute:
    def _op():
        clean_name = _clean_name(name)
        clean_values = _clean_values(values)
        _ensure_name_available(clean_name)

        attribute = Attribute(name=clean_name)
        for value in clean_values:
            attribute.values.append(AttributeValue(value=value))
        db.session.add(attribute)
        db.session.flush()

        append_ledger_event(
            event_type="attribute.created",
            event_category="attribute",
            entity_type="attribute",
            entity_id=attribute.id,
            note=f"Created attribute {attribute.name} with {len(clean_values)} values",
        )
        db.session.commit()
        return attribute

    return run_with_retry(_op)


def update_attribute(attribute_id: int, name, values=None) -> Attribute:
    """
    Rename an attribute and replace its value set.

    Values missing from the new set are deleted unless a variation uses them.
    """
    def _op():
        attribute = require_attribute(attribute_id)
        clean_name = _clean_name(name)
        clean_values = _clean_values(values)

        if clean_name.lower() != attribute.name.lower():
            _ensure_name_available(clean_name, exclude_id=attribute.id)

        current = {v.value: v for v in attribute.values}
        to_add = [v for v in clean_values if v not in current]
        to_delete = [v for v in current if v not in clean_values]

        if to_delete:
            used = _values_in_use(attribute.id, to_delete)
            if used:
                raise ReferentialIntegrityError(
                    "Cannot delete attribute values currently in use by product variations: "
                    f"{', '.join(used)}. Please remove them from products first."
                )
            for value in to_delete:
                attribute.values.remove(current[value])

        for value in to_add:
            attribute.values.append(AttributeValue(value=value))

        attribute.name = clean_name
        append_ledger_event(
            event_type="attribute.updated",
            event_category="attribute",
            entity_type="attribute",
            entity_id=attribute.id,
            note=f"Added {len(to_add)}, removed {len(to_delete)} values",
        )
        db.session.commit()
        db.session.refresh(attribute)
        return attribute

    return run_with_retry(_op)


def delete_attribute(attribute_id: int) -> None:
    def _op():
        attribute = require_attribute(attribute_id)
        if _values_in_use(attribute.id):
            current_app.logger.info("Refusing to delete attribute %s: values in use", attribute.id)
            raise ReferentialIntegrityError(
                "Cannot delete attribute. It is currently in use by product variations. "
                "Please remove it from products first."
            )

        append_ledger_event(
            event_type="attribute.deleted",
            event_category="attribute",
            entity_type="attribute",
            entity_id=attribute.id,
            note=f"Deleted attribute {attribute.name}",
        )
        db.session.delete(attribute)
        db.session.commit()

    run_with_retry(_op)


def resolve_attribute_values(pairs: list[tuple[int, str]]) -> list[AttributeValue]:
    """
    Map ordered (attribute_id, value) pairs to AttributeValue rows.

    Raises ValidationError naming the first pair that is not registered.
    """
    resolved = []
    for attribute_id, value in pairs:
        row = (
            db.session.query(AttributeValue)
            .filter(AttributeValue.attribute_id == attribute_id, AttributeValue.value == value)
            .first()
        )
        if row is None:
            raise ValidationError(
                f'Attribute value "{value}" is not registered for attribute {attribute_id}.'
            )
        resolved.append(row)
    return resolved
