# Overview: Product service - catalog items with their unit configurations, variations and opening stock.

# backend/mercantile/services/products_service.py
"""
Product save flow

create_product / update_product turn the request into a ProductEditSession,
validate it, run every database-dependent check, and only then write. The
whole save (product row, unit configurations, variations with their
attribute links, opening stock, ledger event) is one transaction: any failure
rolls all of it back.

Variation sync on save:
- a variation carrying a known id is updated in place
- a variation without id reuses the stored row with the same attribute
  combination (its stock stays attached), otherwise a new row is inserted
- stored variations absent from the payload are deleted with their stock
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    ITEM_TYPE_STANDARD,
    ITEM_TYPE_VARIABLE,
    ITEM_TYPES,
    Attribute,
    Product,
    ProductUnit,
    ProductVariation,
    Store,
    Unit,
    VariationAttributeValue,
)
from ..validation import (
    ConflictError,
    DuplicateSkuError,
    ModelValidationPolicy,
    NotFoundError,
    QUANTITY_PLACES,
    ValidationError,
    check_scale,
    enforce_rules_prices,
    parse_decimal,
    parse_int,
    validate_payload,
)
from mercantile.time_utils import decimal_str
from .attribute_service import get_attribute, resolve_attribute_values
from .concurrency import lock_for_update, run_with_retry
from .edit_session import ProductEditSession, selections_from_variations
from .ledger_service import append_ledger_event
from .stock_service import apply_stock_delta
from .variation_generator import DEFAULT_MAX_SKU_LENGTH, AttributeSelection, VariationDraft

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "sku",
        "barcode",
        "description",
        "item_type",
        "base_unit_id",
        "store_id",
        "cost_price",
        "retail_price",
        "wholesale_price",
        "is_active",
        "enable_stock_management",
        "is_taxable",
    },
    required_on_create={"name", "base_unit_id"},
)

VARIATION_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "variant_name", "cost_price", "retail_price", "wholesale_price", "barcode", "is_active"},
)

PREVIEW_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sku", "cost_price", "retail_price", "wholesale_price"},
)

# Keys handled outside validate_payload
NESTED_KEYS = ("unit_configs", "attributes_config", "variations", "stock_quantity")

# Echoed back by get_product; accepted and ignored so a fetched product can be re-submitted
READ_ONLY_KEYS = {"id", "item_id", "version_id", "created_at", "updated_at", "base_unit_name"}

PRICE_FIELDS = ("cost_price", "retail_price", "wholesale_price")


def _max_sku_length() -> int:
    return int(current_app.config.get("MAX_VARIATION_SKU_LENGTH", DEFAULT_MAX_SKU_LENGTH))


def require_product(product_id: int, *, lock: bool = False) -> Product:
    q = db.session.query(Product).filter(Product.id == product_id)
    if lock:
        q = lock_for_update(q)
    product = q.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def selection_to_dict(selection: AttributeSelection) -> dict:
    return {"attribute_id": selection.attribute_id, "name": selection.name, "values": list(selection.values)}


def draft_to_dict(session: ProductEditSession, draft: VariationDraft) -> dict:
    return {
        "id": draft.id,
        "sku": draft.sku,
        "variant_name": draft.variant_name,
        "cost_price": decimal_str(draft.cost_price),
        "retail_price": decimal_str(draft.retail_price),
        "wholesale_price": decimal_str(draft.wholesale_price),
        "barcode": draft.barcode,
        "is_active": draft.is_active,
        "stock_quantity": decimal_str(draft.stock_quantity),
        "attribute_combination": session.combination_map(draft),
    }


def product_detail(product: Product) -> dict:
    data = product.to_dict()
    data["unit_configs"] = [c.to_dict() for c in product.unit_configs]
    data["attributes_config"] = [selection_to_dict(s) for s in selections_from_variations(product.variations)]
    data["variations"] = [v.to_dict() for v in product.variations]
    data["stock"] = [s.to_dict() for s in product.stock_rows]
    return data


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_products(
    item_type: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Args:
        item_type: Standard or Variable
        search: case-insensitive match on name or SKU
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)

    if item_type is not None:
        if item_type not in ITEM_TYPES:
            raise ValidationError(f"item_type must be one of: {', '.join(ITEM_TYPES)}")
        base_query = base_query.filter(Product.item_type == item_type)

    if search:
        pattern = f"%{search.strip().lower()}%"
        base_query = base_query.filter(
            db.or_(db.func.lower(Product.name).like(pattern), db.func.lower(Product.sku).like(pattern))
        )

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> dict:
    return product_detail(require_product(product_id))


# ---------------------------------------------------------------------------
# Request -> edit session
# ---------------------------------------------------------------------------

def _parse_selections(rows) -> list[AttributeSelection]:
    if not isinstance(rows, list):
        raise ValidationError("attributes_config must be an array")

    selections = []
    seen = set()
    for row in rows:
        if not isinstance(row, dict):
            raise ValidationError("Each attributes_config entry must be an object")
        attribute_id = parse_int(row.get("attribute_id"), "attribute_id")
        if attribute_id in seen:
            raise ValidationError(f"Attribute {attribute_id} is selected more than once.")
        seen.add(attribute_id)

        attribute = get_attribute(attribute_id)
        if attribute is None:
            raise ValidationError(f"Attribute {attribute_id} does not exist.")

        values = row.get("values") or []
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValidationError("attributes_config values must be an array of strings.")
        values = list(dict.fromkeys(v.strip() for v in values if v.strip()))

        known = {v.value for v in attribute.values}
        unknown = [v for v in values if v not in known]
        if unknown:
            raise ValidationError(
                f'Unknown values for attribute "{attribute.name}": {", ".join(unknown)}'
            )
        selections.append(AttributeSelection(attribute.id, attribute.name, values))
    return selections


def _parse_combination(raw, session: ProductEditSession, names: dict[int, str]) -> tuple:
    """
    Map {attribute_name: value} to ordered (attribute_id, value) pairs.

    Pairs follow the order of the session's selections; attributes not
    selected keep the order they were given in.
    """
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("Each variation needs an attribute_combination object.")

    by_name = {s.name.lower(): s.attribute_id for s in session.selections}
    order = {s.attribute_id: i for i, s in enumerate(session.selections)}

    pairs = []
    for name, value in raw.items():
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f'Attribute "{name}" needs a non-empty value.')
        key = str(name).strip().lower()
        attribute_id = by_name.get(key)
        if attribute_id is None:
            attribute = db.session.query(Attribute).filter(db.func.lower(Attribute.name) == key).first()
            if attribute is None:
                raise ValidationError(f'Unknown attribute "{name}".')
            attribute_id = attribute.id
            names[attribute_id] = attribute.name
        pairs.append((attribute_id, value.strip()))

    pairs.sort(key=lambda pair: order.get(pair[0], len(order)))
    return tuple(pairs)


def _parse_quantity(raw, field: str) -> Decimal | None:
    if raw in (None, ""):
        return None
    quantity = parse_decimal(raw, field)
    if quantity < 0:
        raise ValidationError(f"{field} must be >= 0")
    return check_scale(quantity, QUANTITY_PLACES, field)


def _parse_variation(row, session: ProductEditSession, names: dict[int, str]) -> VariationDraft:
    if not isinstance(row, dict):
        raise ValidationError("Each variation must be an object")
    row = {k: v for k, v in row.items() if k not in READ_ONLY_KEYS or k == "id"}

    variation_id = row.pop("id", None)
    combination = _parse_combination(row.pop("attribute_combination", None), session, names)
    stock_quantity = _parse_quantity(row.pop("stock_quantity", None), "stock_quantity")

    patch = validate_payload(model=ProductVariation, payload=row, policy=VARIATION_POLICY, partial=True)
    enforce_rules_prices(patch)
    for field in PRICE_FIELDS:
        if field not in patch:
            patch[field] = session.fields.get(field)

    return VariationDraft(
        combination=combination,
        id=parse_int(variation_id, "id") if variation_id is not None else None,
        stock_quantity=stock_quantity,
        **patch,
    )


def _selections_from_drafts(drafts: list[VariationDraft], names: dict[int, str]) -> list[AttributeSelection]:
    by_attribute: dict[int, AttributeSelection] = {}
    for draft in drafts:
        for attribute_id, value in draft.combination:
            selection = by_attribute.setdefault(
                attribute_id, AttributeSelection(attribute_id, names.get(attribute_id, str(attribute_id)), [])
            )
            if value not in selection.values:
                selection.values.append(value)
    return list(by_attribute.values())


def build_session(payload, product: Product | None = None) -> ProductEditSession:
    """Validate the request and fold it into an edit session (no writes)."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = {k: v for k, v in payload.items() if k not in READ_ONLY_KEYS}
    nested = {k: payload.pop(k) for k in NESTED_KEYS if k in payload}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=product is not None)
    enforce_rules_prices(patch)

    if product is None:
        session = ProductEditSession(max_sku_length=_max_sku_length())
    else:
        session = ProductEditSession.from_product(product, max_sku_length=_max_sku_length())
    session.fields.update(patch)

    if "unit_configs" in nested:
        session.replace_unit_configs(nested["unit_configs"])
    session.refresh_base_flags()

    if "attributes_config" in nested:
        session.selections = _parse_selections(nested["attributes_config"])

    if "variations" in nested:
        rows = nested["variations"]
        if not isinstance(rows, list):
            raise ValidationError("variations must be an array")
        names = dict(session.attribute_names)
        session.variations = [_parse_variation(row, session, names) for row in rows]
        if "attributes_config" not in nested:
            session.selections = _selections_from_drafts(session.variations, names)
    elif session.item_type == ITEM_TYPE_STANDARD:
        session.variations = []
        session.selections = []

    if "stock_quantity" in nested:
        quantity = _parse_quantity(nested["stock_quantity"], "stock_quantity")
        if quantity and product is not None:
            raise ValidationError("Opening stock can only be set when the item is created; use a stock adjustment.")
        session.stock_quantity = quantity

    session.validate()
    return session


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def _check_references(session: ProductEditSession) -> None:
    unit_ids = {session.base_unit_id} | {c.unit_id for c in session.unit_configs}
    found = {row[0] for row in db.session.query(Unit.id).filter(Unit.id.in_(unit_ids)).all()}
    missing = sorted(unit_ids - found)
    if missing:
        raise ValidationError(f"Unit {missing[0]} does not exist.")

    store_id = session.fields.get("store_id")
    if store_id is not None and db.session.query(Store.id).filter(Store.id == store_id).first() is None:
        raise ValidationError(f"Store {store_id} does not exist.")


def _check_skus(session: ProductEditSession, product_id: int | None) -> None:
    sku = session.fields.get("sku")
    if sku:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if product_id is not None:
            q = q.filter(Product.id != product_id)
        if q.first():
            raise ConflictError(f'SKU "{sku}" already exists.')

    skus = [d.sku for d in session.variations if d.sku]
    if skus:
        q = db.session.query(ProductVariation.sku).filter(ProductVariation.sku.in_(skus))
        if product_id is not None:
            q = q.filter(ProductVariation.item_id != product_id)
        taken = q.first()
        if taken:
            raise DuplicateSkuError(taken[0], f'SKU "{taken[0]}" is already used by another item.')


def _needs_opening_store(session: ProductEditSession, matched: list) -> bool:
    if session.stock_quantity:
        return True
    return any(draft.stock_quantity and row is None for draft, _, row in matched)


def _match_variations(session: ProductEditSession, product: Product | None) -> list:
    """Pair each draft with its stored row (or None), before anything is written."""
    stored = list(product.variations) if product is not None else []
    by_id = {v.id: v for v in stored}
    by_combination = {frozenset(v.combination()): v for v in stored}

    # Explicit ids claim their rows first; combination matches take what is left
    claimed = set()
    for draft in session.variations:
        if draft.id is None:
            continue
        if draft.id not in by_id:
            raise ValidationError(f"Variation {draft.id} does not belong to this item.")
        if draft.id in claimed:
            raise ValidationError(f"Variation {draft.id} appears more than once.")
        claimed.add(draft.id)

    matched = []
    for draft in session.variations:
        links = resolve_attribute_values(list(draft.combination))
        if draft.id is not None:
            row = by_id[draft.id]
        else:
            row = by_combination.get(frozenset(draft.combination))
            if row is not None and row.id in claimed:
                row = None
            elif row is not None:
                claimed.add(row.id)
        matched.append((draft, links, row))
    return matched


def _check_type_switch(session: ProductEditSession, product: Product | None) -> None:
    if product is None or product.is_variable or session.item_type != ITEM_TYPE_VARIABLE:
        return
    loose = [s for s in product.stock_rows if s.item_variation_id is None and Decimal(s.quantity or 0) != 0]
    if loose:
        raise ConflictError(
            "Cannot switch to Variable while the item has stock on hand. Adjust it to zero first."
        )


def _sync_unit_configs(session: ProductEditSession, product: Product) -> None:
    current = {c.unit_id: c for c in product.unit_configs}
    wanted = {d.unit_id for d in session.unit_configs}

    for unit_id, config in current.items():
        if unit_id not in wanted:
            product.unit_configs.remove(config)

    for draft in session.unit_configs:
        config = current.get(draft.unit_id)
        if config is None:
            config = ProductUnit(unit_id=draft.unit_id)
            product.unit_configs.append(config)
        config.base_unit_id = product.base_unit_id
        config.conversion_factor = draft.conversion_factor
        config.is_purchase_unit = draft.is_purchase_unit
        config.is_sales_unit = draft.is_sales_unit
        config.is_base_unit = draft.is_base_unit


def _sync_variations(product: Product, matched: list) -> list:
    keep = {id(row) for _, _, row in matched if row is not None}
    for variation in list(product.variations):
        if id(variation) not in keep:
            product.variations.remove(variation)
    # Kept rows changing SKU release the old one too, so swaps within the batch
    # never collide with UNIQUE(sku) row by row
    for draft, _, row in matched:
        if row is not None and row.sku is not None and row.sku != draft.sku:
            row.sku = None
    # Free the SKUs of deleted rows before new rows claim them
    db.session.flush()

    written = []
    for draft, links, row in matched:
        is_new = row is None
        if is_new:
            row = ProductVariation()
            product.variations.append(row)

        row.sku = draft.sku
        row.variant_name = draft.variant_name or " / ".join(draft.values)
        row.cost_price = draft.cost_price
        row.retail_price = draft.retail_price
        row.wholesale_price = draft.wholesale_price
        row.barcode = draft.barcode
        row.is_active = draft.is_active

        if is_new or [link.attribute_value_id for link in row.attribute_links] != [v.id for v in links]:
            row.attribute_links.clear()
            db.session.flush()
            for position, value in enumerate(links):
                row.attribute_links.append(VariationAttributeValue(attribute_value=value, position=position))
        written.append((draft, row, is_new))

    db.session.flush()
    return written


def _drop_loose_stock(product: Product) -> None:
    for row in list(product.stock_rows):
        if row.item_variation_id is None:
            db.session.delete(row)


def _save(session: ProductEditSession, product: Product | None) -> Product:
    creating = product is None

    # Every check that can fail runs before the first write
    _check_references(session)
    _check_skus(session, None if creating else product.id)
    matched = _match_variations(session, product)
    _check_type_switch(session, product)
    if _needs_opening_store(session, matched) and session.fields.get("store_id") is None:
        raise ValidationError("store_id is required to record opening stock.")

    if creating:
        product = Product()
        db.session.add(product)
    for key, value in session.fields.items():
        setattr(product, key, value)
    db.session.flush()

    _sync_unit_configs(session, product)

    if product.is_variable:
        _drop_loose_stock(product)
    written = _sync_variations(product, matched)

    if product.enable_stock_management:
        if creating and session.stock_quantity and not product.is_variable:
            apply_stock_delta(
                store_id=product.store_id,
                product=product,
                variation=None,
                delta=session.stock_quantity,
                note="Opening stock",
            )
        for draft, row, is_new in written:
            if is_new and draft.stock_quantity:
                apply_stock_delta(
                    store_id=product.store_id,
                    product=product,
                    variation=row,
                    delta=draft.stock_quantity,
                    note=f"Opening stock for {row.sku or row.variant_name}",
                )

    append_ledger_event(
        event_type="product.created" if creating else "product.updated",
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        store_id=product.store_id,
        note=(
            f"{product.item_type} item sku={product.sku} name={product.name} "
            f"units={len(session.unit_configs)} variations={len(written)}"
        ),
    )
    db.session.commit()
    return product


def create_product(payload: dict) -> dict:
    """
    Create a product with its unit configurations and variations.

    Raises:
        ValidationError: bad input, unknown unit/attribute value
        MissingBaseUnitConfigurationError: no factor-1 base row
        DuplicateSkuError: variation SKU repeated or taken elsewhere
        ConflictError: product SKU taken
    """
    def _op():
        session = build_session(payload)
        product = _save(session, None)
        current_app.logger.info("Created product %s (%s)", product.id, product.item_type)
        return product_detail(product)

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> dict:
    """
    Update a product. Omitted collections keep their stored contents; a
    provided collection replaces the stored one.
    """
    def _op():
        product = require_product(product_id, lock=True)
        session = build_session(payload, product)
        product = _save(session, product)
        return product_detail(product)

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """Delete a product with its unit configurations, variations and stock."""
    def _op():
        product = require_product(product_id, lock=True)
        append_ledger_event(
            event_type="product.deleted",
            event_category="product",
            entity_type="product",
            entity_id=product.id,
            store_id=product.store_id,
            note=f"Deleted product sku={product.sku} name={product.name}",
        )
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)


def preview_variations(payload) -> dict:
    """
    Generate variation drafts for the product form without saving.

    The payload carries attributes_config and, optionally, product_id plus
    the name/SKU/prices the form currently shows.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)

    product_id = payload.pop("product_id", None)
    rows = payload.pop("attributes_config", None)
    if rows is None:
        raise ValidationError("attributes_config is required")

    if product_id not in (None, ""):
        product = require_product(parse_int(product_id, "product_id"))
        session = ProductEditSession.from_product(product, max_sku_length=_max_sku_length())
    else:
        session = ProductEditSession(max_sku_length=_max_sku_length())

    patch = validate_payload(model=Product, payload=payload, policy=PREVIEW_POLICY, partial=True)
    enforce_rules_prices(patch)
    session.fields.update(patch)
    session.selections = _parse_selections(rows)

    drafts = session.generate_variations()
    return {
        "count": len(drafts),
        "attributes_config": [selection_to_dict(s) for s in session.selections],
        "variations": [draft_to_dict(session, d) for d in drafts],
    }


# ---------------------------------------------------------------------------
# Variation sub-resource
# ---------------------------------------------------------------------------

def _require_variation(product_id: int, variation_id: int) -> ProductVariation:
    variation = (
        db.session.query(ProductVariation)
        .filter(ProductVariation.id == variation_id, ProductVariation.item_id == product_id)
        .first()
    )
    if variation is None:
        raise NotFoundError("Variation not found")
    return variation


def list_variations(product_id: int) -> list[dict]:
    product = require_product(product_id)
    return [v.to_dict() for v in product.variations]


def update_variation(product_id: int, variation_id: int, payload) -> dict:
    def _op():
        if payload is not None and not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        variation = _require_variation(product_id, variation_id)
        clean = {k: v for k, v in (payload or {}).items() if k not in READ_ONLY_KEYS | {"attribute_combination"}}
        patch = validate_payload(model=ProductVariation, payload=clean, policy=VARIATION_POLICY, partial=True)
        enforce_rules_prices(patch)

        sku = patch.get("sku")
        if sku and sku != variation.sku:
            taken = (
                db.session.query(ProductVariation.id)
                .filter(ProductVariation.sku == sku, ProductVariation.id != variation.id)
                .first()
            )
            if taken:
                raise DuplicateSkuError(sku, f'SKU "{sku}" is already in use.')

        for key, value in patch.items():
            setattr(variation, key, value)

        append_ledger_event(
            event_type="variation.updated",
            event_category="product",
            entity_type="variation",
            entity_id=variation.id,
            note=f"Updated fields: {', '.join(sorted(patch.keys()))}",
        )
        db.session.commit()
        return variation.to_dict()

    return run_with_retry(_op)


def delete_variation(product_id: int, variation_id: int) -> None:
    def _op():
        variation = _require_variation(product_id, variation_id)
        product = variation.product
        append_ledger_event(
            event_type="variation.deleted",
            event_category="product",
            entity_type="variation",
            entity_id=variation.id,
            store_id=product.store_id,
            note=f"Deleted variation sku={variation.sku}",
        )
        product.variations.remove(variation)
        db.session.commit()

    run_with_retry(_op)
