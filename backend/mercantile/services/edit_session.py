# Overview: In-memory working copy of a product being created or edited.
"""
ProductEditSession holds everything the product form edits before a save:
product fields, unit configurations, attribute selections and variation
drafts. Nothing here touches the database; products_service builds a session
from the request (and the stored product), calls validate(), then persists.

Unit configuration removal is not guarded here. A session may pass through
states without a base row while the user is editing; validate() is the gate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ..models import ITEM_TYPE_STANDARD, ITEM_TYPE_VARIABLE, ITEM_TYPES, Product
from ..validation import (
    DuplicateConfigurationError,
    DuplicateSkuError,
    NotFoundError,
    ValidationError,
    enforce_rules_unit_config,
    parse_bool,
)
from .product_unit_service import check_base_unit_configuration, is_base_config
from .variation_generator import (
    DEFAULT_MAX_SKU_LENGTH,
    AttributeSelection,
    VariationDraft,
    active_selections,
    find_duplicate_sku,
    generate_variations as generate_drafts,
    sku_prefix,
)

VARIATION_EDITABLE_FIELDS = {
    "sku",
    "variant_name",
    "cost_price",
    "retail_price",
    "wholesale_price",
    "barcode",
    "is_active",
    "stock_quantity",
}


@dataclass
class UnitConfigDraft:
    unit_id: int
    conversion_factor: Decimal
    is_purchase_unit: bool = False
    is_sales_unit: bool = False
    is_base_unit: bool = False
    id: Optional[int] = None


@dataclass
class ProductEditSession:
    product_id: Optional[int] = None
    fields: dict = field(default_factory=dict)
    unit_configs: list[UnitConfigDraft] = field(default_factory=list)
    selections: list[AttributeSelection] = field(default_factory=list)
    variations: list[VariationDraft] = field(default_factory=list)
    stock_quantity: Optional[Decimal] = None
    max_sku_length: int = DEFAULT_MAX_SKU_LENGTH

    @classmethod
    def from_product(cls, product: Product, *, max_sku_length: int = DEFAULT_MAX_SKU_LENGTH) -> "ProductEditSession":
        session = cls(
            product_id=product.id,
            fields={
                "name": product.name,
                "sku": product.sku,
                "barcode": product.barcode,
                "description": product.description,
                "item_type": product.item_type,
                "base_unit_id": product.base_unit_id,
                "store_id": product.store_id,
                "cost_price": product.cost_price,
                "retail_price": product.retail_price,
                "wholesale_price": product.wholesale_price,
                "is_active": product.is_active,
                "enable_stock_management": product.enable_stock_management,
                "is_taxable": product.is_taxable,
            },
            max_sku_length=max_sku_length,
        )
        for config in product.unit_configs:
            session.unit_configs.append(
                UnitConfigDraft(
                    unit_id=config.unit_id,
                    conversion_factor=Decimal(config.conversion_factor),
                    is_purchase_unit=config.is_purchase_unit,
                    is_sales_unit=config.is_sales_unit,
                    is_base_unit=config.is_base_unit,
                    id=config.id,
                )
            )
        for variation in product.variations:
            session.variations.append(
                VariationDraft(
                    combination=tuple(variation.combination()),
                    sku=variation.sku,
                    cost_price=variation.cost_price,
                    retail_price=variation.retail_price,
                    wholesale_price=variation.wholesale_price,
                    barcode=variation.barcode,
                    is_active=variation.is_active,
                    variant_name=variation.variant_name,
                    id=variation.id,
                )
            )
        session.selections = selections_from_variations(product.variations)
        return session

    @property
    def base_unit_id(self) -> int | None:
        return self.fields.get("base_unit_id")

    @property
    def item_type(self) -> str:
        return self.fields.get("item_type") or ITEM_TYPE_STANDARD

    @property
    def attribute_names(self) -> dict[int, str]:
        return {s.attribute_id: s.name for s in self.selections}

    # Unit configurations

    def add_unit_config(self, unit_id, conversion_factor, is_purchase_unit=False, is_sales_unit=False) -> UnitConfigDraft:
        parsed_unit_id, factor = enforce_rules_unit_config(unit_id, conversion_factor)
        if any(c.unit_id == parsed_unit_id for c in self.unit_configs):
            raise DuplicateConfigurationError(f"Unit ID {parsed_unit_id} is already configured for this item.")

        draft = UnitConfigDraft(
            unit_id=parsed_unit_id,
            conversion_factor=factor,
            is_purchase_unit=parse_bool(is_purchase_unit),
            is_sales_unit=parse_bool(is_sales_unit),
            is_base_unit=is_base_config(parsed_unit_id, factor, self.base_unit_id),
        )
        self.unit_configs.append(draft)
        return draft

    def remove_unit_config(self, unit_id: int) -> UnitConfigDraft:
        for index, config in enumerate(self.unit_configs):
            if config.unit_id == unit_id:
                return self.unit_configs.pop(index)
        raise NotFoundError("Item unit configuration not found.")

    def replace_unit_configs(self, rows: list[dict]) -> None:
        if not isinstance(rows, list):
            raise ValidationError("unit_configs must be an array")
        self.unit_configs = []
        for row in rows:
            if not isinstance(row, dict):
                raise ValidationError("Each unit configuration must be an object")
            self.add_unit_config(
                row.get("unit_id"),
                row.get("conversion_factor"),
                row.get("is_purchase_unit", False),
                row.get("is_sales_unit", False),
            )

    def refresh_base_flags(self) -> None:
        """Re-derive is_base_unit after base_unit_id changed."""
        for config in self.unit_configs:
            config.is_base_unit = is_base_config(config.unit_id, config.conversion_factor, self.base_unit_id)

    # Variations

    def generate_variations(self, token: str | None = None) -> list[VariationDraft]:
        """
        Rebuild the variation list from the current selections.

        The previous list is replaced wholesale, manual edits included.
        """
        if not active_selections(self.selections):
            raise ValidationError("Select at least one attribute value to generate variations.")

        prefix = sku_prefix(self.fields.get("sku"), self.fields.get("name"), self.product_id, token)
        self.variations = generate_drafts(
            self.selections,
            prefix=prefix,
            cost_price=self.fields.get("cost_price"),
            retail_price=self.fields.get("retail_price"),
            wholesale_price=self.fields.get("wholesale_price"),
            max_sku_length=self.max_sku_length,
        )
        return self.variations

    def _variation_at(self, index: int) -> VariationDraft:
        if index < 0 or index >= len(self.variations):
            raise NotFoundError("Variation not found")
        return self.variations[index]

    def update_variation(self, index: int, **changes) -> VariationDraft:
        draft = self._variation_at(index)
        for key, value in changes.items():
            if key not in VARIATION_EDITABLE_FIELDS:
                raise ValidationError(f"Field not allowed: {key}")
            if key == "sku" and isinstance(value, str):
                value = value.strip() or None
            setattr(draft, key, value)
        return draft

    def remove_variation(self, index: int) -> VariationDraft:
        self._variation_at(index)
        return self.variations.pop(index)

    def combination_map(self, draft: VariationDraft) -> dict[str, str]:
        names = self.attribute_names
        return {names.get(attribute_id, str(attribute_id)): value for attribute_id, value in draft.combination}

    # Save gate

    def validate(self) -> None:
        """
        Checks run before anything is written.

        Raises:
            ValidationError: missing name/base unit, bad item type,
                variations on a Standard product
            MissingBaseUnitConfigurationError: no factor-1 base row
            DuplicateSkuError: two variations share a SKU
        """
        if not self.fields.get("name"):
            raise ValidationError("Missing required fields: name")
        if self.base_unit_id is None:
            raise ValidationError("Missing required fields: base_unit_id")
        if self.item_type not in ITEM_TYPES:
            raise ValidationError(f"item_type must be one of: {', '.join(ITEM_TYPES)}")

        check_base_unit_configuration(self.unit_configs, self.base_unit_id)

        if self.item_type == ITEM_TYPE_STANDARD and self.variations:
            raise ValidationError("A Standard item cannot have variations.")

        if self.item_type == ITEM_TYPE_VARIABLE:
            if self.stock_quantity:
                raise ValidationError("Opening stock for a Variable item is entered per variation.")
            seen = set()
            for draft in self.variations:
                if not draft.combination:
                    raise ValidationError("Each variation needs at least one attribute value.")
                ids = [attribute_id for attribute_id, _ in draft.combination]
                if len(set(ids)) != len(ids):
                    raise ValidationError("A variation may use each attribute only once.")
                key = frozenset(draft.combination)
                if key in seen:
                    raise ValidationError(
                        f"Duplicate attribute combination: {self.combination_map(draft)}"
                    )
                seen.add(key)

        duplicate = find_duplicate_sku(draft.sku for draft in self.variations)
        if duplicate is not None:
            raise DuplicateSkuError(duplicate)

        product_sku = self.fields.get("sku")
        if product_sku and any(draft.sku == product_sku for draft in self.variations):
            raise DuplicateSkuError(product_sku)


def selections_from_variations(variations) -> list[AttributeSelection]:
    """Derive attributes_config from stored variations, first-seen order."""
    by_attribute: dict[int, AttributeSelection] = {}
    for variation in variations:
        for link in variation.attribute_links:
            value = link.attribute_value
            selection = by_attribute.get(value.attribute_id)
            if selection is None:
                selection = AttributeSelection(value.attribute_id, value.attribute.name, [])
                by_attribute[value.attribute_id] = selection
            if value.value not in selection.values:
                selection.values.append(value.value)
    return list(by_attribute.values())
