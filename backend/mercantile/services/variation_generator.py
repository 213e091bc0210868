# Overview: Pure variation generation - Cartesian product of attribute selections and SKU derivation.
"""
Variation generator.

No database access. Combinations are ordered tuples of (attribute_id, value)
pairs; names are attached only when projecting to the API shape.

ORDERING:
The first selection is the outermost loop. Color:[Red, Blue] x Size:[S, M, L]
yields (Red,S), (Red,M), (Red,L), (Blue,S), (Blue,M), (Blue,L). SKU suffixes
are built from the values in this order, so it must stay stable.
"""
from __future__ import annotations

import itertools
import re
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator, Optional

DEFAULT_MAX_SKU_LENGTH = 50

Combination = tuple[tuple[int, str], ...]


@dataclass
class AttributeSelection:
    """Attribute chosen for a product plus the subset of its values in use."""
    attribute_id: int
    name: str
    values: list[str] = field(default_factory=list)


@dataclass
class VariationDraft:
    combination: Combination
    sku: Optional[str] = None
    cost_price: Optional[Decimal] = None
    retail_price: Optional[Decimal] = None
    wholesale_price: Optional[Decimal] = None
    barcode: Optional[str] = None
    is_active: bool = True
    variant_name: Optional[str] = None
    stock_quantity: Optional[Decimal] = None
    id: Optional[int] = None

    @property
    def values(self) -> list[str]:
        return [value for _, value in self.combination]


def active_selections(selections: Iterable[AttributeSelection]) -> list[AttributeSelection]:
    """Selections that take part in generation: at least one value, duplicates dropped."""
    active = []
    for selection in selections:
        values = list(dict.fromkeys(selection.values or []))
        if values:
            active.append(AttributeSelection(selection.attribute_id, selection.name, values))
    return active


def iter_combinations(selections: Iterable[AttributeSelection]) -> Iterator[Combination]:
    """
    Lazily yield every combination across the selections that have values.

    Selections without values are skipped rather than zeroing the product.
    With nothing to combine, a single empty combination is yielded.
    Each call returns a fresh iterator.
    """
    axes = [
        [(selection.attribute_id, value) for value in selection.values]
        for selection in active_selections(selections)
    ]
    return itertools.product(*axes)


def combination_count(selections: Iterable[AttributeSelection]) -> int:
    count = 1
    for selection in active_selections(selections):
        count *= len(selection.values)
    return count


def temporary_token() -> str:
    """Stand-in for the product id while the product is not yet saved."""
    return f"NEW{int(time.time() * 1000)}"


def sku_prefix(
    sku: str | None,
    name: str | None,
    product_id: int | None = None,
    token: str | None = None,
) -> str:
    base = re.sub(r"\s+", "-", (sku or name or "ITEM").strip()).upper()
    if product_id is not None:
        unique_part = str(product_id)
    else:
        unique_part = token or temporary_token()
    return f"{base}-{unique_part}"


def build_variation_sku(prefix: str, values: Iterable[str], max_length: int = DEFAULT_MAX_SKU_LENGTH) -> str:
    return f"{prefix}-{'-'.join(values).upper()}"[:max_length]


def generate_variations(
    selections: Iterable[AttributeSelection],
    *,
    prefix: str,
    cost_price: Decimal | None = None,
    retail_price: Decimal | None = None,
    wholesale_price: Decimal | None = None,
    max_sku_length: int = DEFAULT_MAX_SKU_LENGTH,
) -> list[VariationDraft]:
    """One draft per combination, prices defaulted from the product."""
    drafts = []
    for combo in iter_combinations(selections):
        values = [value for _, value in combo]
        drafts.append(
            VariationDraft(
                combination=combo,
                sku=build_variation_sku(prefix, values, max_sku_length),
                cost_price=cost_price,
                retail_price=retail_price,
                wholesale_price=wholesale_price,
                variant_name=" / ".join(values) or None,
            )
        )
    return drafts


def find_duplicate_sku(skus: Iterable[str | None]) -> str | None:
    """First non-empty SKU seen twice, or None."""
    seen: set[str] = set()
    for sku in skus:
        if not sku:
            continue
        if sku in seen:
            return sku
        seen.add(sku)
    return None
