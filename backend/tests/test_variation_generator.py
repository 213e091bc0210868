"""
Variation generator tests.

Pure functions, no app or database needed.
"""
import re
from decimal import Decimal

from mercantile.services.variation_generator import (
    AttributeSelection,
    build_variation_sku,
    combination_count,
    find_duplicate_sku,
    generate_variations,
    iter_combinations,
    sku_prefix,
    temporary_token,
)

COLOR = AttributeSelection(1, "Color", ["Red", "Blue"])
SIZE = AttributeSelection(2, "Size", ["S", "M", "L"])


class TestCombinations:
    def test_color_by_size_order(self):
        combos = list(iter_combinations([COLOR, SIZE]))
        assert [tuple(v for _, v in c) for c in combos] == [
            ("Red", "S"), ("Red", "M"), ("Red", "L"),
            ("Blue", "S"), ("Blue", "M"), ("Blue", "L"),
        ]
        assert combos[0] == ((1, "Red"), (2, "S"))

    def test_count_is_product_of_value_counts(self):
        material = AttributeSelection(3, "Material", ["Cotton", "Wool"])
        assert combination_count([COLOR, SIZE, material]) == 12
        assert len(list(iter_combinations([COLOR, SIZE, material]))) == 12

    def test_selection_without_values_is_skipped(self):
        empty = AttributeSelection(3, "Material", [])
        combos = list(iter_combinations([COLOR, empty, SIZE]))
        assert len(combos) == 6
        assert all(attribute_id in (1, 2) for combo in combos for attribute_id, _ in combo)

    def test_no_selections_yields_single_empty_combination(self):
        assert list(iter_combinations([])) == [()]
        assert list(iter_combinations([AttributeSelection(1, "Color", [])])) == [()]

    def test_combinations_are_distinct(self):
        combos = list(iter_combinations([COLOR, SIZE]))
        assert len(set(combos)) == len(combos)

    def test_repeated_values_collapse(self):
        doubled = AttributeSelection(1, "Color", ["Red", "Red", "Blue"])
        assert combination_count([doubled]) == 2

    def test_each_call_restarts(self):
        assert list(iter_combinations([COLOR, SIZE])) == list(iter_combinations([COLOR, SIZE]))


class TestSkuDerivation:
    def test_prefix_from_sku_and_id(self):
        assert sku_prefix("ts 01", "T Shirt", product_id=7) == "TS-01-7"

    def test_prefix_falls_back_to_name(self):
        assert sku_prefix(None, "Cotton  tee", product_id=3) == "COTTON-TEE-3"
        assert sku_prefix(None, None, product_id=3) == "ITEM-3"

    def test_unsaved_product_gets_temporary_token(self):
        assert sku_prefix("TS", None, token="NEW123") == "TS-NEW123"
        assert re.fullmatch(r"TS-NEW\d+", sku_prefix("TS", None))
        assert re.fullmatch(r"NEW\d+", temporary_token())

    def test_variation_sku_upper_cases_values(self):
        assert build_variation_sku("TS-7", ["Red", "xl"]) == "TS-7-RED-XL"

    def test_variation_sku_truncated(self):
        sku = build_variation_sku("A" * 45, ["Red", "Large"])
        assert len(sku) == 50
        assert sku == ("A" * 45 + "-RED-LARGE")[:50]
        assert len(build_variation_sku("A" * 45, ["Red"], max_length=20)) == 20


class TestGenerateVariations:
    def test_drafts_default_prices_and_names(self):
        drafts = generate_variations(
            [COLOR, SIZE],
            prefix="TS-7",
            cost_price=Decimal("5.00"),
            retail_price=Decimal("12.00"),
        )
        assert len(drafts) == 6
        first = drafts[0]
        assert first.sku == "TS-7-RED-S"
        assert first.variant_name == "Red / S"
        assert first.cost_price == Decimal("5.00")
        assert first.retail_price == Decimal("12.00")
        assert first.wholesale_price is None
        assert first.is_active is True
        assert first.id is None

    def test_regeneration_is_idempotent(self):
        one = generate_variations([COLOR, SIZE], prefix="TS-7")
        two = generate_variations([COLOR, SIZE], prefix="TS-7")
        assert [(d.combination, d.sku) for d in one] == [(d.combination, d.sku) for d in two]


class TestFindDuplicateSku:
    def test_returns_first_repeat(self):
        assert find_duplicate_sku(["A", "B", "A", "B"]) == "A"

    def test_blank_skus_ignored(self):
        assert find_duplicate_sku(["A", None, "", None, ""]) is None
