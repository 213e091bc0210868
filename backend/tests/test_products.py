import re
from decimal import Decimal

import pytest

from mercantile.extensions import db
from mercantile.models import (
    LedgerEvent,
    Product,
    ProductUnit,
    ProductVariation,
    Stock,
    VariationAttributeValue,
)
from mercantile.services import products_service, stock_service
from mercantile.validation import (
    ConflictError,
    DuplicateSkuError,
    MissingBaseUnitConfigurationError,
    NotFoundError,
    ValidationError,
)


def _assert_nothing_persisted():
    assert db.session.query(Product).count() == 0
    assert db.session.query(ProductUnit).count() == 0
    assert db.session.query(ProductVariation).count() == 0
    assert db.session.query(Stock).count() == 0
    assert db.session.query(LedgerEvent).filter(LedgerEvent.event_category == "product").count() == 0


def _variable_payload(store, piece, color, size, variations):
    return {
        "name": "Hoodie",
        "item_type": "Variable",
        "base_unit_id": piece.id,
        "store_id": store.id,
        "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
        "attributes_config": [
            {"attribute_id": color.id, "values": ["Red", "Blue"]},
            {"attribute_id": size.id, "values": ["S"]},
        ],
        "variations": variations,
    }


class TestCreateStandardProduct:
    def test_created_with_units_and_opening_stock(self, db_session, standard_product, store, piece, box):
        assert standard_product["item_type"] == "Standard"
        assert standard_product["base_unit_name"] == "Piece"

        configs = standard_product["unit_configs"]
        assert [c["unit_id"] for c in configs] == [piece.id, box.id]
        assert configs[0]["is_base_unit"] is True
        assert configs[1]["is_base_unit"] is False
        assert Decimal(configs[1]["conversion_factor"]) == Decimal("12")

        assert stock_service.get_stock(store.id, standard_product["id"]) == Decimal("10")
        assert standard_product["variations"] == []

        event = db.session.query(LedgerEvent).filter_by(
            event_type="product.created", entity_id=standard_product["id"]
        ).one()
        assert event.store_id == store.id

    def test_missing_factor_one_row(self, db_session, piece, box):
        with pytest.raises(MissingBaseUnitConfigurationError):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": box.id, "conversion_factor": 12}],
            })
        _assert_nothing_persisted()

    def test_missing_unit_configs(self, db_session, piece):
        with pytest.raises(MissingBaseUnitConfigurationError):
            products_service.create_product({"name": "Notebook", "base_unit_id": piece.id})
        _assert_nothing_persisted()

    def test_base_unit_row_with_other_factor(self, db_session, piece, box):
        with pytest.raises(MissingBaseUnitConfigurationError):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id,
                "unit_configs": [
                    {"unit_id": piece.id, "conversion_factor": 2},
                    {"unit_id": box.id, "conversion_factor": 1},
                ],
            })
        _assert_nothing_persisted()

    def test_required_fields(self, db_session, piece):
        with pytest.raises(ValidationError, match="name"):
            products_service.create_product({
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
            })

    def test_unknown_field_rejected(self, db_session, piece):
        with pytest.raises(ValidationError, match="not allowed"):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id,
                "price_cents": 100,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
            })

    def test_unknown_base_unit(self, db_session, piece):
        with pytest.raises(ValidationError, match="does not exist"):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id + 100,
                "unit_configs": [{"unit_id": piece.id + 100, "conversion_factor": 1}],
            })
        _assert_nothing_persisted()

    def test_duplicate_product_sku(self, db_session, standard_product, piece):
        with pytest.raises(ConflictError):
            products_service.create_product({
                "name": "Other",
                "sku": "NB-A5",
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
            })

    def test_opening_stock_needs_a_store(self, db_session, piece):
        with pytest.raises(ValidationError, match="store_id"):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
                "stock_quantity": 5,
            })
        _assert_nothing_persisted()

    def test_standard_product_cannot_have_variations(self, db_session, piece, color):
        with pytest.raises(ValidationError, match="Standard"):
            products_service.create_product({
                "name": "Notebook",
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
                "variations": [{"sku": "NB-RED", "attribute_combination": {"Color": "Red"}}],
            })

    def test_factor_finer_than_column_scale_rejected(self, db_session, piece, box):
        with pytest.raises(ValidationError, match="decimal places"):
            products_service.create_product({
                "name": "Rope",
                "base_unit_id": piece.id,
                "unit_configs": [
                    {"unit_id": piece.id, "conversion_factor": 1},
                    {"unit_id": box.id, "conversion_factor": "0.00001"},
                ],
            })
        _assert_nothing_persisted()

    @pytest.mark.parametrize("field", ["cost_price", "retail_price", "wholesale_price"])
    def test_price_finer_than_cents_rejected(self, db_session, piece, field):
        with pytest.raises(ValidationError, match="decimal places"):
            products_service.create_product({
                "name": "Rope",
                "base_unit_id": piece.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
                field: "1.005",
            })
        _assert_nothing_persisted()

    def test_opening_stock_finer_than_column_scale_rejected(self, db_session, store, piece):
        with pytest.raises(ValidationError, match="decimal places"):
            products_service.create_product({
                "name": "Rope",
                "base_unit_id": piece.id,
                "store_id": store.id,
                "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
                "stock_quantity": "1.00001",
            })
        _assert_nothing_persisted()


class TestCreateVariableProduct:
    def test_created_with_variations(self, db_session, variable_product, store):
        variations = variable_product["variations"]
        assert [v["sku"] for v in variations] == [
            "TSHIRT-RED-S", "TSHIRT-RED-M", "TSHIRT-BLUE-S", "TSHIRT-BLUE-M",
        ]
        assert variations[0]["attribute_combination"] == {"Color": "Red", "Size": "S"}
        assert variations[0]["variant_name"] == "Red / S"
        # Prices default from the product
        assert Decimal(variations[0]["retail_price"]) == Decimal("20.00")

        assert variable_product["attributes_config"] == [
            {"attribute_id": variable_product["attributes_config"][0]["attribute_id"], "name": "Color", "values": ["Red", "Blue"]},
            {"attribute_id": variable_product["attributes_config"][1]["attribute_id"], "name": "Size", "values": ["S", "M"]},
        ]

        red_s = variations[0]["id"]
        assert stock_service.get_stock(store.id, variable_product["id"], red_s) == Decimal("3")
        assert stock_service.get_stock(store.id, variable_product["id"], variations[1]["id"]) == Decimal("0")
        # Variable items never get an item-level stock row
        assert stock_service.get_stock(store.id, variable_product["id"]) == Decimal("0")

    def test_duplicate_sku_in_batch(self, db_session, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "HD-1", "attribute_combination": {"Color": "Red", "Size": "S"}},
            {"sku": "HD-1", "attribute_combination": {"Color": "Blue", "Size": "S"}},
        ])
        with pytest.raises(DuplicateSkuError) as exc:
            products_service.create_product(payload)
        assert exc.value.sku == "HD-1"
        _assert_nothing_persisted()

    def test_sku_used_by_another_item(self, db_session, variable_product, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "TSHIRT-RED-S", "attribute_combination": {"Color": "Red", "Size": "S"}},
        ])
        payload["name"] = "Hoodie"
        with pytest.raises(DuplicateSkuError) as exc:
            products_service.create_product(payload)
        assert exc.value.sku == "TSHIRT-RED-S"
        assert db.session.query(Product).count() == 1

    def test_unknown_attribute_value(self, db_session, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "HD-PURPLE", "attribute_combination": {"Color": "Purple", "Size": "S"}},
        ])
        with pytest.raises(ValidationError, match="Purple"):
            products_service.create_product(payload)
        _assert_nothing_persisted()

    def test_unknown_attribute(self, db_session, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "HD-1", "attribute_combination": {"Fabric": "Silk"}},
        ])
        with pytest.raises(ValidationError, match="Fabric"):
            products_service.create_product(payload)

    def test_repeated_combination(self, db_session, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "HD-1", "attribute_combination": {"Color": "Red", "Size": "S"}},
            {"sku": "HD-2", "attribute_combination": {"Size": "S", "Color": "Red"}},
        ])
        with pytest.raises(ValidationError, match="Duplicate attribute combination"):
            products_service.create_product(payload)

    def test_attributes_config_derived_when_omitted(self, db_session, store, piece, color, size):
        payload = _variable_payload(store, piece, color, size, [
            {"sku": "HD-RED-S", "attribute_combination": {"Color": "Red", "Size": "S"}},
        ])
        del payload["attributes_config"]
        created = products_service.create_product(payload)
        assert [s["name"] for s in created["attributes_config"]] == ["Color", "Size"]
        assert created["variations"][0]["attribute_combination"] == {"Color": "Red", "Size": "S"}


class TestUpdateProduct:
    def test_field_update_keeps_collections(self, db_session, variable_product):
        updated = products_service.update_product(variable_product["id"], {"description": "Soft cotton"})
        assert updated["description"] == "Soft cotton"
        assert [v["id"] for v in updated["variations"]] == [v["id"] for v in variable_product["variations"]]
        assert len(updated["unit_configs"]) == 1
        assert updated["version_id"] > variable_product["version_id"]

    def test_variation_sync_matches_by_combination(self, db_session, variable_product, store):
        before = {v["sku"]: v["id"] for v in variable_product["variations"]}
        updated = products_service.update_product(variable_product["id"], {
            "variations": [
                {"sku": "TSHIRT-RED-S", "attribute_combination": {"Size": "S", "Color": "Red"}},
                {"sku": "TSHIRT-RED-M2", "attribute_combination": {"Color": "Red", "Size": "M"}},
                {"id": before["TSHIRT-BLUE-S"], "sku": "TSHIRT-BLUE-S", "retail_price": "22.00",
                 "attribute_combination": {"Color": "Blue", "Size": "S"}},
            ],
        })
        after = {v["sku"]: v for v in updated["variations"]}
        assert set(after) == {"TSHIRT-RED-S", "TSHIRT-RED-M2", "TSHIRT-BLUE-S"}
        assert after["TSHIRT-RED-S"]["id"] == before["TSHIRT-RED-S"]
        assert after["TSHIRT-RED-M2"]["id"] == before["TSHIRT-RED-M"]
        assert Decimal(after["TSHIRT-BLUE-S"]["retail_price"]) == Decimal("22.00")
        assert after["TSHIRT-RED-S"]["attribute_combination"] == {"Color": "Red", "Size": "S"}

        # Stock followed the matched row; the dropped variation is gone
        assert stock_service.get_stock(store.id, variable_product["id"], before["TSHIRT-RED-S"]) == Decimal("3")
        assert db.session.query(ProductVariation).filter_by(id=before["TSHIRT-BLUE-M"]).count() == 0

    def test_variation_id_from_other_item_rejected(self, db_session, variable_product, standard_product):
        with pytest.raises(ValidationError, match="does not belong"):
            products_service.update_product(standard_product["id"], {
                "item_type": "Variable",
                "variations": [{"id": variable_product["variations"][0]["id"],
                                "attribute_combination": {"Color": "Red"}}],
            })

    def test_removing_base_unit_row_rejected(self, db_session, standard_product, box):
        with pytest.raises(MissingBaseUnitConfigurationError):
            products_service.update_product(standard_product["id"], {
                "unit_configs": [{"unit_id": box.id, "conversion_factor": 12}],
            })
        assert len(products_service.get_product(standard_product["id"])["unit_configs"]) == 2

    def test_changing_base_unit(self, db_session, standard_product, box):
        updated = products_service.update_product(standard_product["id"], {
            "base_unit_id": box.id,
            "unit_configs": [{"unit_id": box.id, "conversion_factor": 1}],
        })
        assert updated["base_unit_id"] == box.id
        assert [(c["unit_id"], c["is_base_unit"]) for c in updated["unit_configs"]] == [(box.id, True)]

    def test_switch_to_standard_drops_variations(self, db_session, variable_product):
        updated = products_service.update_product(variable_product["id"], {"item_type": "Standard"})
        assert updated["variations"] == []
        assert updated["attributes_config"] == []
        assert db.session.query(ProductVariation).count() == 0
        assert db.session.query(VariationAttributeValue).count() == 0
        assert db.session.query(Stock).count() == 0

    def test_switch_to_variable_refused_with_stock(self, db_session, standard_product):
        with pytest.raises(ConflictError):
            products_service.update_product(standard_product["id"], {"item_type": "Variable"})
        assert products_service.get_product(standard_product["id"])["item_type"] == "Standard"

    def test_opening_stock_only_on_create(self, db_session, standard_product):
        with pytest.raises(ValidationError, match="stock adjustment"):
            products_service.update_product(standard_product["id"], {"stock_quantity": 4})

    def test_fetched_product_can_be_resubmitted(self, db_session, variable_product):
        payload = products_service.get_product(variable_product["id"])
        payload.pop("stock")
        payload["unit_configs"] = [
            {k: c[k] for k in ("unit_id", "conversion_factor", "is_purchase_unit", "is_sales_unit")}
            for c in payload["unit_configs"]
        ]
        for variation in payload["variations"]:
            variation["variant_name"] = variation["variant_name"].upper()
        updated = products_service.update_product(variable_product["id"], payload)
        assert updated["variations"][0]["variant_name"] == "RED / S"

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.update_product(999, {"name": "Ghost"})

    def test_swapping_skus_between_variations(self, db_session, variable_product, store):
        payload = products_service.get_product(variable_product["id"])
        by_sku = {v["sku"]: v for v in payload["variations"]}
        red_s, red_m = by_sku["TSHIRT-RED-S"], by_sku["TSHIRT-RED-M"]
        red_s["sku"], red_m["sku"] = red_m["sku"], red_s["sku"]

        updated = products_service.update_product(variable_product["id"], {"variations": payload["variations"]})

        by_id = {v["id"]: v["sku"] for v in updated["variations"]}
        assert by_id[red_s["id"]] == "TSHIRT-RED-M"
        assert by_id[red_m["id"]] == "TSHIRT-RED-S"
        # Stock stays with the row, not the SKU
        assert stock_service.get_stock(store.id, variable_product["id"], red_s["id"]) == Decimal("3")

    def test_new_variation_takes_sku_released_in_same_save(self, db_session, variable_product):
        payload = products_service.get_product(variable_product["id"])
        by_sku = {v["sku"]: v for v in payload["variations"]}
        red_s, red_m = by_sku["TSHIRT-RED-S"], by_sku["TSHIRT-RED-M"]
        red_s["sku"], red_m["sku"] = "TSHIRT-RED-M", "TSHIRT-RED-M-OLD"
        red_l = {"sku": "TSHIRT-RED-S", "attribute_combination": {"Color": "Red", "Size": "L"}}

        updated = products_service.update_product(variable_product["id"], {"variations": [red_s, red_m, red_l]})

        skus = {v["sku"]: v for v in updated["variations"]}
        assert set(skus) == {"TSHIRT-RED-M", "TSHIRT-RED-M-OLD", "TSHIRT-RED-S"}
        assert skus["TSHIRT-RED-M"]["id"] == red_s["id"]
        assert skus["TSHIRT-RED-S"]["id"] not in {v["id"] for v in payload["variations"]}
        assert skus["TSHIRT-RED-S"]["attribute_combination"] == {"Color": "Red", "Size": "L"}


class TestDeleteProduct:
    def test_delete_cascades(self, db_session, variable_product, standard_product):
        products_service.delete_product(variable_product["id"])
        assert db.session.query(ProductVariation).count() == 0
        assert db.session.query(VariationAttributeValue).count() == 0
        assert db.session.query(ProductUnit).filter_by(product_id=variable_product["id"]).count() == 0
        assert db.session.query(Stock).filter_by(item_id=variable_product["id"]).count() == 0
        # The other product is untouched
        assert len(products_service.get_product(standard_product["id"])["unit_configs"]) == 2

    def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.delete_product(999)


class TestPreviewVariations:
    def test_preview_for_unsaved_product(self, db_session, color, size):
        preview = products_service.preview_variations({
            "name": "Tee",
            "sku": "tee",
            "retail_price": "9.99",
            "attributes_config": [
                {"attribute_id": color.id, "values": ["Red", "Blue"]},
                {"attribute_id": size.id, "values": ["S", "M", "L"]},
            ],
        })
        assert preview["count"] == 6
        first = preview["variations"][0]
        assert re.fullmatch(r"TEE-NEW\d+-RED-S", first["sku"])
        assert first["attribute_combination"] == {"Color": "Red", "Size": "S"}
        assert first["retail_price"] == "9.99"
        assert [v["attribute_combination"]["Size"] for v in preview["variations"][:3]] == ["S", "M", "L"]
        # Nothing saved
        assert db.session.query(Product).count() == 0

    def test_preview_for_saved_product_uses_id(self, db_session, variable_product, color):
        preview = products_service.preview_variations({
            "product_id": variable_product["id"],
            "attributes_config": [{"attribute_id": color.id, "values": ["Blue"]}],
        })
        assert [v["sku"] for v in preview["variations"]] == [f"TSHIRT-{variable_product['id']}-BLUE"]

    def test_selections_without_values(self, db_session, color):
        with pytest.raises(ValidationError, match="at least one"):
            products_service.preview_variations({
                "attributes_config": [{"attribute_id": color.id, "values": []}],
            })

    def test_unknown_value(self, db_session, color):
        with pytest.raises(ValidationError, match="Purple"):
            products_service.preview_variations({
                "attributes_config": [{"attribute_id": color.id, "values": ["Purple"]}],
            })


class TestListProducts:
    def test_filters(self, db_session, standard_product, variable_product):
        assert products_service.list_products()["count"] == 2
        variable = products_service.list_products(item_type="Variable")
        assert [p["id"] for p in variable["items"]] == [variable_product["id"]]
        found = products_service.list_products(search="nb-a")
        assert [p["id"] for p in found["items"]] == [standard_product["id"]]

    def test_pagination(self, db_session, standard_product, variable_product):
        page = products_service.list_products(page=2, per_page=1)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 2
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False

    def test_bad_item_type(self, db_session):
        with pytest.raises(ValidationError):
            products_service.list_products(item_type="Bundle")


class TestVariationSubResource:
    def test_update_variation(self, db_session, variable_product):
        variation = variable_product["variations"][1]
        updated = products_service.update_variation(
            variable_product["id"], variation["id"], {"barcode": "400123", "is_active": False}
        )
        assert updated["barcode"] == "400123"
        assert updated["is_active"] is False

    def test_update_variation_sku_taken(self, db_session, variable_product):
        first, second = variable_product["variations"][:2]
        with pytest.raises(DuplicateSkuError):
            products_service.update_variation(variable_product["id"], second["id"], {"sku": first["sku"]})

    def test_delete_variation_removes_stock(self, db_session, variable_product, store):
        red_s = variable_product["variations"][0]["id"]
        products_service.delete_variation(variable_product["id"], red_s)
        assert len(products_service.list_variations(variable_product["id"])) == 3
        assert stock_service.get_stock(store.id, variable_product["id"], red_s) == Decimal("0")

    def test_variation_of_other_product(self, db_session, variable_product, standard_product):
        with pytest.raises(NotFoundError):
            products_service.delete_variation(standard_product["id"], variable_product["variations"][0]["id"])
