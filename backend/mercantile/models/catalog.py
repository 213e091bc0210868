from __future__ import annotations

from ..extensions import db
from mercantile.time_utils import to_utc_z, decimal_str

ITEM_TYPE_STANDARD = "Standard"
ITEM_TYPE_VARIABLE = "Variable"
ITEM_TYPES = (ITEM_TYPE_STANDARD, ITEM_TYPE_VARIABLE)


class Unit(db.Model):
    """
    Named measurement unit (Piece, Box, Kilogram...).

    The unit itself carries no conversion data. How many base units one Box
    holds is a property of the product, see ProductUnit.
    """
    __tablename__ = "units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Unit id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Attribute(db.Model):
    """Variation dimension, e.g. Color. Owns its permitted values."""
    __tablename__ = "attributes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    values = db.relationship(
        "AttributeValue",
        back_populates="attribute",
        cascade="all, delete-orphan",
        order_by="AttributeValue.value",
    )

    def __repr__(self) -> str:
        return f"<Attribute id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "values": [v.to_dict() for v in self.values],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AttributeValue(db.Model):
    __tablename__ = "attribute_values"
    __table_args__ = (
        db.UniqueConstraint("attribute_id", "value", name="uq_attribute_values_attribute_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    attribute_id = db.Column(
        db.Integer,
        db.ForeignKey("attributes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value = db.Column(db.String(255), nullable=False)

    attribute = db.relationship("Attribute", back_populates="values")

    def __repr__(self) -> str:
        return f"<AttributeValue id={self.id} attribute_id={self.attribute_id} value={self.value!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "value": self.value}


class Product(db.Model):
    """
    Product master data ("item").

    UNITS:
    - base_unit_id is the unit stock is tracked in.
    - Every saved product has a ProductUnit row for its base unit with
      conversion_factor = 1 and is_base_unit = True. The row is explicit,
      never implied.

    ITEM TYPES:
    - Standard: one stock row per store, keyed on (store_id, item_id).
    - Variable: stock lives on variations only, keyed on (store_id, item_variation_id).

    SKU is optional but unique when present.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_name", "name"),
        db.Index("ix_items_type_active", "item_type", "is_active"),
        db.CheckConstraint("item_type IN ('Standard', 'Variable')", name="ck_items_item_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    item_type = db.Column(db.String(16), nullable=False, default=ITEM_TYPE_STANDARD)

    base_unit_id = db.Column(
        db.Integer,
        db.ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Home store; opening stock entered on the product form lands here
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    cost_price = db.Column(db.Numeric(12, 2), nullable=True)
    retail_price = db.Column(db.Numeric(12, 2), nullable=True)
    wholesale_price = db.Column(db.Numeric(12, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    enable_stock_management = db.Column(db.Boolean, nullable=False, default=True)
    is_taxable = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    base_unit = db.relationship("Unit", foreign_keys=[base_unit_id])
    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    unit_configs = db.relationship(
        "ProductUnit",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by=lambda: [ProductUnit.is_base_unit.desc(), ProductUnit.conversion_factor, ProductUnit.id],
    )
    variations = db.relationship(
        "ProductVariation",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariation.id",
    )
    stock_rows = db.relationship("Stock", back_populates="product", cascade="all, delete")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_variable(self) -> bool:
        return self.item_type == ITEM_TYPE_VARIABLE

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} type={self.item_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "item_type": self.item_type,
            "base_unit_id": self.base_unit_id,
            "base_unit_name": self.base_unit.name if self.base_unit else None,
            "store_id": self.store_id,
            "cost_price": decimal_str(self.cost_price),
            "retail_price": decimal_str(self.retail_price),
            "wholesale_price": decimal_str(self.wholesale_price),
            "is_active": self.is_active,
            "enable_stock_management": self.enable_stock_management,
            "is_taxable": self.is_taxable,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductUnit(db.Model):
    """
    Per-product unit conversion: 1 unit_id = conversion_factor x base unit.

    base_unit_id mirrors items.base_unit_id so the factor is self-describing.
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "unit_id", name="uq_product_units_product_unit"),
        db.CheckConstraint("conversion_factor > 0", name="ck_product_units_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id = db.Column(
        db.Integer,
        db.ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    base_unit_id = db.Column(
        db.Integer,
        db.ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    conversion_factor = db.Column(db.Numeric(12, 4), nullable=False)
    is_purchase_unit = db.Column(db.Boolean, nullable=False, default=False)
    is_sales_unit = db.Column(db.Boolean, nullable=False, default=False)
    is_base_unit = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="unit_configs")
    unit = db.relationship("Unit", foreign_keys=[unit_id])

    def __repr__(self) -> str:
        return (
            f"<ProductUnit id={self.id} product_id={self.product_id} unit_id={self.unit_id} "
            f"factor={self.conversion_factor}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "unit_id": self.unit_id,
            "unit_name": self.unit.name if self.unit else None,
            "base_unit_id": self.base_unit_id,
            "conversion_factor": decimal_str(self.conversion_factor),
            "is_purchase_unit": self.is_purchase_unit,
            "is_sales_unit": self.is_sales_unit,
            "is_base_unit": self.is_base_unit,
        }


class ProductVariation(db.Model):
    """One SKU-bearing combination of attribute values for a Variable product."""
    __tablename__ = "item_variations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku = db.Column(db.String(255), nullable=True, unique=True)
    variant_name = db.Column(db.String(255), nullable=True)

    cost_price = db.Column(db.Numeric(12, 2), nullable=True)
    retail_price = db.Column(db.Numeric(12, 2), nullable=True)
    wholesale_price = db.Column(db.Numeric(12, 2), nullable=True)
    barcode = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="variations")
    attribute_links = db.relationship(
        "VariationAttributeValue",
        back_populates="variation",
        cascade="all, delete-orphan",
        order_by="VariationAttributeValue.position",
    )
    stock_rows = db.relationship("Stock", back_populates="variation", cascade="all, delete")

    def combination(self) -> list[tuple[int, str]]:
        """Ordered (attribute_id, value) pairs."""
        return [
            (link.attribute_value.attribute_id, link.attribute_value.value)
            for link in self.attribute_links
        ]

    def attribute_combination(self) -> dict:
        return {
            link.attribute_value.attribute.name: link.attribute_value.value
            for link in self.attribute_links
        }

    def __repr__(self) -> str:
        return f"<ProductVariation id={self.id} item_id={self.item_id} sku={self.sku!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "sku": self.sku,
            "variant_name": self.variant_name,
            "cost_price": decimal_str(self.cost_price),
            "retail_price": decimal_str(self.retail_price),
            "wholesale_price": decimal_str(self.wholesale_price),
            "barcode": self.barcode,
            "is_active": self.is_active,
            "attribute_combination": self.attribute_combination(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VariationAttributeValue(db.Model):
    """Link between a variation and one of its attribute values, in combination order."""
    __tablename__ = "item_variation_attribute_values"

    item_variation_id = db.Column(
        db.Integer,
        db.ForeignKey("item_variations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    attribute_value_id = db.Column(
        db.Integer,
        db.ForeignKey("attribute_values.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    variation = db.relationship("ProductVariation", back_populates="attribute_links")
    attribute_value = db.relationship("AttributeValue", lazy="joined")
