from .tenancy import Store
from .catalog import (
    Unit,
    Attribute,
    AttributeValue,
    Product,
    ProductUnit,
    ProductVariation,
    VariationAttributeValue,
    ITEM_TYPE_STANDARD,
    ITEM_TYPE_VARIABLE,
    ITEM_TYPES,
)
from .inventory import Stock
from .ledger import LedgerEvent

__all__ = [
    'Store',
    'Unit', 'Attribute', 'AttributeValue',
    'Product', 'ProductUnit', 'ProductVariation', 'VariationAttributeValue',
    'ITEM_TYPE_STANDARD', 'ITEM_TYPE_VARIABLE', 'ITEM_TYPES',
    'Stock',
    'LedgerEvent',
]
