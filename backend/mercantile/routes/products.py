# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/mercantile/routes/products.py
"""
Product routes.

A product is saved as one document: fields plus unit_configs, attributes_config
and variations. The unit and variation sub-resources edit a saved product one
row at a time.
"""
from flask import Blueprint, jsonify, request

from ..services import product_unit_service, products_service
from .errors import DOMAIN_ERRORS, error_response, internal_error

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - item_type: Standard | Variable (optional)
    - search: substring of name or SKU (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        result = products_service.list_products(
            item_type=request.args.get("item_type") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id)), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    Body: product fields, unit_configs (must include the base unit with
    conversion_factor 1), attributes_config and variations for Variable
    items, stock_quantity as opening stock for Standard items.
    """
    payload = request.get_json(silent=True) or {}
    try:
        created = products_service.create_product(payload)
        return jsonify(created), 201
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        updated = products_service.update_product(product_id, payload)
        return jsonify(updated), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to delete product")


@products_bp.post("/variations/generate")
def generate_variations_route():
    """Preview the variations a set of attribute selections produces. Nothing is saved."""
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(products_service.preview_variations(payload)), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to generate variations")


# Unit configurations

@products_bp.get("/<int:product_id>/units")
def list_unit_configs(product_id: int):
    try:
        configs = product_unit_service.list_unit_configs(product_id)
        return jsonify([c.to_dict() for c in configs]), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)


@products_bp.post("/<int:product_id>/units")
def add_unit_config(product_id: int):
    data = request.get_json(silent=True) or {}
    try:
        config = product_unit_service.add_unit_config(
            product_id,
            data.get("unit_id"),
            data.get("conversion_factor"),
            is_purchase_unit=data.get("is_purchase_unit", False),
            is_sales_unit=data.get("is_sales_unit", False),
        )
        return jsonify(config.to_dict()), 201
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to add unit configuration")


@products_bp.put("/<int:product_id>/units/<int:config_id>")
def update_unit_config(product_id: int, config_id: int):
    data = request.get_json(silent=True) or {}
    try:
        config = product_unit_service.update_unit_config(
            config_id,
            product_id=product_id,
            conversion_factor=data.get("conversion_factor"),
            is_purchase_unit=data.get("is_purchase_unit"),
            is_sales_unit=data.get("is_sales_unit"),
        )
        return jsonify(config.to_dict()), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update unit configuration")


@products_bp.delete("/<int:product_id>/units/<int:config_id>")
def remove_unit_config(product_id: int, config_id: int):
    try:
        product_unit_service.remove_unit_config(config_id, product_id=product_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to remove unit configuration")


# Variations

@products_bp.get("/<int:product_id>/variations")
def list_variations(product_id: int):
    try:
        return jsonify(products_service.list_variations(product_id)), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)


@products_bp.put("/<int:product_id>/variations/<int:variation_id>")
def update_variation(product_id: int, variation_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(products_service.update_variation(product_id, variation_id, payload)), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update variation")


@products_bp.delete("/<int:product_id>/variations/<int:variation_id>")
def delete_variation(product_id: int, variation_id: int):
    try:
        products_service.delete_variation(product_id, variation_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to delete variation")
