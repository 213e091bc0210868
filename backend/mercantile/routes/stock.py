# Overview: Flask API routes for on-hand stock; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from mercantile.time_utils import decimal_str
from ..services import stock_service
from .errors import DOMAIN_ERRORS, error_response, internal_error

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
def list_stock():
    """
    Query params:
    - store_id, product_id: optional filters
    - variation_id: with store_id and product_id, returns the single quantity
    """
    store_id = request.args.get("store_id", type=int)
    product_id = request.args.get("product_id", type=int)
    variation_id = request.args.get("variation_id", type=int)

    if store_id is not None and product_id is not None and "variation_id" in request.args:
        quantity = stock_service.get_stock(store_id, product_id, variation_id)
        return jsonify({
            "store_id": store_id,
            "item_id": product_id,
            "item_variation_id": variation_id,
            "quantity": decimal_str(quantity),
        }), 200

    rows = stock_service.list_stock(store_id=store_id, product_id=product_id)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200


@stock_bp.post("/adjust")
def adjust_stock():
    """
    Body: {"store_id", "product_id", "variation_id"?, "quantity_delta",
    "unit_id"?, "note"?}. quantity_delta is in unit_id (base unit if omitted).
    """
    data = request.get_json(silent=True) or {}
    try:
        row = stock_service.adjust_stock(
            store_id=data.get("store_id"),
            product_id=data.get("product_id"),
            variation_id=data.get("variation_id"),
            delta=data.get("quantity_delta"),
            unit_id=data.get("unit_id"),
            note=data.get("note"),
        )
        return jsonify(row.to_dict()), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to adjust stock")
