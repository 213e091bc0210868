# Overview: Flask API routes for variation attributes and their values.

from flask import Blueprint, jsonify, request

from ..services import attribute_service
from .errors import DOMAIN_ERRORS, error_response, internal_error

attributes_bp = Blueprint("attributes", __name__, url_prefix="/api/attributes")


@attributes_bp.get("")
def list_attributes():
    return jsonify([a.to_dict() for a in attribute_service.list_attributes()]), 200


@attributes_bp.get("/<int:attribute_id>")
def get_attribute(attribute_id: int):
    attribute = attribute_service.get_attribute(attribute_id)
    if attribute is None:
        return jsonify({"error": "Attribute not found."}), 404
    return jsonify(attribute.to_dict()), 200


@attributes_bp.post("")
def create_attribute():
    """
    Body: {"name": "Color", "values": ["Red", "Blue"]}
    """
    data = request.get_json(silent=True) or {}
    try:
        attribute = attribute_service.create_attribute(data.get("name"), data.get("values"))
        return jsonify(attribute.to_dict()), 201
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create attribute")


@attributes_bp.put("/<int:attribute_id>")
def update_attribute(attribute_id: int):
    """
    Renames the attribute and replaces its value set. Values used by a
    variation cannot be dropped (409).
    """
    data = request.get_json(silent=True) or {}
    try:
        attribute = attribute_service.update_attribute(attribute_id, data.get("name"), data.get("values"))
        return jsonify(attribute.to_dict()), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update attribute")


@attributes_bp.delete("/<int:attribute_id>")
def delete_attribute(attribute_id: int):
    try:
        attribute_service.delete_attribute(attribute_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to delete attribute")
