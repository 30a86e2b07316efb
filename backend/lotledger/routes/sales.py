# Overview: Flask API routes for sales; read-only access to confirmed sales.

from flask import Blueprint, jsonify, current_app

from ..errors import LedgerError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Sale with lines, payments and lot movements."""
    try:
        return jsonify(sales_service.get_sale_detail(sale_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500
