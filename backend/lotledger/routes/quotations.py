# Overview: Flask API routes for quotations; parses input and returns JSON responses.

"""
Quotation Routes

POST /api/quotations/                 create a PENDING quotation
GET  /api/quotations/<id>             quotation with lines
PUT  /api/quotations/<id>             edit a PENDING quotation
POST /api/quotations/<id>/confirm     convert into a sale (FIFO lot consumption)
POST /api/quotations/<id>/cancel      cancel without stock effect

Business errors answer with {"error", "details"} and the error's status.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import quotation_service
from ..validation import ValidationError


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


def _retry_settings() -> dict:
    return {
        "attempts": current_app.config["CONFIRM_RETRY_ATTEMPTS"],
        "backoff_base": current_app.config["CONFIRM_RETRY_BACKOFF"],
    }


@quotations_bp.post("/")
def create_quotation_route():
    """
    Create a quotation.

    Request body:
    {
        "customer_id": "C-1",           // optional
        "customer_name": "Ana",         // optional
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1500}],
        "payment_method": "CASH",       // ignored when payment_split is given
        "payment_split": [{"method": "CASH", "amount_cents": 1000}, ...],
        "note": "...",
        "actor": "cashier-1"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        quotation = quotation_service.create_quotation(
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            lines=data.get("lines"),
            payment_method=data.get("payment_method") or "CASH",
            payment_split=data.get("payment_split"),
            note=data.get("note"),
            actor=data.get("actor"),
        )
        return jsonify(quotation_service.get_quotation(quotation.id)), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>")
def get_quotation_route(quotation_id: int):
    try:
        return jsonify(quotation_service.get_quotation(quotation_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load quotation %s", quotation_id)
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.put("/<int:quotation_id>")
def update_quotation_route(quotation_id: int):
    """
    Edit a pending quotation. Omitted fields keep their value.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 3}],   // replaces every line
        "payment_method": "CARD",                     // clears a split
        "payment_split": [{"method": "CASH", "amount_cents": 1000}, ...],
        "note": "...",
        "actor": "cashier-1"
    }

    A confirmed or cancelled quotation answers 409.
    """
    try:
        data = request.get_json(silent=True) or {}
        quotation_service.update_quotation(
            quotation_id,
            lines=data.get("lines"),
            payment_method=data.get("payment_method"),
            payment_split=data.get("payment_split"),
            note=data.get("note"),
            actor=data.get("actor"),
            **_retry_settings(),
        )
        return jsonify(quotation_service.get_quotation(quotation_id)), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update quotation %s", quotation_id)
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/confirm")
def confirm_quotation_route(quotation_id: int):
    """
    Confirm a quotation into a sale.

    Returns 201 with the sale summary. A quotation that is already confirmed
    answers 409 and nothing is written again.
    """
    try:
        data = request.get_json(silent=True) or {}
        summary = quotation_service.confirm_quotation(
            quotation_id,
            actor=data.get("actor"),
            **_retry_settings(),
        )
        return jsonify({"sale": summary.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to confirm quotation %s", quotation_id)
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/cancel")
def cancel_quotation_route(quotation_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quotation_service.cancel_quotation(
            quotation_id,
            actor=data.get("actor"),
            **_retry_settings(),
        )
        return jsonify(quotation_service.get_quotation(quotation_id)), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel quotation %s", quotation_id)
        return jsonify({"error": "Internal server error"}), 500
