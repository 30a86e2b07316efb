# backend/lotledger/routes/system.py
"""
System health endpoint.

Reports database reachability plus the lot ledger's stock consistency so a
deployment health check can tell "up" from "up but drifting".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Lot, Quotation
from ..records import LOT_STATUS_ACTIVE, QUOTATION_STATUS_PENDING
from ..services import inventory_service
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        active_lot_count = db.session.query(Lot).filter_by(status=LOT_STATUS_ACTIVE).count()
        pending_quotations = db.session.query(Quotation).filter_by(status=QUOTATION_STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "active_lots": active_lot_count,
                "pending_quotations": pending_quotations,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_stock_health() -> dict:
    """Degraded when any product's stock disagrees with its lots."""
    start_time = time.time()
    try:
        drift = inventory_service.check_stock_consistency()
        elapsed_ms = (time.time() - start_time) * 1000

        if drift:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Stock drift on {len(drift)} product(s)",
                "details": {"product_ids": [row["product_id"] for row in drift]},
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Stock consistency check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Stock check error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (stock drift is reported, not fatal)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    if database_health["status"] == "unhealthy":
        stock_health = {"status": "unhealthy", "error": "Skipped: database unavailable"}
    else:
        stock_health = check_stock_health()

    all_checks = [database_health, stock_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "stock": stock_health,
        }
    }

    return response, http_status
