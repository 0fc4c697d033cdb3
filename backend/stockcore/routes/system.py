# backend/stockcore/routes/system.py
"""
System health endpoint.

Reports database reachability and a coarse stock/ledger consistency count.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, StockLedgerEntry
from ..services.ledger_service import audit_all_stock
from stockcore.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        ledger_count = db.session.query(StockLedgerEntry).count()
        inconsistent = sum(1 for row in audit_all_stock() if not row["consistent"])

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "ledger_entries": ledger_count,
                "inconsistent_products": inconsistent,
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


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable (inconsistent_products is informational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
