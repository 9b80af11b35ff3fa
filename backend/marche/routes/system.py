# backend/marche/routes/system.py
"""
System health endpoint.

Checks the database, the blob store and whether the external
collaborators (LINE channels, document classifier) are configured.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Event, Profile, User
from ..models.users import USER_ROLES
from marche.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "profiles": db.session.query(Profile).count(),
            "events": db.session.query(Event).count(),
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": details,
    }


def check_storage_health() -> dict:
    start_time = time.time()
    healthy = current_app.extensions["marche.blob_store"].healthcheck()
    result = {
        "status": "healthy" if healthy else "unhealthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
    }
    if not healthy:
        result["error"] = "Blob storage is not writable"
    return result


def check_integrations() -> dict:
    """LINE and the classifier are optional at runtime; missing config only degrades."""
    provider = current_app.extensions["marche.identity_provider"]
    line_roles = {role: provider.is_configured(role) for role in USER_ROLES}
    classifier = current_app.extensions.get("marche.classifier") is not None

    details = {"line_channels": line_roles, "document_classifier": classifier}
    if all(line_roles.values()) and classifier:
        return {"status": "healthy", "details": details}
    return {"status": "degraded", "warning": "Some integrations are not configured", "details": details}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database or storage unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "storage": check_storage_health(),
        "integrations": check_integrations(),
    }

    statuses = {check["status"] for check in checks.values()}
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
