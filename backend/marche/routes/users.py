# Overview: Flask API routes for the signed-in user's account, role change and terms agreement.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import session_service, user_service
from .auth import session_payload
from .common import client_ip, json_body


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.put("/me")
@require_auth
def update_me_route():
    """Update registration details (display_name, phone, email, gender, age)."""
    user = user_service.update_user(g.current_user, json_body())
    return jsonify({"user": user.to_dict()})


@users_bp.post("/me/reregister")
@require_auth
def reregister_route():
    """
    Switch the account to the other role.

    Request: {"role": "organizer", "confirm": true}

    Every existing session (including this one) is revoked and a new
    session for the new role is returned.
    """
    data = json_body()
    user = user_service.reregister_user(
        g.current_user,
        data.get("role"),
        confirm=data.get("confirm") is True,
    )
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=client_ip(),
    )
    current_app.logger.info("User %s re-registered as %s", user.id, user.role)
    return jsonify(session_payload(user, session, token))


@users_bp.get("/me/terms")
@require_auth
def terms_status_route():
    version = current_app.config["TERMS_VERSION"]
    return jsonify({
        "terms_version": version,
        "agreed": user_service.has_agreed_to_terms(g.current_user, version),
    })


@users_bp.post("/me/terms")
@require_auth
def agree_terms_route():
    data = json_body()
    version = data.get("terms_version") or current_app.config["TERMS_VERSION"]
    agreement = user_service.record_terms_agreement(g.current_user, version, ip_address=client_ip())
    return jsonify({"agreement": agreement.to_dict()}), 201
