# Overview: Flask API routes for LINE login and session handling.

"""
Authentication API routes

FLOW:
1. The LIFF app calls liff.init() with the LIFF id from /liff-config
2. After liff.login() it sends the LINE ID token to POST /login
3. The backend verifies the token with LINE for the role's channel,
   resolves the platform user and returns our own session token
4. Every other call sends "Authorization: Bearer <session token>"

SECURITY:
- LINE tokens are verified server-side, never trusted as-is
- The role is fixed per account; a mismatched login is refused (409)
- Session tokens are stored hashed
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..models.users import USER_ROLES
from ..services import profile_service, session_service, user_service
from ..services.identity_service import get_identity_context
from .common import client_ip, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def session_payload(user, session, token: str) -> dict:
    return {
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
        "role": session.role,
        "user": user.to_dict(),
        "terms_agreed": user_service.has_agreed_to_terms(user, current_app.config["TERMS_VERSION"]),
    }


@auth_bp.get("/liff-config")
def liff_config_route():
    """
    LIFF id for the client SDK.

    Query: role=store|organizer
    """
    role = request.args.get("role", "")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    liff_id = current_app.config[f"LIFF_ID_{role.upper()}"]
    return jsonify({
        "role": role,
        "liff_id": liff_id or None,
        "configured": bool(liff_id) and get_identity_context().init(role),
    })


@auth_bp.post("/login")
def login_route():
    """
    Exchange a LINE token for a session token.

    Request: {"role": "store", "id_token": "..."} (or "access_token")

    Response 200/201:
        {"token", "expires_at", "role", "user", "terms_agreed", "created"}

    Error responses:
        400: Missing role or token
        401: LINE rejected the token
        409: Account registered with the other role
        503: LINE unreachable or channel not configured
    """
    data = json_body()
    role = data.get("role")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    identity = get_identity_context().login(
        role,
        id_token=data.get("id_token"),
        access_token=data.get("access_token"),
    )
    user, created = user_service.get_or_create_user(identity, role)

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=client_ip(),
    )
    current_app.logger.info("User %s logged in as %s", user.id, role)

    body = session_payload(user, session, token)
    body["created"] = created
    return jsonify(body), 201 if created else 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    get_identity_context().logout()
    return jsonify({"message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    profile = profile_service.find_profile_for_user(user, g.role)
    return jsonify({
        "user": user.to_dict(),
        "role": g.role,
        "profile": profile.to_dict() if profile else None,
        "terms_agreed": user_service.has_agreed_to_terms(user, current_app.config["TERMS_VERSION"]),
    })
