# Overview: Request decorators for API routes (session auth, role gate, reviewer token).

import hmac
from functools import wraps
from flask import current_app, g, request

from .errors import AuthenticationError, PermissionDeniedError
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.role: The role the session was opened for ("store" or "organizer")
    - g.session_context: The full SessionContext object
    - g.session_token: The plaintext bearer token (for logout)

    Raises AuthenticationError (401) if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated or role changed since login
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise AuthenticationError("Authentication required")

        context = session_service.validate_session(token)
        if not context:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = context.user
        g.role = context.role
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Allow only sessions opened for the given role. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                raise AuthenticationError("Authentication required")
            if g.role != role:
                raise PermissionDeniedError(f"This action requires a {role} account")
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_reviewer_token(f):
    """
    Protect reviewer endpoints with the shared REVIEWER_API_TOKEN.

    An empty REVIEWER_API_TOKEN disables the reviewer API entirely.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("REVIEWER_API_TOKEN") or ""
        if not expected:
            raise PermissionDeniedError("Reviewer API is disabled")

        token = _bearer_token()
        if token is None:
            raise AuthenticationError("Reviewer token required")
        if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            raise PermissionDeniedError("Invalid reviewer token")

        return f(*args, **kwargs)

    return decorated_function
