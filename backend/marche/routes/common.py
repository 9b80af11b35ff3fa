# Overview: Small request helpers shared by the API blueprints.

from flask import g, request

from ..errors import ValidationError
from ..services import profile_service


def json_body() -> dict:
    """Parsed JSON object body; an empty body counts as {}."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data(cache=True):
            raise ValidationError("Request body must be valid JSON")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_profile():
    """The signed-in user's profile for the session role, created on first use."""
    profile, _ = profile_service.get_or_create_profile(g.current_user, g.role)
    return profile


def client_ip() -> str | None:
    return request.remote_addr
