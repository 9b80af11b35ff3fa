# Overview: LINE Login adapter and the request-scoped identity context.

"""
Identity Provider Adapter

The LIFF SDK runs in the LINE client and hands the backend either an ID
token (liff.getIDToken()) or an access token (liff.getAccessToken()).
LineIdentityProvider verifies them against the LINE Login API using the
channel registered for the role (store and organizer are separate LIFF
apps, hence separate channels).

IdentityContext holds what used to be a process-wide "last initialized
LIFF" cache. It lives on flask.g, so nothing leaks between requests; a
role switch inside one context resets the cached profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from flask import current_app, g

from ..errors import AuthenticationError, ServiceUnavailableError, ValidationError
from ..models.users import USER_ROLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityProfile:
    user_id: str
    display_name: str
    picture_url: str | None = None
    email: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "picture_url": self.picture_url,
            "email": self.email,
        }


class LineIdentityProvider:
    def __init__(
        self,
        channel_ids: dict[str, str],
        *,
        api_base_url: str = "https://api.line.me",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.channel_ids = {role: cid for role, cid in channel_ids.items() if cid}
        self.api_base_url = api_base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def is_configured(self, role: str) -> bool:
        return role in self.channel_ids

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.api_base_url}{path}"
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.exception("LINE API request failed: %s %s", method, path)
            raise ServiceUnavailableError("LINE Login is unavailable", service="identity") from exc

        if response.status_code in (400, 401):
            raise AuthenticationError("LINE token is invalid or expired")
        if response.status_code != 200:
            logger.error("LINE API %s %s returned %s", method, path, response.status_code)
            raise ServiceUnavailableError("LINE Login is unavailable", service="identity")
        return response

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceUnavailableError("LINE Login returned an invalid response", service="identity") from exc
        if not isinstance(data, dict):
            raise ServiceUnavailableError("LINE Login returned an invalid response", service="identity")
        return data

    def verify_id_token(self, id_token: str, role: str) -> IdentityProfile:
        """POST /oauth2/v2.1/verify; the token's audience must be the role's channel."""
        response = self._request(
            "POST",
            "/oauth2/v2.1/verify",
            data={"id_token": id_token, "client_id": self.channel_ids[role]},
        )
        claims = self._json(response)
        sub = claims.get("sub")
        if not sub:
            raise AuthenticationError("LINE ID token has no subject")
        return IdentityProfile(
            user_id=sub,
            display_name=claims.get("name") or "",
            picture_url=claims.get("picture"),
            email=claims.get("email"),
        )

    def verify_access_token(self, access_token: str, role: str) -> IdentityProfile:
        """Check the access token belongs to the role's channel, then fetch /v2/profile."""
        response = self._request("GET", "/oauth2/v2.1/verify", params={"access_token": access_token})
        info = self._json(response)
        if str(info.get("client_id")) != self.channel_ids[role]:
            raise AuthenticationError("LINE access token was issued for another channel")
        if int(info.get("expires_in") or 0) <= 0:
            raise AuthenticationError("LINE access token is expired")

        response = self._request("GET", "/v2/profile", headers={"Authorization": f"Bearer {access_token}"})
        profile = self._json(response)
        if not profile.get("userId"):
            raise AuthenticationError("LINE profile has no user id")
        return IdentityProfile(
            user_id=profile["userId"],
            display_name=profile.get("displayName") or "",
            picture_url=profile.get("pictureUrl"),
        )


class IdentityContext:
    """
    Per-request view of the LINE identity.

    init(role) -> bool, login(role, ...), is_logged_in(), get_profile(), logout()
    """

    def __init__(self, provider: LineIdentityProvider):
        self.provider = provider
        self.role: str | None = None
        self.initialized = False
        self._profile: IdentityProfile | None = None

    def init(self, role: str) -> bool:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

        if self.initialized and self.role != role:
            self.initialized = False
            self.role = None
            self._profile = None

        if self.initialized:
            return True

        if not self.provider.is_configured(role):
            logger.warning("LINE channel is not configured for role %s", role)
            return False

        self.initialized = True
        self.role = role
        return True

    def login(self, role: str, *, id_token: str | None = None, access_token: str | None = None) -> IdentityProfile:
        if not id_token and not access_token:
            raise ValidationError("id_token or access_token is required")
        if not self.init(role):
            raise ServiceUnavailableError(f"LINE Login is not configured for {role}", service="identity")

        if id_token:
            profile = self.provider.verify_id_token(id_token, role)
        else:
            profile = self.provider.verify_access_token(access_token, role)

        self._profile = profile
        return profile

    def is_logged_in(self) -> bool:
        return self.initialized and self._profile is not None

    def get_profile(self) -> IdentityProfile:
        if not self.is_logged_in():
            raise AuthenticationError("Not logged in with LINE")
        return self._profile

    def logout(self) -> None:
        self._profile = None


def get_identity_context() -> IdentityContext:
    """Return this request's IdentityContext, creating it on first use."""
    provider = current_app.extensions["marche.identity_provider"]
    context = getattr(g, "identity_context", None)
    if context is None or context.provider is not provider:
        context = IdentityContext(provider)
        g.identity_context = context
    return context
