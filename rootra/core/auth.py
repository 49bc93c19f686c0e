from __future__ import annotations

import json
from functools import lru_cache
from typing import Callable, Mapping

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from rootra.core.config import settings
from rootra.models.lifecycle import Role

bearer_scheme = HTTPBearer(auto_error=False)
api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


class AuthUser(BaseModel):
    user_id: str
    roles: list[str]
    token_source: str

    def has_role(self, role: Role | str) -> bool:
        return Role(role).value in self.roles


@lru_cache(maxsize=1)
def _token_map() -> dict[str, dict]:
    raw = settings.api_token_map_json.strip()
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise RuntimeError("Invalid API_TOKEN_MAP_JSON configuration") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError("API_TOKEN_MAP_JSON must be a JSON object")
    return parsed


def _dev_user() -> AuthUser:
    return AuthUser(
        user_id="dev-local",
        roles=[r.value for r in Role],
        token_source="dev-bypass",
    )


def _parse_header_token(auth_header: str | None, api_key_header: str | None) -> tuple[str, str] | None:
    if auth_header:
        parts = auth_header.strip().split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
            return parts[1].strip(), "authorization"
    if api_key_header and api_key_header.strip():
        return api_key_header.strip(), "x-api-key"
    return None


def auth_required() -> bool:
    """The dev bypass user only exists in the ``dev`` environment."""
    return settings.auth_enabled or settings.app_env != "dev"


def resolve_user_from_headers(headers: Mapping[str, str]) -> AuthUser | None:
    if not auth_required():
        return _dev_user()

    parsed = _parse_header_token(
        headers.get("Authorization") or headers.get("authorization"),
        headers.get("X-API-Key") or headers.get("x-api-key"),
    )
    if not parsed:
        return None

    token, source = parsed
    info = _token_map().get(token)
    if not info:
        return None

    user_id = str(info.get("user_id", "unknown"))
    roles = info.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    known = {r.value for r in Role}
    return AuthUser(
        user_id=user_id,
        roles=[str(r) for r in roles if str(r) in known],
        token_source=source,
    )


def get_current_user(
    bearer: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    api_key: str | None = Security(api_key_scheme),
) -> AuthUser:
    headers = {}
    if bearer:
        headers["authorization"] = f"Bearer {bearer.credentials}"
    if api_key:
        headers["x-api-key"] = api_key

    user = resolve_user_from_headers(headers)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authentication token",
        )
    return user


def require_roles(*required_roles: Role | str) -> Callable:
    """Gate a route on any of ``required_roles``.

    Portals are disjoint, so unlike a superuser model an admin token does not
    pass a farmer-only gate unless it also carries the farmer role.
    """
    required = {Role(r).value for r in required_roles}

    def dependency(current_user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if required and not required.intersection(set(current_user.roles)):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {sorted(required)}",
            )
        return current_user

    return dependency


def resolve_acting_role(current_user: AuthUser, requested: Role | None) -> Role:
    """Pick the role a caller is acting in for one request."""
    if requested is not None:
        if not current_user.has_role(requested):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Caller does not hold role '{requested.value}'",
            )
        return requested

    held = [Role(r) for r in current_user.roles]
    if len(held) != 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="actor_role is required when the caller holds several roles",
        )
    return held[0]
