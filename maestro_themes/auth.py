# maestro_themes/auth.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

import httpx
from fastapi import HTTPException, Request
from jose import JWTError, jwk, jwt

from maestro_themes.config import Settings

logger = logging.getLogger("maestro_themes.auth")

CONNECTED_CLAIM = "webpro_connected"


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    username: Optional[str]
    roles: list[str]
    is_connected: bool
    token: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class Unauthorized:
    reason: str
    status_code: int = 401


AuthResult = Union[CallerIdentity, Unauthorized]


class SigningKeyCache:
    """Signing keys published by the identity provider's JWKS endpoint.

    Keys are cached for ``ttl_seconds``. A token naming a ``kid`` that is not
    cached forces an early reload so a rotated key is accepted right away,
    but at most once per ``min_reload_seconds``.
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        ttl_seconds: float = 300,
        min_reload_seconds: float = 30,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._jwks_url = jwks_url
        self._ttl_seconds = ttl_seconds
        self._min_reload_seconds = min_reload_seconds
        self._clock = clock
        self._transport = transport
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def key_for(self, kid: Optional[str]) -> Dict[str, Any]:
        loaded_at = self._loaded_at
        if loaded_at is None or self._clock() - loaded_at >= self._ttl_seconds:
            await self._reload(seen=loaded_at)
        key = self._match(kid)
        if key is None and self._clock() - (self._loaded_at or 0.0) >= self._min_reload_seconds:
            await self._reload(seen=self._loaded_at)
            key = self._match(kid)
        if key is None:
            raise AuthError("Token is signed with an unknown key")
        return key

    def _match(self, kid: Optional[str]) -> Optional[Dict[str, Any]]:
        if kid:
            return self._keys.get(kid)
        if len(self._keys) == 1:
            return next(iter(self._keys.values()))
        return None

    async def _reload(self, *, seen: Optional[float]) -> None:
        async with self._lock:
            # Another request reloaded while this one waited for the lock.
            if self._loaded_at != seen:
                return
            try:
                async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                    response = await client.get(self._jwks_url)
                    response.raise_for_status()
                    document = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Signing keys could not be loaded from %s: %s", self._jwks_url, exc)
                raise AuthError("Signing keys unavailable") from exc
            keys = document.get("keys") if isinstance(document, dict) else None
            if not isinstance(keys, list):
                raise AuthError("Identity provider returned no signing keys")
            self._keys = {str(key.get("kid") or ""): key for key in keys if isinstance(key, dict)}
            self._loaded_at = self._clock()
            logger.debug("Loaded %d signing keys", len(self._keys))


def bearer_token(authorization_header: Optional[str]) -> str:
    scheme, _, credentials = (authorization_header or "").strip().partition(" ")
    if not scheme:
        raise AuthError("Missing Authorization header")
    credentials = credentials.strip()
    if scheme.lower() != "bearer" or not credentials or " " in credentials:
        raise AuthError("Authorization header must be 'Bearer <token>'")
    return credentials


def extract_identity(claims: Dict[str, Any], *, required_role: str, token: Optional[str] = None) -> CallerIdentity:
    """Build the caller from verified claims.

    Roles are read from ``roles`` and Keycloak-style ``realm_access.roles``.
    A caller is connected when it holds ``required_role`` or carries a true
    ``webpro_connected`` claim.
    """
    user_id = claims.get("sub") or claims.get("user_id")
    if not user_id:
        raise AuthError("Token has no subject")

    username = claims.get("preferred_username") or claims.get("username") or claims.get("email")
    roles = _claimed_roles(claims)

    return CallerIdentity(
        user_id=str(user_id),
        username=str(username) if username else None,
        roles=roles,
        is_connected=required_role in roles or claims.get(CONNECTED_CLAIM) is True,
        token=token,
        claims=claims,
    )


class Authenticator:
    """Resolve the caller of a themes request.

    ``authenticate`` never raises: every failure while resolving the identity
    is reported as ``Unauthorized`` so the endpoint denies instead of faulting.
    """

    def __init__(self, settings: Settings, signing_keys: Optional[SigningKeyCache] = None) -> None:
        self._settings = settings
        self._signing_keys = signing_keys or SigningKeyCache(
            settings.jwks_url,
            ttl_seconds=settings.jwks_cache_ttl_seconds,
        )

    async def authenticate(self, authorization_header: Optional[str]) -> AuthResult:
        if self._settings.skip_auth:
            logger.warning("SKIP_AUTH enabled - using mock caller identity (dev mode only)")
            return CallerIdentity(
                user_id="dev-user-001",
                username="dev-user",
                roles=[self._settings.required_role],
                is_connected=True,
            )

        try:
            token = bearer_token(authorization_header)
            claims = await self._verify(token)
            identity = extract_identity(claims, required_role=self._settings.required_role, token=token)
        except AuthError as exc:
            return Unauthorized(str(exc), exc.status_code)
        except Exception as exc:
            logger.info("Caller identity could not be resolved: %s", type(exc).__name__)
            return Unauthorized("Unable to verify caller")

        if not identity.is_connected:
            return Unauthorized("Caller is not a connected Web Pro", status_code=403)
        return identity

    async def _verify(self, token: str) -> Dict[str, Any]:
        settings = self._settings
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthError("Malformed bearer token") from exc

        algorithm = header.get("alg")
        if algorithm not in settings.jwt_algorithms:
            raise AuthError(f"Token algorithm {algorithm!r} is not accepted")

        key_data = await self._signing_keys.key_for(header.get("kid"))
        key = jwk.construct(key_data, algorithm=key_data.get("alg") or algorithm)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=list(settings.jwt_algorithms),
                audience=settings.jwt_audience or None,
                issuer=settings.jwt_issuer or None,
                options={"verify_aud": bool(settings.jwt_audience), "verify_iss": bool(settings.jwt_issuer)},
            )
        except JWTError as exc:
            raise AuthError(f"Token rejected: {exc}") from exc


async def require_caller(request: Request) -> CallerIdentity:
    """FastAPI dependency: authenticate before any themes operation runs."""
    authenticator: Authenticator = request.app.state.authenticator
    result = await authenticator.authenticate(request.headers.get("Authorization"))
    if isinstance(result, Unauthorized):
        logger.info("Denied themes request: %s", result.reason)
        raise HTTPException(status_code=result.status_code, detail=result.reason)
    return result


def _claimed_roles(claims: Dict[str, Any]) -> list[str]:
    realm_access = claims.get("realm_access")
    sources = [claims.get("roles"), realm_access.get("roles") if isinstance(realm_access, dict) else None]
    roles: list[str] = []
    for value in sources:
        if isinstance(value, str):
            value = value.split()
        if not isinstance(value, list):
            continue
        for role in value:
            if role and str(role) not in roles:
                roles.append(str(role))
    return roles
