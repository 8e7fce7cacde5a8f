# maestro_themes/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger("maestro_themes.settings")

HostingMode = Literal["managed", "self_hosted"]

DEFAULT_API_PREFIX = "/bluehost/maestro/v1"


def _dotenv_enabled() -> bool:
    value = os.getenv("THEMES_LOAD_DOTENV")
    if value is None:
        return True
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _env_bool(key: str, default: bool = False) -> bool:
    value = _env_str(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    value = _env_str(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = _env_str(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_algorithms(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ("RS256",)
    parts = [item.strip() for item in value.split(",")]
    algs = [item for item in parts if item]
    return tuple(algs) if algs else ("RS256",)


def _normalize_prefix(value: Optional[str]) -> str:
    if not value:
        return DEFAULT_API_PREFIX
    value = "/" + value.strip("/")
    return "" if value == "/" else value


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    logs_as_json: bool
    skip_auth: bool
    jwt_issuer: str
    jwt_audience: str
    jwks_url: str
    jwt_algorithms: Tuple[str, ...]
    jwks_cache_ttl_seconds: int
    required_role: str
    api_prefix: str
    catalog_staleness_seconds: float
    upgrade_timeout_seconds: float
    hosting_mode: HostingMode
    registry_url: Optional[str]
    registry_api_key: Optional[str]
    inventory_file: Optional[str]
    auto_update_default: bool

    @property
    def is_production(self) -> bool:
        return self.env == "production"


def _resolve_hosting_mode(registry_url: Optional[str]) -> HostingMode:
    requested = (_env_str("THEMES_HOSTING_MODE") or "self_hosted").lower()
    if requested != "managed":
        return "self_hosted"
    if not registry_url:
        logger.warning("THEMES_HOSTING_MODE=managed without THEMES_REGISTRY_URL; using self_hosted connectors")
        return "self_hosted"
    return "managed"


def load_settings() -> Settings:
    # Never override the process environment with .env values.
    if _dotenv_enabled():
        load_dotenv(override=False)

    env = (_env_str("ENV", "development") or "development").lower()
    skip_auth = _env_bool("SKIP_AUTH", default=False)
    jwt_issuer = _env_str("JWT_ISSUER") or ""
    jwt_audience = _env_str("JWT_AUDIENCE") or ""
    jwks_url = _env_str("JWKS_URL") or ""
    registry_url = _env_str("THEMES_REGISTRY_URL")

    # Only require JWT settings if auth is not skipped.
    if not skip_auth:
        missing = [
            name
            for name, value in {
                "JWT_ISSUER": jwt_issuer,
                "JWT_AUDIENCE": jwt_audience,
                "JWKS_URL": jwks_url,
            }.items()
            if not value
        ]
        if missing:
            raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    return Settings(
        env=env,
        log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        logs_as_json=_env_bool("LOGS_AS_JSON", default=False),
        skip_auth=skip_auth,
        jwt_issuer=jwt_issuer,
        jwt_audience=jwt_audience,
        jwks_url=jwks_url,
        jwt_algorithms=_parse_algorithms(_env_str("JWT_ALGORITHMS") or _env_str("JWT_ALGORITHM")),
        jwks_cache_ttl_seconds=_env_int("JWKS_CACHE_TTL_SECONDS", 300),
        required_role=_env_str("THEMES_REQUIRED_ROLE", "webpro") or "webpro",
        api_prefix=_normalize_prefix(_env_str("THEMES_API_PREFIX")),
        catalog_staleness_seconds=max(0.0, _env_float("CATALOG_STALENESS_SECONDS", 3600.0)),
        upgrade_timeout_seconds=max(0.0, _env_float("UPGRADE_TIMEOUT_SECONDS", 300.0)),
        hosting_mode=_resolve_hosting_mode(registry_url),
        registry_url=registry_url,
        registry_api_key=_env_str("THEMES_REGISTRY_API_KEY"),
        inventory_file=_env_str("THEMES_INVENTORY_FILE"),
        auto_update_default=_env_bool("THEMES_AUTO_UPDATE_DEFAULT", default=False),
    )
