# maestro_themes/connectors/managed.py
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from maestro_themes.auth import CallerIdentity
from maestro_themes.connectors.base import InventoryConnector, UpdateSource, UpgradeBackend
from maestro_themes.errors import ConnectorRequestError, RegistryUnavailable
from maestro_themes.logging_config import log_json
from maestro_themes.models import BackendResult, CatalogEntry, InstalledPackage, PackageId

logger = logging.getLogger("maestro_themes.connectors.managed")


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InstalledThemePayload(WireModel):
    id: str
    version: str
    name: Optional[str] = None
    stylesheet: Optional[str] = None
    auto_update: bool = False
    active: bool = False


class InstalledThemesPayload(WireModel):
    themes: list[InstalledThemePayload] = Field(default_factory=list)


class SiteSettingsPayload(WireModel):
    auto_update_global: bool = False


class CatalogEntryPayload(WireModel):
    new_version: str
    package: Optional[str] = None
    checksum: Optional[str] = None


class UpdateCheckPayload(WireModel):
    updates: Dict[str, CatalogEntryPayload] = Field(default_factory=dict)


class UpgradeResultPayload(WireModel):
    success: bool
    message: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ManagedSiteConfig:
    base_url: str
    api_key: Optional[str] = None
    timeout_s: float = 10.0
    upgrade_timeout_s: float = 300.0
    max_retries: int = 2
    backoff_initial_s: float = 0.25
    backoff_max_s: float = 2.0


class ManagedHttpClient:
    def __init__(self, config: ManagedSiteConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._transport = transport

    def _make_headers(self, *, user_jwt: Optional[str]) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if user_jwt:
            headers["Authorization"] = f"Bearer {user_jwt}"
        # Optional scoped server-to-server key (if the site agent requires it).
        if self._config.api_key:
            headers["x-maestro-site-key"] = self._config.api_key
        return headers

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        user_jwt: Optional[str] = None,
        json_body: Any = None,
        retry: bool,
        timeout_s: Optional[float] = None,
    ) -> dict[str, Any]:
        attempts = 1 + (self._config.max_retries if retry else 0)
        backoff = self._config.backoff_initial_s
        timeout = httpx.Timeout(timeout_s or self._config.timeout_s)

        for attempt in range(1, attempts + 1):
            log_json(logger, logging.DEBUG, {"event": "site.request", "method": method, "path": path, "attempt": attempt})
            try:
                async with httpx.AsyncClient(
                    base_url=self._config.base_url.rstrip("/"),
                    timeout=timeout,
                    transport=self._transport,
                ) as client:
                    resp = await client.request(method, path, json=json_body, headers=self._make_headers(user_jwt=user_jwt))
            except httpx.HTTPError as exc:
                log_json(
                    logger,
                    logging.WARNING,
                    {"event": "site.error", "method": method, "path": path, "error": str(exc), "attempt": attempt},
                )
                if retry and attempt < attempts:
                    await asyncio.sleep(min(backoff, self._config.backoff_max_s) + random.random() * 0.1)  # nosec B311
                    backoff = min(backoff * 2, self._config.backoff_max_s)
                    continue
                raise ConnectorRequestError(f"Site request error: {method} {path}") from exc

            retryable_status = resp.status_code == 429 or resp.status_code >= 500
            if retry and retryable_status and attempt < attempts:
                await asyncio.sleep(min(backoff, self._config.backoff_max_s) + random.random() * 0.1)  # nosec B311
                backoff = min(backoff * 2, self._config.backoff_max_s)
                continue

            if resp.status_code >= 400:
                raise ConnectorRequestError(
                    f"Site request failed: {method} {path} ({resp.status_code})",
                    status_code=resp.status_code,
                )
            if not resp.content:
                return {}
            try:
                data = resp.json()
            except ValueError as exc:
                raise ConnectorRequestError(f"Site returned invalid JSON: {method} {path}") from exc
            if not isinstance(data, dict):
                raise ConnectorRequestError(f"Site returned a non-object body: {method} {path}")
            return data

        raise ConnectorRequestError(f"Site request exhausted retries: {method} {path}")


class ManagedInventory(InventoryConnector):
    def __init__(self, http: ManagedHttpClient) -> None:
        self._http = http

    async def list_installed(self, *, caller: Optional[CallerIdentity] = None) -> Sequence[InstalledPackage]:
        try:
            data = await self._http.request_json(
                method="GET",
                path="/themes/installed",
                user_jwt=caller.token if caller else None,
                retry=True,
            )
            payload = InstalledThemesPayload.model_validate(data)
        except (ConnectorRequestError, ValidationError) as exc:
            raise RegistryUnavailable(f"Installed themes unavailable: {exc}") from exc
        return [
            InstalledPackage(
                id=item.id,
                version=item.version,
                name=item.name,
                stylesheet=item.stylesheet,
                auto_update_enabled=item.auto_update,
                is_active=item.active,
            )
            for item in payload.themes
        ]

    async def auto_update_default(self, *, caller: Optional[CallerIdentity] = None) -> bool:
        try:
            data = await self._http.request_json(
                method="GET",
                path="/themes/settings",
                user_jwt=caller.token if caller else None,
                retry=True,
            )
            return SiteSettingsPayload.model_validate(data).auto_update_global
        except (ConnectorRequestError, ValidationError) as exc:
            raise RegistryUnavailable(f"Site settings unavailable: {exc}") from exc


class ManagedUpdateSource(UpdateSource):
    def __init__(self, http: ManagedHttpClient) -> None:
        self._http = http

    async def check_updates(
        self, installed: Sequence[InstalledPackage], *, caller: Optional[CallerIdentity] = None
    ) -> Mapping[str, CatalogEntry]:
        body = {
            "themes": [
                {"stylesheet": pkg.installed_identifier, "version": pkg.version}
                for pkg in installed
            ]
        }
        try:
            data = await self._http.request_json(
                method="POST",
                path="/themes/update-check",
                user_jwt=caller.token if caller else None,
                json_body=body,
                retry=True,
            )
            payload = UpdateCheckPayload.model_validate(data)
        except (ConnectorRequestError, ValidationError) as exc:
            raise RegistryUnavailable(f"Update check failed: {exc}") from exc
        return {
            key: CatalogEntry(new_version=value.new_version, package=value.package, checksum=value.checksum)
            for key, value in payload.updates.items()
        }


class ManagedUpgradeBackend(UpgradeBackend):
    def __init__(self, http: ManagedHttpClient, *, timeout_s: Optional[float] = None) -> None:
        self._http = http
        self._timeout_s = timeout_s

    async def upgrade(
        self,
        package_id: PackageId,
        version: str,
        *,
        entry: CatalogEntry,
        caller: Optional[CallerIdentity] = None,
    ) -> BackendResult:
        # Not idempotent on the site side: never retried here.
        data = await self._http.request_json(
            method="POST",
            path="/themes/upgrade",
            user_jwt=caller.token if caller else None,
            json_body={
                "slug": package_id,
                "version": version,
                "package": entry.package,
                "checksum": entry.checksum,
            },
            retry=False,
            timeout_s=self._timeout_s,
        )
        payload = UpgradeResultPayload.model_validate(data)
        return BackendResult(success=payload.success, message=payload.message, warnings=tuple(payload.warnings))
