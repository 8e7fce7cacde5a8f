# tests/support.py
"""Shared fakes for the themes service tests."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Mapping, Optional, Sequence

from maestro_themes.auth import CallerIdentity
from maestro_themes.config import Settings
from maestro_themes.connectors.base import UpdateSource, UpgradeBackend
from maestro_themes.connectors.memory import InMemoryThemeStore
from maestro_themes.models import BackendResult, CatalogEntry, InstalledPackage, PackageId

BASE_SETTINGS = Settings(
    env="test",
    log_level="INFO",
    logs_as_json=False,
    skip_auth=False,
    jwt_issuer="https://issuer.example.test/",
    jwt_audience="maestro",
    jwks_url="https://issuer.example.test/.well-known/jwks.json",
    jwt_algorithms=("HS256",),
    jwks_cache_ttl_seconds=300,
    required_role="webpro",
    api_prefix="/bluehost/maestro/v1",
    catalog_staleness_seconds=3600.0,
    upgrade_timeout_seconds=0.0,
    hosting_mode="self_hosted",
    registry_url=None,
    registry_api_key=None,
    inventory_file=None,
    auto_update_default=False,
)

WEBPRO = CallerIdentity(user_id="user_1", username="webpro@example.test", roles=["webpro"], is_connected=True, token="t0k3n")


def make_settings(**overrides) -> Settings:
    return replace(BASE_SETTINGS, **overrides)


def make_store() -> InMemoryThemeStore:
    """twentytwentyone 1.0 has 1.2 published; astra has nothing newer."""
    return InMemoryThemeStore(
        [
            InstalledPackage(id="twentytwentyone", version="1.0", name="Twenty Twenty-One", is_active=True),
            InstalledPackage(id="astra", version="4.1.0", name="Astra", auto_update_enabled=True),
            InstalledPackage(id="kadence", version="1.1.0", name="Kadence"),
        ],
        {
            "twentytwentyone": CatalogEntry(new_version="1.2", package="https://downloads.example/twentytwentyone.1.2.zip"),
            "astra": CatalogEntry(new_version="4.1.0"),
            "kadence": CatalogEntry(new_version="1.2.0"),
        },
    )


class CountingUpdateSource(UpdateSource):
    """Update source with a call counter, an optional gate and an optional failure switch."""

    def __init__(self, entries: Optional[Mapping[str, CatalogEntry]] = None) -> None:
        self.entries = dict(entries or {})
        self.calls = 0
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    async def check_updates(self, installed: Sequence[InstalledPackage], *, caller=None) -> Mapping[str, CatalogEntry]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionError("update server unreachable")
        return dict(self.entries)


class BlockingBackend(UpgradeBackend):
    """Backend that parks every upgrade until ``release`` is set."""

    def __init__(self, result: Optional[BackendResult] = None) -> None:
        self.calls: list[tuple[PackageId, str]] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.finished = 0
        self._result = result or BackendResult(success=True)

    async def upgrade(self, package_id, version, *, entry, caller=None) -> BackendResult:
        self.calls.append((package_id, version))
        self.started.set()
        await self.release.wait()
        self.finished += 1
        return self._result


class StaticBackend(UpgradeBackend):
    def __init__(self, result: Optional[BackendResult] = None, *, exc: Optional[Exception] = None, delay_s: float = 0.0) -> None:
        self.calls: list[tuple[PackageId, str]] = []
        self._result = result or BackendResult(success=True)
        self._exc = exc
        self._delay_s = delay_s

    async def upgrade(self, package_id, version, *, entry, caller=None) -> BackendResult:
        self.calls.append((package_id, version))
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        if self._exc is not None:
            raise self._exc
        return self._result


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
