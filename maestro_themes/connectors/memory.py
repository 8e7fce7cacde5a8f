# maestro_themes/connectors/memory.py
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from packaging.version import InvalidVersion, Version

from maestro_themes.auth import CallerIdentity
from maestro_themes.connectors.base import InventoryConnector, UpdateSource, UpgradeBackend
from maestro_themes.logging_config import log_json
from maestro_themes.models import BackendResult, CatalogEntry, InstalledPackage, PackageId

logger = logging.getLogger("maestro_themes.connectors.memory")


def _is_newer(candidate: str, installed: str) -> bool:
    try:
        return Version(candidate) > Version(installed)
    except InvalidVersion:
        return candidate != installed


class InMemoryThemeStore:
    """Shared state for the self-hosted connectors: installed themes and published versions."""

    def __init__(
        self,
        installed: Iterable[InstalledPackage] = (),
        published: Optional[Mapping[str, CatalogEntry]] = None,
        *,
        auto_update_global: bool = False,
    ) -> None:
        self.installed: Dict[PackageId, InstalledPackage] = {pkg.id: pkg for pkg in installed}
        self.published: Dict[str, CatalogEntry] = dict(published or {})
        self.auto_update_global = auto_update_global

    @classmethod
    def from_file(cls, path: str | Path, *, auto_update_global: bool = False) -> "InMemoryThemeStore":
        """Load an inventory document.

        Expected shape::

            {"auto_update_global": false,
             "themes": [{"id": "astra", "version": "4.1.0", "active": true}],
             "available": {"astra": {"new_version": "4.2.0", "package": "https://..."}}}
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Inventory file must contain a JSON object: {path}")
        return cls.from_dict(data, auto_update_global=auto_update_global)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, auto_update_global: bool = False) -> "InMemoryThemeStore":
        installed = [
            InstalledPackage(
                id=str(item["id"]),
                version=str(item["version"]),
                name=item.get("name"),
                stylesheet=item.get("stylesheet"),
                auto_update_enabled=bool(item.get("auto_update", False)),
                is_active=bool(item.get("active", False)),
            )
            for item in data.get("themes", [])
        ]
        published = {
            str(key): CatalogEntry(
                new_version=str(value["new_version"]),
                package=value.get("package"),
                checksum=value.get("checksum"),
            )
            for key, value in (data.get("available") or {}).items()
        }
        return cls(
            installed,
            published,
            auto_update_global=bool(data.get("auto_update_global", auto_update_global)),
        )


class InMemoryInventory(InventoryConnector):
    def __init__(self, store: InMemoryThemeStore) -> None:
        self._store = store

    async def list_installed(self, *, caller: Optional[CallerIdentity] = None) -> Sequence[InstalledPackage]:
        return list(self._store.installed.values())

    async def auto_update_default(self, *, caller: Optional[CallerIdentity] = None) -> bool:
        return self._store.auto_update_global


class InMemoryUpdateSource(UpdateSource):
    def __init__(self, store: InMemoryThemeStore) -> None:
        self._store = store
        self.check_count = 0

    async def check_updates(
        self, installed: Sequence[InstalledPackage], *, caller: Optional[CallerIdentity] = None
    ) -> Mapping[str, CatalogEntry]:
        self.check_count += 1
        updates: Dict[str, CatalogEntry] = {}
        for pkg in installed:
            entry = self._store.published.get(pkg.installed_identifier)
            if entry and _is_newer(entry.new_version, pkg.version):
                updates[pkg.installed_identifier] = entry
        log_json(
            logger,
            logging.INFO,
            {"event": "themes.update_check", "mode": "self_hosted", "installed": len(installed), "updates": len(updates)},
        )
        return updates


class InMemoryUpgradeBackend(UpgradeBackend):
    """Replaces the installed version in the store; ``delay_s`` simulates download time."""

    def __init__(self, store: InMemoryThemeStore, *, delay_s: float = 0.0) -> None:
        self._store = store
        self._delay_s = delay_s

    async def upgrade(
        self,
        package_id: PackageId,
        version: str,
        *,
        entry: CatalogEntry,
        caller: Optional[CallerIdentity] = None,
    ) -> BackendResult:
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        current = self._store.installed.get(package_id)
        if current is None:
            return BackendResult(success=False, message=f"Theme {package_id} is no longer installed")
        self._store.installed[package_id] = replace(current, version=version)
        log_json(
            logger,
            logging.INFO,
            {
                "event": "themes.upgrade",
                "mode": "self_hosted",
                "packageId": package_id,
                "from": current.version,
                "to": version,
                "userId": caller.user_id if caller else None,
            },
        )
        return BackendResult(success=True)
