# maestro_themes/registry.py
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from maestro_themes.auth import CallerIdentity
from maestro_themes.connectors.base import InventoryConnector, UpdateSource
from maestro_themes.models import PackageId, PackageRecord, UpdateCatalog

logger = logging.getLogger("maestro_themes.registry")


class RegistryClient(ABC):
    """Read-through view of installed themes and their available updates."""

    @abstractmethod
    async def list_installed(self, *, caller: Optional[CallerIdentity] = None) -> Sequence[PackageRecord]: ...

    @abstractmethod
    async def refresh_catalog(self, *, caller: Optional[CallerIdentity] = None) -> UpdateCatalog: ...

    @abstractmethod
    async def auto_update_default(self, *, caller: Optional[CallerIdentity] = None) -> bool: ...

    @abstractmethod
    def invalidate_catalog(self) -> None:
        """Make the next ``refresh_catalog`` call check upstream again."""

    async def get_package(
        self, package_id: PackageId, *, caller: Optional[CallerIdentity] = None
    ) -> Optional[PackageRecord]:
        for record in await self.list_installed(caller=caller):
            if record.id == package_id:
                return record
        return None


class CachedRegistryClient(RegistryClient):
    """Registry client over an inventory and an update source.

    The catalog is refreshed at most once per ``staleness_seconds``. Callers
    arriving while a refresh is running await the same task instead of
    starting another upstream check. When the upstream check fails the last
    known catalog is served with its ``last_checked`` unchanged.

    ``invalidate_catalog`` bumps a generation counter. A refresh only
    installs what it read if no invalidation happened while it ran;
    otherwise it reads upstream again, so an upgrade that finished mid-check
    is never hidden behind a pre-upgrade snapshot.
    """

    def __init__(
        self,
        inventory: InventoryConnector,
        updates: UpdateSource,
        *,
        staleness_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._inventory = inventory
        self._updates = updates
        self._staleness_seconds = staleness_seconds
        self._clock = clock
        self._catalog = UpdateCatalog()
        self._generation = 0
        self._catalog_generation = 0
        self._inflight: Optional[asyncio.Future[UpdateCatalog]] = None

    def _is_fresh(self) -> bool:
        last_checked = self._catalog.last_checked
        if last_checked is None or self._catalog_generation != self._generation:
            return False
        return (self._clock() - last_checked) < self._staleness_seconds

    async def refresh_catalog(self, *, caller: Optional[CallerIdentity] = None) -> UpdateCatalog:
        if self._is_fresh():
            return self._catalog
        if self._inflight is None:
            # The site's catalog is shared: the caller that starts the refresh
            # authorizes the upstream calls for everyone joining it.
            self._inflight = asyncio.ensure_future(self._refresh(caller))
        # Shielded so one cancelled caller does not abort the shared refresh.
        return await asyncio.shield(self._inflight)

    async def _refresh(self, caller: Optional[CallerIdentity]) -> UpdateCatalog:
        try:
            while True:
                generation = self._generation
                try:
                    installed = await self._inventory.list_installed(caller=caller)
                    entries = await self._updates.check_updates(installed, caller=caller)
                except Exception as exc:
                    logger.warning(
                        "Update check failed; serving catalog last checked at %s: %s",
                        self._catalog.last_checked,
                        exc,
                    )
                    return self._catalog
                if generation == self._generation:
                    break
                logger.debug("Catalog invalidated during update check; checking again")
            self._catalog = UpdateCatalog(entries=entries, last_checked=self._clock())
            self._catalog_generation = generation
            logger.debug("Catalog refreshed with %d available updates", len(self._catalog.entries))
            return self._catalog
        finally:
            self._inflight = None

    def invalidate_catalog(self) -> None:
        self._generation += 1

    async def list_installed(self, *, caller: Optional[CallerIdentity] = None) -> Sequence[PackageRecord]:
        installed = await self._inventory.list_installed(caller=caller)
        catalog = self._catalog
        return [PackageRecord.from_installed(pkg, catalog) for pkg in installed]

    async def auto_update_default(self, *, caller: Optional[CallerIdentity] = None) -> bool:
        return await self._inventory.auto_update_default(caller=caller)
