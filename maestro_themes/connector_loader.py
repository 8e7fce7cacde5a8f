# maestro_themes/connector_loader.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from maestro_themes.config import HostingMode, Settings
from maestro_themes.connectors.base import InventoryConnector, UpdateSource, UpgradeBackend
from maestro_themes.connectors.managed import (
    ManagedHttpClient,
    ManagedInventory,
    ManagedSiteConfig,
    ManagedUpdateSource,
    ManagedUpgradeBackend,
)
from maestro_themes.connectors.memory import (
    InMemoryInventory,
    InMemoryThemeStore,
    InMemoryUpdateSource,
    InMemoryUpgradeBackend,
)

logger = logging.getLogger("maestro_themes.connector_loader")


@dataclass(frozen=True)
class ConnectorBundle:
    """Bundle of the site-facing connectors."""
    mode: HostingMode
    inventory: InventoryConnector
    updates: UpdateSource
    backend: UpgradeBackend


def self_hosted_bundle(store: Optional[InMemoryThemeStore] = None) -> ConnectorBundle:
    store = store or InMemoryThemeStore()
    return ConnectorBundle(
        mode="self_hosted",
        inventory=InMemoryInventory(store),
        updates=InMemoryUpdateSource(store),
        backend=InMemoryUpgradeBackend(store),
    )


def load_connectors(settings: Settings) -> ConnectorBundle:
    """Return managed HTTP connectors or self-hosted in-memory ones."""
    if settings.hosting_mode == "managed" and settings.registry_url:
        http = ManagedHttpClient(ManagedSiteConfig(base_url=settings.registry_url, api_key=settings.registry_api_key))
        return ConnectorBundle(
            mode="managed",
            inventory=ManagedInventory(http),
            updates=ManagedUpdateSource(http),
            backend=ManagedUpgradeBackend(http, timeout_s=settings.upgrade_timeout_seconds or None),
        )

    if settings.inventory_file:
        store = InMemoryThemeStore.from_file(settings.inventory_file, auto_update_global=settings.auto_update_default)
        logger.info("Loaded %d themes from %s", len(store.installed), settings.inventory_file)
    else:
        store = InMemoryThemeStore(auto_update_global=settings.auto_update_default)
    return self_hosted_bundle(store)
