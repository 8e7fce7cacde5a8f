# maestro_themes/connectors/__init__.py
"""
Site-facing connectors: installed inventory, update source, upgrade backend.

Bundles are assembled by ``maestro_themes.connector_loader.load_connectors``
and handed to ``create_app``; nothing here is a process-wide singleton.
"""

from maestro_themes.connectors.base import InventoryConnector, UpdateSource, UpgradeBackend

__all__ = ["InventoryConnector", "UpdateSource", "UpgradeBackend"]
