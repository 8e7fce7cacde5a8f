# maestro_themes/connectors/base.py
"""
Connector interfaces for the themes service.

BOUNDARY CONTRACT:
- This service does NOT touch theme files or talk to the theme directory itself
- InventoryConnector reports what is installed on the site
- UpdateSource answers "which installed themes have a newer version"
- UpgradeBackend performs the download / verify / swap of one theme
- In managed mode all three delegate over HTTP to the site agent
- In self-hosted mode in-memory connectors stand in for the site

Connectors receive the authenticated caller so user-scoped calls run with the
caller's own token instead of an elevated service account.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from maestro_themes.models import BackendResult, CatalogEntry, InstalledPackage, PackageId

if TYPE_CHECKING:
    from maestro_themes.auth import CallerIdentity


class InventoryConnector(ABC):
    @abstractmethod
    async def list_installed(self, *, caller: Optional[CallerIdentity] = None) -> Sequence[InstalledPackage]: ...

    @abstractmethod
    async def auto_update_default(self, *, caller: Optional[CallerIdentity] = None) -> bool: ...


class UpdateSource(ABC):
    @abstractmethod
    async def check_updates(
        self, installed: Sequence[InstalledPackage], *, caller: Optional[CallerIdentity] = None
    ) -> Mapping[str, CatalogEntry]:
        """Return catalog entries keyed by installed identifier for themes with a newer version."""


class UpgradeBackend(ABC):
    @abstractmethod
    async def upgrade(
        self,
        package_id: PackageId,
        version: str,
        *,
        entry: CatalogEntry,
        caller: Optional[CallerIdentity] = None,
    ) -> BackendResult: ...
