# maestro_themes/models.py
"""
Domain types shared by the registry, the orchestrator and the formatter.

Everything here is immutable except ``UpgradeAttempt``, whose ``state`` is
advanced by the orchestrator while the attempt is live.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

PackageId = str


@dataclass(frozen=True)
class InstalledPackage:
    """A theme as reported by the inventory connector."""

    id: PackageId
    version: str
    name: Optional[str] = None
    stylesheet: Optional[str] = None
    auto_update_enabled: bool = False
    is_active: bool = False

    @property
    def installed_identifier(self) -> str:
        return self.stylesheet or self.id


@dataclass(frozen=True)
class CatalogEntry:
    new_version: str
    package: Optional[str] = None
    checksum: Optional[str] = None


@dataclass(frozen=True)
class UpdateCatalog:
    """Available updates keyed by installed identifier (stylesheet)."""

    entries: Mapping[str, CatalogEntry] = field(default_factory=dict)
    last_checked: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def lookup(self, installed_identifier: str) -> Optional[CatalogEntry]:
        return self.entries.get(installed_identifier)


@dataclass(frozen=True)
class PackageRecord:
    id: PackageId
    installed_version: str
    available_version: Optional[str] = None
    auto_update_enabled: bool = False
    is_active: bool = False
    stylesheet: Optional[str] = None
    name: Optional[str] = None

    @property
    def installed_identifier(self) -> str:
        return self.stylesheet or self.id

    @classmethod
    def from_installed(cls, installed: InstalledPackage, catalog: UpdateCatalog) -> "PackageRecord":
        entry = catalog.lookup(installed.installed_identifier)
        return cls(
            id=installed.id,
            installed_version=installed.version,
            available_version=entry.new_version if entry else None,
            auto_update_enabled=installed.auto_update_enabled,
            is_active=installed.is_active,
            stylesheet=installed.stylesheet,
            name=installed.name,
        )


class AttemptState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    AttemptState.PENDING: {AttemptState.RUNNING},
    AttemptState.RUNNING: {AttemptState.COMPLETED, AttemptState.FAILED},
    AttemptState.COMPLETED: set(),
    AttemptState.FAILED: set(),
}


@dataclass
class UpgradeAttempt:
    package_id: PackageId
    requested_at: float
    state: AttemptState = AttemptState.PENDING

    def advance(self, new_state: AttemptState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid attempt transition {self.state.value} -> {new_state.value}")
        self.state = new_state


class ErrorKind(str, Enum):
    ALREADY_UP_TO_DATE = "already_up_to_date"
    BACKEND_FAILURE = "backend_failure"


@dataclass(frozen=True)
class UpgradeOutcome:
    package_id: PackageId
    previous_version: str
    new_version: Optional[str] = None
    target_version: Optional[str] = None
    succeeded: bool = False
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BackendResult:
    """What an upgrade backend reports back for a single upgrade call."""

    success: bool
    message: Optional[str] = None
    warnings: Tuple[str, ...] = ()
