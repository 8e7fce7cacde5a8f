# maestro_themes/errors.py
from __future__ import annotations

from typing import Optional

from maestro_themes.models import PackageId


class OrchestratorError(Exception):
    """Base class for upgrade requests the orchestrator refuses to run."""

    def __init__(self, message: str, *, package_id: PackageId) -> None:
        super().__init__(message)
        self.package_id = package_id


class PackageNotFound(OrchestratorError):
    def __init__(self, package_id: PackageId) -> None:
        super().__init__(f"Package not installed: {package_id}", package_id=package_id)


class UpgradeInProgress(OrchestratorError):
    def __init__(self, package_id: PackageId) -> None:
        super().__init__(f"Upgrade already in progress: {package_id}", package_id=package_id)


class RegistryUnavailable(RuntimeError):
    """The upstream inventory or update source could not be reached."""


class ConnectorRequestError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def safe_error_detail(public_message: str, exc: Exception, *, is_production: bool) -> str:
    """Return a client-facing error detail without leaking internals in production."""
    if is_production:
        return public_message
    return f"{public_message}: {exc}"
