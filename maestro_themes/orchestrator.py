# maestro_themes/orchestrator.py
"""
Upgrade orchestration for installed themes.

``UpgradeOrchestrator.upgrade`` decides whether a theme needs an upgrade,
guarantees that at most one upgrade per theme runs at a time in this
process, and turns whatever the backend does into an ``UpgradeOutcome``.

Refusals (unknown theme, upgrade already running) are raised as
``OrchestratorError``; everything the backend does, including raising or
timing out, is reported inside the outcome.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from maestro_themes.auth import CallerIdentity
from maestro_themes.connectors.base import UpgradeBackend
from maestro_themes.errors import PackageNotFound, UpgradeInProgress
from maestro_themes.models import (
    AttemptState,
    BackendResult,
    CatalogEntry,
    ErrorKind,
    PackageId,
    PackageRecord,
    UpgradeAttempt,
    UpgradeOutcome,
)
from maestro_themes.registry import RegistryClient

logger = logging.getLogger("maestro_themes.orchestrator")


class UpgradeOrchestrator:
    def __init__(
        self,
        registry: RegistryClient,
        backend: UpgradeBackend,
        *,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._timeout_seconds = timeout_seconds or None
        self._clock = clock
        self._attempts: Dict[PackageId, UpgradeAttempt] = {}
        self._lock = asyncio.Lock()

    def live_attempts(self) -> Dict[PackageId, UpgradeAttempt]:
        """Snapshot of in-flight attempts."""
        return dict(self._attempts)

    def is_in_progress(self, package_id: PackageId) -> bool:
        return package_id in self._attempts

    async def upgrade(self, package_id: PackageId, *, caller: Optional[CallerIdentity] = None) -> UpgradeOutcome:
        catalog = await self._registry.refresh_catalog(caller=caller)

        record = await self._registry.get_package(package_id, caller=caller)
        if record is None:
            raise PackageNotFound(package_id)

        # Keyed by what is installed now, not by what a previous listing showed.
        entry = catalog.lookup(record.installed_identifier)
        if entry is None:
            logger.info("Theme already up to date", extra={"package_id": package_id})
            return UpgradeOutcome(
                package_id=package_id,
                previous_version=record.installed_version,
                error_kind=ErrorKind.ALREADY_UP_TO_DATE,
                message="Theme already up to date",
            )

        attempt = await self._register(package_id)
        # The attempt task owns its cleanup; an aborted request must not cancel it.
        task = asyncio.ensure_future(self._run(attempt, record, entry, caller))
        return await asyncio.shield(task)

    async def _register(self, package_id: PackageId) -> UpgradeAttempt:
        async with self._lock:
            if package_id in self._attempts:
                logger.info("Upgrade already in progress", extra={"package_id": package_id})
                raise UpgradeInProgress(package_id)
            attempt = UpgradeAttempt(package_id=package_id, requested_at=self._clock())
            self._attempts[package_id] = attempt
            attempt.advance(AttemptState.RUNNING)
            return attempt

    async def _release(self, attempt: UpgradeAttempt) -> None:
        async with self._lock:
            if self._attempts.get(attempt.package_id) is attempt:
                del self._attempts[attempt.package_id]

    async def _run(
        self,
        attempt: UpgradeAttempt,
        record: PackageRecord,
        entry: CatalogEntry,
        caller: Optional[CallerIdentity],
    ) -> UpgradeOutcome:
        package_id = attempt.package_id
        target = entry.new_version
        try:
            logger.info(
                "Upgrading theme %s from %s to %s",
                package_id,
                record.installed_version,
                target,
                extra={"package_id": package_id, "user_id": caller.user_id if caller else None},
            )
            result = await self._call_backend(package_id, target, entry, caller)
            if result.success:
                attempt.advance(AttemptState.COMPLETED)
                self._registry.invalidate_catalog()
                logger.info("Theme upgraded to %s", target, extra={"package_id": package_id, "state": attempt.state.value})
                return UpgradeOutcome(
                    package_id=package_id,
                    previous_version=record.installed_version,
                    new_version=target,
                    target_version=target,
                    succeeded=True,
                    message=result.message,
                    warnings=result.warnings,
                )
            attempt.advance(AttemptState.FAILED)
            logger.warning(
                "Theme upgrade failed: %s",
                result.message or "backend reported failure",
                extra={"package_id": package_id, "state": attempt.state.value},
            )
            return UpgradeOutcome(
                package_id=package_id,
                previous_version=record.installed_version,
                target_version=target,
                error_kind=ErrorKind.BACKEND_FAILURE,
                message=result.message or "Upgrade backend reported failure",
                warnings=result.warnings,
            )
        finally:
            await self._release(attempt)

    async def _call_backend(
        self,
        package_id: PackageId,
        target: str,
        entry: CatalogEntry,
        caller: Optional[CallerIdentity],
    ) -> BackendResult:
        call = self._backend.upgrade(package_id, target, entry=entry, caller=caller)
        try:
            if self._timeout_seconds:
                return await asyncio.wait_for(call, timeout=self._timeout_seconds)
            return await call
        except asyncio.TimeoutError:
            logger.error("Upgrade backend timed out after %ss", self._timeout_seconds, extra={"package_id": package_id})
            return BackendResult(success=False, message=f"Upgrade timed out after {self._timeout_seconds}s")
        except Exception as exc:
            logger.exception("Upgrade backend raised", extra={"package_id": package_id})
            return BackendResult(success=False, message=f"{type(exc).__name__}: {exc}")
