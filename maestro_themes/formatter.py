# maestro_themes/formatter.py
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from maestro_themes.errors import OrchestratorError, PackageNotFound, UpgradeInProgress
from maestro_themes.models import ErrorKind, PackageRecord, UpdateCatalog, UpgradeOutcome
from maestro_themes.schemas import ErrorResponse, PackageRecordView, ThemesResponse, UpgradeResponse

ALREADY_UPDATED = ErrorResponse(error="Theme already up to date", code="alreadyUpdated")
THEME_NOT_FOUND = ErrorResponse(error="Theme not found", code="themeNotFound")
UPGRADE_IN_PROGRESS = ErrorResponse(error="Theme upgrade already in progress", code="upgradeInProgress")


def record_view(record: PackageRecord) -> PackageRecordView:
    name = record.name or record.id
    return PackageRecordView(
        id=record.id,
        name=name,
        title=name,
        status="active" if record.is_active else "inactive",
        version=record.installed_version,
        update=record.available_version is not None,
        update_version=record.available_version,
        auto_updates=record.auto_update_enabled,
    )


def themes_response(
    records: Sequence[PackageRecord], *, auto_update_global: bool, catalog: UpdateCatalog
) -> ThemesResponse:
    last_checked: Optional[int] = None
    if catalog.last_checked is not None:
        last_checked = int(catalog.last_checked)
    return ThemesResponse(
        themes=[record_view(record) for record in records],
        auto_update_global=auto_update_global,
        last_checked=last_checked,
    )


def outcome_response(outcome: UpgradeOutcome) -> Tuple[int, dict]:
    """Map an outcome to (status code, body).

    A failed backend call is still a 200 with ``success: false``.
    """
    if outcome.error_kind is ErrorKind.ALREADY_UP_TO_DATE:
        return 400, ALREADY_UPDATED.model_dump()
    body = UpgradeResponse(
        slug=outcome.package_id,
        version=outcome.new_version or outcome.target_version,
        success=outcome.succeeded,
    )
    return 200, body.model_dump()


def error_response(exc: OrchestratorError) -> Tuple[int, dict]:
    if isinstance(exc, PackageNotFound):
        return 404, THEME_NOT_FOUND.model_dump()
    if isinstance(exc, UpgradeInProgress):
        return 409, UPGRADE_IN_PROGRESS.model_dump()
    return 500, ErrorResponse(error=str(exc), code="upgradeError").model_dump()
