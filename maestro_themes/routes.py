# maestro_themes/routes.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from maestro_themes.auth import CallerIdentity, require_caller
from maestro_themes.errors import OrchestratorError, RegistryUnavailable, safe_error_detail
from maestro_themes.formatter import error_response, outcome_response, themes_response
from maestro_themes.schemas import ThemesResponse, UpgradeRequest

router = APIRouter(tags=["themes"])
logger = logging.getLogger("maestro_themes.routes")


@router.get("/themes", response_model=ThemesResponse)
async def get_themes(request: Request, caller: CallerIdentity = Depends(require_caller)) -> ThemesResponse:
    """List installed themes with their update state."""
    registry = request.app.state.registry
    try:
        catalog = await registry.refresh_catalog(caller=caller)
        records = await registry.list_installed(caller=caller)
        auto_update_global = await registry.auto_update_default(caller=caller)
    except RegistryUnavailable as exc:
        logger.warning("Theme inventory unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Theme inventory unavailable") from exc
    return themes_response(records, auto_update_global=auto_update_global, catalog=catalog)


@router.post("/themes/upgrade")
async def upgrade_theme(
    payload: UpgradeRequest,
    request: Request,
    caller: CallerIdentity = Depends(require_caller),
) -> JSONResponse:
    """Upgrade one theme by slug. Returns the theme's slug, target version and status."""
    orchestrator = request.app.state.orchestrator
    settings = request.app.state.settings
    try:
        outcome = await orchestrator.upgrade(payload.slug, caller=caller)
    except OrchestratorError as exc:
        status_code, body = error_response(exc)
        return JSONResponse(status_code=status_code, content=body)
    except RegistryUnavailable as exc:
        logger.warning("Theme inventory unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Theme inventory unavailable") from exc
    except Exception as exc:
        logger.exception("Theme upgrade request failed: %s", payload.slug)
        raise HTTPException(
            status_code=500,
            detail=safe_error_detail("Theme upgrade failed", exc, is_production=settings.is_production),
        ) from exc

    status_code, body = outcome_response(outcome)
    return JSONResponse(status_code=status_code, content=body)
