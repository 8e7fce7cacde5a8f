# maestro_themes/main.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request

from maestro_themes import __version__
from maestro_themes.auth import Authenticator
from maestro_themes.config import Settings, load_settings
from maestro_themes.connector_loader import ConnectorBundle, load_connectors
from maestro_themes.logging_config import setup_logging
from maestro_themes.orchestrator import UpgradeOrchestrator
from maestro_themes.registry import CachedRegistryClient
from maestro_themes.routes import router as themes_router

logger = logging.getLogger("maestro_themes")


def create_app(
    settings: Optional[Settings] = None,
    connectors: Optional[ConnectorBundle] = None,
    authenticator: Optional[Authenticator] = None,
) -> FastAPI:
    settings = settings or load_settings()
    connectors = connectors or load_connectors(settings)

    registry = CachedRegistryClient(
        connectors.inventory,
        connectors.updates,
        staleness_seconds=settings.catalog_staleness_seconds,
    )
    orchestrator = UpgradeOrchestrator(
        registry,
        connectors.backend,
        timeout_seconds=settings.upgrade_timeout_seconds,
    )

    app = FastAPI(title="Maestro Themes", version=__version__)
    app.state.settings = settings
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.authenticator = authenticator or Authenticator(settings)
    app.include_router(themes_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        return {
            "status": "ok",
            "mode": connectors.mode,
            "upgrades_in_progress": len(request.app.state.orchestrator.live_attempts()),
        }

    logger.info("Themes API mounted at %s (%s connectors)", settings.api_prefix or "/", connectors.mode)
    return app


def build_app() -> FastAPI:
    """Process entrypoint for ``uvicorn maestro_themes.main:build_app --factory``."""
    settings = load_settings()
    setup_logging(settings.log_level, as_json=settings.logs_as_json)
    return create_app(settings)
