import logging

from fastapi import FastAPI

from app.core.settings import settings
from app.db.session import engine

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Application startup (environment=%s, originator lender=%s)",
            settings.environment,
            settings.originator_lender_id,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown; %s mutation sessions dropped", len(app.state.mutation_sessions))
        await engine.dispose()
