# =============================================================================
# Application Entry Point — FastAPI App Factory
# =============================================================================
#
# Run from project root:
#   uvicorn agentic_rag.main:app --reload
#   python -m agentic_rag.main
#
# All routes are mounted under /api. Completion and Retrieval clients are
# created lazily on first use; the lifespan hook only releases the
# retrieval client's connection pool on shutdown.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agentic_rag.api import compare, query, system
from agentic_rag.config import settings
from agentic_rag.services.retrieval import close_retrieval_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "%s %s starting (llm_provider=%s, retrieval_backend=%s)",
        settings.app_name, settings.app_version,
        settings.llm_provider, settings.retrieval_backend,
    )
    yield
    await close_retrieval_service()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.include_router(query.router, prefix="/api")
    app.include_router(compare.router, prefix="/api")
    app.include_router(system.router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("agentic_rag.main:app", host="0.0.0.0", port=8000)
