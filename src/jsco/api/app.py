from __future__ import annotations

from fastapi import FastAPI

from jsco.api.lifespan import lifespan
from jsco.api.routes.analyze import router as analyze_router
from jsco.api.routes.health import router as health_router
from jsco.config import Settings


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="jsco API",
        description="Detect JavaScript language and API features and report environment compatibility.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(health_router, include_in_schema=False)
    app.include_router(analyze_router)

    return app
