from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jsco.api.dependencies import configure_analyzer, shutdown_analyzer


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Load the compatibility dataset before the first request so readiness reflects it.
    configure_analyzer(getattr(app.state, "settings", None))
    try:
        yield
    finally:
        await shutdown_analyzer()
