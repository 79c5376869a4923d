from fastapi import APIRouter, Depends

from jsco.api.dependencies import get_analyzer
from jsco.api.schemas import HealthResponse, ReadinessResponse
from jsco.core.analyze import Analyzer

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness probe: is the process alive?"""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(analyzer: Analyzer = Depends(get_analyzer)) -> ReadinessResponse:
    """Readiness probe: reports the loaded compatibility dataset."""
    return ReadinessResponse(dataset=analyzer.database.version, features=len(analyzer.database))
