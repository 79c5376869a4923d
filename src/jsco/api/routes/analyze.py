from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from jsco.api.dependencies import get_analyzer
from jsco.api.schemas import AnalyzeRequest, BatchItem, BatchRequest, BatchResponse, ErrorDetail
from jsco.core.analyze import Analyzer
from jsco.core.languages import is_remote
from jsco.core.loader import source_from_code
from jsco.errors import JscoError, LoadError, ParseError, ParseTimeoutError
from jsco.models import AnalysisReport, AnalyzeOptions

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analyze"])


def error_detail(error: JscoError) -> ErrorDetail:
    return ErrorDetail(
        kind=error.kind,
        message=error.message,
        line=getattr(error, "line", None),
        column=getattr(error, "column", None),
    )


def _status_for(error: JscoError) -> int:
    if isinstance(error, ParseTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, ParseError):
        return status.HTTP_422_UNPROCESSABLE_CONTENT
    if isinstance(error, LoadError):
        return status.HTTP_502_BAD_GATEWAY if is_remote(error.source) else status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post("/analyze", response_model=AnalysisReport)
async def analyze(
    body: AnalyzeRequest,
    analyzer: Analyzer = Depends(get_analyzer),
) -> AnalysisReport:
    """Analyze one snippet, local path or URL."""
    options = AnalyzeOptions(
        use_cache=body.use_cache,
        environments=frozenset(body.environments),
        timeout=body.timeout,
    )
    try:
        if body.code is not None:
            unit = source_from_code(body.code, body.language)
        else:
            unit = await analyzer.load(body.url or body.path or "", options, body.language)
        return await analyzer.analyze(unit, options)
    except JscoError as exc:
        logger.info("Analysis failed: %s", exc)
        raise HTTPException(status_code=_status_for(exc), detail=error_detail(exc).model_dump()) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/analyze/batch", response_model=BatchResponse)
async def analyze_batch(
    body: BatchRequest,
    analyzer: Analyzer = Depends(get_analyzer),
) -> BatchResponse:
    """Analyze several paths or URLs; results keep the order of ``inputs``."""
    options = AnalyzeOptions(
        use_cache=body.use_cache,
        environments=frozenset(body.environments),
        timeout=body.timeout,
    )
    results = await analyzer.analyze_batch(body.inputs, options)
    items = []
    for ref, result in zip(body.inputs, results):
        if isinstance(result, JscoError):
            items.append(BatchItem(source=ref, error=error_detail(result)))
        else:
            items.append(BatchItem(source=ref, report=result))
    return BatchResponse(results=items)
