from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from jsco.models import AnalysisReport


class AnalyzeRequest(BaseModel):
    """POST /analyze: exactly one of ``code``, ``path`` or ``url``."""

    code: str | None = None
    language: str | None = None
    path: str | None = None
    url: str | None = None
    environments: list[str] = Field(default_factory=list)
    use_cache: bool = True
    timeout: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _one_source(self) -> AnalyzeRequest:
        given = [name for name in ("code", "path", "url") if getattr(self, name) is not None]
        if len(given) != 1:
            raise ValueError("exactly one of 'code', 'path' or 'url' must be provided")
        return self


class BatchRequest(BaseModel):
    inputs: list[str] = Field(min_length=1)
    environments: list[str] = Field(default_factory=list)
    use_cache: bool = True
    timeout: float | None = Field(default=None, gt=0)


class ErrorDetail(BaseModel):
    kind: str
    message: str
    line: int | None = None
    column: int | None = None


class BatchItem(BaseModel):
    source: str
    report: AnalysisReport | None = None
    error: ErrorDetail | None = None


class BatchResponse(BaseModel):
    results: list[BatchItem]


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    dataset: str
    features: int
