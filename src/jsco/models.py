from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Origin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Category(str, Enum):
    SYNTAX = "syntax"
    GLOBAL_API = "global-api"
    MEMBER_API = "member-api"


class SourceUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: str
    content: bytes
    content_hash: str
    origin: Origin = Origin.LOCAL
    language: str = "javascript"


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int
    column: int


class Span(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Position
    end: Position
    start_byte: int
    end_byte: int

    def overlaps(self, other: "Span") -> bool:
        return self.start_byte < other.end_byte and other.start_byte < self.end_byte


class FeatureOccurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: str
    span: Span
    source: str


class RuleEvaluationFault(BaseModel):
    """A detection rule that raised while matching one node."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    node_kind: str
    line: int
    column: int
    message: str


class DetectionResult(BaseModel):
    """Everything the rule engine produces for one unit; this is what gets cached."""

    occurrences: list[FeatureOccurrence] = Field(default_factory=list)
    faults: list[RuleEvaluationFault] = Field(default_factory=list)


class SupportStatus(str, Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class Support(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: SupportStatus
    version: str | None = None

    @classmethod
    def minimum(cls, version: str) -> "Support":
        return cls(status=SupportStatus.SUPPORTED, version=version)

    @classmethod
    def unsupported(cls) -> "Support":
        return cls(status=SupportStatus.UNSUPPORTED)

    @classmethod
    def unknown(cls) -> "Support":
        return cls(status=SupportStatus.UNKNOWN)

    def render(self) -> str:
        if self.status is SupportStatus.SUPPORTED and self.version is not None:
            return self.version
        return self.status.value


class CompatibilityEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: str
    support: dict[str, Support]
    mdn_url: str | None = None

    def for_environment(self, environment: str) -> Support:
        return self.support.get(environment, Support.unknown())


class Location(BaseModel):
    line: int
    column: int
    code: str | None = None


class FeatureRow(BaseModel):
    id: str
    name: str
    category: Category
    occurrences: list[Location]
    count: int
    compatibility: dict[str, str]
    mdn_url: str | None = None


class AnalysisReport(BaseModel):
    source: str
    features: list[FeatureRow] = Field(default_factory=list)
    summary: dict[str, str] = Field(default_factory=dict)
    diagnostics: list[RuleEvaluationFault] = Field(default_factory=list)

    @property
    def feature_ids(self) -> set[str]:
        return {row.id for row in self.features}


class AnalyzeOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    use_cache: bool = True
    cache_ttl: float | None = None
    environments: frozenset[str] = frozenset()
    timeout: float | None = None


class CacheRecord(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    key: str
    kind: Literal["detection", "payload"] = "detection"
    payload: bytes
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at
