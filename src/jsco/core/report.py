from collections import defaultdict
from collections.abc import Iterable, Sequence

from jsco.core.compat import CompatibilityDatabase, version_key
from jsco.core.engine import FeatureRuleEngine
from jsco.models import (
    AnalysisReport,
    Category,
    CompatibilityEntry,
    DetectionResult,
    FeatureOccurrence,
    FeatureRow,
    Location,
    Support,
    SupportStatus,
)

MAX_EXAMPLE_LOCATIONS = 5
MAX_SNIPPET_LENGTH = 80


def snippet(content: bytes, occurrence: FeatureOccurrence) -> str:
    """The matched source text on its first line, cut to ``MAX_SNIPPET_LENGTH`` characters."""
    text = content[occurrence.span.start_byte : occurrence.span.end_byte].decode("utf-8", errors="replace")
    first_line, _, rest = text.partition("\n")
    if rest or len(first_line) > MAX_SNIPPET_LENGTH:
        return first_line[: MAX_SNIPPET_LENGTH - 3].rstrip() + "..."
    return first_line


def _location(occurrence: FeatureOccurrence, content: bytes | None) -> Location:
    return Location(
        line=occurrence.span.start.line,
        column=occurrence.span.start.column,
        code=snippet(content, occurrence) if content is not None else None,
    )


def summarize(supports: Iterable[Support]) -> Support:
    """Fold one environment's column: any unsupported wins, else the highest minimum version."""
    highest: str | None = None
    for support in supports:
        if support.status is SupportStatus.UNSUPPORTED:
            return Support.unsupported()
        if support.status is SupportStatus.SUPPORTED and support.version is not None:
            if highest is None or version_key(support.version) > version_key(highest):
                highest = support.version
    return Support.minimum(highest) if highest is not None else Support.unknown()


def _compatibility_row(entry: CompatibilityEntry | None, environments: Sequence[str]) -> dict[str, Support]:
    if entry is None:
        return {env: Support.unknown() for env in environments}
    return {env: entry.for_environment(env) for env in environments}


def aggregate(
    source: str,
    result: DetectionResult,
    engine: FeatureRuleEngine,
    database: CompatibilityDatabase,
    environments: Iterable[str] | None = None,
    *,
    content: bytes | None = None,
) -> AnalysisReport:
    """Group occurrences into feature rows and fold the per-environment summary.

    With *content*, each example location carries the matched source text.
    """
    envs = sorted(environments) if environments else list(database.environments)

    grouped: dict[str, list[FeatureOccurrence]] = defaultdict(list)
    for occurrence in result.occurrences:
        grouped[occurrence.feature_id].append(occurrence)

    rows: list[FeatureRow] = []
    columns: dict[str, list[Support]] = {env: [] for env in envs}
    for feature_id in sorted(grouped):
        occurrences = grouped[feature_id]
        entry = database.lookup(feature_id)
        compat = _compatibility_row(entry, envs)
        for env, support in compat.items():
            columns[env].append(support)

        rule = engine.rule(feature_id)
        rows.append(
            FeatureRow(
                id=feature_id,
                name=rule.name if rule else feature_id,
                category=rule.category if rule else Category.SYNTAX,
                occurrences=[_location(o, content) for o in occurrences[:MAX_EXAMPLE_LOCATIONS]],
                count=len(occurrences),
                compatibility={env: support.render() for env, support in compat.items()},
                mdn_url=entry.mdn_url if entry else None,
            )
        )

    return AnalysisReport(
        source=source,
        features=rows,
        summary={env: summarize(columns[env]).render() for env in envs},
        diagnostics=list(result.faults),
    )
