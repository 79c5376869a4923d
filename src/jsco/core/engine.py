import hashlib
import logging
from bisect import bisect_left
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache

from tree_sitter import Node

from jsco.core.parser import ASTHandle, TreeSitterParser
from jsco.core.rules import DEFAULT_RULES, FeatureRule
from jsco.models import DetectionResult, FeatureOccurrence, Position, RuleEvaluationFault, Span

logger = logging.getLogger(__name__)

# Bump when matcher behaviour changes without a change to the rule table.
RULESET_REVISION = "1"


@dataclass(frozen=True)
class _Match:
    rule: FeatureRule
    span: Span


def node_span(node: Node) -> Span:
    return Span(
        start=Position(line=node.start_point[0] + 1, column=node.start_point[1] + 1),
        end=Position(line=node.end_point[0] + 1, column=node.end_point[1] + 1),
        start_byte=node.start_byte,
        end_byte=node.end_byte,
    )


class _Coverage:
    """Sorted spans of one family above a specificity level, queried for overlap."""

    def __init__(self, spans: list[Span]) -> None:
        ordered = sorted(spans, key=lambda s: s.start_byte)
        self._starts = [s.start_byte for s in ordered]
        self._max_end: list[int] = []
        running = -1
        for s in ordered:
            running = max(running, s.end_byte)
            self._max_end.append(running)

    def overlaps(self, span: Span) -> bool:
        idx = bisect_left(self._starts, span.end_byte)
        return idx > 0 and self._max_end[idx - 1] > span.start_byte


def _drop_subsumed(matches: list[_Match]) -> list[_Match]:
    """Drop matches overlapped by a more specific match of the same family."""
    by_family: dict[str, list[_Match]] = defaultdict(list)
    for m in matches:
        by_family[m.rule.overlap_family].append(m)

    dropped: set[int] = set()
    for family_matches in by_family.values():
        levels = sorted({m.rule.specificity for m in family_matches})
        if len(levels) < 2:
            continue
        for level in levels[:-1]:
            coverage = _Coverage([m.span for m in family_matches if m.rule.specificity > level])
            for m in family_matches:
                if m.rule.specificity == level and coverage.overlaps(m.span):
                    dropped.add(id(m))
    return [m for m in matches if id(m) not in dropped]


class FeatureRuleEngine:
    """Walks a tree once and reports every rule match in document order."""

    def __init__(self, rules: Iterable[FeatureRule] = DEFAULT_RULES) -> None:
        self.rules: tuple[FeatureRule, ...] = tuple(rules)
        self._by_id: dict[str, FeatureRule] = {}
        index: dict[str, list[FeatureRule]] = defaultdict(list)
        for rule in self.rules:
            if rule.id in self._by_id:
                raise ValueError(f"Duplicate rule id '{rule.id}'")
            self._by_id[rule.id] = rule
            for kind in rule.kinds:
                index[kind.value].append(rule)
        self._index = {
            kind: tuple(sorted(rules_for_kind, key=lambda r: (-r.specificity, r.id)))
            for kind, rules_for_kind in index.items()
        }

    @property
    def version(self) -> str:
        h = hashlib.sha256(RULESET_REVISION.encode("utf-8"))
        for rule in sorted(self.rules, key=lambda r: r.id):
            h.update(f"|{rule.id}:{rule.specificity}:{rule.overlap_family}:{','.join(rule.kinds)}".encode())
        return h.hexdigest()[:16]

    def rule(self, rule_id: str) -> FeatureRule | None:
        return self._by_id.get(rule_id)

    def rules_for(self, kind: str) -> tuple[FeatureRule, ...]:
        return self._index.get(kind, ())

    def detect(self, handle: ASTHandle, source: str) -> DetectionResult:
        matches: list[_Match] = []
        faults: list[RuleEvaluationFault] = []

        cursor = handle.tree.walk()
        while True:
            node = cursor.node
            if node is not None:
                for rule in self._index.get(node.type, ()):
                    try:
                        matched = rule.matches(node, handle)
                    except Exception as exc:  # noqa: BLE001
                        logger.debug("Rule %s failed on %s in %s", rule.id, node.type, source, exc_info=True)
                        faults.append(
                            RuleEvaluationFault(
                                rule_id=rule.id,
                                node_kind=node.type,
                                line=node.start_point[0] + 1,
                                column=node.start_point[1] + 1,
                                message=f"{type(exc).__name__}: {exc}",
                            )
                        )
                        continue
                    if matched:
                        matches.append(_Match(rule=rule, span=node_span(node)))
            if cursor.goto_first_child():
                continue
            while not cursor.goto_next_sibling():
                if not cursor.goto_parent():
                    return DetectionResult(
                        occurrences=[
                            FeatureOccurrence(feature_id=m.rule.id, span=m.span, source=source)
                            for m in _drop_subsumed(matches)
                        ],
                        faults=faults,
                    )


@lru_cache(maxsize=1)
def default_engine() -> FeatureRuleEngine:
    return FeatureRuleEngine(DEFAULT_RULES)


def run_detection(
    parser: TreeSitterParser,
    engine: FeatureRuleEngine | None,
    content: bytes,
    language: str,
    source: str,
) -> DetectionResult:
    """Parse and detect one unit; the job each pool worker runs.

    The tree goes out of scope when this returns.
    """
    handle = parser.parse(content, language, source)
    return (engine or default_engine()).detect(handle, source)
