"""Feature detection rules and the default catalog.

Each rule declares the node kinds it inspects; the engine indexes rules by kind
and only ever calls a matcher with nodes of those kinds. Matchers are plain
module-level functions (optionally bound with ``functools.partial``) so a rule
set can be pickled into worker processes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

from tree_sitter import Node

from jsco.core.parser import ASTHandle
from jsco.models import Category


class NodeKind(str, Enum):
    """The closed set of tree-sitter node kinds any rule may be keyed to."""

    IDENTIFIER = "identifier"
    SHORTHAND_PROPERTY_IDENTIFIER = "shorthand_property_identifier"
    MEMBER_EXPRESSION = "member_expression"
    SUBSCRIPT_EXPRESSION = "subscript_expression"
    CALL_EXPRESSION = "call_expression"
    BINARY_EXPRESSION = "binary_expression"
    AUGMENTED_ASSIGNMENT_EXPRESSION = "augmented_assignment_expression"
    NUMBER = "number"
    CATCH_CLAUSE = "catch_clause"
    FOR_IN_STATEMENT = "for_in_statement"
    SPREAD_ELEMENT = "spread_element"
    REST_PATTERN = "rest_pattern"
    AWAIT_EXPRESSION = "await_expression"
    FIELD_DEFINITION = "field_definition"
    PUBLIC_FIELD_DEFINITION = "public_field_definition"
    METHOD_DEFINITION = "method_definition"
    CLASS_STATIC_BLOCK = "class_static_block"
    DECORATOR = "decorator"


Matcher = Callable[[Node, ASTHandle], bool]


@dataclass(frozen=True)
class FeatureRule:
    id: str
    name: str
    category: Category
    kinds: tuple[NodeKind, ...]
    matcher: Matcher
    specificity: int = 1
    family: str | None = None
    bcd_key: tuple[str, ...] | None = None

    @property
    def overlap_family(self) -> str:
        return self.family or self.id

    def matches(self, node: Node, handle: ASTHandle) -> bool:
        return self.matcher(node, handle)


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------

GLOBAL_OBJECTS = frozenset({"window", "self", "globalThis"})

_FUNCTION_BOUNDARIES = frozenset(
    {
        "function_declaration",
        "function_expression",
        "function",
        "generator_function_declaration",
        "generator_function",
        "arrow_function",
        "method_definition",
        "class_static_block",
    }
)


def _has_child_of_type(node: Node, kind: str) -> bool:
    return any(child.type == kind for child in node.children)


def _is_optional_chain(node: Node, handle: ASTHandle) -> bool:
    return _has_child_of_type(node, "optional_chain")


def _has_operator(operators: frozenset[str], node: Node, handle: ASTHandle) -> bool:
    operator = node.child_by_field_name("operator")
    return operator is not None and operator.type in operators


def _is_separated_number(node: Node, handle: ASTHandle) -> bool:
    return "_" in handle.text(node)


def _is_bigint_literal(node: Node, handle: ASTHandle) -> bool:
    return handle.text(node).endswith("n")


def _is_dynamic_import(node: Node, handle: ASTHandle) -> bool:
    function = node.child_by_field_name("function")
    return function is not None and function.type == "import"


def _lacks_catch_binding(node: Node, handle: ASTHandle) -> bool:
    return node.child_by_field_name("parameter") is None


def _is_for_await(node: Node, handle: ASTHandle) -> bool:
    return _has_child_of_type(node, "await")


def _always(node: Node, handle: ASTHandle) -> bool:
    return True


def _parent_is(kinds: frozenset[str], node: Node, handle: ASTHandle) -> bool:
    parent = node.parent
    return parent is not None and parent.type in kinds


def _is_rest_parameter(node: Node, handle: ASTHandle) -> bool:
    parent = node.parent
    if parent is not None and parent.type == "required_parameter":
        parent = parent.parent
    return parent is not None and parent.type == "formal_parameters"


def _is_top_level(node: Node, handle: ASTHandle) -> bool:
    current = node.parent
    while current is not None:
        if current.type in _FUNCTION_BOUNDARIES:
            return False
        current = current.parent
    return True


def _has_private_name(node: Node, handle: ASTHandle) -> bool:
    name = node.child_by_field_name("property") or node.child_by_field_name("name")
    return name is not None and name.type == "private_property_identifier"


def _names_global(name: str, node: Node, handle: ASTHandle) -> bool:
    """True for an unshadowed ``name`` or for ``window.name``, ``self.name`` and ``globalThis.name``."""
    if node.type != "member_expression":
        return handle.text(node) == name and handle.scopes.is_global_reference(node, name)
    obj = node.child_by_field_name("object")
    prop = node.child_by_field_name("property")
    if obj is None or prop is None or obj.type != "identifier" or handle.text(prop) != name:
        return False
    owner = handle.text(obj)
    return owner in GLOBAL_OBJECTS and handle.scopes.is_global_reference(obj, owner)


def _is_global_member(owner: str, member: str, node: Node, handle: ASTHandle) -> bool:
    obj = node.child_by_field_name("object")
    prop = node.child_by_field_name("property")
    if obj is None or prop is None or obj.type not in ("identifier", "member_expression"):
        return False
    return handle.text(prop) == member and _names_global(owner, obj, handle)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

_GLOBAL_REFERENCE_KINDS = (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY_IDENTIFIER, NodeKind.MEMBER_EXPRESSION)


def global_api_rule(
    rule_id: str,
    global_name: str,
    bcd_key: tuple[str, ...] | None,
    *,
    name: str | None = None,
    family: str | None = None,
) -> FeatureRule:
    """Rule for a global identifier that no local binding shadows, bare or read off the global object."""
    return FeatureRule(
        id=rule_id,
        name=name or global_name,
        category=Category.GLOBAL_API,
        kinds=_GLOBAL_REFERENCE_KINDS,
        matcher=partial(_names_global, global_name),
        family=family,
        bcd_key=bcd_key,
    )


def member_api_rule(
    rule_id: str,
    owner: str,
    member: str,
    bcd_key: tuple[str, ...] | None,
    *,
    family: str | None = None,
) -> FeatureRule:
    """Rule for ``owner.member`` where ``owner`` resolves to the global object."""
    return FeatureRule(
        id=rule_id,
        name=f"{owner}.{member}",
        category=Category.MEMBER_API,
        kinds=(NodeKind.MEMBER_EXPRESSION,),
        matcher=partial(_is_global_member, owner, member),
        specificity=2,
        family=family,
        bcd_key=bcd_key,
    )


def _js(*parts: str) -> tuple[str, ...]:
    return ("javascript", *parts)


_SYNTAX_RULES = (
    FeatureRule(
        id="optional-chaining",
        name="Optional chaining (?.)",
        category=Category.SYNTAX,
        kinds=(NodeKind.MEMBER_EXPRESSION, NodeKind.CALL_EXPRESSION, NodeKind.SUBSCRIPT_EXPRESSION),
        matcher=_is_optional_chain,
        bcd_key=_js("operators", "optional_chaining"),
    ),
    FeatureRule(
        id="nullish-coalescing",
        name="Nullish coalescing (??)",
        category=Category.SYNTAX,
        kinds=(NodeKind.BINARY_EXPRESSION,),
        matcher=partial(_has_operator, frozenset({"??"})),
        bcd_key=_js("operators", "nullish_coalescing"),
    ),
    FeatureRule(
        id="logical-assignment",
        name="Logical assignment (&&=, ||=, ??=)",
        category=Category.SYNTAX,
        kinds=(NodeKind.AUGMENTED_ASSIGNMENT_EXPRESSION,),
        matcher=partial(_has_operator, frozenset({"&&=", "||=", "??="})),
        bcd_key=_js("operators", "logical_or_assignment"),
    ),
    FeatureRule(
        id="numeric-separators",
        name="Numeric separators",
        category=Category.SYNTAX,
        kinds=(NodeKind.NUMBER,),
        matcher=_is_separated_number,
        bcd_key=_js("grammar", "numeric_separators"),
    ),
    FeatureRule(
        id="bigint",
        name="BigInt literal",
        category=Category.SYNTAX,
        kinds=(NodeKind.NUMBER,),
        matcher=_is_bigint_literal,
        family="bigint",
        bcd_key=_js("builtins", "BigInt"),
    ),
    FeatureRule(
        id="dynamic-import",
        name="Dynamic import()",
        category=Category.SYNTAX,
        kinds=(NodeKind.CALL_EXPRESSION,),
        matcher=_is_dynamic_import,
        bcd_key=_js("operators", "import"),
    ),
    FeatureRule(
        id="optional-catch-binding",
        name="Optional catch binding",
        category=Category.SYNTAX,
        kinds=(NodeKind.CATCH_CLAUSE,),
        matcher=_lacks_catch_binding,
        bcd_key=_js("statements", "try...catch", "optional_catch_binding"),
    ),
    FeatureRule(
        id="async-iteration",
        name="Async iteration (for await...of)",
        category=Category.SYNTAX,
        kinds=(NodeKind.FOR_IN_STATEMENT,),
        matcher=_is_for_await,
        bcd_key=_js("statements", "for-await...of"),
    ),
    FeatureRule(
        id="spread",
        name="Spread syntax",
        category=Category.SYNTAX,
        kinds=(NodeKind.SPREAD_ELEMENT,),
        matcher=_always,
        family="spread",
        bcd_key=_js("operators", "spread"),
    ),
    FeatureRule(
        id="spread-in-arrays",
        name="Spread in array literals",
        category=Category.SYNTAX,
        kinds=(NodeKind.SPREAD_ELEMENT,),
        matcher=partial(_parent_is, frozenset({"array"})),
        specificity=2,
        family="spread",
        bcd_key=_js("operators", "spread", "spread_in_arrays"),
    ),
    FeatureRule(
        id="spread-in-calls",
        name="Spread in function calls",
        category=Category.SYNTAX,
        kinds=(NodeKind.SPREAD_ELEMENT,),
        matcher=partial(_parent_is, frozenset({"arguments"})),
        specificity=2,
        family="spread",
        bcd_key=_js("operators", "spread", "spread_in_function_calls"),
    ),
    FeatureRule(
        id="spread-in-object-literals",
        name="Spread in object literals",
        category=Category.SYNTAX,
        kinds=(NodeKind.SPREAD_ELEMENT,),
        matcher=partial(_parent_is, frozenset({"object"})),
        specificity=2,
        family="spread",
        bcd_key=_js("operators", "spread", "spread_in_object_literals"),
    ),
    FeatureRule(
        id="rest-parameters",
        name="Rest parameters",
        category=Category.SYNTAX,
        kinds=(NodeKind.REST_PATTERN,),
        matcher=_is_rest_parameter,
        family="rest",
        bcd_key=_js("functions", "rest_parameters"),
    ),
    FeatureRule(
        id="object-rest-destructuring",
        name="Rest in object destructuring",
        category=Category.SYNTAX,
        kinds=(NodeKind.REST_PATTERN,),
        matcher=partial(_parent_is, frozenset({"object_pattern"})),
        family="rest",
        bcd_key=_js("operators", "destructuring", "rest_in_objects"),
    ),
    FeatureRule(
        id="await",
        name="await",
        category=Category.SYNTAX,
        kinds=(NodeKind.AWAIT_EXPRESSION,),
        matcher=_always,
        family="await",
        bcd_key=_js("operators", "await"),
    ),
    FeatureRule(
        id="top-level-await",
        name="Top-level await",
        category=Category.SYNTAX,
        kinds=(NodeKind.AWAIT_EXPRESSION,),
        matcher=_is_top_level,
        specificity=2,
        family="await",
        bcd_key=_js("operators", "await", "top_level"),
    ),
    FeatureRule(
        id="private-class-fields",
        name="Private class fields",
        category=Category.SYNTAX,
        kinds=(NodeKind.FIELD_DEFINITION, NodeKind.PUBLIC_FIELD_DEFINITION),
        matcher=_has_private_name,
        bcd_key=_js("classes", "private_class_fields"),
    ),
    FeatureRule(
        id="private-methods",
        name="Private class methods",
        category=Category.SYNTAX,
        kinds=(NodeKind.METHOD_DEFINITION,),
        matcher=_has_private_name,
        bcd_key=_js("classes", "private_class_methods"),
    ),
    FeatureRule(
        id="class-static-block",
        name="Class static initialization blocks",
        category=Category.SYNTAX,
        kinds=(NodeKind.CLASS_STATIC_BLOCK,),
        matcher=_always,
        bcd_key=_js("classes", "static_initialization_blocks"),
    ),
    FeatureRule(
        id="decorators",
        name="Decorators",
        category=Category.SYNTAX,
        kinds=(NodeKind.DECORATOR,),
        matcher=_always,
    ),
)

_TYPED_ARRAYS = (
    "Int8Array",
    "Uint8Array",
    "Uint8ClampedArray",
    "Int16Array",
    "Uint16Array",
    "Int32Array",
    "Uint32Array",
    "Float32Array",
    "Float64Array",
    "BigInt64Array",
    "BigUint64Array",
)

_GLOBAL_RULES = (
    global_api_rule("fetch", "fetch", ("api", "fetch")),
    global_api_rule("bigint-function", "BigInt", _js("builtins", "BigInt"), family="bigint"),
    global_api_rule("request-idle-callback", "requestIdleCallback", ("api", "Window", "requestIdleCallback")),
    global_api_rule("structured-clone", "structuredClone", ("api", "structuredClone")),
    global_api_rule("queue-microtask", "queueMicrotask", ("api", "queueMicrotask")),
    global_api_rule("global-this", "globalThis", _js("builtins", "globalThis")),
    global_api_rule("weak-ref", "WeakRef", _js("builtins", "WeakRef")),
    global_api_rule("abort-controller", "AbortController", ("api", "AbortController")),
    global_api_rule("promise", "Promise", _js("builtins", "Promise"), family="promise"),
    global_api_rule("performance", "performance", ("api", "Performance"), family="performance"),
    global_api_rule("intersection-observer", "IntersectionObserver", ("api", "IntersectionObserver")),
    global_api_rule("resize-observer", "ResizeObserver", ("api", "ResizeObserver")),
    *(global_api_rule(name.lower(), name, _js("builtins", name)) for name in _TYPED_ARRAYS),
)

_MEMBER_RULES = (
    member_api_rule("navigator-service-worker", "navigator", "serviceWorker", ("api", "Navigator", "serviceWorker")),
    member_api_rule("performance-now", "performance", "now", ("api", "Performance", "now"), family="performance"),
    member_api_rule(
        "promise-all-settled", "Promise", "allSettled", _js("builtins", "Promise", "allSettled"), family="promise"
    ),
    member_api_rule("promise-any", "Promise", "any", _js("builtins", "Promise", "any"), family="promise"),
    member_api_rule("object-from-entries", "Object", "fromEntries", _js("builtins", "Object", "fromEntries")),
    member_api_rule("object-has-own", "Object", "hasOwn", _js("builtins", "Object", "hasOwn")),
)

DEFAULT_RULES: tuple[FeatureRule, ...] = (*_SYNTAX_RULES, *_GLOBAL_RULES, *_MEMBER_RULES)
