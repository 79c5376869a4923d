"""Scope and binding graph over a tree-sitter JavaScript/TypeScript tree.

Bindings are hoisted to the whole scope that owns them (no temporal dead zone),
which is all the rule engine needs to decide whether an identifier refers to a
global.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tree_sitter import Node

FUNCTION_SCOPE_KINDS = frozenset(
    {
        "function_declaration",
        "function_expression",
        "function",
        "generator_function_declaration",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)
BLOCK_SCOPE_KINDS = frozenset(
    {
        "statement_block",
        "for_statement",
        "for_in_statement",
        "catch_clause",
        "switch_body",
        "class_static_block",
        "class_declaration",
        "class",
    }
)
_NAMED_IN_ENCLOSING = frozenset(
    {"function_declaration", "generator_function_declaration", "class_declaration", "abstract_class_declaration"}
)
_NAMED_IN_OWN = frozenset({"function_expression", "function", "generator_function", "class"})
_PARAMETER_WRAPPERS = frozenset({"required_parameter", "optional_parameter"})
# TypeScript declarations that bind a value name in the enclosing scope.
_NAMED_VALUE_DECLARATIONS = frozenset({"enum_declaration", "internal_module", "module"})
_IMPORT_ALIASES = frozenset({"import_alias", "import_require_clause"})


@dataclass
class Scope:
    node_id: int
    kind: str
    parent: Scope | None
    bindings: set[str] = field(default_factory=set)

    @property
    def is_function(self) -> bool:
        return self.kind in ("program", "function")

    def function_scope(self) -> Scope:
        scope: Scope = self
        while not scope.is_function and scope.parent is not None:
            scope = scope.parent
        return scope

    def lookup(self, name: str) -> Scope | None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.bindings:
                return scope
            scope = scope.parent
        return None


class ScopeGraph:
    def __init__(self, scopes: dict[int, Scope], root: Scope) -> None:
        self._scopes = scopes
        self.root = root

    def __len__(self) -> int:
        return len(self._scopes)

    def scope_for(self, node: Node) -> Scope:
        """Return the innermost scope enclosing *node*."""
        current: Node | None = node
        while current is not None:
            scope = self._scopes.get(current.id)
            if scope is not None:
                return scope
            current = current.parent
        return self.root

    def resolve(self, node: Node, name: str) -> Scope | None:
        return self.scope_for(node).lookup(name)

    def is_global_reference(self, node: Node, name: str) -> bool:
        """True when *name* at *node* is not bound by any enclosing scope."""
        return self.resolve(node, name) is None


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def pattern_names(node: Node | None, source: bytes) -> list[str]:
    """Collect the identifiers a binding pattern introduces."""
    if node is None:
        return []
    kind = node.type
    if kind in ("identifier", "shorthand_property_identifier_pattern"):
        return [_text(node, source)]
    if kind in _PARAMETER_WRAPPERS:
        return pattern_names(node.child_by_field_name("pattern"), source)
    if kind in ("assignment_pattern", "object_assignment_pattern"):
        return pattern_names(node.child_by_field_name("left"), source)
    if kind == "pair_pattern":
        return pattern_names(node.child_by_field_name("value"), source)
    if kind in ("object_pattern", "array_pattern", "rest_pattern", "formal_parameters"):
        names: list[str] = []
        for child in node.named_children:
            names.extend(pattern_names(child, source))
        return names
    return []


def _import_names(node: Node, source: bytes) -> list[str]:
    names: list[str] = []
    for child in node.named_children:
        if child.type == "identifier":
            names.append(_text(child, source))
        elif child.type == "namespace_import":
            names.extend(_text(c, source) for c in child.named_children if c.type == "identifier")
        elif child.type == "named_imports":
            for spec in child.named_children:
                if spec.type != "import_specifier":
                    continue
                local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                if local is not None:
                    names.append(_text(local, source))
    return names


def _leading_identifier(node: Node | None, source: bytes) -> list[str]:
    """``a`` for ``a`` and ``a.b.c``; nothing for string module names."""
    while node is not None and node.type in ("nested_identifier", "member_expression"):
        node = node.named_children[0] if node.named_children else None
    if node is None or node.type != "identifier":
        return []
    return [_text(node, source)]


class _Builder:
    def __init__(self, source: bytes) -> None:
        self.source = source
        self.scopes: dict[int, Scope] = {}

    def _declare(self, scope: Scope, names: list[str]) -> None:
        scope.bindings.update(names)

    def _enter(self, node: Node, scope: Scope) -> Scope:
        kind = node.type
        if kind in _NAMED_IN_ENCLOSING:
            name = node.child_by_field_name("name")
            if name is not None:
                self._declare(scope, [_text(name, self.source)])

        if kind in FUNCTION_SCOPE_KINDS:
            own = Scope(node_id=node.id, kind="function", parent=scope)
        elif kind in BLOCK_SCOPE_KINDS:
            own = Scope(node_id=node.id, kind="block", parent=scope)
        else:
            return scope
        self.scopes[node.id] = own

        if kind in _NAMED_IN_OWN:
            name = node.child_by_field_name("name")
            if name is not None:
                self._declare(own, [_text(name, self.source)])
        if kind in FUNCTION_SCOPE_KINDS:
            params = node.child_by_field_name("parameters") or node.child_by_field_name("parameter")
            self._declare(own, pattern_names(params, self.source))
        elif kind == "catch_clause":
            self._declare(own, pattern_names(node.child_by_field_name("parameter"), self.source))
        elif kind == "for_in_statement":
            declaration_kind = node.child_by_field_name("kind")
            if declaration_kind is not None:
                target = own.function_scope() if declaration_kind.type == "var" else own
                self._declare(target, pattern_names(node.child_by_field_name("left"), self.source))
        return own

    def _declarations(self, node: Node, scope: Scope) -> None:
        kind = node.type
        if kind == "variable_declaration":
            target = scope.function_scope()
        elif kind == "lexical_declaration":
            target = scope
        elif kind == "import_clause":
            self._declare(scope.function_scope(), _import_names(node, self.source))
            return
        elif kind in _IMPORT_ALIASES:
            first = node.named_children[0] if node.named_children else None
            self._declare(scope.function_scope(), _leading_identifier(first, self.source))
            return
        elif kind in _NAMED_VALUE_DECLARATIONS:
            self._declare(scope, _leading_identifier(node.child_by_field_name("name"), self.source))
            return
        else:
            return
        for declarator in node.named_children:
            if declarator.type == "variable_declarator":
                self._declare(target, pattern_names(declarator.child_by_field_name("name"), self.source))

    def build(self, root: Node) -> ScopeGraph:
        program = Scope(node_id=root.id, kind="program", parent=None)
        self.scopes[root.id] = program
        stack: list[tuple[Node, Scope]] = [(child, program) for child in reversed(root.children)]
        while stack:
            node, scope = stack.pop()
            inner = self._enter(node, scope)
            self._declarations(node, inner)
            for child in reversed(node.children):
                stack.append((child, inner))
        return ScopeGraph(self.scopes, program)


def build_scope_graph(root: Node, source: bytes) -> ScopeGraph:
    return _Builder(source).build(root)
