import logging
import threading
from dataclasses import dataclass
from typing import cast

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import SupportedLanguage, get_parser

from jsco.core.languages import normalize_language
from jsco.core.scope import ScopeGraph, build_scope_graph
from jsco.errors import ParseError

logger = logging.getLogger(__name__)

_local = threading.local()


def _get_parser(language: str) -> Parser:
    """Return a tree-sitter parser for *language*, one instance per thread."""
    parsers: dict[str, Parser] | None = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = {}
        _local.parsers = parsers
    parser = parsers.get(language)
    if parser is None:
        parser = get_parser(cast(SupportedLanguage, language))
        parsers[language] = parser
    return parser


@dataclass
class ASTHandle:
    """A parsed tree plus its scope graph, valid for the duration of one analysis."""

    tree: Tree
    source: bytes
    language: str
    scopes: ScopeGraph

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _first_error(root: Node) -> Node | None:
    if not root.has_error:
        return None
    cursor = root.walk()
    while True:
        node = cursor.node
        if node is not None and (node.is_error or node.is_missing):
            return node
        if node is not None and node.has_error and cursor.goto_first_child():
            continue
        while not cursor.goto_next_sibling():
            if not cursor.goto_parent():
                return root


class TreeSitterParser:
    """Parser & semantic builder backed by tree-sitter grammars.

    Instances carry no state so they can be shipped to worker processes.
    """

    def parse(self, content: bytes, language: str, identity: str = "<memory>") -> ASTHandle:
        resolved = normalize_language(language)
        tree = _get_parser(resolved).parse(content)
        error = _first_error(tree.root_node)
        if error is not None:
            line, column = error.start_point[0] + 1, error.start_point[1] + 1
            what = f"missing {error.type}" if error.is_missing else "unexpected syntax"
            raise ParseError(identity, f"{what} at {line}:{column}", line=line, column=column)
        logger.debug("Parsed %s (%s, %d bytes)", identity, resolved, len(content))
        return ASTHandle(
            tree=tree,
            source=content,
            language=resolved,
            scopes=build_scope_graph(tree.root_node, content),
        )
