"""
Structural signature extraction.

Parses a source file with tree-sitter and runs a per-language query
to collect its top-level declarations. The resulting signature is a
compact string such as::

    src/events.ts | EventService | EventRepository | softDeleteEvent

which is embedded and used as the query when looking for memories
related to the file.

Grammars, parsers and compiled queries are cached per language for
the life of the process. Call dispose_signature_extractor() before
shutting down; it is also registered with atexit on first use.
"""

import atexit
import logging
import os
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from tree_sitter import Language, Node, Parser, Query, QueryCursor, QueryError
from tree_sitter_language_pack import get_language

from .languages import CAPTURE_NAME, EXTENSION_MAP, LANGUAGE_PROFILES, LanguageProfile


logger = logging.getLogger(__name__)


# Queries may only start matching at direct children of the root node
TOP_LEVEL_DEPTH = 1

SEPARATOR = " | "

DECLARATION_SUFFIXES = ("declaration", "definition", "item", "specifier")
EXPORT_WRAPPERS = frozenset({"export_statement"})


_initialized = False
_exit_hook_registered = False
_languages: Dict[str, Language] = {}
_parsers: Dict[str, Parser] = {}
_queries: Dict[str, Query] = {}
_unavailable: Set[str] = set()


class NodeArena:
    """
    Flat, read-only view of a syntax tree.

    Nodes are stored in pre-order with the index of their parent
    (-1 for the root), so ancestor walks are plain index lookups.
    """

    def __init__(self, root: Node):
        self.nodes: List[Node] = []
        self.types: List[str] = []
        self.parents: List[int] = []
        self._index_by_id: Dict[int, int] = {}
        self._build(root)

    def _build(self, root: Node):
        cursor = root.walk()
        parent_stack = [-1]

        while True:
            node = cursor.node
            index = len(self.nodes)
            self.nodes.append(node)
            self.types.append(node.type)
            self.parents.append(parent_stack[-1])
            self._index_by_id[node.id] = index

            if cursor.goto_first_child():
                parent_stack.append(index)
                continue

            while not cursor.goto_next_sibling():
                if not cursor.goto_parent():
                    return
                parent_stack.pop()

    def __len__(self) -> int:
        return len(self.nodes)

    def index_of(self, node: Node) -> int:
        """Get the arena index of a node from the same tree."""
        return self._index_by_id[node.id]

    def declaration_ancestor(self, index: int) -> int:
        """
        Find the declaration that encloses the node at ``index``.

        Walks up until the parent looks like a declaration (by node type
        suffix or export wrapper). If the walk reaches the root first,
        the root's direct child is returned instead.
        """
        current = index
        while True:
            parent = self.parents[current]
            if parent < 0 or self.parents[parent] < 0:
                return current
            if is_declaration_type(self.types[parent]):
                return parent
            current = parent


def is_declaration_type(node_type: str) -> bool:
    """Check whether a node type names a declaration-level construct."""
    return node_type in EXPORT_WRAPPERS or node_type.endswith(DECLARATION_SUFFIXES)


def detect_language(file_path: str) -> Optional[str]:
    """
    Detect the language of a file from its extension.

    Args:
        file_path: Path of the file (only the extension is used)

    Returns:
        Language key, or None if the extension is not supported
    """
    ext = os.path.splitext(os.path.basename(file_path))[1].lower()
    if not ext:
        return None
    return EXTENSION_MAP.get(ext)


def supported_languages() -> FrozenSet[str]:
    """Get the keys of all supported languages."""
    return frozenset(LANGUAGE_PROFILES)


def extract_signature(file_path: str, content: str) -> Optional[str]:
    """
    Extract a structural signature made of declaration names.

    Returns:
        ``"<path> | <name> | ..."`` with names deduplicated in first-seen
        order, or None if the language is unsupported, the content is
        empty, or no top-level declarations were found.
    """
    parsed = _parse(file_path, content)
    if parsed is None:
        return None
    _, captures = parsed

    names: List[str] = []
    seen: Set[str] = set()
    for node in captures:
        text = _node_text(node).strip()
        if text and text not in seen:
            seen.add(text)
            names.append(text)

    if not names:
        return None
    return SEPARATOR.join([file_path] + names)


def extract_signature_lines(file_path: str, content: str) -> Optional[str]:
    """
    Extract a signature made of full declaration lines.

    Instead of ``EventService`` this yields the first source line of the
    declaration, e.g. ``class EventService extends BaseService {``.
    Declarations captured more than once are reported once.
    """
    parsed = _parse(file_path, content)
    if parsed is None:
        return None
    tree, captures = parsed
    if not captures:
        return None

    arena = NodeArena(tree.root_node)
    lines: List[str] = []
    seen: Set[int] = set()

    for node in captures:
        decl_index = arena.declaration_ancestor(arena.index_of(node))
        if decl_index in seen:
            continue
        seen.add(decl_index)

        first_line = _node_text(arena.nodes[decl_index]).split("\n", 1)[0].strip()
        if first_line:
            lines.append(first_line)

    if not lines:
        return None
    return SEPARATOR.join([file_path] + lines)


def dispose_signature_extractor():
    """
    Release cached grammars, parsers and queries.

    Safe to call repeatedly; the caches are rebuilt on next use.
    """
    global _initialized

    if _queries or _parsers or _languages:
        logger.debug(f"Disposing signature extractor ({len(_queries)} cached queries)")

    _queries.clear()
    _parsers.clear()
    _languages.clear()
    _unavailable.clear()
    _initialized = False


def _ensure_init():
    """Mark the extractor initialized and register the exit hook once."""
    global _initialized, _exit_hook_registered

    if _initialized:
        return
    _initialized = True
    if not _exit_hook_registered:
        atexit.register(dispose_signature_extractor)
        _exit_hook_registered = True


def _load_profile(profile: LanguageProfile) -> Optional[Tuple[Parser, Query]]:
    """Get the cached parser and compiled query for a language."""
    key = profile.key
    if key in _unavailable:
        return None

    parser = _parsers.get(key)
    query = _queries.get(key)
    if parser is not None and query is not None:
        return parser, query

    try:
        language = _languages.get(key)
        if language is None:
            language = get_language(profile.grammar)
            _languages[key] = language
        query = Query(language, profile.query)
    except QueryError as e:
        logger.warning(f"Invalid signature query for {key}: {e}")
        _unavailable.add(key)
        return None
    except Exception as e:
        # Grammar lookups can fail with package-specific errors (missing or
        # undownloadable grammars); the language is then treated as unsupported.
        logger.warning(f"Signature extraction unavailable for {key}: {e}")
        _unavailable.add(key)
        return None

    parser = Parser(language)
    _parsers[key] = parser
    _queries[key] = query
    logger.debug(f"Loaded tree-sitter grammar: {profile.grammar}")
    return parser, query


def _parse(file_path: str, content: str):
    """Parse a file and collect its top-level captures in source order."""
    lang_key = detect_language(file_path)
    if lang_key is None or not content:
        return None

    _ensure_init()
    loaded = _load_profile(LANGUAGE_PROFILES[lang_key])
    if loaded is None:
        return None
    parser, query = loaded

    tree = parser.parse(content.encode("utf-8"))

    cursor = QueryCursor(query)
    cursor.set_max_start_depth(TOP_LEVEL_DEPTH)
    captures = cursor.captures(tree.root_node).get(CAPTURE_NAME, [])
    captures = sorted(captures, key=lambda n: (n.start_byte, n.end_byte))
    return tree, captures


def _node_text(node: Node) -> str:
    text = node.text
    if text is None:
        return ""
    return text.decode("utf-8", errors="replace")
