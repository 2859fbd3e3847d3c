"""Deprecation marker extraction from the comments preceding declarations."""
import re
from typing import Dict, Iterable, List, Optional, Sequence

from tree_sitter import Node

from ..models import DECLARATION_KINDS, DeprecatedItem
from ..policy.suppression import MarkerSpec
from .extractor import DeprecationMarker, Symbol

_DOC_OPEN = re.compile(r'^\s*/\*\*+')
_BLOCK_OPEN = re.compile(r'^\s*/\*+')
_BLOCK_CLOSE = re.compile(r'\*+/\s*$')
_LINE_PREFIX = re.compile(r'^\s*(//+|\*+(?!/))\s?')


def is_doc_comment(text: str) -> bool:
    """`/** ... */` (but not the empty block `/**/`)."""
    stripped = text.lstrip()
    return stripped.startswith('/**') and not stripped.startswith('/**/')


def comment_lines(text: str) -> List[str]:
    """Comment body lines with `/**`, `*/`, leading `*` and `//` decoration removed."""
    lines = []
    for index, raw in enumerate(text.splitlines()):
        line = raw
        if index == 0:
            line = _DOC_OPEN.sub('', line, count=1) if is_doc_comment(line) else _BLOCK_OPEN.sub('', line, count=1)
        line = _BLOCK_CLOSE.sub('', line)
        line = _LINE_PREFIX.sub('', line, count=1)
        lines.append(line.strip())
    return lines


def parse_marker(text: str, specs: Sequence[MarkerSpec]) -> Optional[DeprecationMarker]:
    """Find the first marker tag at the start of a comment line.

    The reason is the rest of the tag line plus continuation lines up to the
    next `@tag` or the end of the comment, joined with single spaces.
    """
    lines = comment_lines(text)
    for index, line in enumerate(lines):
        if not line.startswith('@'):
            continue
        for spec in specs:
            match = spec.matcher.match(line)
            if match is None:
                continue
            parts = [line[match.end():].strip()]
            for continuation in lines[index + 1:]:
                if continuation.startswith('@'):
                    break
                parts.append(continuation)
            reason = ' '.join(part for part in parts if part)
            return DeprecationMarker(
                tag=spec.tag,
                reason=reason or None,
                from_doc_comment=is_doc_comment(text),
            )
    return None


def leading_comments(anchor: Node) -> List[Node]:
    """Comments attached to a declaration, nearest first.

    Walks back over previous siblings, stepping over decorators, and stops at
    the first other node. A comment on the same row as the end of the node
    before it is that node's trailing comment and ends the walk.
    """
    comments = []
    node = anchor.prev_named_sibling
    while node is not None:
        if node.type == 'comment':
            previous = node.prev_named_sibling
            if (previous is not None and previous.type != 'comment'
                    and previous.end_point[0] == node.start_point[0]):
                break
            comments.append(node)
        elif node.type != 'decorator':
            break
        node = node.prev_named_sibling
    return comments


def inner_comments(anchor: Node, declaration: Node, name_node: Node) -> List[Node]:
    """Comments inside the declaration that precede its name (e.g. after decorators)."""
    chain = []
    current = declaration
    while current is not None:
        chain.append(current)
        if current.start_byte == anchor.start_byte and current.end_byte == anchor.end_byte:
            break
        current = current.parent
    comments = []
    for node in chain:
        for child in node.children:
            if child.start_byte >= name_node.start_byte:
                break
            if child.type == 'comment':
                comments.append(child)
    comments.sort(key=lambda c: -c.start_byte)
    return comments


class DeclarationClassifier:
    """Decide which symbols carry a deprecation marker."""

    def __init__(self, marker_specs: Sequence[MarkerSpec], ignore_deprecated_in_comments: bool = False):
        """Initialize classifier.

        Args:
            marker_specs: `@deprecated` followed by the enabled custom tags
            ignore_deprecated_in_comments: When True only `/** */` doc comments count
        """
        self.marker_specs = tuple(marker_specs)
        self.ignore_deprecated_in_comments = ignore_deprecated_in_comments
        self._markers: Dict[Symbol, Optional[DeprecationMarker]] = {}

    def marker_for(self, symbol: Symbol) -> Optional[DeprecationMarker]:
        """The symbol's deprecation marker, or None. Cached per symbol."""
        if symbol not in self._markers:
            self._markers[symbol] = self._find_marker(symbol)
        return self._markers[symbol]

    def is_deprecated(self, symbol: Symbol) -> bool:
        return self.marker_for(symbol) is not None

    def _find_marker(self, symbol: Symbol) -> Optional[DeprecationMarker]:
        source_file = symbol.source_file
        candidates = inner_comments(symbol.anchors[0], symbol.declaration, symbol.name_node)
        for anchor in symbol.anchors:
            candidates.extend(leading_comments(anchor))

        for comment in candidates:
            text = source_file.text(comment)
            if self.ignore_deprecated_in_comments and not is_doc_comment(text):
                continue
            marker = parse_marker(text, self.marker_specs)
            if marker is not None:
                return marker
        return None

    def classify(self, symbols: Iterable[Symbol]) -> List[DeprecatedItem]:
        """Declaration items for deprecated in-project symbols, in discovery order."""
        items = []
        for symbol in symbols:
            if symbol.is_external or symbol.kind not in DECLARATION_KINDS:
                continue
            marker = self.marker_for(symbol)
            if marker is None:
                continue
            items.append(DeprecatedItem(
                name=symbol.name,
                file_name=symbol.source_file.display_name,
                file_path=symbol.file_path,
                line=symbol.line,
                character=symbol.character,
                kind=symbol.kind,
                deprecation_reason=marker.reason,
            ))
        return items
