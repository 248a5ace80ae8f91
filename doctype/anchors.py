"""Anchor extraction: find doctype boundary markers in markdown.

A managed region looks like::

    <!-- doctype:start id="<uuid>" code_ref="src/auth.py#login" -->
    Prose about login...
    <!-- doctype:end id="<uuid>" -->

Content bounds are line-based: the region starts on the line after the start
marker and stops at the beginning of the end marker's line, so ``content``
keeps the newline that terminates the last managed line. Markers sharing a
single line delimit the exact inline text between them.

Structural problems (duplicate ids, unclosed or orphaned markers, malformed
code refs) are collected into ``ExtractionResult.errors`` and never raised.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from doctype.models import Anchor, SymbolReference

MARKER_NAMESPACE = "doctype"

_MARKER_RE = re.compile(
    r"<!--\s*" + MARKER_NAMESPACE + r":(?P<kind>start|end)\b(?P<attrs>[^\n]*?)-->"
)
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')


@dataclass
class ExtractionResult:
    anchors: list[Anchor] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def find(self, anchor_id: str) -> Optional[Anchor]:
        for anchor in self.anchors:
            if anchor.id == anchor_id:
                return anchor
        return None


@dataclass
class _OpenMarker:
    anchor_id: str
    code_ref: str
    line: int
    line_end: int          # offset just past the start marker's line
    marker_end: int        # offset just past "-->"


def build_start_marker(anchor_id: str, code_ref: str) -> str:
    return f'<!-- {MARKER_NAMESPACE}:start id="{anchor_id}" code_ref="{code_ref}" -->'


def build_end_marker(anchor_id: str) -> str:
    return f'<!-- {MARKER_NAMESPACE}:end id="{anchor_id}" -->'


def parse_code_ref(ref: str) -> tuple[Optional[SymbolReference], Optional[str]]:
    """Split ``path#symbol`` on the last ``#``.

    Returns:
        ``(SymbolReference, None)`` on success, ``(None, error)`` otherwise.
    """
    if "#" not in ref:
        return None, f"Invalid code_ref '{ref}': expected 'path#symbolName'"
    file_path, symbol_name = ref.rsplit("#", 1)
    if not file_path or not symbol_name:
        return None, f"Invalid code_ref '{ref}': empty file path or symbol name"
    return SymbolReference(file_path=file_path, symbol_name=symbol_name), None


def _parse_attrs(text: str) -> dict[str, str]:
    return {name: value for name, value in _ATTR_RE.findall(text)}


def _line_number(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


def extract_anchors(file_path: str, content: str) -> ExtractionResult:
    """Parse *content* into anchors, collecting structural errors.

    Args:
        file_path: Path of the markdown document, used in error messages.
        content: Full document text.

    Returns:
        ExtractionResult with anchors ordered by position and a list of
        ``"path:line: message"`` error strings.
    """
    result = ExtractionResult()
    open_markers: dict[str, _OpenMarker] = {}
    seen_ids: set[str] = set()
    # Start markers that repeat an id; each one swallows the next matching end.
    pending_duplicates: Counter[str] = Counter()

    for match in _MARKER_RE.finditer(content):
        attrs = _parse_attrs(match.group("attrs"))
        anchor_id = attrs.get("id", "")
        line = _line_number(content, match.start())

        if match.group("kind") == "start":
            if not anchor_id:
                result.errors.append(f"{file_path}:{line}: start marker without id attribute")
                continue
            if anchor_id in seen_ids:
                result.errors.append(
                    f"{file_path}:{line}: duplicate anchor id {anchor_id} "
                    f"(first occurrence wins)"
                )
                pending_duplicates[anchor_id] += 1
                continue
            newline = content.find("\n", match.end())
            seen_ids.add(anchor_id)
            open_markers[anchor_id] = _OpenMarker(
                anchor_id=anchor_id,
                code_ref=attrs.get("code_ref", ""),
                line=line,
                line_end=len(content) if newline == -1 else newline + 1,
                marker_end=match.end(),
            )
            continue

        start = open_markers.pop(anchor_id, None)
        if start is not None:
            result.anchors.append(_build_anchor(file_path, content, start, match, line, result))
        elif pending_duplicates[anchor_id] > 0:
            pending_duplicates[anchor_id] -= 1
        else:
            result.errors.append(
                f"{file_path}:{line}: orphaned end marker for id {anchor_id or '<missing>'}"
            )

    for marker in open_markers.values():
        result.errors.append(
            f"{file_path}:{marker.line}: unclosed anchor {marker.anchor_id} "
            f"(no end marker before end of file)"
        )

    result.anchors.sort(key=lambda a: a.start_offset)
    return result


def _build_anchor(
    file_path: str,
    content: str,
    start: _OpenMarker,
    end_match: re.Match,
    end_line: int,
    result: ExtractionResult,
) -> Anchor:
    end_line_start = content.rfind("\n", 0, end_match.start()) + 1

    if end_line_start < start.line_end:
        # Both markers on one line
        start_offset, end_offset = start.marker_end, end_match.start()
    else:
        start_offset, end_offset = start.line_end, end_line_start

    symbol_ref, error = parse_code_ref(start.code_ref)
    if error:
        result.errors.append(
            f"{file_path}:{start.line}: malformed anchor {start.anchor_id}: {error}"
        )
        code_file_path, symbol_name = start.code_ref.split("#", 1)[0], ""
    else:
        code_file_path, symbol_name = symbol_ref.file_path, symbol_ref.symbol_name

    return Anchor(
        id=start.anchor_id,
        code_ref=start.code_ref,
        code_file_path=code_file_path,
        symbol_name=symbol_name,
        start_offset=start_offset,
        end_offset=end_offset,
        start_line=start.line,
        end_line=end_line,
        content=content[start_offset:end_offset],
    )


def start_marker_ids(content: str) -> list[str]:
    """Ids of every start marker in *content*, well-formed or not, in order."""
    ids = []
    for match in _MARKER_RE.finditer(content):
        if match.group("kind") == "start":
            anchor_id = _parse_attrs(match.group("attrs")).get("id")
            if anchor_id:
                ids.append(anchor_id)
    return ids
