"""Content injection: rewrite the text between a pair of doctype markers.

Only the managed region changes; the marker lines and everything outside
them are carried over untouched. Disk writes go through a temp file plus
``os.replace`` so other readers never observe a half-written document.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from doctype.anchors import (
    build_end_marker,
    build_start_marker,
    extract_anchors,
    parse_code_ref,
    start_marker_ids,
)
from doctype.exceptions import AnchorNotFoundError

logger = logging.getLogger("doctype.injector")


def atomic_write_text(path: Path | str, text: str) -> None:
    """Write *text* to *path* all-or-nothing, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def _newline_for(document: str) -> str:
    return "\r\n" if "\r\n" in document else "\n"


def _normalize_block(new_content: str, newline: str) -> str:
    """Managed content always ends with exactly one line break (or is empty)."""
    if not new_content:
        return ""
    if new_content.endswith("\n"):
        return new_content
    return new_content + newline


def _count_lines(text: str) -> int:
    return len(text.splitlines())


@dataclass(frozen=True)
class InjectionResult:
    success: bool
    content: str = ""
    lines_changed: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class InsertionResult:
    success: bool
    anchor_id: str = ""
    content: str = ""
    error: Optional[str] = None


class ContentInjector:
    """Replaces the managed content of one anchor."""

    def inject(self, document: str, anchor_id: str, new_content: str, file_path: str = "") -> str:
        """Return *document* with the region of *anchor_id* replaced.

        Raises:
            AnchorNotFoundError: if no well-formed anchor has that id.
        """
        extraction = extract_anchors(file_path, document)
        anchor = extraction.find(anchor_id)
        if anchor is None:
            raise AnchorNotFoundError(anchor_id, file_path)

        if document[anchor.start_offset - 1] != "\n":
            # Markers share a line; keep the region inline
            block = new_content
        else:
            block = _normalize_block(new_content, _newline_for(document))
        return document[:anchor.start_offset] + block + document[anchor.end_offset:]

    def inject_into_file(
        self,
        file_path: Path | str,
        anchor_id: str,
        new_content: str,
        write: bool = True,
    ) -> InjectionResult:
        """Inject into a file on disk; with ``write=False`` only preview.

        The file is left untouched on any failure.
        """
        path = Path(file_path)
        try:
            original = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return InjectionResult(success=False, error=f"Could not read {path}: {e}")

        try:
            updated = self.inject(original, anchor_id, new_content, str(path))
        except AnchorNotFoundError as e:
            return InjectionResult(success=False, content=original, error=e.message)

        lines_changed = abs(_count_lines(updated) - _count_lines(original))
        if write and updated != original:
            atomic_write_text(path, updated)
            logger.debug("Injected %d chars into %s#%s", len(new_content), path, anchor_id)

        return InjectionResult(success=True, content=updated, lines_changed=lines_changed)

    def preview(self, file_path: Path | str, anchor_id: str, new_content: str) -> InjectionResult:
        return self.inject_into_file(file_path, anchor_id, new_content, write=False)


class AnchorInserter:
    """Appends a brand-new anchor block for a symbol that has none yet."""

    def build_block(
        self,
        code_ref: str,
        content: str,
        anchor_id: str,
        create_section: bool = True,
        newline: str = "\n",
    ) -> str:
        lines = []
        if create_section:
            ref, _ = parse_code_ref(code_ref)
            heading = ref.symbol_name if ref else code_ref
            lines.extend([f"## {heading}", ""])
        lines.append(build_start_marker(anchor_id, code_ref))
        block = newline.join(lines) + newline
        block += _normalize_block(content, newline)
        block += build_end_marker(anchor_id) + newline
        return block

    def insert(
        self,
        document: str,
        code_ref: str,
        content: str,
        anchor_id: str,
        create_section: bool = True,
    ) -> str:
        newline = _newline_for(document)
        block = self.build_block(code_ref, content, anchor_id, create_section, newline)
        if not document:
            return block
        separator = newline if document.endswith("\n") else newline * 2
        return document + separator + block

    def insert_into_file(
        self,
        file_path: Path | str,
        code_ref: str,
        content: str,
        anchor_id: Optional[str] = None,
        create_section: bool = True,
        write: bool = True,
    ) -> InsertionResult:
        """Append an anchor block to *file_path*, creating the file if needed."""
        path = Path(file_path)
        anchor_id = anchor_id or str(uuid.uuid4())

        if path.exists():
            try:
                original = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                return InsertionResult(success=False, anchor_id=anchor_id, error=f"Could not read {path}: {e}")
            if extract_anchors(str(path), original).find(anchor_id) is not None:
                return InsertionResult(
                    success=False,
                    anchor_id=anchor_id,
                    content=original,
                    error=f"Anchor {anchor_id} already exists in {path}",
                )
            if anchor_id in start_marker_ids(original):
                # A second block would pair with the stray start marker
                return InsertionResult(
                    success=False,
                    anchor_id=anchor_id,
                    content=original,
                    error=f"Anchor {anchor_id} is malformed (unclosed or duplicate) in {path}",
                )
        else:
            title = path.stem.replace("-", " ").replace("_", " ").title()
            original = f"# {title}\n"

        updated = self.insert(original, code_ref, content, anchor_id, create_section)
        if write:
            atomic_write_text(path, updated)
            logger.debug("Inserted anchor %s for %s into %s", anchor_id, code_ref, path)

        return InsertionResult(success=True, anchor_id=anchor_id, content=updated)
