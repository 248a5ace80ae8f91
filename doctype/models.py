"""Records shared across the anchor map, drift detection, and fix pipeline.

Pure data: no filesystem access, no logging. The persisted shape of a
MapEntry is camelCase JSON (see ``MapEntry.to_dict``) so the map file stays
readable by other tooling that consumes ``doctype-map.json``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

MAP_VERSION = "1.0.0"


def now_millis() -> int:
    """Epoch milliseconds, the unit stored in ``lastUpdated``."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Code side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SymbolReference:
    """A code symbol: ``file_path#symbol_name``."""

    file_path: str
    symbol_name: str

    def to_text(self) -> str:
        return f"{self.file_path}#{self.symbol_name}"

    def __str__(self) -> str:
        return self.to_text()


@dataclass(frozen=True)
class CodeSignature:
    """Public signature of one symbol as reported by an analyzer."""

    symbol_name: str
    symbol_type: str
    signature_text: str
    is_exported: bool
    hash: Optional[str] = None


# ---------------------------------------------------------------------------
# Documentation side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Anchor:
    """A boundary-delimited region of a markdown document.

    ``content`` is exactly ``document[start_offset:end_offset]``.
    """

    id: str
    code_ref: str
    code_file_path: str
    symbol_name: str
    start_offset: int
    end_offset: int
    start_line: int
    end_line: int
    content: str


# ---------------------------------------------------------------------------
# Persisted map
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MapEntry:
    """One anchor-to-symbol binding in ``doctype-map.json``."""

    id: str
    code_ref: SymbolReference
    code_signature_hash: str
    doc_file_path: str
    code_signature_text: Optional[str] = None
    last_updated: int = field(default_factory=now_millis)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "codeRef": {
                "filePath": self.code_ref.file_path,
                "symbolName": self.code_ref.symbol_name,
            },
            "codeSignatureHash": self.code_signature_hash,
        }
        if self.code_signature_text is not None:
            data["codeSignatureText"] = self.code_signature_text
        data["docRef"] = {"filePath": self.doc_file_path}
        data["lastUpdated"] = self.last_updated
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MapEntry":
        """Build an entry from its JSON form. Raises KeyError/TypeError on bad shape."""
        code_ref = data["codeRef"]
        doc_ref = data["docRef"]
        return cls(
            id=str(data["id"]),
            code_ref=SymbolReference(
                file_path=str(code_ref["filePath"]),
                symbol_name=str(code_ref["symbolName"]),
            ),
            code_signature_hash=str(data["codeSignatureHash"]),
            code_signature_text=data.get("codeSignatureText"),
            doc_file_path=str(doc_ref["filePath"]),
            last_updated=int(data.get("lastUpdated") or 0),
        )


# ---------------------------------------------------------------------------
# Drift detection output
# ---------------------------------------------------------------------------

class MissingReason(str, Enum):
    FILE_NOT_FOUND = "file_not_found"
    SYMBOL_NOT_FOUND = "symbol_not_found"


@dataclass(frozen=True)
class DriftRecord:
    """A map entry whose stored hash no longer matches the code."""

    entry: MapEntry
    current_signature: CodeSignature
    current_hash: str
    old_hash: str
    # Best-effort reconstruction from codeSignatureText; hash is always None.
    old_signature: Optional[CodeSignature] = None


@dataclass(frozen=True)
class MissingSymbol:
    entry: MapEntry
    reason: MissingReason
    code_file_path: str


@dataclass
class DriftReport:
    drifts: list[DriftRecord] = field(default_factory=list)
    missing: list[MissingSymbol] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.drifts)


# ---------------------------------------------------------------------------
# Fix pipeline output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GitOperationResult:
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class FixOutcome:
    """Result of processing one DriftRecord."""

    id: str
    symbol_name: str
    code_file_path: str
    doc_file_path: str
    success: bool
    new_content: Optional[str] = None
    error: Optional[str] = None
    placeholder: bool = False


@dataclass
class FixResult:
    total_fixes: int = 0
    successful_fixes: int = 0
    failed_fixes: int = 0
    fixes: list[FixOutcome] = field(default_factory=list)
    commit: Optional[GitOperationResult] = None

    @property
    def success(self) -> bool:
        return self.failed_fixes == 0

    @classmethod
    def from_outcomes(cls, outcomes: list[FixOutcome]) -> "FixResult":
        succeeded = sum(1 for o in outcomes if o.success)
        return cls(
            total_fixes=len(outcomes),
            successful_fixes=succeeded,
            failed_fixes=len(outcomes) - succeeded,
            fixes=list(outcomes),
        )
