"""Shared fixtures: a throwaway project with code, docs and an anchor map."""

import uuid
from pathlib import Path
from typing import Optional

import pytest

from doctype import circuit_breaker
from doctype.analyzer import PythonSignatureAnalyzer
from doctype.anchors import build_end_marker, build_start_marker
from doctype.map_store import AnchorMapStore
from doctype.models import MapEntry, SymbolReference


AUTH_SOURCE = '''\
def login(user: str, password: str) -> bool:
    """Check credentials."""
    return user == "admin"


def logout(user: str) -> None:
    pass
'''


def anchor_block(anchor_id: str, code_ref: str, body: str = "") -> str:
    """Start marker, body (one trailing newline expected), end marker."""
    return f"{build_start_marker(anchor_id, code_ref)}\n{body}{build_end_marker(anchor_id)}\n"


class Project:
    """A project root laid out the way ``doctype init`` expects."""

    def __init__(self, root: Path):
        self.root = root
        self.map_path = root / "doctype-map.json"
        self.store = AnchorMapStore(self.map_path)
        self.store.create()
        self.analyzer = PythonSignatureAnalyzer()

    def write_code(self, rel: str, source: str) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    def write_doc(self, rel: str, text: str) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def read(self, rel: str) -> str:
        return (self.root / rel).read_text(encoding="utf-8")

    def track(
        self,
        code_rel: str,
        symbol: str,
        doc_rel: str,
        body: str = "Old documentation.\n",
        anchor_id: Optional[str] = None,
        stored_hash: Optional[str] = None,
        stored_text: Optional[str] = None,
    ) -> MapEntry:
        """Append an anchor for *symbol* to *doc_rel* and register it in the map.

        Without *stored_hash* the entry records the symbol's current hash,
        so it starts out in sync.
        """
        anchor_id = anchor_id or str(uuid.uuid4())
        code_ref = f"{code_rel}#{symbol}"
        doc_path = self.root / doc_rel
        existing = doc_path.read_text(encoding="utf-8") if doc_path.exists() else "# Docs\n\n"
        self.write_doc(doc_rel, existing + anchor_block(anchor_id, code_ref, body))

        signature = next(
            s for s in self.analyzer.analyze_file(self.root / code_rel) if s.symbol_name == symbol
        )
        entry = MapEntry(
            id=anchor_id,
            code_ref=SymbolReference(code_rel, symbol),
            code_signature_hash=stored_hash or signature.hash,
            code_signature_text=stored_text if stored_text is not None else signature.signature_text,
            doc_file_path=doc_rel,
        )
        self.store.add_entry(entry)
        return entry


@pytest.fixture(autouse=True)
def _clean_breakers():
    """Reset the global breaker registry between tests."""
    circuit_breaker.reset_all()
    yield
    circuit_breaker.reset_all()


@pytest.fixture
def project(tmp_path):
    proj = Project(tmp_path)
    proj.write_code("src/auth.py", AUTH_SOURCE)
    (tmp_path / "docs").mkdir()
    return proj
