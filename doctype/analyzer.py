"""Signature analysis for Python source files.

The drift pipeline only needs one thing from an analyzer: for a file, the
public signature of every symbol it defines, each with a stable hash.
``PythonSignatureAnalyzer`` produces those from the ``ast`` so comments,
docstrings, bodies and formatting never influence the hash.
"""

from __future__ import annotations

import ast
import hashlib
from pathlib import Path
from typing import Optional, Protocol

from doctype.models import CodeSignature


class Analyzer(Protocol):
    def analyze_file(self, path: Path | str) -> list[CodeSignature]:
        ...


def normalize_signature(text: str) -> str:
    """Collapse all whitespace runs to one space."""
    return " ".join(text.split())


def hash_signature(text: str) -> str:
    """SHA-256 hex digest of the whitespace-normalized signature."""
    return hashlib.sha256(normalize_signature(text).encode("utf-8")).hexdigest()


def _function_signature(node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
    text = f"{prefix} {node.name}({ast.unparse(node.args)})"
    if node.returns is not None:
        text += f" -> {ast.unparse(node.returns)}"
    return text


def _class_header(node: ast.ClassDef) -> str:
    parts = [ast.unparse(base) for base in node.bases]
    for keyword in node.keywords:
        if keyword.arg is None:
            parts.append(f"**{ast.unparse(keyword.value)}")
        else:
            parts.append(f"{keyword.arg}={ast.unparse(keyword.value)}")
    if not parts:
        return f"class {node.name}"
    return f"class {node.name}({', '.join(parts)})"


_SIGNIFICANT_DUNDERS = frozenset({"__init__", "__call__", "__enter__", "__exit__", "__iter__", "__getitem__"})


def _is_public_method(name: str) -> bool:
    return not name.startswith("_") or name in _SIGNIFICANT_DUNDERS


def _methods(node: ast.ClassDef) -> list[ast.FunctionDef | ast.AsyncFunctionDef]:
    return [
        child for child in node.body
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)) and _is_public_method(child.name)
    ]


def _class_signature(node: ast.ClassDef) -> str:
    lines = [_class_header(node) + ":"]
    for child in node.body:
        if isinstance(child, ast.AnnAssign) and isinstance(child.target, ast.Name):
            if not child.target.id.startswith("_"):
                lines.append(f"    {child.target.id}: {ast.unparse(child.annotation)}")
    for method in _methods(node):
        lines.append(f"    {_function_signature(method)}")
    return "\n".join(lines)


def _constant_signature(node: ast.Assign | ast.AnnAssign) -> Optional[tuple[str, str]]:
    if isinstance(node, ast.AnnAssign):
        if not isinstance(node.target, ast.Name):
            return None
        return node.target.id, f"{node.target.id}: {ast.unparse(node.annotation)}"
    if len(node.targets) != 1 or not isinstance(node.targets[0], ast.Name):
        return None
    name = node.targets[0].id
    if not name.isupper():
        return None
    return name, f"{name} = {ast.unparse(node.value)}"


def _declared_all(tree: ast.Module) -> Optional[set[str]]:
    for node in tree.body:
        if isinstance(node, ast.Assign) and any(
            isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets
        ):
            if isinstance(node.value, (ast.List, ast.Tuple)):
                return {
                    elt.value for elt in node.value.elts
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                }
    return None


class PythonSignatureAnalyzer:
    """Module-level symbols of a ``.py`` file.

    Reports functions, async functions, classes (header, public attributes
    and public method signatures), methods as ``Class.method``, and module
    constants that are annotated or UPPER_CASE.
    """

    def analyze_file(self, path: Path | str) -> list[CodeSignature]:
        """Raises OSError if unreadable and SyntaxError if not valid Python."""
        source = Path(path).read_text(encoding="utf-8")
        return self.analyze_source(source, str(path))

    def analyze_source(self, source: str, filename: str = "<string>") -> list[CodeSignature]:
        tree = ast.parse(source, filename=filename)
        exported = _declared_all(tree)

        def is_exported(name: str) -> bool:
            if exported is not None:
                return name in exported
            return not name.startswith("_")

        signatures: list[CodeSignature] = []
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                kind = "async_function" if isinstance(node, ast.AsyncFunctionDef) else "function"
                signatures.append(self._make(node.name, kind, _function_signature(node), is_exported(node.name)))
            elif isinstance(node, ast.ClassDef):
                class_exported = is_exported(node.name)
                signatures.append(self._make(node.name, "class", _class_signature(node), class_exported))
                for method in _methods(node):
                    signatures.append(self._make(
                        f"{node.name}.{method.name}",
                        "method",
                        _function_signature(method),
                        class_exported,
                    ))
            elif isinstance(node, (ast.Assign, ast.AnnAssign)):
                found = _constant_signature(node)
                if found and found[0] != "__all__":
                    name, text = found
                    signatures.append(self._make(name, "constant", text, is_exported(name)))
        return signatures

    @staticmethod
    def _make(name: str, kind: str, text: str, exported: bool) -> CodeSignature:
        return CodeSignature(
            symbol_name=name,
            symbol_type=kind,
            signature_text=text,
            is_exported=exported,
            hash=hash_signature(text),
        )
