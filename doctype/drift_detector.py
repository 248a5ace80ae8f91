"""Drift detection: compare stored signature hashes against the code.

Shared by ``check``, ``fix`` and ``prune``. Each map entry is examined on
its own; a file that cannot be read or parsed is logged and recorded in
``DriftReport.errors`` without stopping the rest of the scan.
"""

import logging
from pathlib import Path
from typing import Optional

from doctype.analyzer import Analyzer
from doctype.map_store import AnchorMapStore
from doctype.models import (
    CodeSignature,
    DriftRecord,
    DriftReport,
    MapEntry,
    MissingReason,
    MissingSymbol,
)

logger = logging.getLogger("doctype.drift_detector")


def _reconstruct_old_signature(entry: MapEntry, current: CodeSignature) -> Optional[CodeSignature]:
    """Rebuild the previous signature from the stored text.

    Symbol type and export status are not tracked historically, so they
    are taken from the current signature.
    """
    if not entry.code_signature_text:
        return None
    return CodeSignature(
        symbol_name=entry.code_ref.symbol_name,
        symbol_type=current.symbol_type,
        signature_text=entry.code_signature_text,
        is_exported=current.is_exported,
        hash=None,
    )


def detect_drift(
    store: AnchorMapStore,
    analyzer: Analyzer,
    base_path: Path | str = ".",
) -> DriftReport:
    """Scan every map entry and classify it as fresh, drifted or missing.

    Args:
        store: Loaded anchor map.
        analyzer: Produces signatures for a code file.
        base_path: Directory code refs are relative to.

    Returns:
        DriftReport with drift records, missing symbols and per-entry errors.
    """
    base = Path(base_path)
    report = DriftReport()
    analyzed: dict[Path, list[CodeSignature]] = {}

    for entry in store.entries():
        symbol = entry.code_ref.symbol_name
        code_file = (base / entry.code_ref.file_path).resolve()
        logger.debug("Analyzing %s#%s", code_file, symbol)

        try:
            if not code_file.is_file():
                logger.warning("Code file not found: %s (%s)", code_file, symbol)
                report.missing.append(MissingSymbol(entry, MissingReason.FILE_NOT_FOUND, str(code_file)))
                continue

            if code_file not in analyzed:
                analyzed[code_file] = analyzer.analyze_file(code_file)
            current = next((s for s in analyzed[code_file] if s.symbol_name == symbol), None)

            if current is None:
                logger.warning("Symbol %s not found in %s", symbol, code_file)
                report.missing.append(MissingSymbol(entry, MissingReason.SYMBOL_NOT_FOUND, str(code_file)))
                continue

            if not current.hash:
                logger.warning("No hash computed for %s", symbol)
                continue

            if store.has_drift(entry.id, current.hash):
                report.drifts.append(DriftRecord(
                    entry=entry,
                    current_signature=current,
                    current_hash=current.hash,
                    old_hash=entry.code_signature_hash,
                    old_signature=_reconstruct_old_signature(entry, current),
                ))
                logger.debug(
                    "Drift detected: %s (%s -> %s)",
                    symbol, entry.code_signature_hash[:8], current.hash[:8],
                )
        except Exception as e:
            message = f"Error analyzing {code_file}#{symbol}: {e}"
            logger.error(message)
            report.errors.append(message)

    return report
