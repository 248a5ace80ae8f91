"""Command implementations behind the CLI.

Each ``run_*`` function does the work and returns a result object; the
CLI decides how to print it and which exit code to use. Only
configuration problems raise (``ConfigurationError`` / ``MapLoadError``).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from doctype.analyzer import Analyzer, PythonSignatureAnalyzer
from doctype.anchors import extract_anchors
from doctype.config import (
    DEFAULT_CONFIG_FILE,
    ProjectConfig,
    Settings,
    resolve_base_dir,
    resolve_map_path,
    resolve_project,
    save_project_config,
)
from doctype.drift_detector import detect_drift
from doctype.exceptions import ConfigurationError
from doctype.generation import ContentGenerator, RetryPolicy
from doctype.git_helper import GitHelper
from doctype.llm_generator import create_generator_from_settings
from doctype.map_store import AnchorMapStore
from doctype.models import CodeSignature, DriftReport, FixResult, MapEntry, SymbolReference
from doctype.orchestrator import FixOrchestrator

logger = logging.getLogger("doctype.commands")


@dataclass
class ProjectContext:
    """Resolved locations for one command invocation."""

    config: ProjectConfig
    config_dir: Path
    base_dir: Path
    map_path: Path

    def open_store(self) -> AnchorMapStore:
        return AnchorMapStore.open(self.map_path)


def load_context(
    config_path: Optional[Path | str] = None,
    map_override: Optional[Path | str] = None,
) -> ProjectContext:
    config, config_dir = resolve_project(config_path)
    return ProjectContext(
        config=config,
        config_dir=config_dir,
        base_dir=resolve_base_dir(config, config_dir),
        map_path=resolve_map_path(config, config_dir, map_override),
    )


def _relative(path: Path, base: Path) -> str:
    return Path(os.path.relpath(path, base)).as_posix()


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def run_check(ctx: ProjectContext, analyzer: Optional[Analyzer] = None) -> DriftReport:
    store = ctx.open_store()
    logger.info("Checking %d map entries", store.entry_count())
    return detect_drift(store, analyzer or PythonSignatureAnalyzer(), ctx.base_dir)


# ---------------------------------------------------------------------------
# fix
# ---------------------------------------------------------------------------

@dataclass
class FixRun:
    report: DriftReport
    result: FixResult


def run_fix(
    ctx: ProjectContext,
    settings: Settings,
    *,
    dry_run: bool = False,
    no_ai: bool = False,
    auto_commit: bool = False,
    push: bool = False,
    concurrency: Optional[int] = None,
    generator: Optional[ContentGenerator] = None,
    analyzer: Optional[Analyzer] = None,
    git_helper: Optional[GitHelper] = None,
) -> FixRun:
    store = ctx.open_store()
    report = detect_drift(store, analyzer or PythonSignatureAnalyzer(), ctx.base_dir)
    if not report.drifts:
        logger.info("No drift detected, nothing to fix")
        return FixRun(report=report, result=FixResult())

    if generator is None:
        generator = create_generator_from_settings(settings, no_ai=no_ai)

    orchestrator = FixOrchestrator(
        store,
        generator,
        ctx.base_dir,
        max_workers=concurrency or settings.doctype_concurrency,
        retry_policy=RetryPolicy(
            max_attempts=settings.doctype_retry_attempts,
            delay_seconds=settings.doctype_retry_delay,
        ),
        dry_run=dry_run,
        git_helper=git_helper or (GitHelper(ctx.base_dir) if auto_commit else None),
        auto_commit=auto_commit,
        push=push,
    )
    return FixRun(report=report, result=orchestrator.run(report.drifts))


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@dataclass
class InitResult:
    config_path: Path
    map_path: Path
    registered: list[MapEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def run_init(
    project_name: str = "",
    project_root: str = ".",
    docs_folder: str = "docs",
    map_file: str = "doctype-map.json",
    *,
    config_path: Optional[Path | str] = None,
    force: bool = False,
    analyzer: Optional[Analyzer] = None,
) -> InitResult:
    """Write the project config and a map seeded from existing anchors.

    Raises:
        ConfigurationError: if a config already exists and *force* is off.
    """
    path = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_FILE
    if path.exists() and not force:
        raise ConfigurationError(
            f"{path} already exists (use --force to overwrite)", path=str(path)
        )

    config = ProjectConfig(
        project_name=project_name or Path.cwd().name,
        project_root=project_root,
        docs_folder=docs_folder,
        map_file=map_file,
    )
    config_dir = path.resolve().parent
    base_dir = resolve_base_dir(config, config_dir)
    map_path = resolve_map_path(config, config_dir)
    result = InitResult(config_path=path, map_path=map_path)

    store = AnchorMapStore(map_path)
    store.create()
    _register_existing_anchors(
        store, (config_dir / docs_folder).resolve(), base_dir, analyzer or PythonSignatureAnalyzer(), result
    )

    save_project_config(config, path)
    store.save()
    result.registered = store.entries()
    logger.info("Initialised %s with %d tracked symbol(s)", map_path, len(result.registered))
    return result


def _register_existing_anchors(
    store: AnchorMapStore,
    docs_dir: Path,
    base_dir: Path,
    analyzer: Analyzer,
    result: InitResult,
) -> None:
    if not docs_dir.is_dir():
        logger.info("Docs folder %s does not exist yet, starting with an empty map", docs_dir)
        return

    signatures: dict[Path, Optional[dict[str, CodeSignature]]] = {}
    for doc in sorted(docs_dir.rglob("*.md")):
        try:
            content = doc.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            result.errors.append(f"{doc}: could not read ({e})")
            continue

        extraction = extract_anchors(_relative(doc, base_dir), content)
        result.errors.extend(extraction.errors)

        for anchor in extraction.anchors:
            if not anchor.symbol_name:
                continue
            code_file = (base_dir / anchor.code_file_path).resolve()
            if code_file not in signatures:
                try:
                    signatures[code_file] = {
                        s.symbol_name: s for s in analyzer.analyze_file(code_file)
                    }
                except (OSError, SyntaxError, ValueError) as e:
                    result.errors.append(f"{anchor.code_ref}: could not analyze ({e})")
                    signatures[code_file] = None
            if signatures[code_file] is None:
                continue
            signature = signatures[code_file].get(anchor.symbol_name)
            if signature is None or not signature.hash:
                result.errors.append(f"{anchor.code_ref}: symbol not found, anchor {anchor.id} not tracked")
                continue
            if store.get_entry(anchor.id) is not None:
                continue
            store.add_entry(MapEntry(
                id=anchor.id,
                code_ref=SymbolReference(anchor.code_file_path, anchor.symbol_name),
                code_signature_hash=signature.hash,
                code_signature_text=signature.signature_text,
                doc_file_path=_relative(doc, base_dir),
            ))


# ---------------------------------------------------------------------------
# prune
# ---------------------------------------------------------------------------

@dataclass
class PrunedEntry:
    entry: MapEntry
    reason: str


@dataclass
class PruneResult:
    pruned: list[PrunedEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def run_prune(
    ctx: ProjectContext,
    *,
    dry_run: bool = False,
    analyzer: Optional[Analyzer] = None,
) -> PruneResult:
    """Drop entries whose symbol or anchor no longer exists.

    Entries in a document that cannot be read are kept and the read
    failure is reported in ``errors``.
    """
    store = ctx.open_store()
    report = detect_drift(store, analyzer or PythonSignatureAnalyzer(), ctx.base_dir)

    pruned: dict[str, PrunedEntry] = {}
    for missing in report.missing:
        pruned[missing.entry.id] = PrunedEntry(missing.entry, missing.reason.value)

    result = PruneResult()
    # None marks a document that exists but could not be read
    anchor_ids: dict[Path, Optional[set[str]]] = {}
    for entry in store.entries():
        if entry.id in pruned:
            continue
        doc = (ctx.base_dir / entry.doc_file_path).resolve()
        if doc not in anchor_ids:
            try:
                content = doc.read_text(encoding="utf-8")
            except FileNotFoundError:
                anchor_ids[doc] = set()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read %s: %s", doc, e)
                result.errors.append(f"{entry.doc_file_path}: could not read ({e})")
                anchor_ids[doc] = None
            else:
                anchor_ids[doc] = {a.id for a in extract_anchors(str(doc), content).anchors}
        ids = anchor_ids[doc]
        if ids is not None and entry.id not in ids:
            pruned[entry.id] = PrunedEntry(entry, "anchor_not_found")

    if pruned and not dry_run:
        for entry_id in pruned:
            store.remove_entry(entry_id)
        store.save()
        logger.info("Pruned %d map entries", len(pruned))
    result.pruned = list(pruned.values())
    return result
