"""
Concurrent fix orchestrator.

Repairs drifted documentation in two phases over a bounded thread pool:

  Phase 1: generation. Every record gets new content from the generator
           (with retries, falling back to a placeholder). Documents are
           only read here.
  Phase 2: injection. Each record takes the lock of its target document,
           rewrites its anchor (or inserts a new one), updates the map
           entry and saves the map before releasing the lock.

A failure in one record never stops the others: every record yields
exactly one ``FixOutcome``.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from doctype.anchors import extract_anchors
from doctype.file_locks import FileLockRegistry
from doctype.generation import ContentGenerator, GenerationResult, RetryPolicy, generate_with_retry
from doctype.git_helper import GitHelper
from doctype.injector import AnchorInserter, ContentInjector
from doctype.map_store import AnchorMapStore
from doctype.models import DriftRecord, FixOutcome, FixResult, GitOperationResult, now_millis

logger = logging.getLogger("doctype.orchestrator")

DEFAULT_MAX_WORKERS = 5


class FixState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    PLACEHOLDER = "placeholder"
    INJECTING = "injecting"
    SUCCEEDED = "succeeded"
    INJECTION_FAILED = "injection_failed"


@dataclass
class _Generated:
    record: DriftRecord
    doc_path: Path
    generation: GenerationResult


class FixOrchestrator:
    """Runs generation and injection for a batch of drift records.

    Args:
        store: Loaded map; updated and saved after every successful injection.
        generator: Content generator (LLM or placeholder).
        base_path: Directory map paths are relative to.
        max_workers: Pool width for both phases.
        retry_policy: Attempts and delay for generation.
        dry_run: Compute content only; no files or map changes.
        git_helper: Used for auto-commit when enabled.
        auto_commit: Stage and commit changed docs plus the map afterwards.
        push: Push after committing.
    """

    def __init__(
        self,
        store: AnchorMapStore,
        generator: ContentGenerator,
        base_path: Path | str = ".",
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retry_policy: Optional[RetryPolicy] = None,
        dry_run: bool = False,
        git_helper: Optional[GitHelper] = None,
        auto_commit: bool = False,
        push: bool = False,
    ) -> None:
        self.store = store
        self.generator = generator
        self.base_path = Path(base_path)
        self.max_workers = max(1, max_workers)
        self.retry_policy = retry_policy or RetryPolicy()
        self.dry_run = dry_run
        self.git_helper = git_helper
        self.auto_commit = auto_commit
        self.push = push

        self.locks = FileLockRegistry()
        self._injector = ContentInjector()
        self._inserter = AnchorInserter()
        self._states: dict[str, FixState] = {}
        self._states_lock = threading.Lock()

    # ------------------------------------------------------------------
    # State tracking
    # ------------------------------------------------------------------

    def _set_state(self, entry_id: str, state: FixState) -> None:
        with self._states_lock:
            self._states[entry_id] = state
        logger.debug("%s -> %s", entry_id, state.value)

    def state_of(self, entry_id: str) -> Optional[FixState]:
        with self._states_lock:
            return self._states.get(entry_id)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, drifts: list[DriftRecord]) -> FixResult:
        """Fix every record and aggregate the outcomes (input order kept)."""
        if not drifts:
            return FixResult()

        for record in drifts:
            self._set_state(record.entry.id, FixState.PENDING)

        outcomes: dict[int, FixOutcome] = {}
        generated: dict[int, _Generated] = {}

        logger.info(
            "Generating content for %d symbol(s) (max %d parallel)",
            len(drifts), self.max_workers,
        )
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="doctype-gen") as executor:
            futures = {executor.submit(self._generate_one, r): idx for idx, r in enumerate(drifts)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    generated[idx] = future.result()
                except Exception as e:
                    record = drifts[idx]
                    logger.error("Generation worker failed for %s: %s", record.entry.code_ref, e)
                    self._set_state(record.entry.id, FixState.INJECTION_FAILED)
                    outcomes[idx] = self._failed(record, str(e))

        logger.info("Applying %d update(s)%s", len(generated), " (dry run)" if self.dry_run else "")
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="doctype-inject") as executor:
            futures = {executor.submit(self._inject_one, item): idx for idx, item in generated.items()}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    outcomes[idx] = future.result()
                except Exception as e:
                    record = drifts[idx]
                    logger.error("Injection worker failed for %s: %s", record.entry.code_ref, e)
                    self._set_state(record.entry.id, FixState.INJECTION_FAILED)
                    outcomes[idx] = self._failed(record, str(e))

        result = FixResult.from_outcomes([outcomes[i] for i in range(len(drifts))])
        logger.info(
            "Fix run finished: %d succeeded, %d failed",
            result.successful_fixes, result.failed_fixes,
        )

        if self.auto_commit and not self.dry_run and result.successful_fixes > 0:
            result.commit = self._commit(result)
        return result

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _doc_path(self, record: DriftRecord) -> Path:
        return (self.base_path / record.entry.doc_file_path).resolve()

    def _current_doc_text(self, record: DriftRecord, doc_path: Path) -> str:
        if not doc_path.is_file():
            return ""
        try:
            content = doc_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s for context: %s", doc_path, e)
            return ""
        anchor = extract_anchors(str(doc_path), content).find(record.entry.id)
        return anchor.content if anchor else ""

    def _generate_one(self, record: DriftRecord) -> _Generated:
        entry_id = record.entry.id
        doc_path = self._doc_path(record)
        self._set_state(entry_id, FixState.GENERATING)

        old_doc_text = self._current_doc_text(record, doc_path)
        generation = generate_with_retry(self.generator, record, old_doc_text, self.retry_policy)
        if generation.is_placeholder:
            self._set_state(entry_id, FixState.PLACEHOLDER)
        return _Generated(record=record, doc_path=doc_path, generation=generation)

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _inject_one(self, item: _Generated) -> FixOutcome:
        record = item.record
        entry = record.entry
        content = item.generation.content

        with self.locks.lock_for(item.doc_path):
            self._set_state(entry.id, FixState.INJECTING)
            try:
                error = self._write_content(item)
                if error is None and not self.dry_run:
                    self._update_map(record)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"

        if error is not None:
            logger.warning("Could not update %s in %s: %s", entry.code_ref, entry.doc_file_path, error)
            self._set_state(entry.id, FixState.INJECTION_FAILED)
            return self._failed(record, error)

        self._set_state(entry.id, FixState.SUCCEEDED)
        logger.info(
            "%s %s in %s%s",
            "Would update" if self.dry_run else "Updated",
            entry.code_ref.symbol_name,
            entry.doc_file_path,
            " (placeholder)" if item.generation.is_placeholder else "",
        )
        return FixOutcome(
            id=entry.id,
            symbol_name=entry.code_ref.symbol_name,
            code_file_path=entry.code_ref.file_path,
            doc_file_path=entry.doc_file_path,
            success=True,
            new_content=content,
            placeholder=item.generation.is_placeholder,
        )

    def _write_content(self, item: _Generated) -> Optional[str]:
        """Inject into the existing anchor or insert a new one. Returns an error or None."""
        entry = item.record.entry
        write = not self.dry_run

        anchor_exists = False
        if item.doc_path.is_file():
            document = item.doc_path.read_text(encoding="utf-8")
            anchor_exists = extract_anchors(str(item.doc_path), document).find(entry.id) is not None

        if anchor_exists:
            result = self._injector.inject_into_file(item.doc_path, entry.id, item.generation.content, write=write)
        else:
            result = self._inserter.insert_into_file(
                item.doc_path,
                entry.code_ref.to_text(),
                item.generation.content,
                anchor_id=entry.id,
                create_section=True,
                write=write,
            )
        return None if result.success else (result.error or "unknown injection error")

    def _update_map(self, record: DriftRecord) -> None:
        entry = record.entry
        fields = {
            "code_signature_hash": record.current_hash,
            "code_signature_text": record.current_signature.signature_text,
        }
        if self.store.get_entry(entry.id) is not None:
            self.store.update_entry(entry.id, **fields)
        else:
            self.store.add_entry(replace(entry, last_updated=now_millis(), **fields))
        self.store.save()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _failed(record: DriftRecord, error: str) -> FixOutcome:
        entry = record.entry
        return FixOutcome(
            id=entry.id,
            symbol_name=entry.code_ref.symbol_name,
            code_file_path=entry.code_ref.file_path,
            doc_file_path=entry.doc_file_path,
            success=False,
            error=error,
        )

    def _commit(self, result: FixResult) -> GitOperationResult:
        git = self.git_helper or GitHelper(self.base_path)
        succeeded = [f for f in result.fixes if f.success]
        files = sorted({str((self.base_path / f.doc_file_path).resolve()) for f in succeeded})
        files.append(str(self.store.map_path.resolve()))
        symbols = [f.symbol_name for f in succeeded]
        try:
            commit = git.stage_and_commit(files, symbols, push=self.push)
        except Exception as e:
            commit = GitOperationResult(success=False, error=str(e))
        if commit.success:
            logger.info("Auto-commit: %s", commit.output)
        else:
            logger.warning("Auto-commit failed: %s", commit.error)
        return commit
