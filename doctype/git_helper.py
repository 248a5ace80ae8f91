"""
Git helper for ``fix --auto-commit``.

Thin wrapper over the ``git`` binary. Every operation returns a
``GitOperationResult`` instead of raising, so a failed commit can be
reported without affecting the fix result.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from doctype.models import GitOperationResult

logger = logging.getLogger("doctype.git_helper")

COMMIT_PREFIX = "docs(doctype): auto-fix documentation"
GIT_TIMEOUT = 60


def create_commit_message(symbol_names: Sequence[str]) -> str:
    """Commit subject naming up to three symbols, or a count beyond that."""
    names = list(dict.fromkeys(symbol_names))
    if not names:
        return COMMIT_PREFIX
    if len(names) <= 3:
        return f"{COMMIT_PREFIX} for {', '.join(names)}"
    return f"{COMMIT_PREFIX} for {len(names)} symbols"


class GitHelper:
    """Runs git commands inside *repo_path* (defaults to the cwd)."""

    def __init__(self, repo_path: Optional[Path | str] = None):
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()

    def _run(self, args: list[str]) -> GitOperationResult:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            return GitOperationResult(success=False, error=str(e))

        if result.returncode != 0:
            error = (result.stderr or result.stdout).strip() or f"git {args[0]} exited with {result.returncode}"
            return GitOperationResult(success=False, output=result.stdout.strip(), error=error)
        return GitOperationResult(success=True, output=result.stdout.strip())

    def is_git_repository(self) -> bool:
        return self._run(["rev-parse", "--git-dir"]).success

    def status(self) -> GitOperationResult:
        return self._run(["status", "--porcelain"])

    def add_files(self, files: Sequence[Path | str]) -> GitOperationResult:
        logger.debug("Staging files: %s", ", ".join(str(f) for f in files))
        return self._run(["add", "--", *(str(f) for f in files)])

    def commit(self, message: str) -> GitOperationResult:
        logger.debug("Creating commit: %s", message)
        return self._run(["commit", "-m", message])

    def push(self) -> GitOperationResult:
        logger.debug("Pushing to remote")
        return self._run(["push"])

    def stage_and_commit(
        self,
        files: Sequence[Path | str],
        symbol_names: Sequence[str],
        push: bool = False,
    ) -> GitOperationResult:
        """Stage *files*, commit them, optionally push.

        Returns:
            On success, ``output`` holds the commit message.
        """
        if not self.is_git_repository():
            return GitOperationResult(success=False, error="Not a git repository")

        added = self.add_files(files)
        if not added.success:
            return added
        logger.info("Staged %d %s", len(files), "file" if len(files) == 1 else "files")

        message = create_commit_message(symbol_names)
        committed = self.commit(message)
        if not committed.success:
            return committed
        logger.info("Committed documentation changes")

        if push:
            pushed = self.push()
            if not pushed.success:
                logger.warning("Failed to push to remote: %s", pushed.error)
                return pushed
            logger.info("Pushed to remote")

        return GitOperationResult(success=True, output=message)
