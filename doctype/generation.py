"""Content generation: generator protocol, retry loop, placeholder fallback.

A fix never fails because the writer model is down. Every attempt is
classified as ok, retryable, or fatal; retryable failures are retried with
a fixed delay, and once attempts run out (or on a fatal failure) the
deterministic placeholder is used instead.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Union

from doctype.models import CodeSignature, DriftRecord
from doctype.prompts import PLACEHOLDER_TEMPLATE

logger = logging.getLogger("doctype.generation")


class GenerationErrorCode(str, Enum):
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"


RETRYABLE_CODES = frozenset({
    GenerationErrorCode.TIMEOUT,
    GenerationErrorCode.RATE_LIMIT,
    GenerationErrorCode.NETWORK_ERROR,
})


class GenerationError(Exception):
    """A classified failure from a content generator."""

    def __init__(self, message: str, code: GenerationErrorCode = GenerationErrorCode.PROVIDER_ERROR):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES


class ContentGenerator(Protocol):
    def generate(
        self,
        symbol_name: str,
        old_signature: Optional[CodeSignature],
        new_signature: CodeSignature,
        old_doc_text: str,
        file_path: Optional[str] = None,
    ) -> str:
        ...


# ---------------------------------------------------------------------------
# Placeholder
# ---------------------------------------------------------------------------

def placeholder_content(symbol_name: str, signature_text: str) -> str:
    """Fallback body for a symbol. Same inputs always give the same text."""
    return PLACEHOLDER_TEMPLATE.format(symbol_name=symbol_name, signature=signature_text.strip())


class PlaceholderGenerator:
    """Generator that never calls a model. Used for ``--no-ai`` runs."""

    produces_placeholder = True

    def generate(
        self,
        symbol_name: str,
        old_signature: Optional[CodeSignature],
        new_signature: CodeSignature,
        old_doc_text: str,
        file_path: Optional[str] = None,
    ) -> str:
        return placeholder_content(symbol_name, new_signature.signature_text)


# ---------------------------------------------------------------------------
# Attempt results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AttemptOk:
    content: str


@dataclass(frozen=True)
class AttemptRetryable:
    error: GenerationError


@dataclass(frozen=True)
class AttemptFatal:
    error: GenerationError


AttemptResult = Union[AttemptOk, AttemptRetryable, AttemptFatal]


def attempt_generation(
    generator: ContentGenerator,
    record: DriftRecord,
    old_doc_text: str,
) -> AttemptResult:
    """Run one generator call and classify how it ended."""
    entry = record.entry
    try:
        content = generator.generate(
            entry.code_ref.symbol_name,
            record.old_signature,
            record.current_signature,
            old_doc_text,
            entry.code_ref.file_path,
        )
    except GenerationError as e:
        return AttemptRetryable(e) if e.retryable else AttemptFatal(e)
    except TimeoutError as e:
        return AttemptRetryable(GenerationError(str(e), GenerationErrorCode.TIMEOUT))
    except ConnectionError as e:
        return AttemptRetryable(GenerationError(str(e), GenerationErrorCode.NETWORK_ERROR))
    except Exception as e:
        return AttemptFatal(GenerationError(f"{type(e).__name__}: {e}", GenerationErrorCode.PROVIDER_ERROR))

    if not isinstance(content, str) or not content.strip():
        return AttemptFatal(GenerationError("Generator returned empty content", GenerationErrorCode.INVALID_RESPONSE))
    return AttemptOk(content)


# ---------------------------------------------------------------------------
# Retry loop
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 1.0


class GenerationStatus(str, Enum):
    GENERATED = "generated"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class GenerationResult:
    content: str
    status: GenerationStatus
    attempts: int
    error: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.status is GenerationStatus.PLACEHOLDER


def generate_with_retry(
    generator: ContentGenerator,
    record: DriftRecord,
    old_doc_text: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> GenerationResult:
    """Generate content for *record*; never raises for generation failures.

    Returns the generated text, or the placeholder once retries are
    exhausted or a non-retryable error occurs.
    """
    symbol = record.entry.code_ref.symbol_name
    attempts = 0
    last_error: Optional[GenerationError] = None

    while attempts < max(1, policy.max_attempts):
        attempts += 1
        outcome = attempt_generation(generator, record, old_doc_text)

        if isinstance(outcome, AttemptOk):
            status = (
                GenerationStatus.PLACEHOLDER
                if getattr(generator, "produces_placeholder", False) is True
                else GenerationStatus.GENERATED
            )
            return GenerationResult(outcome.content, status, attempts)

        last_error = outcome.error
        if isinstance(outcome, AttemptFatal):
            logger.warning("Generation for %s failed (%s): %s", symbol, last_error.code.value, last_error.message)
            break

        if attempts < policy.max_attempts:
            logger.debug(
                "Retry %d/%d for %s after %s: %s",
                attempts, policy.max_attempts, symbol, last_error.code.value, last_error.message,
            )
            sleep(policy.delay_seconds)
    else:
        logger.warning(
            "Generation for %s gave up after %d attempts: %s",
            symbol, attempts, last_error.message if last_error else "unknown error",
        )

    return GenerationResult(
        placeholder_content(symbol, record.current_signature.signature_text),
        GenerationStatus.PLACEHOLDER,
        attempts,
        error=last_error.message if last_error else None,
    )


# ---------------------------------------------------------------------------
# Output sanitizing
# ---------------------------------------------------------------------------

_HEADING_RE = re.compile(r"^#+\s+(.*)$", re.MULTILINE)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_JSON_SEPARATOR_RE = re.compile(r"^\s*}.*?{.*$", re.MULTILINE)
_JSON_DEBRIS_RE = re.compile(r"^[ \t]*[},][ \t},]*$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def sanitize_content(text: str) -> str:
    """Make model output safe to place between anchor markers.

    Headings become bold text, HTML comments are dropped (including
    anything that looks like a doctype marker), stray JSON separators are
    removed, runs of blank lines are collapsed, and the result is trimmed.
    """
    text = _HEADING_RE.sub(r"**\1**", text)
    text = _COMMENT_RE.sub("", text)
    text = _JSON_SEPARATOR_RE.sub("", text)
    text = _JSON_DEBRIS_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def validate_sanitized_content(text: str) -> list[str]:
    """Problems that survived sanitizing. Empty list means safe."""
    problems = []
    if "<!--" in text:
        problems.append("Content contains HTML comments after sanitization")
    if "doctype:start" in text or "doctype:end" in text:
        problems.append("Content contains doctype anchor references")
    headings = re.findall(r"^#+\s+", text, re.MULTILINE)
    if headings:
        problems.append(f"Content contains {len(headings)} markdown header(s) after sanitization")
    return problems
