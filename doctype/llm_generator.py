"""LLM-backed documentation writer.

Deep module: callers pass a symbol and its signatures in, get sanitized
markdown back. Prompt assembly, the completion call, the wall-clock
timeout, circuit breaking and error classification happen in here. Every
failure leaves as a ``GenerationError`` carrying a code the retry loop
understands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

import requests
from openhands.sdk import LLM
from openhands.sdk.llm import Message, TextContent

from doctype.circuit_breaker import CircuitBreakerOpen, get_breaker, run_with_timeout
from doctype.generation import (
    ContentGenerator,
    GenerationError,
    GenerationErrorCode,
    PlaceholderGenerator,
    sanitize_content,
    validate_sanitized_content,
)
from doctype.models import CodeSignature
from doctype.prompts import MAX_OUTPUT_TOKENS, SYSTEM_PROMPT, TEMPERATURE, build_user_prompt

if TYPE_CHECKING:
    from doctype.config import Settings

logger = logging.getLogger("doctype.llm_generator")

HEALTH_CHECK_TIMEOUT = 5


def _strip_fence(text: str) -> str:
    """Drop a code fence wrapped around the whole answer."""
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```") and stripped.count("```") == 2:
        first_newline = stripped.find("\n")
        if first_newline != -1:
            return stripped[first_newline + 1:-3].strip()
    return text


def classify_exception(exc: BaseException) -> GenerationError:
    """Map a provider or transport exception onto a GenerationError code."""
    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, CircuitBreakerOpen):
        return GenerationError(str(exc), GenerationErrorCode.CIRCUIT_OPEN)
    if isinstance(exc, (TimeoutError, requests.exceptions.Timeout)):
        return GenerationError(str(exc), GenerationErrorCode.TIMEOUT)

    try:
        import litellm

        if isinstance(exc, litellm.exceptions.Timeout):
            return GenerationError(str(exc), GenerationErrorCode.TIMEOUT)
        if isinstance(exc, litellm.exceptions.RateLimitError):
            return GenerationError(str(exc), GenerationErrorCode.RATE_LIMIT)
        if isinstance(exc, (litellm.exceptions.APIConnectionError, litellm.exceptions.ServiceUnavailableError)):
            return GenerationError(str(exc), GenerationErrorCode.NETWORK_ERROR)
    except ImportError:
        pass

    status = getattr(exc, "status_code", None)
    if status == 429:
        return GenerationError(str(exc), GenerationErrorCode.RATE_LIMIT)
    if status in (502, 503, 504):
        return GenerationError(str(exc), GenerationErrorCode.NETWORK_ERROR)
    if isinstance(exc, (ConnectionError, requests.exceptions.ConnectionError)):
        return GenerationError(str(exc), GenerationErrorCode.NETWORK_ERROR)

    name = type(exc).__name__.lower()
    if "ratelimit" in name:
        return GenerationError(str(exc), GenerationErrorCode.RATE_LIMIT)
    if "timeout" in name:
        return GenerationError(str(exc), GenerationErrorCode.TIMEOUT)
    if "connection" in name:
        return GenerationError(str(exc), GenerationErrorCode.NETWORK_ERROR)
    return GenerationError(f"{type(exc).__name__}: {exc}", GenerationErrorCode.PROVIDER_ERROR)


class LLMContentGenerator:
    """Content generator over an OpenAI-compatible endpoint.

    Args:
        model: Model identifier, e.g. ``openrouter/mistralai/devstral-2512``.
        base_url: Endpoint base URL.
        api_key: Optional bearer key.
        timeout: Seconds allowed per completion.
        llm: Pre-built ``LLM`` instance (tests inject a mock here).
    """

    def __init__(
        self,
        model: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: int = 120,
        llm: Any = None,
    ):
        self.model = model
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = self.base_url or model

        if llm is None:
            kwargs: dict[str, Any] = {}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            if api_key:
                kwargs["api_key"] = api_key
            llm = LLM(
                model=model,
                timeout=timeout,
                max_output_tokens=MAX_OUTPUT_TOKENS,
                temperature=TEMPERATURE,
                **kwargs,
            )
        self.llm = llm

    def generate(
        self,
        symbol_name: str,
        old_signature: Optional[CodeSignature],
        new_signature: CodeSignature,
        old_doc_text: str,
        file_path: Optional[str] = None,
    ) -> str:
        prompt = build_user_prompt(
            symbol_name,
            new_signature.signature_text,
            old_signature.signature_text if old_signature else None,
            old_doc_text,
            file_path,
        )
        messages = [
            Message(role="system", content=[TextContent(text=SYSTEM_PROMPT)]),
            Message(role="user", content=[TextContent(text=prompt)]),
        ]

        try:
            response = run_with_timeout(
                lambda: self.llm.completion(messages=messages),
                timeout=self.timeout,
                breaker=get_breaker(self.endpoint),
            )
        except Exception as e:
            raise classify_exception(e) from e

        raw_text = ""
        for block in response.message.content:
            if hasattr(block, "text"):
                raw_text += block.text

        content = sanitize_content(_strip_fence(raw_text))
        if not content:
            raise GenerationError(
                f"Empty response from {self.model} for {symbol_name}",
                GenerationErrorCode.INVALID_RESPONSE,
            )
        problems = validate_sanitized_content(content)
        if problems:
            raise GenerationError(
                f"Unsafe content for {symbol_name}: {', '.join(problems)}",
                GenerationErrorCode.INVALID_RESPONSE,
            )
        return content

    def validate_connection(self) -> bool:
        """Cheap reachability probe: ``GET {base_url}/models``. Never raises."""
        if not self.base_url:
            return True
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = requests.get(
                f"{self.base_url}/models", headers=headers, timeout=HEALTH_CHECK_TIMEOUT
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Writer endpoint %s unreachable: %s", self.base_url, exc)
            return False
        if response.status_code != 200:
            logger.warning("Writer endpoint %s answered HTTP %d", self.base_url, response.status_code)
            return False
        return True


def create_generator_from_settings(settings: "Settings", no_ai: bool = False) -> ContentGenerator:
    """Build the generator a fix run should use.

    Falls back to placeholders when AI is disabled, no writer model is
    configured, or the endpoint fails its health check.
    """
    if no_ai:
        logger.info("AI generation disabled (--no-ai), using placeholder content")
        return PlaceholderGenerator()
    if not settings.writer_model:
        logger.info("WRITER_MODEL not set, using placeholder content")
        return PlaceholderGenerator()

    try:
        generator = LLMContentGenerator(
            model=settings.writer_model,
            base_url=settings.llm_base_url,
            api_key=settings.resolved_api_key,
            timeout=settings.llm_timeout,
        )
    except Exception as e:
        logger.warning("Could not initialise writer model %s: %s; using placeholder content", settings.writer_model, e)
        return PlaceholderGenerator()

    if not generator.validate_connection():
        logger.warning("Writer endpoint connection failed, falling back to placeholder content")
        return PlaceholderGenerator()

    logger.info("Using writer model %s", settings.writer_model)
    return generator
