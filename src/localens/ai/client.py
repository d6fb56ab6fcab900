"""Central Gemini API Client for LocaLens.

This module is the SOLE INTERFACE to the Gemini API. No other file in the
codebase should import google-genai.

The client provides:
- One request per model attempt (fallback across models is the dispatcher's job)
- Google Search grounding and optional thinking budget per attempt
- Typed exceptions for predictable error handling
- A structured response model carrying text and grounding citations
- Security-first logging (never logs secrets, prompts, images or responses)

Example:
    >>> from localens.ai.client import GeminiClient, AIClientError
    >>>
    >>> client = GeminiClient(api_key)
    >>> try:
    ...     response = client.generate(attempt, prompt_text, image_b64, "image/jpeg")
    ...     print(response.text)
    ... except AIClientError as e:
    ...     print(f"Attempt failed: {e}")

Security Rules:
- NEVER log API keys (ever, in any form)
- NEVER log full prompts or the image payload
- NEVER log full responses
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, Field

from localens.ai.citations import extract_grounding_citations
from localens.core.encoding import decode_image
from localens.core.models import ModelAttempt
from localens.errors import LocaLensError


# =============================================================================
# Secure Logging Filter
# =============================================================================


class RedactingFilter(logging.Filter):
    """Logging filter that redacts sensitive information.

    Scans log messages for patterns that look like API keys or tokens
    and replaces them with [REDACTED].

    Example:
        >>> logger = logging.getLogger("my_module")
        >>> logger.addFilter(RedactingFilter())
        >>> logger.info("Using api_key=AIzaSy123456789...")
        # Output: "Using api_key=[REDACTED]"
    """

    PATTERNS = [
        # Key-value patterns
        re.compile(r'(api_key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(token\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-]{20,})", re.IGNORECASE),
        # Standalone Gemini keys start with AIza
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place; always lets it through."""
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)

        if record.args:
            record.args = tuple(
                self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True

    def _redact(self, text: str) -> str:
        for pattern in self.PATTERNS[:4]:
            text = pattern.sub(r"\1[REDACTED]", text)

        for pattern in self.PATTERNS[4:]:
            text = pattern.sub("[REDACTED]", text)

        return text


# Configure module logger with redacting filter
logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(LocaLensError):
    """Base exception for a failed remote call.

    Every failure of a single Gemini request maps to a subclass of this
    error. The dispatcher records it and moves on to the next model.

    Attributes:
        message: Human-readable error description (safe to log).
        original_error: The underlying exception that caused this error.
    """

    kind = "remote_call"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.original_error = original_error


# Name used for per-attempt remote failures throughout the pipeline
RemoteCallError = AIClientError


class AIAuthenticationError(AIClientError):
    """API key is invalid, expired, or lacks permission."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class AIRateLimitError(AIClientError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait before retrying.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class AIQuotaExceededError(AIClientError):
    """Quota or billing limit reached."""

    def __init__(
        self,
        message: str = "API quota exceeded. Check your billing and usage limits.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class AIServerError(AIClientError):
    """Server-side error (5xx), including model overload.

    Attributes:
        status_code: HTTP status code if available.
    """

    def __init__(
        self,
        message: str = "AI server error. The service may be temporarily unavailable.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """Invalid request (unsupported parameter for this model, bad image, etc.)."""

    def __init__(
        self,
        message: str = "Invalid request to AI service.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class AITimeoutError(AIClientError):
    """Request timed out.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
    """

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Request timed out after {timeout_seconds} seconds"
        super().__init__(msg, original_error=original_error)
        self.timeout_seconds = timeout_seconds


class AINetworkError(AIClientError):
    """The service could not be reached."""

    def __init__(
        self,
        message: str = "Cannot reach Gemini API (network error).",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class TokenLimitExceededError(AIClientError):
    """Input exceeded the model's token limit."""

    def __init__(
        self,
        message: str = "Token limit exceeded. Please use a smaller image.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)


class ModelNotAvailableError(AIClientError):
    """Requested model doesn't exist or isn't available to this key.

    Attributes:
        model_name: The model that was requested.
    """

    def __init__(
        self,
        model_name: str,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Model '{model_name}' not found or not available."
        super().__init__(msg, original_error=original_error)
        self.model_name = model_name


class ContentBlockedError(AIClientError):
    """The request or response was blocked by safety filters.

    Attributes:
        blocked_reason: The reason for blocking if available.
    """

    def __init__(
        self,
        message: str = "Content blocked by safety filters.",
        blocked_reason: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.blocked_reason = blocked_reason


# =============================================================================
# Request / Response Models
# =============================================================================


@dataclass(frozen=True)
class GeminiRequest:
    """Everything sent to generate_content for one attempt."""

    model: str
    contents: list[types.Content]
    config: types.GenerateContentConfig


class RemoteResponse(BaseModel):
    """Standardized response from one Gemini call.

    Attributes:
        text: The generated text ("" when the model returned none).
        model: Name of the model that generated this response.
        citations: Raw grounding citations as ``{"title", "uri"}`` dicts.
        prompt_tokens: Number of tokens in the input.
        completion_tokens: Number of tokens in the output.
        total_tokens: Total tokens used.
        finish_reason: Why generation stopped (e.g., "STOP", "MAX_TOKENS").
        latency_ms: Time taken for generation in milliseconds.
        raw_response: Original SDK response (excluded from serialization).
    """

    text: str = Field(..., description="The generated content")
    model: str = Field(..., description="Model that generated this response")
    citations: list[dict[str, str | None]] = Field(default_factory=list)
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    latency_ms: float | None = None
    raw_response: Any = Field(None, exclude=True)


# =============================================================================
# Main Client Class
# =============================================================================


class GeminiClient:
    """Client for geolocation requests to the Gemini API.

    The underlying SDK client is created lazily on the first request, so
    constructing a GeminiClient never touches the network.

    Example:
        >>> client = GeminiClient(api_key, timeout_seconds=60)
        >>> response = client.generate(
        ...     ModelAttempt(model="gemini-2.0-flash"),
        ...     prompt_text,
        ...     image_b64,
        ...     "image/png",
        ... )
    """

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 120,
        enable_search: bool = True,
    ) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._enable_search = enable_search
        self._client: genai.Client | None = None
        self._logger = logging.getLogger(f"{__name__}.GeminiClient")
        self._logger.addFilter(RedactingFilter())

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self._api_key,
                http_options=types.HttpOptions(timeout=int(self._timeout_seconds * 1000)),
            )
        return self._client

    def build_request(
        self,
        attempt: ModelAttempt,
        prompt_text: str,
        image_b64: str,
        mime_type: str,
    ) -> GeminiRequest:
        """Assemble the request for one attempt.

        The thinking budget is only sent when it is greater than zero, since
        not every model accepts a thinking config.
        """
        parts = [
            types.Part.from_text(text=prompt_text),
            types.Part.from_bytes(data=decode_image(image_b64), mime_type=mime_type),
        ]

        config_params: dict[str, Any] = {}
        if self._enable_search:
            config_params["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        if attempt.uses_thinking:
            config_params["thinking_config"] = types.ThinkingConfig(
                thinking_budget=attempt.thinking_budget
            )

        return GeminiRequest(
            model=attempt.model,
            contents=[types.Content(role="user", parts=parts)],
            config=types.GenerateContentConfig(**config_params),
        )

    def generate(
        self,
        attempt: ModelAttempt,
        prompt_text: str,
        image_b64: str,
        mime_type: str,
    ) -> RemoteResponse:
        """Issue one request and return the text plus grounding citations.

        Raises:
            AIClientError: Any failure of the remote call, mapped to a subclass.
        """
        request = self.build_request(attempt, prompt_text, image_b64, mime_type)
        start_time = time.time()

        try:
            raw_response = self._get_client().models.generate_content(
                model=request.model,
                contents=request.contents,
                config=request.config,
            )
        except Exception as e:
            mapped = self._map_exception(e, attempt.model)
            self._logger.debug(f"Generation failed on {attempt.model}: {type(e).__name__}")
            raise mapped from e

        latency_ms = (time.time() - start_time) * 1000
        response = self._parse_response(raw_response, attempt.model, latency_ms)

        self._logger.info(
            f"Generation successful: {response.total_tokens or '?'} tokens in {latency_ms:.0f}ms",
            extra={"model": attempt.model, "tokens": response.total_tokens},
        )
        return response

    def _parse_response(self, raw_response: Any, model: str, latency_ms: float) -> RemoteResponse:
        candidates = getattr(raw_response, "candidates", None) or []
        feedback = getattr(raw_response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None

        if not candidates and block_reason:
            raise ContentBlockedError(blocked_reason=str(block_reason))

        finish_reason = None
        if candidates:
            reason = getattr(candidates[0], "finish_reason", None)
            if reason is not None:
                finish_reason = getattr(reason, "name", str(reason))

        if finish_reason in {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST"}:
            raise ContentBlockedError(blocked_reason=finish_reason)

        prompt_tokens = completion_tokens = total_tokens = None
        usage = getattr(raw_response, "usage_metadata", None)
        if usage is not None:
            prompt_tokens = getattr(usage, "prompt_token_count", None)
            completion_tokens = getattr(usage, "candidates_token_count", None)
            total_tokens = getattr(usage, "total_token_count", None)

        return RemoteResponse(
            text=getattr(raw_response, "text", None) or "",
            model=model,
            citations=extract_grounding_citations(raw_response),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
            raw_response=raw_response,
        )

    def _map_exception(self, error: Exception, model: str) -> AIClientError:
        """Map SDK and transport exceptions to our exception hierarchy."""
        if isinstance(error, AIClientError):
            return error

        error_str = str(error).lower()

        if isinstance(error, genai_errors.APIError):
            code = error.code
            if code == 400:
                if "token" in error_str and ("limit" in error_str or "exceed" in error_str):
                    return TokenLimitExceededError(original_error=error)
                return AIBadRequestError(
                    f"Invalid request to AI service: {error.message or error.status}",
                    original_error=error,
                )
            if code in (401, 403):
                return AIAuthenticationError(original_error=error)
            if code == 404:
                return ModelNotAvailableError(model, original_error=error)
            if code == 429:
                if "quota" in error_str or "billing" in error_str:
                    return AIQuotaExceededError(original_error=error)
                return AIRateLimitError(original_error=error)
            if code in (408, 504):
                return AITimeoutError(self._timeout_seconds, original_error=error)
            if code >= 500:
                return AIServerError(
                    f"AI server error ({code}). The model may be overloaded.",
                    status_code=code,
                    original_error=error,
                )
            return AIClientError(
                f"Gemini API error ({code}): {error.message or error.status}",
                original_error=error,
            )

        if isinstance(error, httpx.TimeoutException):
            return AITimeoutError(self._timeout_seconds, original_error=error)

        if isinstance(error, httpx.TransportError):
            return AINetworkError(original_error=error)

        # Fallback pattern matching on error message
        if "blocked" in error_str or "safety" in error_str:
            return ContentBlockedError(original_error=error)

        if "timeout" in error_str or "deadline" in error_str:
            return AITimeoutError(self._timeout_seconds, original_error=error)

        return AIClientError(f"{type(error).__name__}: {error}", original_error=error)



def create_client(
    api_key: str,
    timeout_seconds: float = 120,
    enable_search: bool = True,
) -> GeminiClient:
    """Factory used by the dispatcher when no custom factory is supplied."""
    return GeminiClient(api_key, timeout_seconds=timeout_seconds, enable_search=enable_search)
