"""Exception hierarchy for LocaLens.

Every failure a caller can observe derives from LocaLensError, so the
front-end can catch one type and display ``str(error)`` verbatim.

Pre-flight errors (MissingCredentialError, EncodingError) are raised before
any network activity. Per-attempt errors (the client's AIClientError family
and MalformedResponseError) are recorded by the dispatcher and never
surfaced on their own. AllAttemptsExhaustedError is the terminal failure.

Example:
    >>> from localens.errors import LocaLensError
    >>>
    >>> try:
    ...     result = analyze_image(image, api_key)
    ... except LocaLensError as e:
    ...     print(f"Analysis Failed: {e}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from localens.core.models import AttemptRecord


class LocaLensError(Exception):
    """Base exception for all LocaLens errors.

    Attributes:
        message: Human-readable error description (safe to display and log).
        details: Additional error context (may contain sensitive data, don't log).
    """

    #: Short machine-readable name used in AnalysisOutcome.error_kind.
    kind: str = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return message without exposing sensitive details."""
        return self.message


class MissingCredentialError(LocaLensError):
    """No API key was supplied.

    Raised before any client is created, so no request is ever issued.
    """

    kind = "missing_credential"

    def __init__(
        self,
        message: str = (
            "API Key is missing. Please provide your Gemini API Key "
            "(set GEMINI_API_KEY or pass --api-key)."
        ),
    ) -> None:
        super().__init__(message)


class EncodingError(LocaLensError):
    """The image could not be converted to its transport representation.

    Attributes:
        path: Source file path, when the image came from disk.
    """

    kind = "encoding"

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message, details={"path": path} if path else None)
        self.path = path


class MalformedResponseError(LocaLensError):
    """The model answered, but not with a usable JSON body.

    Attributes:
        raw_text: The text that failed to parse (may contain personal data, don't log).
    """

    kind = "malformed_response"

    def __init__(
        self,
        message: str = "Invalid JSON response",
        raw_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class AllAttemptsExhaustedError(LocaLensError):
    """Every configured model attempt failed.

    Attributes:
        last_error: The most recent per-attempt error, if any attempt ran.
        attempts: Diagnostic record of every attempt made.
    """

    kind = "all_attempts_exhausted"

    def __init__(
        self,
        last_error: Exception | None = None,
        attempts: list["AttemptRecord"] | None = None,
    ) -> None:
        if last_error is not None:
            message = (
                "Failed to analyze image after multiple attempts. "
                f"Last error: {last_error}"
            )
        else:
            message = (
                "All AI models are currently overloaded or unavailable. "
                "Please try again later."
            )
        super().__init__(message)
        self.last_error = last_error
        self.attempts = list(attempts or [])


class AnalysisCancelledError(LocaLensError):
    """The caller cancelled the analysis between two attempts."""

    kind = "cancelled"

    def __init__(
        self,
        message: str = "Analysis cancelled.",
        attempts: list["AttemptRecord"] | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])
