"""Public entry points for image geolocation.

analyze_image() raises a LocaLensError on failure; run_analysis() wraps
the same pipeline and returns an AnalysisOutcome instead, for front-ends
that only want to display either a result or an error string.

Example:
    >>> from localens.ai.analyzer import analyze_image, run_analysis
    >>>
    >>> result = analyze_image(Path("street.jpg"), api_key)
    >>> print(result.top_guess.coordinates_label())
    >>>
    >>> outcome = run_analysis(Path("street.jpg"), api_key)
    >>> print(outcome.error_message or outcome.result.summary)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from localens.ai.dispatcher import ClientFactory, GeolocationDispatcher
from localens.config import AppConfig, get_config
from localens.core.models import (
    AnalysisOutcome,
    AnalysisResult,
    AttemptRecord,
    ImagePayload,
    ModelAttempt,
)
from localens.errors import LocaLensError, MissingCredentialError

logger = logging.getLogger(__name__)


def _run(
    image: ImagePayload | Path | str,
    credential: str | None,
    attempts: Iterable[ModelAttempt] | None,
    client_factory: ClientFactory | None,
    cancel_event: threading.Event | None,
    config: AppConfig | None,
) -> tuple[AnalysisResult, list[AttemptRecord], str]:
    # Credential first: nothing is read or sent without one
    if not credential or not credential.strip():
        raise MissingCredentialError()

    if not isinstance(image, ImagePayload):
        image = ImagePayload.from_path(image)

    cfg = config or get_config()
    dispatcher = GeolocationDispatcher(
        attempts if attempts is not None else cfg.ai.attempt_plan(),
        client_factory=client_factory,
        timeout_seconds=cfg.ai.timeout_seconds,
        enable_search=cfg.ai.enable_search,
    )
    return dispatcher.dispatch(image, credential, cancel_event=cancel_event)


def analyze_image(
    image: ImagePayload | Path | str,
    credential: str | None,
    *,
    attempts: Iterable[ModelAttempt] | None = None,
    client_factory: ClientFactory | None = None,
    cancel_event: threading.Event | None = None,
    config: AppConfig | None = None,
) -> AnalysisResult:
    """Locate where a photograph was taken.

    Args:
        image: Image payload, or a path to a PNG/JPEG/WebP file.
        credential: Gemini API key.
        attempts: Model attempts to try in order. Defaults to the
            configured attempt list.
        client_factory: Builds the Gemini client from the key (for tests).
        cancel_event: Set it to stop before the next attempt.
        config: Configuration to use instead of the global one.

    Returns:
        The first successfully parsed AnalysisResult.

    Raises:
        MissingCredentialError: If no credential was provided.
        EncodingError: If the image cannot be read or encoded.
        AnalysisCancelledError: If cancel_event was set.
        AllAttemptsExhaustedError: If every attempt failed.
    """
    result, _, _ = _run(image, credential, attempts, client_factory, cancel_event, config)
    return result


def run_analysis(
    image: ImagePayload | Path | str,
    credential: str | None,
    *,
    attempts: Iterable[ModelAttempt] | None = None,
    client_factory: ClientFactory | None = None,
    cancel_event: threading.Event | None = None,
    config: AppConfig | None = None,
) -> AnalysisOutcome:
    """Run analyze_image() and report the outcome as a value.

    LocaLensError subclasses become ``error_kind``/``error_message``;
    anything else propagates.
    """
    try:
        result, records, model = _run(
            image, credential, attempts, client_factory, cancel_event, config
        )
    except LocaLensError as e:
        logger.debug(f"Analysis failed: {e.kind}")
        return AnalysisOutcome(
            error_kind=e.kind,
            error_message=str(e),
            attempts=getattr(e, "attempts", []),
        )

    return AnalysisOutcome(result=result, model=model, attempts=records)
