"""Ordered model fallback for geolocation requests.

The dispatcher walks the attempt list one model at a time and stops at the
first response that parses into a valid AnalysisResult. A remote failure
or an unusable response on one model moves on to the next; there is no
retry of the same model.

Example:
    >>> from localens.ai.dispatcher import GeolocationDispatcher
    >>> from localens.core.models import DEFAULT_MODEL_ATTEMPTS
    >>>
    >>> dispatcher = GeolocationDispatcher(DEFAULT_MODEL_ATTEMPTS)
    >>> result, attempts, model = dispatcher.dispatch(image, api_key)
    >>> print(f"{model}: {result.top_guess.city}")
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from localens.ai.citations import deduplicate_citations
from localens.ai.client import create_client
from localens.ai.normalizer import normalize_response
from localens.ai.prompts import GEOLOCATION_PROMPT, PromptTemplate
from localens.core.encoding import encode_image
from localens.core.models import (
    AnalysisResult,
    AttemptRecord,
    AttemptStatus,
    ImagePayload,
    ModelAttempt,
)
from localens.errors import (
    AllAttemptsExhaustedError,
    AnalysisCancelledError,
    MalformedResponseError,
    MissingCredentialError,
)

logger = logging.getLogger(__name__)

# Takes the API key, returns an object with a GeminiClient-compatible generate()
ClientFactory = Callable[[str], Any]


class GeolocationDispatcher:
    """Runs one analysis across an ordered list of model attempts.

    Attributes:
        attempts: Immutable attempt list, tried in order.
        prompt: Instruction template sent with every image.
    """

    def __init__(
        self,
        attempts: Iterable[ModelAttempt],
        client_factory: ClientFactory | None = None,
        prompt: PromptTemplate = GEOLOCATION_PROMPT,
        timeout_seconds: float = 120,
        enable_search: bool = True,
    ) -> None:
        self.attempts: tuple[ModelAttempt, ...] = tuple(attempts)
        self.prompt = prompt
        self._timeout_seconds = timeout_seconds
        self._enable_search = enable_search
        self._client_factory = client_factory or self._default_factory

    def _default_factory(self, api_key: str) -> Any:
        return create_client(
            api_key,
            timeout_seconds=self._timeout_seconds,
            enable_search=self._enable_search,
        )

    def dispatch(
        self,
        image: ImagePayload,
        credential: str,
        cancel_event: threading.Event | None = None,
    ) -> tuple[AnalysisResult, list[AttemptRecord], str]:
        """Analyze an image, falling back through the attempt list.

        Args:
            image: Image to analyze.
            credential: Gemini API key.
            cancel_event: Checked before each attempt; when set, no further
                attempts are issued.

        Returns:
            Tuple of (result, attempt records, model that answered).

        Raises:
            MissingCredentialError: If the credential is empty.
            EncodingError: If the image cannot be encoded.
            AnalysisCancelledError: If cancel_event was set.
            AllAttemptsExhaustedError: If every attempt failed.
        """
        if not credential or not credential.strip():
            raise MissingCredentialError()

        encoded = encode_image(image)
        prompt_text = self.prompt.render()
        client = self._client_factory(credential.strip())

        records: list[AttemptRecord] = []
        last_error: Exception | None = None

        for attempt in self.attempts:
            if cancel_event is not None and cancel_event.is_set():
                records.append(
                    AttemptRecord(
                        model=attempt.model,
                        label=attempt.label,
                        status=AttemptStatus.CANCELLED,
                    )
                )
                logger.info("Analysis cancelled before next attempt")
                raise AnalysisCancelledError(attempts=records)

            logger.info(f"Attempting analysis with model: {attempt.describe()}...")
            start_time = time.perf_counter()

            try:
                response = client.generate(attempt, prompt_text, encoded, image.mime_type)
            except Exception as e:
                last_error = e
                records.append(
                    self._failure(attempt, AttemptStatus.REMOTE_ERROR, e, start_time)
                )
                logger.warning(f"Model {attempt.model} failed: {e}")
                continue

            try:
                data = normalize_response(response.text)
                sources = deduplicate_citations(response.citations)
                result = AnalysisResult.from_payload(data, sources=sources)
            except MalformedResponseError as e:
                last_error = e
                records.append(self._failure(attempt, AttemptStatus.MALFORMED, e, start_time))
                logger.warning(f"Model {attempt.model} returned an unusable response: {e}")
                continue

            records.append(
                AttemptRecord(
                    model=attempt.model,
                    label=attempt.label,
                    status=AttemptStatus.SUCCEEDED,
                    latency_ms=_elapsed_ms(start_time),
                )
            )
            logger.info(
                f"Analysis succeeded with {attempt.model}: "
                f"{len(result.guesses)} guesses, {len(result.sources)} sources"
            )
            return result, records, attempt.model

        error = AllAttemptsExhaustedError(last_error=last_error, attempts=records)
        logger.error(f"{error} ({len(records)} attempts)")
        raise error

    @staticmethod
    def _failure(
        attempt: ModelAttempt,
        status: AttemptStatus,
        error: Exception,
        start_time: float,
    ) -> AttemptRecord:
        return AttemptRecord(
            model=attempt.model,
            label=attempt.label,
            status=status,
            error_kind=type(error).__name__,
            message=str(error),
            latency_ms=_elapsed_ms(start_time),
        )


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000
