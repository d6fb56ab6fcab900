"""Tests for localens.ai.dispatcher: ordered model fallback.

Covers first-attempt success, success after earlier failures, exhaustion,
malformed responses, missing credentials and cancellation. Every test uses
a fake client factory; nothing reaches the network.
"""

from __future__ import annotations

import logging
import threading

import pytest

from localens.ai.client import AIAuthenticationError, AIRateLimitError, AIServerError
from localens.ai.dispatcher import GeolocationDispatcher
from localens.core.encoding import encode_image
from localens.core.models import AttemptStatus, ImagePayload, Source
from localens.errors import (
    AllAttemptsExhaustedError,
    AnalysisCancelledError,
    EncodingError,
    MissingCredentialError,
)


class TestFirstAttemptSuccess:
    """The first model answers with a usable body."""

    def test_single_call_and_grounded_sources(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        citations = [
            {"title": "Mairie de Villejuif", "uri": "https://villejuif.example"},
            {"title": "Street View", "uri": "https://maps.example/1"},
            {"title": "Duplicate", "uri": "https://villejuif.example"},
        ]
        factory, client = make_client_factory(make_remote_response(sample_body_json, citations))

        result, records, model = GeolocationDispatcher(attempts, client_factory=factory).dispatch(
            png_payload, api_key
        )

        assert client.generate.call_count == 1
        assert model == "model-a"
        assert result.top_guess.city == "Villejuif"
        assert result.sources == [
            Source(title="Mairie de Villejuif", uri="https://villejuif.example"),
            Source(title="Street View", uri="https://maps.example/1"),
        ]
        assert [r.status for r in records] == [AttemptStatus.SUCCEEDED]

    def test_request_arguments(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, client = make_client_factory(make_remote_response(sample_body_json))

        GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, f"  {api_key} ")

        factory.assert_called_once_with(api_key)
        attempt, prompt_text, encoded, mime_type = client.generate.call_args.args
        assert attempt == attempts[0]
        assert "HOST & ANCHOR" in prompt_text
        assert '"guesses"' in prompt_text
        assert encoded == encode_image(png_payload)
        assert mime_type == "image/png"


class TestFallback:
    """Earlier attempts fail, a later one succeeds."""

    def test_kth_attempt_success(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, client = make_client_factory(
            AIServerError(status_code=503),
            AIRateLimitError(),
            make_remote_response(sample_body_json, model="model-c"),
        )

        result, records, model = GeolocationDispatcher(attempts, client_factory=factory).dispatch(
            png_payload, api_key
        )

        assert client.generate.call_count == 3
        assert model == "model-c"
        assert [call.args[0].model for call in client.generate.call_args_list] == [
            "model-a",
            "model-b",
            "model-c",
        ]
        assert [r.status for r in records] == [
            AttemptStatus.REMOTE_ERROR,
            AttemptStatus.REMOTE_ERROR,
            AttemptStatus.SUCCEEDED,
        ]
        assert records[0].error_kind == "AIServerError"
        assert result.top_guess.city == "Villejuif"

    def test_unmapped_error_falls_through(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, client = make_client_factory(
            RuntimeError("connection reset by peer"),
            make_remote_response(sample_body_json, model="model-b"),
        )

        result, records, model = GeolocationDispatcher(attempts, client_factory=factory).dispatch(
            png_payload, api_key
        )

        assert client.generate.call_count == 2
        assert model == "model-b"
        assert records[0].status == AttemptStatus.REMOTE_ERROR
        assert records[0].error_kind == "RuntimeError"
        assert records[0].message == "connection reset by peer"
        assert result.top_guess.city == "Villejuif"

    def test_malformed_response_falls_through(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, client = make_client_factory(
            make_remote_response("I think this is Paris."),
            make_remote_response(sample_body_json),
        )

        _, records, model = GeolocationDispatcher(attempts, client_factory=factory).dispatch(
            png_payload, api_key
        )

        assert model == "model-b"
        assert records[0].status is AttemptStatus.MALFORMED
        assert records[0].error_kind == "MalformedResponseError"

    def test_zero_guesses_is_malformed(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, _ = make_client_factory(
            make_remote_response('{"guesses": [], "artifacts": [], "summary": ""}'),
            make_remote_response(sample_body_json),
        )

        _, records, _ = GeolocationDispatcher(attempts, client_factory=factory).dispatch(
            png_payload, api_key
        )

        assert records[0].status is AttemptStatus.MALFORMED

    def test_failures_logged_as_warnings(
        self, attempts, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response, caplog
    ):
        factory, _ = make_client_factory(AIServerError(), make_remote_response(sample_body_json))

        with caplog.at_level(logging.INFO, logger="localens"):
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, api_key)

        messages = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert (logging.INFO, "Attempting analysis with model: model-a (High)...") in messages
        assert any(level == logging.WARNING and "model-a" in msg for level, msg in messages)


class TestExhaustion:
    """Every attempt fails."""

    def test_all_remote_errors(self, attempts, png_payload, api_key, make_client_factory):
        factory, client = make_client_factory(
            AIServerError(), AIRateLimitError(), AIAuthenticationError()
        )

        with pytest.raises(AllAttemptsExhaustedError) as exc_info:
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, api_key)

        error = exc_info.value
        assert client.generate.call_count == 3
        assert str(error) == (
            "Failed to analyze image after multiple attempts. "
            "Last error: API authentication failed. Please check your API key."
        )
        assert isinstance(error.last_error, AIAuthenticationError)
        assert len(error.attempts) == 3

    def test_all_malformed(
        self, attempts, png_payload, api_key, make_client_factory, make_remote_response
    ):
        factory, _ = make_client_factory(*(make_remote_response("nope") for _ in attempts))

        with pytest.raises(AllAttemptsExhaustedError, match="Last error: Invalid JSON response"):
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, api_key)

    def test_empty_attempt_list(self, png_payload, api_key, make_client_factory):
        factory, client = make_client_factory()

        with pytest.raises(AllAttemptsExhaustedError) as exc_info:
            GeolocationDispatcher((), client_factory=factory).dispatch(png_payload, api_key)

        assert "currently overloaded or unavailable" in str(exc_info.value)
        client.generate.assert_not_called()

    def test_exhaustion_logged_as_error(self, attempts, png_payload, api_key, make_client_factory, caplog):
        factory, _ = make_client_factory(AIServerError(), AIServerError(), AIServerError())

        with caplog.at_level(logging.WARNING, logger="localens"):
            with pytest.raises(AllAttemptsExhaustedError):
                GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, api_key)

        assert any(r.levelno == logging.ERROR for r in caplog.records)


class TestPreflight:
    """Failures detected before any request is issued."""

    @pytest.mark.parametrize("credential", ["", "   ", None])
    def test_missing_credential(self, attempts, png_payload, make_client_factory, credential):
        factory, client = make_client_factory()

        with pytest.raises(MissingCredentialError):
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(png_payload, credential)

        factory.assert_not_called()
        client.generate.assert_not_called()

    def test_empty_image(self, attempts, api_key, make_client_factory):
        factory, client = make_client_factory()

        with pytest.raises(EncodingError):
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(
                ImagePayload(data=b"", mime_type="image/png"), api_key
            )

        client.generate.assert_not_called()


class TestCancellation:
    """The cancel event stops further attempts."""

    def test_cancelled_before_first_attempt(self, attempts, png_payload, api_key, make_client_factory):
        factory, client = make_client_factory()
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(AnalysisCancelledError) as exc_info:
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(
                png_payload, api_key, cancel_event=cancel
            )

        client.generate.assert_not_called()
        assert [r.status for r in exc_info.value.attempts] == [AttemptStatus.CANCELLED]

    def test_cancelled_between_attempts(self, attempts, png_payload, api_key, make_client_factory):
        cancel = threading.Event()

        def fail_and_cancel(*args):
            cancel.set()
            raise AIServerError()

        factory, client = make_client_factory()
        client.generate.side_effect = fail_and_cancel

        with pytest.raises(AnalysisCancelledError) as exc_info:
            GeolocationDispatcher(attempts, client_factory=factory).dispatch(
                png_payload, api_key, cancel_event=cancel
            )

        assert client.generate.call_count == 1
        assert [r.status for r in exc_info.value.attempts] == [
            AttemptStatus.REMOTE_ERROR,
            AttemptStatus.CANCELLED,
        ]
