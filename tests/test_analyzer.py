"""Tests for localens.ai.analyzer: public entry points."""

from __future__ import annotations

from pathlib import Path

import pytest

from localens.ai.analyzer import analyze_image, run_analysis
from localens.ai.client import AIServerError
from localens.config import AIConfig, AppConfig
from localens.core.models import AttemptStatus, ModelAttempt
from localens.errors import AllAttemptsExhaustedError, EncodingError, MissingCredentialError


class TestAnalyzeImage:
    """Tests for analyze_image()."""

    def test_analyze_from_path(
        self, png_path: Path, api_key, attempts, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, client = make_client_factory(make_remote_response(sample_body_json))

        result = analyze_image(png_path, api_key, attempts=attempts, client_factory=factory)

        assert result.top_guess.country == "France"
        assert client.generate.call_args.args[3] == "image/png"

    def test_missing_credential_checked_before_reading_image(self, tmp_path: Path, make_client_factory):
        """No key and no file: the key is reported, not the file."""
        factory, _ = make_client_factory()

        with pytest.raises(MissingCredentialError):
            analyze_image(tmp_path / "missing.png", "", client_factory=factory)

        factory.assert_not_called()

    def test_unreadable_image(self, tmp_path: Path, api_key, make_client_factory):
        factory, _ = make_client_factory()

        with pytest.raises(EncodingError):
            analyze_image(tmp_path / "missing.png", api_key, client_factory=factory)

        factory.assert_not_called()

    def test_configured_attempts_used_by_default(
        self, png_payload, api_key, sample_body_json, make_client_factory, make_remote_response
    ):
        config = AppConfig(ai=AIConfig(attempts=[ModelAttempt(model="only-model")]))
        factory, client = make_client_factory(make_remote_response(sample_body_json))

        analyze_image(png_payload, api_key, client_factory=factory, config=config)

        assert client.generate.call_args.args[0].model == "only-model"

    def test_exhaustion_raises(self, png_payload, api_key, attempts, make_client_factory):
        factory, _ = make_client_factory(AIServerError(), AIServerError(), AIServerError())

        with pytest.raises(AllAttemptsExhaustedError):
            analyze_image(png_payload, api_key, attempts=attempts, client_factory=factory)


class TestRunAnalysis:
    """Tests for run_analysis() outcome values."""

    def test_success_outcome(
        self, png_payload, api_key, attempts, sample_body_json, make_client_factory, make_remote_response
    ):
        factory, _ = make_client_factory(
            AIServerError(), make_remote_response(sample_body_json, model="model-b")
        )

        outcome = run_analysis(png_payload, api_key, attempts=attempts, client_factory=factory)

        assert outcome.ok
        assert outcome.model == "model-b"
        assert outcome.error_message is None
        assert [r.status for r in outcome.attempts] == [
            AttemptStatus.REMOTE_ERROR,
            AttemptStatus.SUCCEEDED,
        ]

    def test_missing_credential_outcome(self, png_payload, make_client_factory):
        factory, _ = make_client_factory()

        outcome = run_analysis(png_payload, None, client_factory=factory)

        assert not outcome.ok
        assert outcome.error_kind == "missing_credential"
        assert outcome.error_message.startswith("API Key is missing")
        assert outcome.attempts == []

    def test_exhausted_outcome_keeps_attempts(
        self, png_payload, api_key, attempts, make_client_factory, make_remote_response
    ):
        factory, _ = make_client_factory(
            AIServerError(), make_remote_response("not json"), AIServerError()
        )

        outcome = run_analysis(png_payload, api_key, attempts=attempts, client_factory=factory)

        assert outcome.error_kind == "all_attempts_exhausted"
        assert outcome.error_message.startswith("Failed to analyze image after multiple attempts.")
        assert [r.status for r in outcome.attempts] == [
            AttemptStatus.REMOTE_ERROR,
            AttemptStatus.MALFORMED,
            AttemptStatus.REMOTE_ERROR,
        ]

    def test_encoding_outcome(self, tmp_path: Path, api_key):
        path = tmp_path / "notes.png"
        path.write_text("not an image")

        outcome = run_analysis(path, api_key)

        assert outcome.error_kind == "encoding"
        assert outcome.result is None
