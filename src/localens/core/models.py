"""Core data models for LocaLens.

This module consolidates the data structures that flow through the
geolocation pipeline:

1. INPUT (ImagePayload, ModelAttempt)
2. MODEL OUTPUT (LocationGuess, Artifact, Source, AnalysisResult)
3. DIAGNOSTICS (AttemptRecord, AnalysisOutcome)

All models are immutable once constructed.
"""

from __future__ import annotations

import math
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from localens.errors import MalformedResponseError

# Default citation values when grounding chunks omit them
DEFAULT_SOURCE_TITLE = "Verification Source"
DEFAULT_SOURCE_URI = "#"

# Half-width of the bounding box shown around a guess on the embedded map
DEFAULT_MAP_DELTA = 0.005


# =============================================================================
# Input Models
# =============================================================================


class ImagePayload(BaseModel):
    """Binary image content plus its MIME type.

    Attributes:
        data: Raw image bytes.
        mime_type: MIME type, e.g. "image/jpeg".
        filename: Original file name, if the image came from disk.

    Example:
        >>> payload = ImagePayload.from_path(Path("street.jpg"))
        >>> payload.mime_type
        'image/jpeg'
    """

    data: bytes = Field(..., repr=False)
    mime_type: str
    filename: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_path(cls, path: Path | str) -> "ImagePayload":
        """Read an image file from disk.

        Raises:
            EncodingError: If the file is unreadable or not a supported image.
        """
        from localens.core.encoding import load_image

        return load_image(path)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ModelAttempt(BaseModel):
    """One remote model configuration in the fallback list.

    Attributes:
        model: Gemini model identifier.
        thinking_budget: Reasoning-effort budget; 0 disables extended reasoning.
        label: Human-readable description used in logs.
    """

    model: str = Field(..., min_length=1)
    thinking_budget: int = Field(default=0, ge=0)
    label: str = ""

    model_config = {"frozen": True}

    @property
    def uses_thinking(self) -> bool:
        return self.thinking_budget > 0

    def describe(self) -> str:
        return f"{self.model} ({self.label})" if self.label else self.model


# Highest capability first, cheaper and more available configurations after.
DEFAULT_MODEL_ATTEMPTS: tuple[ModelAttempt, ...] = (
    ModelAttempt(
        model="gemini-2.5-flash",
        thinking_budget=24576,
        label="High Reasoning (Flash 2.5)",
    ),
    ModelAttempt(
        model="gemini-2.5-flash-lite-latest",
        thinking_budget=16000,
        label="Fast Reasoning (Flash Lite)",
    ),
    ModelAttempt(
        model="gemini-2.0-flash",
        thinking_budget=0,
        label="Standard (Flash 2.0)",
    ),
)


# =============================================================================
# Analysis Results
# =============================================================================


class LocationGuess(BaseModel):
    """A candidate location produced by the model.

    Ranges are not enforced on construction; the model decides the values.
    Consumers should call has_valid_coordinates() before plotting.

    Attributes:
        place: Precise address or place description.
        city: City name.
        country: Country name.
        latitude: Latitude in degrees (-90..90 when well-formed).
        longitude: Longitude in degrees (-180..180 when well-formed).
        confidence: Confidence percentage (0-100 when well-formed).
        reasoning: Free-text justification for this guess.
    """

    place: str = ""
    city: str = ""
    country: str = ""
    latitude: float
    longitude: float
    confidence: int = 0
    reasoning: str = ""

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("confidence", mode="before")
    @classmethod
    def round_confidence(cls, v: Any) -> Any:
        if isinstance(v, float) and math.isfinite(v):
            return round(v)
        return v

    @field_validator("place", "city", "country", "reasoning", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def has_valid_coordinates(self) -> bool:
        """Check latitude and longitude are finite and within range."""
        return (
            math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
            and -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )

    @property
    def confidence_band(self) -> Literal["high", "medium", "low"]:
        if self.confidence > 80:
            return "high"
        if self.confidence > 50:
            return "medium"
        return "low"

    def coordinates_label(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"

    def osm_embed_url(self, delta: float = DEFAULT_MAP_DELTA) -> str:
        """OpenStreetMap embed URL centred on this guess with a marker."""
        lat, lon = self.latitude, self.longitude
        return (
            "https://www.openstreetmap.org/export/embed.html"
            f"?bbox={lon - delta},{lat - delta},{lon + delta},{lat + delta}"
            f"&layer=mapnik&marker={lat},{lon}"
        )

    def google_maps_url(self) -> str:
        return f"https://www.google.com/maps/search/?api=1&query={self.latitude},{self.longitude}"


class Artifact(BaseModel):
    """A visual clue supporting the guesses collectively."""

    clue: str
    description: str = ""

    model_config = {"frozen": True, "extra": "ignore"}


class Source(BaseModel):
    """A grounding citation. Uniqueness key is the URI."""

    title: str = DEFAULT_SOURCE_TITLE
    uri: str = DEFAULT_SOURCE_URI

    model_config = {"frozen": True}


class AnalysisResult(BaseModel):
    """Complete geolocation hypothesis for one image.

    Guesses keep the order the model returned them in (best first); they
    are never re-ranked here. Sources come from grounding metadata, not
    from the response body.

    Attributes:
        guesses: Candidate locations, non-empty.
        artifacts: Visual evidence items.
        summary: Free-text deduction summary.
        sources: Deduplicated citations in first-seen order.

    Example:
        >>> result = AnalysisResult.from_payload(data, sources=sources)
        >>> print(result.top_guess.city)
    """

    guesses: list[LocationGuess] = Field(..., min_length=1)
    artifacts: list[Artifact] = Field(default_factory=list)
    summary: str = ""
    sources: list[Source] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("artifacts", mode="before")
    @classmethod
    def none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("summary", mode="before")
    @classmethod
    def none_to_str(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("sources")
    @classmethod
    def unique_sources(cls, v: list[Source]) -> list[Source]:
        uris = [s.uri for s in v]
        if len(uris) != len(set(uris)):
            raise ValueError("sources must not contain duplicate URIs")
        return v

    @classmethod
    def from_payload(cls, data: Any, sources: list[Source] | None = None) -> "AnalysisResult":
        """Build a result from a parsed response body.

        Any ``sources`` key in the body is ignored; citations come from
        grounding metadata only.

        Raises:
            MalformedResponseError: If the body is not an object, has no
                guesses, or does not match the expected shape.
        """
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Expected a JSON object, got {type(data).__name__}"
            )

        body = {k: v for k, v in data.items() if k != "sources"}
        try:
            return cls(**body, sources=sources or [])
        except ValidationError as e:
            raise MalformedResponseError(
                f"Response does not match expected schema ({e.error_count()} errors)"
            ) from e

    @property
    def top_guess(self) -> LocationGuess:
        return self.guesses[0]


# =============================================================================
# Diagnostics
# =============================================================================


class AttemptStatus(str, Enum):
    """Outcome of a single model attempt."""

    SUCCEEDED = "succeeded"
    REMOTE_ERROR = "remote_error"
    MALFORMED = "malformed"
    CANCELLED = "cancelled"


class AttemptRecord(BaseModel):
    """Diagnostic record for one model attempt.

    Attributes:
        model: Model identifier that was called.
        label: Human-readable attempt label.
        status: How the attempt ended.
        error_kind: Exception class name when the attempt failed.
        message: Error message when the attempt failed.
        latency_ms: Wall time spent on the attempt.
    """

    model: str
    label: str = ""
    status: AttemptStatus
    error_kind: str | None = None
    message: str | None = None
    latency_ms: float | None = None

    model_config = {"frozen": True}


class AnalysisOutcome(BaseModel):
    """Explicit result-or-error value handed to a front-end.

    Exactly one of ``result`` and ``error_message`` is set.

    Example:
        >>> outcome = run_analysis(image, api_key)
        >>> if outcome.ok:
        ...     show(outcome.result)
        ... else:
        ...     show_error(outcome.error_message)
    """

    result: AnalysisResult | None = None
    error_kind: str | None = None
    error_message: str | None = None
    model: str | None = None
    attempts: list[AttemptRecord] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.result is not None
