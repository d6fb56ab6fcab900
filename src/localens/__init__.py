"""LocaLens: forensic image geolocation powered by Gemini.

Exports:
    - analyze_image: Locate a photograph, raising LocaLensError on failure
    - run_analysis: Same pipeline, returning an AnalysisOutcome value
    - AnalysisResult, LocationGuess, Artifact, Source: Result models
    - LocaLensError: Root of the exception hierarchy
"""

__version__ = "0.1.0"

from localens.ai.analyzer import analyze_image, run_analysis
from localens.core.models import (
    AnalysisOutcome,
    AnalysisResult,
    Artifact,
    ImagePayload,
    LocationGuess,
    ModelAttempt,
    Source,
)
from localens.errors import LocaLensError

__all__ = [
    "__version__",
    "analyze_image",
    "run_analysis",
    "AnalysisOutcome",
    "AnalysisResult",
    "Artifact",
    "ImagePayload",
    "LocationGuess",
    "ModelAttempt",
    "Source",
    "LocaLensError",
]
