"""AI module for LocaLens.

This module provides the interface to Google's Gemini API for image
geolocation. The client.py module is the SOLE interface to the Gemini
API; no other file should import google-genai.

Exports:
    - GeminiClient: One request per model attempt
    - GeolocationDispatcher: Ordered model fallback
    - analyze_image / run_analysis: Public entry points
    - normalize_response / deduplicate_citations: Response post-processing
    - Exception hierarchy for typed error handling
"""

from localens.ai.analyzer import analyze_image, run_analysis
from localens.ai.citations import deduplicate_citations, extract_grounding_citations
from localens.ai.client import (
    # Main client
    GeminiClient,
    RemoteResponse,
    create_client,
    # Exceptions
    AIClientError,
    RemoteCallError,
    AIAuthenticationError,
    AIRateLimitError,
    AIQuotaExceededError,
    AIServerError,
    AIBadRequestError,
    AITimeoutError,
    AINetworkError,
    TokenLimitExceededError,
    ModelNotAvailableError,
    ContentBlockedError,
)
from localens.ai.dispatcher import GeolocationDispatcher
from localens.ai.normalizer import normalize_response, strip_code_fences
from localens.ai.prompts import GEOLOCATION_PROMPT, PromptTemplate, get_prompt

__all__ = [
    # Entry points
    "analyze_image",
    "run_analysis",
    "GeolocationDispatcher",
    # Client
    "GeminiClient",
    "RemoteResponse",
    "create_client",
    # Post-processing
    "normalize_response",
    "strip_code_fences",
    "deduplicate_citations",
    "extract_grounding_citations",
    # Prompts
    "GEOLOCATION_PROMPT",
    "PromptTemplate",
    "get_prompt",
    # Exceptions
    "AIClientError",
    "RemoteCallError",
    "AIAuthenticationError",
    "AIRateLimitError",
    "AIQuotaExceededError",
    "AIServerError",
    "AIBadRequestError",
    "AITimeoutError",
    "AINetworkError",
    "TokenLimitExceededError",
    "ModelNotAvailableError",
    "ContentBlockedError",
]
