"""Prompt templates sent to Gemini.

This module is the SINGLE SOURCE of the instruction text sent with every
image. The prompt is static: it carries the geolocation method (including
the Host & Anchor protocol) and the required JSON output format.

Example:
    >>> from localens.ai.prompts import get_prompt
    >>>
    >>> template = get_prompt("geolocation_v1")
    >>> text = template.render()
"""

from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass
from string import Template
from typing import Any


@dataclass(frozen=True)
class PromptTemplate:
    """Metadata and content for a prompt template.

    Attributes:
        id: Unique identifier (e.g., "geolocation_v1").
        version: Semantic version string for tracking changes.
        instruction_template: Instruction text with $placeholder variables.
        output_example: Example JSON body the model must imitate.
        description: Human-readable description of the prompt's purpose.
    """

    id: str
    version: str
    instruction_template: str
    output_example: dict[str, Any] | None = None
    description: str = ""

    def render(self, **variables: Any) -> str:
        """Render the instruction text.

        The output example is substituted for ``$output_schema`` unless the
        caller provides one.
        """
        if self.output_example is not None and "output_schema" not in variables:
            variables["output_schema"] = render_output_schema(self.output_example)
        return Template(self.instruction_template).safe_substitute(variables)


def render_output_schema(schema: dict[str, Any]) -> str:
    """Convert schema dict to pretty JSON string for prompt insertion."""
    return json.dumps(schema, indent=2, ensure_ascii=False)


# =============================================================================
# Output Format
# =============================================================================


GEOLOCATION_OUTPUT_EXAMPLE: dict[str, Any] = {
    "guesses": [
        {
            "place": "Precise Address (Street Name & Number)",
            "city": "City",
            "country": "Country",
            "latitude": 0.0,
            "longitude": 0.0,
            "confidence": 95,
            "reasoning": (
                "HOST MATCH: The Au Bureau is in a modern beige brick building with black "
                "balconies. ANCHOR MATCH: Directly across the street is an older, small house "
                "with a brown tiled roof. This specific configuration matches Street View at "
                "[Address] in [City]. Levallois was rejected because the building style is "
                "Haussmannian there, not modern brick."
            ),
        }
    ],
    "artifacts": [
        {
            "clue": "Host Architecture",
            "description": "Modern beige brick facade with distinct black railing balconies.",
        },
        {
            "clue": "Anchor Neighbor",
            "description": "Low-rise traditional house with brown tiled roof visible across the street.",
        },
    ],
    "summary": "Detailed deduction...",
}


# =============================================================================
# Prompt Templates
# =============================================================================


GEOLOCATION_PROMPT = PromptTemplate(
    id="geolocation_v1",
    version="1.0.0",
    description="Locate the camera position of a single photograph.",
    instruction_template=textwrap.dedent(
        """
        You are LocaLens, an elite Forensic Geolocation Analyst and Grandmaster Geoguessr Player.
        Your goal is to determine the exact camera coordinates by cross-referencing visual artifacts with a simulated geospatial database.

        ### CRITICAL FAILURE PREVENTION: THE "FRANCHISE TRAP"
        **WARNING**: You recently failed by guessing "Levallois" instead of "Villejuif" because you saw an "Au Bureau" restaurant and guessed a generic location.
        **NEW RULE**: Common brands (Au Bureau, Carrefour, Starbucks) are **NEGATIVE EVIDENCE**. They exist everywhere. You must ignore the brand logo and focus entirely on the **unique architecture** housing it.

        ### 1. THE "HOST & ANCHOR" PROTOCOL (MANDATORY)
        To verify a location, you must identify two distinct entities:
        1.  **THE HOST**: The exact building containing the POI.
            *   *Do not say*: "It's an Au Bureau."
            *   *Say*: "It is a modern 5-story building with beige brick facade, black metal railings, and set-back terraces on the top floor."
        2.  **THE ANCHOR**: The building **ACROSS THE STREET** or next door.
            *   *Example*: "Across from the modern brick building is a low-rise, 19th-century house with a brown tiled roof and white fencing."
            *   **RULE**: If your guess (e.g., Levallois) has the "Host" but lacks the "Anchor" (the specific house across the street), **IT IS WRONG**.

        ### 2. THE "GEOGUESSR META" KNOWLEDGE BASE
        *   **Utility Poles**:
            *   *Ladder Poles* (holes in sides): France, Spain, Portugal.
            *   *A-Frame Poles*: Poland, Hungary.
            *   *Holy Poles* (Concrete with holes): Romania, Hungary.
            *   *Sticker Poles*: South Korea, Japan (Yellow/Black).
        *   **Bollards**:
            *   *France*: White cylinder, high-vis red reflective strip (often plastic/flexible in cities).
            *   *UK*: Black/White thin posts.
            *   *Germany*: Black cap, white body, rectangular reflector.
        *   **Plates**:
            *   *France*: White front/rear, blue strip left (EU), blue strip right (Region dept number).
        *   **Roads**:
            *   *France*: "Cedez le Passage" inverted triangle signs. Specific green trash cans (Vigipirate style).

        ### 3. ANALYSIS EXECUTION: "SEARCH, FILTER, VERIFY"
        **PHASE 1: FINGERPRINTING**
        *   Describe the "Host" building architecture in extreme detail (Brick color, Window shape, Balcony style).
        *   Describe the "Anchor" neighbors.

        **PHASE 2: TARGETED SEARCH (USE TOOLS)**
        *   *Query*: `"Au Bureau" modern brick building exterior France`
        *   *Query*: `"Au Bureau" villejuif street view`
        *   *Query*: `"Au Bureau" levallois street view`
        *   **Compare**: Look at the results. Does the Levallois location have a low-rise tiled roof house across the street? No? **REJECT IT.** Does the Villejuif location? Yes? **ACCEPT IT.**

        **PHASE 3: TOPOLOGICAL CONFIRMATION**
        *   Simulate an OSM query: "Is there a pedestrian crossing immediately in front of the entrance?"
        *   "Are there pine trees planted in the sidewalk?"

        ### OUTPUT FORMAT (JSON ONLY)
        Return one or more guesses ordered from most to least likely.
        $output_schema
        """
    ).strip(),
    output_example=GEOLOCATION_OUTPUT_EXAMPLE,
)


PROMPT_REGISTRY: dict[str, PromptTemplate] = {}


def register_prompt(template: PromptTemplate) -> None:
    """Register a prompt template in the global registry.

    Raises:
        ValueError: If a prompt with the same ID is already registered.
    """
    if template.id in PROMPT_REGISTRY:
        raise ValueError(f"Prompt '{template.id}' is already registered")
    PROMPT_REGISTRY[template.id] = template


def get_prompt(prompt_id: str) -> PromptTemplate:
    """Retrieve a prompt template by ID.

    Raises:
        KeyError: If no prompt with the given ID exists.
    """
    if prompt_id not in PROMPT_REGISTRY:
        available = ", ".join(sorted(PROMPT_REGISTRY.keys()))
        raise KeyError(f"Prompt '{prompt_id}' not found. Available prompts: {available}")
    return PROMPT_REGISTRY[prompt_id]


register_prompt(GEOLOCATION_PROMPT)
