"""Grounding citations from Google Search.

Gemini reports the pages it consulted in
``candidates[0].grounding_metadata.grounding_chunks``. The same page is
frequently cited several times, so citations are deduplicated by URI
before they reach an AnalysisResult.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from localens.core.models import DEFAULT_SOURCE_TITLE, DEFAULT_SOURCE_URI, Source


def extract_grounding_citations(response: Any) -> list[dict[str, str | None]]:
    """Pull ``{"title", "uri"}`` records out of a generate_content response.

    Chunks without a web entry are skipped. A response with no candidates
    or no grounding metadata yields an empty list.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []

    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    records: list[dict[str, str | None]] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        records.append(
            {
                "title": getattr(web, "title", None),
                "uri": getattr(web, "uri", None),
            }
        )
    return records


def deduplicate_citations(records: Iterable[Mapping[str, Any]]) -> list[Source]:
    """Keep the first citation per URI, preserving input order.

    A missing title becomes "Verification Source" and a missing URI
    becomes "#". Records without a URI therefore collapse into one.
    """
    seen: set[str] = set()
    sources: list[Source] = []

    for record in records:
        uri = record.get("uri") or DEFAULT_SOURCE_URI
        if uri in seen:
            continue
        seen.add(uri)
        sources.append(Source(title=record.get("title") or DEFAULT_SOURCE_TITLE, uri=uri))

    return sources
