"""
HTML Report Generator - Render an AnalysisResult as a standalone page.

The page is self-contained: CSS is embedded, the analyzed image (when
given) is inlined as a data URI, and each guess gets an OpenStreetMap
iframe plus a Google Maps link. Only the map tiles load from the network
when the file is opened.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment

from localens.config import ReportConfig
from localens.core.encoding import to_data_url
from localens.core.models import AnalysisResult, ImagePayload

logger = logging.getLogger(__name__)


# =============================================================================
# EMBEDDED CSS
# =============================================================================

EMBEDDED_CSS = """
:root {
    --primary: #6366f1;
    --success: #10b981;
    --warning: #f59e0b;
    --danger: #ef4444;
    --bg-primary: #ffffff;
    --bg-secondary: #f9fafb;
    --text-primary: #111827;
    --text-secondary: #6b7280;
    --border: #e5e7eb;
    --radius: 12px;
}

* { margin: 0; padding: 0; box-sizing: border-box; }

body {
    font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
    background: var(--bg-secondary);
    color: var(--text-primary);
    line-height: 1.6;
}

.container { max-width: 960px; margin: 0 auto; padding: 2rem 1rem; }

header { margin-bottom: 2rem; }
header h1 { font-size: 2rem; }
header .meta { color: var(--text-secondary); font-size: 0.875rem; }

section { margin-bottom: 2rem; }
section h2 { font-size: 1.25rem; margin-bottom: 1rem; }

.card {
    background: var(--bg-primary);
    border: 1px solid var(--border);
    border-radius: var(--radius);
    padding: 1.25rem;
    margin-bottom: 1rem;
}

.preview img { max-width: 100%; border-radius: var(--radius); }

.guess-header { display: flex; justify-content: space-between; align-items: baseline; }
.guess-place { font-weight: 600; font-size: 1.1rem; }
.guess-location { color: var(--text-secondary); }
.coords { font-family: monospace; font-size: 0.875rem; color: var(--text-secondary); }

.confidence { margin: 0.75rem 0; }
.confidence-track { background: var(--border); border-radius: 999px; height: 8px; }
.confidence-bar { height: 8px; border-radius: 999px; }
.confidence-high { background: var(--success); }
.confidence-medium { background: var(--warning); }
.confidence-low { background: var(--danger); }

.map { width: 100%; height: 280px; border: 0; border-radius: var(--radius); margin: 0.75rem 0; }
.invalid-coords { color: var(--danger); font-size: 0.875rem; }

.artifact-clue { font-weight: 600; }
.sources a { color: var(--primary); word-break: break-all; }

footer { color: var(--text-secondary); font-size: 0.75rem; text-align: center; }
"""


# =============================================================================
# TEMPLATE
# =============================================================================

BASE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ title }}</title>
<style>{{ css | safe }}</style>
</head>
<body>
<div class="container">
  <header>
    <h1>{{ title }}</h1>
    <p class="meta">
      {% if filename %}{{ filename }} &middot; {% endif %}
      {% if model %}Model: {{ model }} &middot; {% endif %}
      Generated {{ generated_at }}
    </p>
  </header>

  {% if image_data_url %}
  <section class="preview">
    <img src="{{ image_data_url }}" alt="Analyzed image">
  </section>
  {% endif %}

  <section id="guesses">
    <h2>Location Guesses</h2>
    {% for guess in result.guesses %}
    <div class="card guess">
      <div class="guess-header">
        <div>
          <div class="guess-place">{{ loop.index }}. {{ guess.place or "Unknown place" }}</div>
          <div class="guess-location">{{ [guess.city, guess.country] | select | join(", ") }}</div>
        </div>
        <span class="coords">{{ guess.coordinates_label() }}</span>
      </div>
      <div class="confidence">
        <span>Confidence: {{ guess.confidence }}%</span>
        <div class="confidence-track">
          <div class="confidence-bar confidence-{{ guess.confidence_band }}"
               style="width: {{ [[guess.confidence, 0] | max, 100] | min }}%"></div>
        </div>
      </div>
      {% if guess.has_valid_coordinates() %}
      <iframe class="map" loading="lazy" src="{{ guess.osm_embed_url(map_delta) }}"></iframe>
      <a href="{{ guess.google_maps_url() }}" target="_blank" rel="noopener">Open in Google Maps</a>
      {% else %}
      <p class="invalid-coords">Coordinates out of range; map not shown.</p>
      {% endif %}
      {% if guess.reasoning %}<p>{{ guess.reasoning }}</p>{% endif %}
    </div>
    {% endfor %}
  </section>

  {% if result.artifacts %}
  <section id="artifacts">
    <h2>Visual Evidence</h2>
    {% for artifact in result.artifacts %}
    <div class="card">
      <div class="artifact-clue">{{ artifact.clue }}</div>
      <p>{{ artifact.description }}</p>
    </div>
    {% endfor %}
  </section>
  {% endif %}

  {% if result.summary %}
  <section id="summary">
    <h2>Summary</h2>
    <div class="card"><p>{{ result.summary }}</p></div>
  </section>
  {% endif %}

  {% if result.sources %}
  <section id="sources" class="sources">
    <h2>Sources</h2>
    <ul class="card">
      {% for source in result.sources %}
      <li><a href="{{ source.uri }}" target="_blank" rel="noopener">{{ source.title }}</a></li>
      {% endfor %}
    </ul>
  </section>
  {% endif %}

  <footer>
    <p>Powered by Google Gemini. Guesses are hypotheses; verify before relying on them.</p>
  </footer>
</div>
</body>
</html>
"""


# =============================================================================
# HTML REPORT GENERATOR
# =============================================================================


class HTMLReportGenerator:
    """
    Generates self-contained HTML reports from AnalysisResult data.
    """

    def __init__(self, config: ReportConfig | None = None) -> None:
        """
        Initialize the HTML report generator.

        Args:
            config: Report configuration (uses defaults if None)
        """
        self._config = config or ReportConfig()
        self._env = Environment(autoescape=True)
        self._template = self._env.from_string(BASE_TEMPLATE)

    def generate(
        self,
        result: AnalysisResult,
        output_path: Path | None = None,
        image: ImagePayload | None = None,
        model: str | None = None,
    ) -> str:
        """
        Generate HTML report from an AnalysisResult.

        Args:
            result: Analysis to render
            output_path: Optional path to write HTML file
            image: Analyzed image, inlined as a preview when configured
            model: Model that produced the result, shown in the header

        Returns:
            HTML string
        """
        logger.info("Generating HTML report")

        html_output = self._template.render(**self._build_context(result, image, model))

        if output_path:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(html_output, encoding="utf-8")
            logger.info(f"Report written to {output_path}")

        return html_output

    def generate_to_file(
        self,
        result: AnalysisResult,
        output_path: Path,
        image: ImagePayload | None = None,
        model: str | None = None,
    ) -> Path:
        """Generate report and write to file, returning the path."""
        self.generate(result, output_path=output_path, image=image, model=model)
        return Path(output_path)

    def _build_context(
        self,
        result: AnalysisResult,
        image: ImagePayload | None,
        model: str | None,
    ) -> dict[str, Any]:
        image_data_url = None
        if image is not None and self._config.include_image_preview:
            image_data_url = to_data_url(image)

        return {
            "title": self._config.title,
            "css": EMBEDDED_CSS,
            "result": result,
            "map_delta": self._config.map_delta,
            "image_data_url": image_data_url,
            "filename": image.filename if image is not None else None,
            "model": model,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def generate_report(
    result: AnalysisResult,
    output_path: Path,
    image: ImagePayload | None = None,
    config: ReportConfig | None = None,
    model: str | None = None,
) -> Path:
    """
    Generate HTML report and write to file.

    Args:
        result: Analysis to render
        output_path: Path to write HTML file
        image: Optional analyzed image for the preview
        config: Optional report configuration
        model: Optional model name for the header

    Returns:
        Path to generated file
    """
    generator = HTMLReportGenerator(config=config)
    return generator.generate_to_file(result, output_path, image=image, model=model)


def generate_report_string(
    result: AnalysisResult,
    image: ImagePayload | None = None,
    config: ReportConfig | None = None,
    model: str | None = None,
) -> str:
    """
    Generate HTML report as string without writing to file.
    """
    generator = HTMLReportGenerator(config=config)
    return generator.generate(result, image=image, model=model)
