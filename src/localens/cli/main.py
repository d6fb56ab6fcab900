"""
Command Line Interface for LocaLens.

This module provides the user interface for geolocating a photograph with
Gemini: run an analysis, print or export the result, and manage the API key.
"""

import logging
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from localens import __version__
from localens.ai.analyzer import run_analysis
from localens.config import (
    APIKeyManager,
    AppConfig,
    ConfigError,
    KeySource,
    load_config,
)
from localens.core.models import (
    DEFAULT_MODEL_ATTEMPTS,
    AnalysisOutcome,
    AnalysisResult,
    ImagePayload,
    ModelAttempt,
)
from localens.errors import LocaLensError
from localens.output.html_report import generate_report
from localens.utils.logging import LogContext, setup_logging

logger = logging.getLogger(__name__)

# Initialize Rich console
console = Console()

BACKENDS = {"keyring": KeySource.KEYRING, "file": KeySource.ENCRYPTED_FILE}

BAND_STYLES = {"high": "green", "medium": "yellow", "low": "red"}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_header(text: str) -> None:
    """Print a styled header."""
    console.print()
    console.print(Panel(text, style="bold blue", expand=False))
    console.print()


def print_success(text: str) -> None:
    """Print green success message."""
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    """Print yellow warning message."""
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    """Print red error message."""
    console.print(f"[bold red]✗[/bold red] {escape(text)}", highlight=False)


def print_info_panel(title: str, content: str, border_style: str = "blue") -> None:
    """Print info panel box."""
    console.print(Panel(content, title=title, border_style=border_style))


def confirm(prompt: str, default: bool = False) -> bool:
    """Prompt for yes/no confirmation."""
    return Confirm.ask(prompt, default=default)


def build_attempts(models: List[str], config: AppConfig) -> Optional[tuple]:
    """Turn repeated --model options into an attempt list.

    A model already in the configured list keeps its thinking budget and
    label; any other model runs without extended reasoning.
    """
    if not models:
        return None

    known = {a.model: a for a in (*config.ai.attempts, *DEFAULT_MODEL_ATTEMPTS)}
    return tuple(known.get(name) or ModelAttempt(model=name) for name in models)


def resolve_report_path(html_path: str, config: AppConfig) -> Path:
    """Place a bare report file name under the configured output directory."""
    path = Path(html_path).expanduser()
    if not path.is_absolute() and path.parent == Path("."):
        return config.paths.output_dir / path
    return path


def print_result(result: AnalysisResult, model: Optional[str]) -> None:
    """Print an analysis result as tables and panels."""
    table = Table(title="Location Guesses")
    table.add_column("#", justify="right")
    table.add_column("Place", style="cyan")
    table.add_column("City / Country")
    table.add_column("Coordinates")
    table.add_column("Confidence", justify="right")

    for i, guess in enumerate(result.guesses, 1):
        style = BAND_STYLES[guess.confidence_band]
        coords = guess.coordinates_label()
        if not guess.has_valid_coordinates():
            coords += " [red](invalid)[/red]"
        table.add_row(
            str(i),
            escape(guess.place) or "-",
            escape(", ".join(part for part in (guess.city, guess.country) if part)) or "-",
            coords,
            f"[{style}]{guess.confidence}%[/{style}]",
        )

    console.print(table)

    top = result.top_guess
    if top.reasoning:
        print_info_panel("Reasoning", escape(top.reasoning))
    if top.has_valid_coordinates():
        console.print(f"Map: {top.google_maps_url()}")

    if result.artifacts:
        artifacts = Table(title="Visual Evidence")
        artifacts.add_column("Clue", style="cyan")
        artifacts.add_column("Description")
        for artifact in result.artifacts:
            artifacts.add_row(escape(artifact.clue), escape(artifact.description))
        console.print(artifacts)

    if result.summary:
        print_info_panel("Summary", escape(result.summary), border_style="green")

    if result.sources:
        console.print("\n[bold]Sources:[/bold]")
        for source in result.sources:
            console.print(f"  • {escape(source.title)} ({escape(source.uri)})", highlight=False)

    if model:
        console.print(f"\n[dim]Answered by {model}[/dim]")


def print_attempts(outcome: AnalysisOutcome) -> None:
    """Print the per-attempt diagnostics table."""
    if not outcome.attempts:
        return

    table = Table(title="Attempts")
    table.add_column("Model", style="cyan")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Error")

    for record in outcome.attempts:
        latency = f"{record.latency_ms:.0f} ms" if record.latency_ms is not None else "-"
        table.add_row(record.model, record.status.value, latency, escape(record.message or ""))

    console.print(table)


# =============================================================================
# MAIN CLI GROUP
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="localens")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.option("--config", "config_path", type=click.Path(), help="Custom config file")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(ctx, verbose, debug, config_path, quiet):
    """
    LocaLens - Find where a photograph was taken.

    Sends the image to Google Gemini with a forensic geolocation prompt and
    reports ranked location guesses, visual evidence and web sources.
    """
    try:
        app_config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)

    debug = debug or app_config.debug
    verbose = verbose or app_config.verbose

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = "WARNING"
    setup_logging(level=level, log_file=app_config.log_file)

    # Store context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["quiet"] = quiet
    ctx.obj["config"] = app_config


# =============================================================================
# ANALYZE COMMAND
# =============================================================================


@cli.command()
@click.argument("image", type=click.Path(dir_okay=False))
@click.option("--api-key", help="Gemini API key (defaults to env, keyring or key file)")
@click.option(
    "--model",
    "-m",
    "models",
    multiple=True,
    help="Model to try; repeat to build a fallback list",
)
@click.option("--json", "output_json", is_flag=True, help="Output result as JSON")
@click.option("--html", "html_path", type=click.Path(dir_okay=False), help="Write HTML report (bare file names go under paths.output_dir)")
@click.option("--open", "open_report", is_flag=True, help="Open HTML report in browser")
@click.pass_context
def analyze(ctx, image, api_key, models, output_json, html_path, open_report):
    """
    Locate where IMAGE was taken.

    Tries each configured model in order and stops at the first usable
    answer.
    """
    app_config: AppConfig = ctx.obj["config"]

    credential = api_key
    if not credential:
        stored = APIKeyManager(paths_config=app_config.paths).get_key()
        credential = stored.get_secret_value() if stored else None

    attempts = build_attempts(list(models), app_config)

    with LogContext(f"Analysis of {Path(image).name}", logger=logger):
        if output_json or ctx.obj.get("quiet"):
            outcome = run_analysis(image, credential, attempts=attempts, config=app_config)
        else:
            with console.status(f"Analyzing {Path(image).name}..."):
                outcome = run_analysis(image, credential, attempts=attempts, config=app_config)

    if not outcome.ok:
        print_error(outcome.error_message or "Analysis failed.")
        if ctx.obj.get("verbose") or ctx.obj.get("debug"):
            print_attempts(outcome)
        sys.exit(1)

    if output_json:
        click.echo(outcome.result.model_dump_json(indent=2))
    else:
        print_result(outcome.result, outcome.model)
        if ctx.obj.get("verbose"):
            print_attempts(outcome)

    if html_path:
        try:
            payload = ImagePayload.from_path(image)
        except LocaLensError as e:
            print_warning(f"Image preview skipped: {e}")
            payload = None

        try:
            report_path = generate_report(
                outcome.result,
                resolve_report_path(html_path, app_config),
                image=payload,
                config=app_config.report,
                model=outcome.model,
            )
        except OSError as e:
            print_error(f"Could not write report: {e}")
            sys.exit(1)
        if not output_json:
            print_success(f"Report written to {report_path}")

        if open_report:
            webbrowser.open(report_path.resolve().as_uri())
    elif open_report:
        print_warning("--open has no effect without --html")


# =============================================================================
# CONFIG GROUP
# =============================================================================


@cli.group()
def config():
    """Manage configuration settings."""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Display current configuration."""
    app_config: AppConfig = ctx.obj["config"]
    manager = APIKeyManager(paths_config=app_config.paths)
    key = manager.get_key()

    print_header("Current Configuration")

    table = Table(title="Settings")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("AI Provider", "Google Gemini")
    table.add_row(
        "API Key",
        f"[CONFIGURED] ({manager.get_key_source().value})" if key else "[NOT SET]",
    )
    table.add_row("Search Grounding", "on" if app_config.ai.enable_search else "off")
    table.add_row("Timeout", f"{app_config.ai.timeout_seconds}s")
    table.add_row("Config Dir", str(app_config.paths.config_dir))
    table.add_row("Output Dir", str(app_config.paths.output_dir))
    console.print(table)

    attempts = Table(title="Model Attempts")
    attempts.add_column("#", justify="right")
    attempts.add_column("Model", style="cyan")
    attempts.add_column("Thinking Budget", justify="right")
    attempts.add_column("Label")
    for i, attempt in enumerate(app_config.ai.attempt_plan(), 1):
        attempts.add_row(str(i), attempt.model, str(attempt.thinking_budget), attempt.label)
    console.print(attempts)


@config.command("set-key")
@click.option("--backend", type=click.Choice(list(BACKENDS)), default="keyring")
@click.pass_context
def set_key(ctx, backend):
    """Store the Gemini API key securely."""
    app_config: AppConfig = ctx.obj["config"]

    api_key = click.prompt("Enter your Gemini API key", hide_input=True)

    try:
        APIKeyManager(paths_config=app_config.paths).store_key(api_key, BACKENDS[backend])
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)

    print_success(f"API key stored ({backend})")
    print_info_panel(
        "Next Steps",
        "Your Gemini API key is now configured.\n\n"
        "Run your first analysis:\n"
        "  localens analyze street.jpg --html report.html",
    )


@config.command("delete-key")
@click.option("--backend", type=click.Choice(list(BACKENDS)), default="keyring")
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete_key(ctx, backend, force):
    """Remove the stored API key."""
    if not force and not confirm("Remove API key?"):
        return

    app_config: AppConfig = ctx.obj["config"]
    try:
        APIKeyManager(paths_config=app_config.paths).delete_key(BACKENDS[backend])
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)

    print_success("API key removed")


def main():
    """Entry point for the console script."""
    cli()


if __name__ == "__main__":
    main()
