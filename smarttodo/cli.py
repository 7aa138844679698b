"""
CLI for AI-assisted todo categorization.

Usage:
    smarttodo analyze "buy groceries tomorrow" --stats tags.json
    smarttodo prompt "file taxes" --due 2026-04-15
    smarttodo select-tags "buy groceries" --stats tags.json
    smarttodo backoff "429 Too Many Requests" --attempt 3
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .backoff import retry_delay
from .config import default_config_dir, load_or_create_config
from .curation import format_tag_line, select_tags
from .errors import AIError, classify_error
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .prompts import build_analysis_prompt
from .providers import default_registry
from .sanitize import sanitize_api_key
from .service import TodoAnalyzer
from .types import AIContext, TagStatistics, ensure_utc, utc_now

# Configure quiet mode by default (suppress verbose library output)
# Set SMARTTODO_VERBOSE=1 to enable debug mode via environment
if os.environ.get("SMARTTODO_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


_config_dir: Optional[Path] = None


def _config_dir_callback(value: Optional[Path]):
    global _config_dir
    _config_dir = value
    return value


app = typer.Typer(
    name="smarttodo",
    help="AI tag and time horizon suggestions for todos.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    config_dir: Annotated[Optional[Path], typer.Option(
        "--config-dir", "-c",
        envvar="SMARTTODO_CONFIG_DIR",
        help="Directory holding smarttodo.toml",
        callback=_config_dir_callback,
        is_eager=True,
    )] = None,
):
    """AI tag and time horizon suggestions for todos."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _parse_datetime(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        typer.echo(f"Error: {option} must be an ISO date or timestamp, got {value!r}", err=True)
        raise typer.Exit(1)


def _load_stats(path: Optional[Path]) -> Optional[TagStatistics]:
    """Read tag statistics JSON: a TagStatistics dict, or a bare tag -> counts map."""
    if path is None:
        return None
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error: cannot read tag statistics from {path}: {e}", err=True)
        raise typer.Exit(1)
    if "tag_stats" not in data:
        data = {"user_id": "", "tag_stats": data}
    return TagStatistics.from_dict(data)


def _get_config():
    return load_or_create_config(_config_dir or default_config_dir())


StatsOption = Annotated[Optional[Path], typer.Option(
    "--stats", "-s",
    help="JSON file of existing tag usage statistics",
)]
DueOption = Annotated[Optional[str], typer.Option(
    "--due", "-d",
    help="Due date (YYYY-MM-DD or ISO timestamp)",
)]
CreatedOption = Annotated[Optional[str], typer.Option(
    "--created",
    help="When the todo was entered (ISO timestamp, default now)",
)]
PreferencesOption = Annotated[Optional[str], typer.Option(
    "--preferences", "-p",
    help="Summary of the user's categorization preferences",
)]


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def analyze(
    text: Annotated[str, typer.Argument(help="Todo text")],
    due: DueOption = None,
    created: CreatedOption = None,
    stats: StatsOption = None,
    preferences: PreferencesOption = None,
):
    """Suggest tags and a time horizon for a todo using the configured provider."""
    config = _get_config()
    configure_ops_log(config.path)
    tag_stats = _load_stats(stats)
    due_date = _parse_datetime(due, "--due")
    created_at = _parse_datetime(created, "--created")

    try:
        provider = default_registry().create(config.provider.name, config.provider_params())
    except (ValueError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    analyzer = TodoAnalyzer(
        provider,
        max_attempts=config.max_attempts,
        retry_quota=config.retry_quota,
    )
    user_context = AIContext(user_id="cli", context_summary=preferences or "")
    try:
        result, attempts = analyzer.call_with_retry(
            "analyze",
            lambda: provider.analyze(
                text,
                user_context,
                due_date=due_date,
                created_at=created_at,
                tag_stats=tag_stats,
            ),
        )
    except AIError as e:
        typer.echo(f"Error ({classify_error(e).value}): {e}", err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps({
        "tags": result.tags,
        "time_horizon": result.time_horizon.value,
        "attempts": attempts,
    }, indent=2))


@app.command()
def prompt(
    text: Annotated[str, typer.Argument(help="Todo text")],
    due: DueOption = None,
    created: CreatedOption = None,
    stats: StatsOption = None,
    preferences: PreferencesOption = None,
):
    """Print the analysis prompt that would be sent, without calling a provider."""
    due_date = _parse_datetime(due, "--due")
    created_at = _parse_datetime(created, "--created") or utc_now()
    typer.echo(build_analysis_prompt(text, due_date, created_at, preferences, _load_stats(stats)))


@app.command("select-tags")
def select_tags_command(
    text: Annotated[str, typer.Argument(help="Todo text")],
    stats: StatsOption = None,
    max_tags: Annotated[int, typer.Option("--max-tags", "-n", help="Maximum tags")] = 50,
    budget: Annotated[int, typer.Option("--budget", "-b", help="Token budget")] = 500,
):
    """Show which existing tags would be offered to the model."""
    tag_stats = _load_stats(stats)
    if tag_stats is None:
        typer.echo("Error: --stats is required", err=True)
        raise typer.Exit(1)
    for tag in select_tags(tag_stats.tag_stats, text, max_tags, budget):
        typer.echo(format_tag_line(tag, tag_stats.tag_stats[tag]), nl=False)


@app.command()
def backoff(
    message: Annotated[str, typer.Argument(help="Upstream error message")],
    attempt: Annotated[int, typer.Option("--attempt", "-a", help="Retries already made")] = 0,
):
    """Classify an error message and show the retry delay."""
    err = RuntimeError(message)
    delay = retry_delay(err, attempt)
    typer.echo(f"{classify_error(err).value}\t{int(delay.total_seconds())}s")


@app.command()
def providers():
    """List available providers."""
    for name in default_registry().list_providers():
        typer.echo(name)


@app.command("config")
def show_config():
    """Show the active configuration."""
    config = _get_config()
    params = dict(config.provider.params)
    if "api_key" in params:
        params["api_key"] = sanitize_api_key(str(params["api_key"]))
    typer.echo(json.dumps({
        "path": str(config.config_path),
        "provider": config.provider.name,
        "params": params,
        "max_prompt_tags": config.max_prompt_tags,
        "tag_token_budget": config.tag_token_budget,
        "timeout": config.timeout,
        "max_attempts": config.max_attempts,
        "retry_quota": config.retry_quota,
        "full_log": config.full_log,
    }, indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
