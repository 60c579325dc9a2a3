"""contextir CLI: assemble, budget and inspect context from captured items."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import yaml

from contextir.config import ContextIRSettings, load_config
from contextir.context.query import QueryContextResult, build_query_context, default_tab_info
from contextir.context.quality import describe_quality
from contextir.context.sources import build_sources, get_source_quality
from contextir.core.logging import setup_logging
from contextir.models.extracted import ContextTabInfo, ExtractedContent


@click.group()
def cli() -> None:
    """Context IR assembly CLI."""
    setup_logging()


def _load_settings(config_path: str | None) -> ContextIRSettings:
    settings = load_config(config_path) if config_path else ContextIRSettings()
    setup_logging(settings.logging.level, json_output=settings.logging.json_output)
    return settings


def _load_items(items_path: Path) -> list[tuple[ExtractedContent, ContextTabInfo]]:
    """Read a YAML/JSON list of extracted items, each with an optional ``tab`` mapping."""
    loaded = yaml.safe_load(items_path.read_text(encoding="utf-8")) or []
    if not isinstance(loaded, list):
        raise ValueError("items file must contain a top-level list")

    items: list[tuple[ExtractedContent, ContextTabInfo]] = []
    for position, raw in enumerate(loaded):
        if not isinstance(raw, dict):
            raise ValueError(f"item {position} must be a mapping")
        fields: dict[str, Any] = dict(raw)
        tab = fields.pop("tab", None)
        extracted = ExtractedContent.model_validate(fields)
        if tab is None:
            tab_info = default_tab_info(extracted, position)
        else:
            tab_info = ContextTabInfo.model_validate(tab)
        items.append((extracted, tab_info))
    return items


def _assemble(
    items_path: Path,
    task: str,
    max_tokens: int | None,
    config_path: str | None,
) -> QueryContextResult:
    try:
        settings = _load_settings(config_path)
        items = _load_items(items_path)
        budget = settings.budget.as_options(max_tokens=max_tokens)
        return build_query_context(
            [extracted for extracted, _ in items],
            [tab_info for _, tab_info in items],
            task,
            settings.envelope.as_options(),
            budget=budget,
        )
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        raise click.ClickException(str(exc)) from exc


_ITEMS_ARGUMENT = click.argument(
    "items_path",
    metavar="ITEMS_FILE",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
)
_CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML config file; CONTEXTIR_* environment variables apply either way.",
)


@cli.command("render")
@_ITEMS_ARGUMENT
@click.option("--task", required=True, help="The user's question or instruction.")
@click.option("--max-tokens", type=click.IntRange(min=0), default=None)
@_CONFIG_OPTION
def render_command(
    items_path: Path,
    task: str,
    max_tokens: int | None,
    config_path: str | None,
) -> None:
    """Print the rendered context for ITEMS_FILE."""
    result = _assemble(items_path, task, max_tokens, config_path)
    click.echo(result.text)


@cli.command("budget")
@_ITEMS_ARGUMENT
@click.option("--task", required=True)
@click.option("--max-tokens", type=click.IntRange(min=0), required=True)
@_CONFIG_OPTION
def budget_command(
    items_path: Path,
    task: str,
    max_tokens: int,
    config_path: str | None,
) -> None:
    """Show which degrade stage ITEMS_FILE lands on and what was cut."""
    result = _assemble(items_path, task, max_tokens, config_path)
    budget = result.envelope.budget
    click.echo(f"stage: {budget.degrade_stage}")
    click.echo(f"used_tokens: {budget.used_tokens}/{budget.max_tokens}")
    click.echo(f"chunks: {len(result.envelope.chunks)}")
    if not budget.cuts:
        click.echo("cuts: none")
        return
    click.echo("cuts:")
    for cut in budget.cuts:
        click.echo(f"- {cut.type} {cut.anchor} ({cut.original_tokens} tokens, {cut.reason})")


@cli.command("inspect")
@_ITEMS_ARGUMENT
@click.option("--verbose", "-v", is_flag=True, help="Describe each quality hint.")
def inspect_command(items_path: Path, verbose: bool) -> None:
    """List the sources ITEMS_FILE normalizes to."""
    try:
        sources = build_sources(_load_items(items_path))
    except (ValueError, yaml.YAMLError) as exc:
        raise click.ClickException(str(exc)) from exc

    for source in sources:
        quality = get_source_quality(source)
        line = f"{source.source_id}  {source.kind:<8} {quality:<9} {source.title}"
        if verbose:
            line += f"  ({describe_quality(quality)})"
        click.echo(line)


__all__ = ["cli"]


if __name__ == "__main__":
    cli()
