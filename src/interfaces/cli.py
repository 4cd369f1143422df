"""Command-line interface for the resource write pipeline."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict

import typer
from dotenv import load_dotenv

from application.services.display_value_resolver import DisplayValueResolver
from application.services.resource_write_pipeline import WriteOptions
from composition_root import bootstrap_write_pipeline, shutdown_write_pipeline
from config.pipeline_config import get_pipeline_config
from domain.resource_models import Resource, ResourceKind
from domain.violation_models import TemplateViolationError

# --- Environment Loading ---
load_dotenv()


# --- Typer App ---
app = typer.Typer(
    help="Template-driven enrichment and validation of metadata resources.",
    add_completion=False,
)


def _load_resource(path: str) -> Resource:
    try:
        data: Dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.echo(f"❌ Cannot read resource file {path}: {e}")
        raise typer.Exit(code=2)
    return Resource.from_dict(data)


def _pipeline_config(templates_path: str | None):
    config = get_pipeline_config()
    if templates_path:
        config = replace(config, templates_path=templates_path)
    return config


# --- CLI Commands ---


@app.command("check")
def check(
    resource_path: str = typer.Option(..., "--resource", "-r", help="Path to a JSON resource"),
    templates_path: str = typer.Option(None, "--templates", "-t", help="Path to the templates YAML"),
    skip_validation: bool = typer.Option(False, "--skip-validation", help="Enrich without validating"),
    lenient: bool = typer.Option(False, "--lenient", help="Do not enforce minimum value counts"),
):
    """Run a resource through the write pipeline and print the enriched result."""
    resource = _load_resource(resource_path)
    options = WriteOptions(skip_validation=skip_validation, enforce_min_values=False if lenient else None)

    config = _pipeline_config(templates_path)

    async def run_check():
        try:
            pipeline = await bootstrap_write_pipeline(config)
            return await pipeline.save(resource, options)
        finally:
            await shutdown_write_pipeline(config)

    try:
        report = asyncio.run(run_check())
    except TemplateViolationError as e:
        typer.echo(f"❌ Resource rejected ({len(e.violations.errors)} violation(s)):")
        for violation in e.violations.errors:
            typer.echo(f"   - {violation}")
        raise typer.Exit(code=1)

    for notice in report.notices:
        typer.echo(f"⚠️  {notice}")
    typer.echo(json.dumps(report.resource.to_dict(), indent=2, ensure_ascii=False))


@app.command("templates")
def templates(
    kind: str = typer.Option(None, "--kind", "-k", help="Resource kind (items, item_sets, media...)"),
    templates_path: str = typer.Option(None, "--templates", "-t", help="Path to the templates YAML"),
):
    """List the templates, optionally only those usable for a resource kind."""
    try:
        resource_kind = ResourceKind.parse(kind) if kind else None
    except ValueError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(code=2)

    config = _pipeline_config(templates_path)

    async def run_listing():
        try:
            pipeline = await bootstrap_write_pipeline(config)
            repository = pipeline.template_repository
            if resource_kind is None:
                return await repository.list_templates()
            return await repository.templates_for_kind(resource_kind)
        finally:
            await shutdown_write_pipeline(config)

    found = asyncio.run(run_listing())
    if not found:
        typer.echo("No templates found.")
        return

    for template in found:
        kinds = ", ".join(k.value for k in template.settings.use_for_resources) or "all"
        typer.echo(f"[{template.id}] {template.label} ({len(template.bindings)} properties, for {kinds})")


@app.command("display")
def display(
    resource_path: str = typer.Option(..., "--resource", "-r", help="Path to a JSON resource"),
    templates_path: str = typer.Option(None, "--templates", "-t", help="Path to the templates YAML"),
    hide_private: bool = typer.Option(False, "--hide-private", help="Drop private values"),
):
    """Print the display values of a resource, in template order."""
    resource = _load_resource(resource_path)
    config = _pipeline_config(templates_path)
    hide_private = hide_private or config.skip_private_values

    async def load_template():
        try:
            pipeline = await bootstrap_write_pipeline(config)
            if resource.template_id is None:
                return None
            return await pipeline.template_repository.get_template(resource.template_id)
        finally:
            await shutdown_write_pipeline(config)

    template = asyncio.run(load_template())
    values = DisplayValueResolver().display_values(template, resource, hide_private=hide_private)

    for term, term_values in values.items():
        texts = [v.text or v.uri or (f"#{v.linked_resource_id}" if v.is_resource else "") for v in term_values]
        typer.echo(f"{term}: {' | '.join(t for t in texts if t)}")


if __name__ == "__main__":
    app()
