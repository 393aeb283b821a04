"""Typer CLI for the proposal review pipeline."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from proposal_review.config import Settings, configure_logging
from proposal_review.llm_client import (
    ExternalServiceError,
    LLMAuthError,
    ReviewTimeoutError,
    build_llm_client,
    fetch_available_model_ids,
)
from proposal_review.output import render_markdown_report
from proposal_review.reviewer import ReviewExtractor
from proposal_review.schema import ReviewRequest, ReviewResult, ReviewValidationError

app = typer.Typer(help="Grant proposal review assistant backed by a language model.")


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(code=2) from error


def _read_text_option(value: str | None, path: Path | None, *, name: str) -> str | None:
    """Resolve a field given either inline or as a file path."""
    if value is not None and path is not None:
        raise typer.BadParameter(f"Provide --{name} or --{name}-file, not both.")
    if path is not None:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as error:
            raise typer.BadParameter(f"--{name}-file must be UTF-8 text.") from error
    return value


async def _run_review(
    settings: Settings, request: ReviewRequest, *, trust_env: bool
) -> ReviewResult:
    async with build_llm_client(settings, trust_env=trust_env) as client:
        return await ReviewExtractor(client=client, settings=settings).review(request)


@app.command("review")
def review_command(
    abstract: Annotated[str | None, typer.Option(help="Proposal abstract text.")] = None,
    objectives: Annotated[str | None, typer.Option(help="Proposal objectives text.")] = None,
    abstract_file: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, help="Read the abstract from a file."),
    ] = None,
    objectives_file: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, help="Read the objectives from a file."),
    ] = None,
    model: Annotated[str | None, typer.Option(help="Override reviewer model.")] = None,
    output_format: Annotated[str, typer.Option(help="Output format: md|json.")] = "md",
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
    debug: Annotated[bool, typer.Option(help="Enable raw prompt/response logging.")] = False,
) -> None:
    """Review one proposal and print the structured verdict."""
    if output_format not in {"md", "json"}:
        raise typer.BadParameter("Expected one of: md, json.", param_hint="--output-format")

    settings = _load_settings()
    configure_logging("DEBUG" if debug else settings.log_level)
    if model:
        settings = replace(settings, model=model)

    try:
        request = ReviewRequest.from_fields(
            abstract=_read_text_option(abstract, abstract_file, name="abstract"),
            objectives=_read_text_option(objectives, objectives_file, name="objectives"),
        )
        result = asyncio.run(_run_review(settings, request, trust_env=trust_env))
    except ReviewValidationError as error:
        typer.echo(f"Invalid proposal: {error}")
        raise typer.Exit(code=2) from error
    except LLMAuthError as error:
        typer.echo(f"Review failed: {error}")
        raise typer.Exit(code=1) from error
    except ReviewTimeoutError as error:
        typer.echo(f"Review failed: generation service timed out after {error.timeout_seconds}s.")
        raise typer.Exit(code=1) from error
    except ExternalServiceError as error:
        typer.echo(f"Review failed: status={error.status_code} endpoint={error.endpoint}.")
        raise typer.Exit(code=1) from error

    if output_format == "json":
        payload = result.to_payload()
        payload["needsManualReview"] = result.needs_manual_review
        payload["modelUsed"] = result.model_used
        typer.echo(json.dumps(payload, indent=2))
    else:
        typer.echo(render_markdown_report(result))


async def _check_auth(settings: Settings, *, trust_env: bool) -> list[str]:
    async with build_llm_client(settings, trust_env=trust_env) as client:
        return await fetch_available_model_ids(client=client)


@app.command("auth-check")
def auth_check_command(
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate API key setup and that the reviewer model is available."""
    settings = _load_settings()
    configure_logging(settings.log_level)

    try:
        model_ids = asyncio.run(_check_auth(settings, trust_env=trust_env))
    except LLMAuthError as error:
        typer.echo(f"Auth check failed: {error}")
        raise typer.Exit(code=1) from error
    except ReviewTimeoutError as error:
        typer.echo("Auth check failed: generation service timed out.")
        raise typer.Exit(code=1) from error
    except ExternalServiceError as error:
        typer.echo(f"Auth check failed: status={error.status_code} endpoint={error.endpoint}.")
        raise typer.Exit(code=1) from error

    typer.echo(f"API key accepted by {settings.base_url}.")
    if settings.model in model_ids:
        typer.echo(f"Model '{settings.model}' is available.")
    else:
        typer.echo(f"Warning: model '{settings.model}' was not listed by the service.")
