"""Typer CLI for the gateway spec and Postman collection pipeline.

Exit codes: 0 on success, 1 on any build, conversion, validation or
preservation failure. ``push-collections`` is the exception: it exits 0 even
when publishing fails so the rest of the CI workflow keeps running, while
``preserve-scripts`` exits 1 so a failed preservation blocks the push.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import structlog
import typer

from gateway_pipeline import __version__
from gateway_pipeline.clean import clean_generated
from gateway_pipeline.convert import SpecConverter, SwaggerConverter, convert_gateway_specs
from gateway_pipeline.errors import PipelineError
from gateway_pipeline.logging_support import configure_logging
from gateway_pipeline.merge_openapi import generate_gateway_specs, load_gateway_config
from gateway_pipeline.models import GatewayConfig
from gateway_pipeline.postman import (
    PostmanClient,
    gateway_base_names,
    plan_collections,
    publish_collection,
    select_workspace,
)
from gateway_pipeline.script_preservation import ScriptPreserver, preserve_scripts
from gateway_pipeline.settings import PipelineSettings

app = typer.Typer(help="Merge gateway OpenAPI specs and manage Postman collections.")

logger = structlog.get_logger(__name__)


def _settings(ctx: typer.Context) -> PipelineSettings:
    return ctx.obj


def _optional_config(gateway_dir: Path) -> GatewayConfig | None:
    config_path = gateway_dir / "config.json"
    if not config_path.is_file():
        logger.warning("gateway_config_not_found", path=str(config_path))
        return None
    return load_gateway_config(config_path)


def _client(settings: PipelineSettings) -> PostmanClient:
    return PostmanClient(
        settings.require_api_key(),
        base_url=settings.POSTMAN_API_BASE,
        timeout=settings.POSTMAN_TIMEOUT_SECONDS,
    )


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_format: str | None = typer.Option(None, help="'console' or 'json' (default from LOG_FORMAT)"),
) -> None:
    settings = PipelineSettings()
    configure_logging(
        log_level="DEBUG" if verbose else settings.LOG_LEVEL,
        log_format=log_format or settings.LOG_FORMAT,
    )
    ctx.obj = settings


@app.command("version")
def version_command() -> None:
    typer.echo(__version__)


@app.command("merge-specs")
def merge_specs_command(
    ctx: typer.Context,
    services_dir: Path | None = typer.Option(None, help="Directory of <service>.yaml specs"),
    gateway_dir: Path | None = typer.Option(None, help="Directory holding config.json and outputs"),
    generate_dir: Path | None = typer.Option(None, help="Scratch directory for converted specs"),
) -> None:
    """Build one OpenAPI 3.0 spec per gateway declared in config.json."""

    settings = _settings(ctx)
    services_dir = services_dir or settings.SERVICES_DIR
    gateway_dir = gateway_dir or settings.GATEWAY_DIR
    generate_dir = generate_dir or settings.GENERATE_DIR

    converter = SpecConverter(generate_dir, command=settings.command("SWAGGER2OPENAPI_COMMAND"))
    try:
        written = generate_gateway_specs(
            gateway_dir / "config.json", services_dir, gateway_dir, converter
        )
    except PipelineError as exc:
        logger.error("gateway_spec_generation_failed", error=str(exc))
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Generated {len(written)} gateway specs in {gateway_dir}")


@app.command("convert-all")
def convert_all_command(
    ctx: typer.Context,
    gateway_dir: Path | None = typer.Option(None, help="Directory of generated gateway specs"),
) -> None:
    """Convert gateway specs to Swagger 2.0 and validate x-google-backend."""

    settings = _settings(ctx)
    gateway_dir = gateway_dir or settings.GATEWAY_DIR
    converter = SwaggerConverter(
        converter_command=settings.command("API_SPEC_CONVERTER_COMMAND"),
        validator_command=settings.command("SWAGGER_CLI_COMMAND"),
    )
    try:
        converted = convert_gateway_specs(gateway_dir, converter)
    except PipelineError as exc:
        logger.error("gateway_conversion_failed", error=str(exc))
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1)

    for path in converted:
        typer.echo(f"Converted and validated: {path.name}")


@app.command("preserve-scripts")
def preserve_scripts_command(
    ctx: typer.Context,
    existing_dir: Path | None = typer.Option(
        None, help="Read prior collections from this directory instead of the Postman API"
    ),
    collections_dir: Path | None = typer.Option(None, help="Directory of regenerated collections"),
    gateway_dir: Path | None = typer.Option(None, help="Directory holding config.json"),
) -> None:
    """Copy pre-request/test scripts from prior collections into new ones."""

    settings = _settings(ctx)
    collections_dir = collections_dir or settings.COLLECTIONS_DIR
    gateway_dir = gateway_dir or settings.GATEWAY_DIR

    try:
        if existing_dir is not None:
            def load(preserver: ScriptPreserver) -> None:
                preserver.load_from_directory(existing_dir)
        else:
            gateways = gateway_base_names(_optional_config(gateway_dir))

            def load(preserver: ScriptPreserver) -> None:
                preserver.load_from_postman(_client(settings), gateways)

        outcome = preserve_scripts(ScriptPreserver(), load, collections_dir)
    except PipelineError as exc:
        logger.error("script_preservation_failed", error=str(exc))
        typer.echo("Script preservation failed - collections will not be pushed to Postman", err=True)
        raise typer.Exit(code=1)

    if not outcome.success:
        typer.echo(
            "Script preservation validation failed - collections will not be pushed to Postman",
            err=True,
        )
        raise typer.Exit(code=1)

    typer.echo(
        f"Preserved {outcome.scripts_found} script entries, merged {outcome.scripts_merged}"
    )


@app.command("push-collections")
def push_collections_command(
    ctx: typer.Context,
    collections_dir: Path | None = typer.Option(None, help="Directory of collections to publish"),
    gateway_dir: Path | None = typer.Option(None, help="Directory holding config.json"),
) -> None:
    """Create or update the gateway collections in Postman.

    Failures are logged and the command still exits 0.
    """

    settings = _settings(ctx)
    collections_dir = collections_dir or settings.COLLECTIONS_DIR
    gateway_dir = gateway_dir or settings.GATEWAY_DIR

    try:
        client = _client(settings)

        workspace_id = None
        try:
            workspace = select_workspace(client.get_workspaces(), settings.PROJECT_NAME)
        except PipelineError as exc:
            logger.warning("workspaces_unavailable", error=str(exc))
            workspace = None
        if workspace is not None:
            workspace_id = workspace.get("id")
            logger.info("using_workspace", name=workspace.get("name"), workspace_id=workspace_id)
        else:
            logger.info("using_personal_workspace")

        if not collections_dir.is_dir():
            logger.warning("collections_dir_not_found", directory=str(collections_dir))
            return

        now = datetime.now()
        targets = plan_collections(
            _optional_config(gateway_dir), now, settings.PROJECT_NAME
        )
        for target in targets:
            path = collections_dir / target.file
            if not path.is_file():
                logger.warning("collection_file_not_found", file=str(path))
                continue
            publish_collection(client, path, target.name, target.display_name, workspace_id, now)
    except Exception as exc:
        # publishing never blocks the workflow, whatever the Postman API returned
        logger.error("collection_push_failed", error=str(exc), error_type=type(exc).__name__)
        typer.echo("Continuing workflow without Postman updates...", err=True)
        return

    typer.echo("All collections pushed to Postman")


@app.command("clean")
def clean_command(
    ctx: typer.Context,
    gateway_dir: Path | None = typer.Option(None),
    generate_dir: Path | None = typer.Option(None),
) -> None:
    """Remove generated gateway specs and the conversion scratch directory."""

    settings = _settings(ctx)
    removed = clean_generated(
        gateway_dir or settings.GATEWAY_DIR, generate_dir or settings.GENERATE_DIR
    )
    if removed:
        typer.echo(f"Removed {removed} generated files.")
    else:
        typer.echo("No files to clean.")


if __name__ == "__main__":
    app()
