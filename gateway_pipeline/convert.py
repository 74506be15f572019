"""Format conversion between Swagger 2.0 and OpenAPI 3.0 via external tools.

``SpecConverter`` normalises service specs to OpenAPI 3.0 before merging;
``SwaggerConverter`` turns finished gateway specs into the Swagger 2.0 flavour
Google API Gateway accepts, then validates them.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import structlog

from gateway_pipeline.backend_validation import validate_backend_addresses
from gateway_pipeline.documents import load_yaml, write_yaml
from gateway_pipeline.errors import ExternalToolError, UnsupportedSpecFormatError

logger = structlog.get_logger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def spec_version(document: Any) -> tuple[str | None, str | None]:
    """Return the (swagger, openapi) version markers as strings."""
    if not isinstance(document, dict):
        return None, None
    swagger = document.get("swagger")
    openapi = document.get("openapi")
    return (
        None if swagger is None else str(swagger),
        None if openapi is None else str(openapi),
    )


def run_tool(runner: Runner, command: Sequence[str], **kwargs: Any) -> subprocess.CompletedProcess:
    """Run an external tool, raising ExternalToolError on failure."""
    logger.debug("external_tool_started", command=" ".join(command))
    try:
        return runner(list(command), check=True, **kwargs)
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.decode() if isinstance(exc.stderr, bytes) else (exc.stderr or "")
        raise ExternalToolError(command, exc.returncode, stderr.strip()) from exc
    except OSError as exc:
        raise ExternalToolError(command, None, str(exc)) from exc


class SpecConverter:
    """Normalise service specs to OpenAPI 3.0.x."""

    def __init__(
        self,
        generate_dir: Path,
        command: Sequence[str] = ("npx", "swagger2openapi"),
        runner: Runner = subprocess.run,
    ) -> None:
        self.generate_dir = Path(generate_dir)
        self.command = list(command)
        self.runner = runner

    def output_path(self, spec_path: Path, gateway_name: str) -> Path:
        return self.generate_dir / f"{Path(spec_path).stem}-converted-{gateway_name}.yaml"

    def normalize(self, spec_path: Path, gateway_name: str) -> Path:
        spec_path = Path(spec_path)
        swagger, openapi = spec_version(load_yaml(spec_path))

        if swagger == "2.0":
            logger.info("converting_swagger_spec", file=str(spec_path), gateway=gateway_name)
            converted = self.output_path(spec_path, gateway_name)
            self.generate_dir.mkdir(parents=True, exist_ok=True)
            run_tool(self.runner, [*self.command, "-o", str(converted), str(spec_path)])
            # converter output formatting varies; re-serialise canonically
            write_yaml(converted, load_yaml(converted))
            return converted

        if openapi is not None and openapi.startswith("3.0."):
            logger.debug("spec_already_openapi3", file=str(spec_path))
            return spec_path

        raise UnsupportedSpecFormatError(spec_path)


class SwaggerConverter:
    """Convert gateway OpenAPI 3.0 specs to validated Swagger 2.0."""

    def __init__(
        self,
        converter_command: Sequence[str] = ("npx", "api-spec-converter"),
        validator_command: Sequence[str] = ("npx", "swagger-cli"),
        runner: Runner = subprocess.run,
    ) -> None:
        self.converter_command = list(converter_command)
        self.validator_command = list(validator_command)
        self.runner = runner

    @staticmethod
    def output_path(spec_path: Path) -> Path:
        return spec_path.with_name(f"{spec_path.stem}-swagger.yaml")

    def convert(self, spec_path: Path) -> Path:
        spec_path = Path(spec_path)
        out_path = self.output_path(spec_path)
        with open(out_path, "w", encoding="utf-8") as out:
            run_tool(
                self.runner,
                [*self.converter_command, "-f", "openapi_3", "-t", "swagger_2", "-s", "yaml", str(spec_path)],
                stdout=out,
            )
        run_tool(self.runner, [*self.validator_command, "validate", str(out_path)])
        annotations = validate_backend_addresses(out_path)
        logger.info(
            "gateway_spec_converted",
            source=spec_path.name,
            output=out_path.name,
            backend_annotations=annotations,
        )
        return out_path


def convert_gateway_specs(gateway_dir: Path, converter: SwaggerConverter) -> list[Path]:
    """Convert every OpenAPI 3.0 gateway spec in ``gateway_dir``.

    Files that are not OpenAPI 3.0 (including earlier ``-swagger.yaml``
    outputs) are skipped. The first failure propagates.
    """
    converted = []
    for spec_path in sorted(Path(gateway_dir).glob("*.yaml")):
        _, openapi = spec_version(load_yaml(spec_path))
        if openapi is None or not openapi.startswith("3.0"):
            logger.info("skipping_non_openapi3", file=spec_path.name)
            continue
        converted.append(converter.convert(spec_path))
    return converted
