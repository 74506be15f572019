"""Exception hierarchy for the gateway pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path


class PipelineError(RuntimeError):
    """Base class for every build-blocking failure."""


class ConfigurationError(PipelineError):
    """Raised when required configuration is missing or malformed."""


class GatewayConfigError(ConfigurationError):
    """Raised when a gateway entry in config.json is invalid."""

    def __init__(self, gateway_name: str, message: str) -> None:
        super().__init__(message)
        self.gateway_name = gateway_name


class MissingServiceSpecsError(ConfigurationError):
    """Raised when gateways reference service specs that do not exist."""

    def __init__(self, missing: Mapping[str, Sequence[str]]) -> None:
        self.missing = {name: list(services) for name, services in missing.items()}
        details = "; ".join(
            f"'{name}': {', '.join(services)}" for name, services in self.missing.items()
        )
        super().__init__(f"Missing service specs for gateway {details}")


class DocumentParseError(PipelineError):
    """Raised when a YAML or JSON document cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Could not parse {path}: {reason}")
        self.path = path


class UnsupportedSpecFormatError(PipelineError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Unsupported spec format in file: {path}")
        self.path = path


class ExternalToolError(PipelineError):
    """Raised when a converter or validator subprocess fails."""

    def __init__(self, command: Sequence[str], returncode: int | None, detail: str = "") -> None:
        rendered = " ".join(command)
        message = f"Command failed ({returncode}): {rendered}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode


class ValidationFailure(PipelineError):
    """Raised when a converted document breaks gateway requirements."""


class MissingBackendAddressError(ValidationFailure):
    def __init__(self, location: str, path: Path) -> None:
        super().__init__(f"Missing 'address' in x-google-backend at {location} in {path}")
        self.location = location
        self.path = path


class BackendAnnotationAbsentError(ValidationFailure):
    def __init__(self, path: Path) -> None:
        super().__init__(f"No x-google-backend found in {path}")
        self.path = path


class PostmanApiError(PipelineError):
    """Raised for non-2xx responses or transport failures against the Postman API."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
