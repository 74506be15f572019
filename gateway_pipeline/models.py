"""Pydantic models for the documents read at the pipeline boundary."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gateway_pipeline.errors import DocumentParseError, GatewayConfigError

BACKEND_KEY = "x-google-backend"

HTTP_METHODS = frozenset({"get", "put", "post", "delete", "options", "head", "patch", "trace"})


class HostEntry(BaseModel):
    url: str
    description: str | None = None

    def as_server(self) -> dict[str, str]:
        server = {"url": self.url}
        if self.description:
            server["description"] = self.description
        return server


class GatewayDefinition(BaseModel):
    """One gateway entry of ``config.json``."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    description: str | None = None
    version: str | None = None
    hosts: list[HostEntry] = Field(..., min_length=1)
    services: list[str] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _stringify_version(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @classmethod
    def parse(cls, gateway_name: str, raw: Any) -> GatewayDefinition:
        """Validate a raw gateway entry, naming the gateway on failure."""
        if not isinstance(raw, dict):
            raise GatewayConfigError(gateway_name, f"Gateway entry must be an object: {gateway_name}")
        if "hosts" not in raw or raw["hosts"] is None:
            raise GatewayConfigError(gateway_name, f"Missing 'hosts' property for gateway: {gateway_name}")
        if not isinstance(raw["hosts"], list):
            raise GatewayConfigError(
                gateway_name, f"'hosts' property must be an array for gateway: {gateway_name}"
            )
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise GatewayConfigError(
                gateway_name, f"Invalid configuration for gateway '{gateway_name}': {exc}"
            ) from exc


class GatewayConfig(BaseModel):
    gateways: dict[str, GatewayDefinition]

    @classmethod
    def parse(cls, raw: Any) -> GatewayConfig:
        if not isinstance(raw, dict) or not isinstance(raw.get("gateways"), dict):
            raise GatewayConfigError("", "Gateway config must contain a 'gateways' object")
        gateways = {
            name: GatewayDefinition.parse(name, entry) for name, entry in raw["gateways"].items()
        }
        return cls(gateways=gateways)


class BackendAnnotation(BaseModel):
    model_config = ConfigDict(extra="allow")

    address: str = Field(..., min_length=1)


class ServiceSpec(BaseModel):
    """Shape check for a service OpenAPI/Swagger document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    swagger: str | None = None
    openapi: str | None = None
    # path items plus any x-* extensions of the Paths object
    paths: dict[str, Any] = Field(default_factory=dict)
    components: dict[str, Any] = Field(default_factory=dict)
    tags: list[dict[str, Any]] = Field(default_factory=list)
    backend: dict[str, Any] | None = Field(default=None, alias=BACKEND_KEY)

    @field_validator("paths", "components", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("swagger", "openapi", mode="before")
    @classmethod
    def _stringify_marker(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    def component(self, section: str) -> dict[str, Any]:
        return self.components.get(section) or {}


class ScriptSet(BaseModel):
    preRequest: list[str] = Field(default_factory=list)
    test: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.preRequest and not self.test


class ScriptEntry(BaseModel):
    """Scripts preserved for one request, keyed by ``METHOD:path``."""

    path: str
    method: str
    url: Any = None
    scripts: ScriptSet


class CollectionInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    description: Any = None


class PostmanCollection(BaseModel):
    """Envelope check for a Postman collection; items stay plain dicts."""

    model_config = ConfigDict(extra="allow")

    info: CollectionInfo = Field(default_factory=CollectionInfo)
    item: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def check(cls, data: Any, source: str) -> dict[str, Any]:
        """Validate the envelope and hand back the original dict."""
        try:
            cls.model_validate(data)
        except ValidationError as exc:
            raise DocumentParseError(Path(source), str(exc)) from exc
        return data
