"""Build one OpenAPI 3.0 spec per gateway from per-service specs.

Gateways, their hosts and their services are declared in
``gateway/config.json``. Every gateway is built in memory first; files are
written only once all of them succeeded.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from gateway_pipeline.convert import SpecConverter
from gateway_pipeline.documents import deep_merge, dump_yaml, load_json, load_yaml, replace_atomically
from gateway_pipeline.errors import (
    ConfigurationError,
    DocumentParseError,
    MissingServiceSpecsError,
)
from gateway_pipeline.models import (
    BACKEND_KEY,
    HTTP_METHODS,
    GatewayConfig,
    GatewayDefinition,
    ServiceSpec,
)

logger = structlog.get_logger(__name__)

COMPONENT_SECTIONS = ("schemas", "securitySchemes", "responses", "parameters")


def load_gateway_config(path: Path) -> GatewayConfig:
    return GatewayConfig.parse(load_json(path))


def load_service_spec(path: Path) -> ServiceSpec:
    try:
        return ServiceSpec.model_validate(load_yaml(path) or {})
    except ValidationError as exc:
        raise DocumentParseError(Path(path), str(exc)) from exc


def service_spec_path(services_dir: Path, service_name: str) -> Path:
    return Path(services_dir) / f"{service_name}.yaml"


def new_gateway_document(gateway_name: str, gateway: GatewayDefinition) -> dict[str, Any]:
    return {
        "openapi": "3.0.0",
        "info": {
            "title": gateway.name or gateway_name,
            "description": gateway.description or "",
            "version": gateway.version or "1.0.0",
            "license": {"name": "MIT", "url": "https://opensource.org/licenses/MIT"},
        },
        "servers": [host.as_server() for host in gateway.hosts],
        "paths": {},
        "components": {section: {} for section in COMPONENT_SECTIONS},
    }


def merge_service_spec(out: dict[str, Any], spec: ServiceSpec, seen_tags: set[str]) -> None:
    """Deep-merge one (OpenAPI 3.0) service spec into the gateway document."""
    deep_merge(out["paths"], spec.paths)
    for section in COMPONENT_SECTIONS:
        deep_merge(out["components"].setdefault(section, {}), spec.component(section))
    for tag in spec.tags:
        name = tag.get("name")
        if name and name not in seen_tags:
            out.setdefault("tags", []).append(deepcopy(tag))
            seen_tags.add(name)


def find_fallback_backend(spec_paths: list[Path]) -> dict[str, Any] | None:
    """First top-level x-google-backend among the original service specs."""
    for path in spec_paths:
        backend = load_service_spec(path).backend
        if backend:
            return backend
    return None


def apply_backend_fallback(paths: dict[str, Any], backend: dict[str, Any]) -> int:
    applied = 0
    for path_item in paths.values():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            if not operation.get(BACKEND_KEY):
                operation[BACKEND_KEY] = deepcopy(backend)
                applied += 1
    return applied


def find_missing_services(config: GatewayConfig, services_dir: Path) -> dict[str, list[str]]:
    missing = {}
    for gateway_name, gateway in config.gateways.items():
        absent = [
            service for service in gateway.services
            if not service_spec_path(services_dir, service).is_file()
        ]
        if absent:
            missing[gateway_name] = absent
    return missing


def build_gateway_spec(
    gateway_name: str,
    gateway: GatewayDefinition,
    services_dir: Path,
    converter: SpecConverter,
) -> dict[str, Any]:
    out = new_gateway_document(gateway_name, gateway)
    seen_tags: set[str] = set()
    originals = [service_spec_path(services_dir, service) for service in gateway.services]

    absent = [path.stem for path in originals if not path.is_file()]
    if absent:
        raise MissingServiceSpecsError({gateway_name: absent})

    for original in originals:
        normalized = converter.normalize(original, gateway_name)
        merge_service_spec(out, load_service_spec(normalized), seen_tags)

    backend = find_fallback_backend(originals)
    if backend:
        applied = apply_backend_fallback(out["paths"], backend)
        logger.info("backend_fallback_applied", gateway=gateway_name, operations=applied)

    logger.info(
        "gateway_spec_built",
        gateway=gateway_name,
        services=len(originals),
        paths=len(out["paths"]),
    )
    return out


def build_gateway_specs(
    config: GatewayConfig,
    services_dir: Path,
    converter: SpecConverter,
) -> dict[str, dict[str, Any]]:
    """Build every gateway in declaration order.

    Missing service specs are collected across all gateways and reported
    together before any conversion happens.
    """
    missing = find_missing_services(config, services_dir)
    if missing:
        for gateway_name, services in missing.items():
            logger.error("missing_service_specs", gateway=gateway_name, services=services)
        raise MissingServiceSpecsError(missing)

    return {
        gateway_name: build_gateway_spec(gateway_name, gateway, services_dir, converter)
        for gateway_name, gateway in config.gateways.items()
    }


def write_gateway_specs(specs: dict[str, dict[str, Any]], gateway_dir: Path) -> list[Path]:
    gateway_dir = Path(gateway_dir)
    gateway_dir.mkdir(parents=True, exist_ok=True)
    rendered = {name: dump_yaml(spec) for name, spec in specs.items()}

    written = []
    for name, text in rendered.items():
        target = gateway_dir / f"{name}.yaml"
        replace_atomically(target, text)
        logger.info("gateway_spec_written", gateway=name, file=str(target))
        written.append(target)
    return written


def generate_gateway_specs(
    config_path: Path,
    services_dir: Path,
    gateway_dir: Path,
    converter: SpecConverter,
) -> list[Path]:
    if not Path(config_path).is_file():
        raise ConfigurationError(f"Gateway config not found: {config_path}")
    config = load_gateway_config(config_path)
    service_count = len(list(Path(services_dir).glob("*.yaml")))
    logger.info("service_specs_found", count=service_count, services_dir=str(services_dir))
    specs = build_gateway_specs(config, services_dir, converter)
    return write_gateway_specs(specs, gateway_dir)
