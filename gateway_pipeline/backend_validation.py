"""Post-conversion gate for ``x-google-backend`` annotations."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from gateway_pipeline.documents import load_yaml
from gateway_pipeline.errors import BackendAnnotationAbsentError, MissingBackendAddressError
from gateway_pipeline.models import BACKEND_KEY, BackendAnnotation

logger = structlog.get_logger(__name__)


def check_backend_addresses(document: Any, source: Path) -> int:
    """Walk ``document`` and return how many backend annotations it holds.

    Raises MissingBackendAddressError at the first annotation without an
    address, naming the dotted path of the object that carries it, and
    BackendAnnotationAbsentError when there are none at all.
    """
    found = 0

    def walk(node: Any, location: str) -> None:
        nonlocal found
        if isinstance(node, dict):
            children = node.items()
        elif isinstance(node, list):
            children = ((str(index), value) for index, value in enumerate(node))
        else:
            return
        for key, value in children:
            if key == BACKEND_KEY and isinstance(node, dict):
                found += 1
                try:
                    BackendAnnotation.model_validate(value)
                except ValidationError as exc:
                    raise MissingBackendAddressError(location or "<root>", source) from exc
            walk(value, f"{location}.{key}" if location else str(key))

    walk(document, "")
    if not found:
        raise BackendAnnotationAbsentError(source)
    return found


def validate_backend_addresses(path: Path) -> int:
    path = Path(path)
    count = check_backend_addresses(load_yaml(path), path)
    logger.debug("backend_annotations_valid", file=str(path), count=count)
    return count
