from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import pytest
import yaml


def write_yaml_file(path: Path, document: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


def write_json_file(path: Path, document: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


def openapi_service(paths: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {"openapi": "3.0.3", "info": {"title": "svc", "version": "1"}, "paths": paths, **extra}


class FakeSwagger2OpenApi:
    """Stands in for ``swagger2openapi -o <out> <in>``."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def __call__(self, argv: list[str], check: bool = False, **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(argv)
        out = Path(argv[argv.index("-o") + 1])
        source = yaml.safe_load(Path(argv[-1]).read_text(encoding="utf-8"))
        converted = {
            "openapi": "3.0.0",
            "info": source.get("info", {}),
            "paths": source.get("paths", {}),
            "components": {"schemas": source.get("definitions", {})},
        }
        # deliberately non-canonical formatting
        out.write_text(json.dumps(converted), encoding="utf-8")
        return subprocess.CompletedProcess(argv, 0)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = text or json.dumps(self._payload)

    def json(self) -> Any:
        return self._payload


class FakeSession:
    """Minimal ``requests.Session`` double routing on (method, path)."""

    def __init__(self, routes: dict[tuple[str, str], FakeResponse] | None = None) -> None:
        self.routes = routes or {}
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        path = url.split("://", 1)[-1]
        path = "/" + path.split("/", 1)[1] if "/" in path else "/"
        self.calls.append({"method": method, "path": path, **kwargs})
        try:
            return self.routes[(method, path)]
        except KeyError:
            return FakeResponse(404, {"error": "not found"})


@pytest.fixture
def fake_swagger2openapi() -> FakeSwagger2OpenApi:
    return FakeSwagger2OpenApi()


@pytest.fixture
def pipeline_dirs(tmp_path: Path) -> dict[str, Path]:
    dirs = {
        "services": tmp_path / "services",
        "gateway": tmp_path / "gateway",
        "generate": tmp_path / ".generate",
        "collections": tmp_path / "postman-collections",
    }
    for path in dirs.values():
        path.mkdir()
    return dirs
