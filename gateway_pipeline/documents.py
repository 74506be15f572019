"""Reading, writing and merging YAML/JSON documents."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from gateway_pipeline.errors import DocumentParseError


def load_yaml(path):
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise DocumentParseError(path, str(exc)) from exc


def load_json(path):
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise DocumentParseError(path, str(exc)) from exc


def dump_yaml(document: Any) -> str:
    """Canonical YAML rendering: insertion order kept, no anchors/aliases."""
    return yaml.dump(document, Dumper=_NoAliasDumper, sort_keys=False, allow_unicode=True)


def write_yaml(path, document):
    _write_text(Path(path), dump_yaml(document))


def write_json(path, document):
    _write_text(Path(path), json.dumps(document, indent=2, ensure_ascii=False) + "\n")


def replace_atomically(path: Path, text: str) -> None:
    """Write through a sibling temp file and rename over the target."""
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def deep_merge(target, source):
    """Merge ``source`` into ``target`` and return ``target``.

    Nested mappings merge key by key; any other value in ``source`` (lists
    included) replaces the target value wholesale.
    """
    if target is None:
        target = {}
    for k, v in (source or {}).items():
        if k in target and isinstance(target[k], dict) and isinstance(v, dict):
            deep_merge(target[k], v)
        else:
            target[k] = deepcopy(v)
    return target


class _NoAliasDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True
