"""Carry hand-written Postman scripts over to regenerated collections.

Scripts are matched by ``METHOD:path`` rather than by item id, because
regeneration rebuilds the item tree from scratch.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from gateway_pipeline.documents import load_json, write_json
from gateway_pipeline.errors import PipelineError
from gateway_pipeline.models import PostmanCollection, ScriptEntry, ScriptSet
from gateway_pipeline.postman import STAGING_MARKER, PostmanClient, parse_collection_timestamp

logger = structlog.get_logger(__name__)

COLLECTION_SUFFIX = ".postman_collection.json"
LISTENERS = (("prerequest", "preRequest"), ("test", "test"))


def url_path(url: Any) -> Any:
    """The matching part of a Postman ``request.url``."""
    if isinstance(url, dict):
        path = url.get("path")
        if path:
            return path
        return url.get("raw", "")
    return url or ""


def make_script_key(method: str | None, url: Any) -> str:
    path = url_path(url)
    if isinstance(path, list):
        path = "/".join(str(segment) for segment in path)
    return f"{(method or 'GET').upper()}:{path}"


def _request_parts(request: Any) -> tuple[str | None, Any]:
    if isinstance(request, str):
        return "GET", request
    return request.get("method"), request.get("url")


def _exec_lines(events: list[dict[str, Any]], listen: str) -> list[str]:
    for event in events:
        if event.get("listen") == listen:
            exec_ = (event.get("script") or {}).get("exec") or []
            return [exec_] if isinstance(exec_, str) else list(exec_)
    return []


class ScriptPreserver:
    def __init__(self) -> None:
        self.existing_scripts: dict[str, ScriptEntry] = {}

    # extraction

    def extract_from_items(self, items: list[dict[str, Any]], parent_path: str = "") -> None:
        for item in items:
            name = item.get("name") or ""
            current_path = f"{parent_path}/{name}" if parent_path else name

            request = item.get("request")
            if request and item.get("event"):
                method, url = _request_parts(request)
                scripts = ScriptSet(
                    preRequest=_exec_lines(item["event"], "prerequest"),
                    test=_exec_lines(item["event"], "test"),
                )
                if not scripts.empty:
                    self._record(
                        make_script_key(method, url),
                        ScriptEntry(path=current_path, method=(method or "GET").upper(), url=url, scripts=scripts),
                    )

            if isinstance(item.get("item"), list):
                self.extract_from_items(item["item"], current_path)

    def _record(self, key: str, entry: ScriptEntry) -> None:
        previous = self.existing_scripts.get(key)
        if previous is not None:
            logger.warning(
                "script_key_collision",
                key=key,
                replaced=previous.path,
                kept=entry.path,
            )
        self.existing_scripts[key] = entry

    def extract_from_collection(self, collection: dict[str, Any], label: str = "") -> None:
        self.extract_from_items(collection.get("item") or [], label)

    def extract_from_collection_file(self, path: Path) -> None:
        path = Path(path)
        if not path.is_file():
            logger.warning("collection_not_found", file=str(path))
            return
        before = len(self.existing_scripts)
        collection = PostmanCollection.check(load_json(path), str(path))
        self.extract_from_collection(collection)
        logger.info(
            "scripts_extracted",
            file=path.name,
            entries=len(self.existing_scripts) - before,
        )

    def load_from_directory(self, directory: Path) -> None:
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning("existing_collections_dir_not_found", directory=str(directory))
            return
        for path in sorted(directory.glob(f"*{COLLECTION_SUFFIX}")):
            self.extract_from_collection_file(path)

    def load_from_postman(self, client: PostmanClient, gateways: Mapping[str, str]) -> None:
        """Pull scripts from the latest published collection of each gateway.

        ``gateways`` maps gateway type (``app``) to its base collection name
        (``App API Gateway``), used when no timestamped collection exists.
        """
        collections = client.get_collections()
        for gateway_type, base_name in gateways.items():
            source = latest_collection(collections, gateway_type)
            if source is None:
                source = next((c for c in collections if c.get("name") == base_name), None)
                if source is None:
                    logger.warning("no_previous_collection", gateway=gateway_type, base_name=base_name)
                    continue
                logger.info("using_base_collection", gateway=gateway_type, name=source["name"])
            else:
                logger.info("using_latest_collection", gateway=gateway_type, name=source["name"])

            collection = client.get_collection(source["uid"])
            self.extract_from_collection(collection, source["name"])

    # merging

    def merge_into_items(self, items: list[dict[str, Any]]) -> int:
        merged = 0
        for item in items:
            request = item.get("request")
            if request:
                method, url = _request_parts(request)
                entry = self.existing_scripts.get(make_script_key(method, url))
                if entry is not None:
                    self._apply(item, entry)
                    merged += 1
                    logger.debug("scripts_merged", method=entry.method, path=entry.path)

            if isinstance(item.get("item"), list):
                merged += self.merge_into_items(item["item"])
        return merged

    @staticmethod
    def _apply(item: dict[str, Any], entry: ScriptEntry) -> None:
        events = item.get("event") or []
        item["event"] = events
        for listen, field in LISTENERS:
            lines = getattr(entry.scripts, field)
            if not lines:
                continue
            event = next((e for e in events if e.get("listen") == listen), None)
            if event is not None:
                script = event.get("script") or {}
                script["exec"] = list(lines)
                event["script"] = script
            else:
                events.append({
                    "listen": listen,
                    "script": {"exec": list(lines), "type": "text/javascript"},
                })

    def merge_into_collection(self, collection: dict[str, Any]) -> int:
        return self.merge_into_items(collection.get("item") or [])

    def merge_into_collection_file(self, path: Path) -> int:
        path = Path(path)
        if not path.is_file():
            logger.warning("collection_not_found", file=str(path))
            return 0
        collection = PostmanCollection.check(load_json(path), str(path))
        merged = self.merge_into_collection(collection)
        write_json(path, collection)
        logger.info("collection_scripts_merged", file=path.name, merged=merged)
        return merged


def latest_collection(collections: list[dict[str, Any]], gateway_type: str) -> dict[str, Any] | None:
    """Most recently timestamped ``<type>-...-staging-<ts>`` collection."""
    candidates = []
    for collection in collections:
        name = collection.get("name") or ""
        if not name.startswith(f"{gateway_type}-") or STAGING_MARKER not in name:
            continue
        stamp = parse_collection_timestamp(name)
        if stamp is None:
            logger.warning("unparseable_collection_timestamp", name=name)
            continue
        candidates.append((stamp, collection))
    if not candidates:
        return None
    return max(candidates, key=lambda pair: pair[0])[1]


@dataclass
class PreservationOutcome:
    scripts_loaded: bool
    scripts_found: int
    scripts_merged: int

    @property
    def success(self) -> bool:
        return self.scripts_loaded and self.scripts_found > 0 and self.scripts_merged > 0


def preserve_scripts(
    preserver: ScriptPreserver,
    load: Callable[[ScriptPreserver], None],
    collections_dir: Path,
) -> PreservationOutcome:
    """Load prior scripts with ``load`` and merge them into every new collection.

    A failing ``load`` is logged and merging continues without preserved
    scripts; the outcome then reports ``scripts_loaded=False``.
    """
    scripts_loaded = False
    try:
        load(preserver)
        scripts_loaded = True
    except (PipelineError, OSError) as exc:
        logger.warning("existing_scripts_unavailable", error=str(exc))
        logger.info("continuing_without_script_preservation")

    total_merged = 0
    collections_dir = Path(collections_dir)
    if collections_dir.is_dir():
        for path in sorted(collections_dir.glob(f"*{COLLECTION_SUFFIX}")):
            total_merged += preserver.merge_into_collection_file(path)
    else:
        logger.warning("collections_dir_not_found", directory=str(collections_dir))

    outcome = PreservationOutcome(
        scripts_loaded=scripts_loaded,
        scripts_found=len(preserver.existing_scripts),
        scripts_merged=total_merged,
    )
    if not outcome.success:
        logger.warning(
            "script_preservation_incomplete",
            scripts_loaded=outcome.scripts_loaded,
            scripts_found=outcome.scripts_found,
            scripts_merged=outcome.scripts_merged,
        )
    return outcome
