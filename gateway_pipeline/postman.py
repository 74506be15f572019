"""Postman API client and collection publishing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import requests
import structlog

from gateway_pipeline.documents import load_json
from gateway_pipeline.errors import PipelineError, PostmanApiError
from gateway_pipeline.models import GatewayConfig, PostmanCollection

logger = structlog.get_logger(__name__)

POSTMAN_API_BASE = "https://api.getpostman.com"
STAGING_MARKER = "-staging-"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"

DEFAULT_GATEWAYS = {
    "app": "App API Gateway",
    "dashboard": "Dashboard API Gateway",
}


class PostmanClient:
    """Thin wrapper over the Postman REST endpoints the pipeline needs."""

    def __init__(
        self,
        api_key: str,
        base_url: str = POSTMAN_API_BASE,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {
            "X-API-Key": api_key,
            "Content-Type": "application/json",
        }

    def request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise PostmanApiError(f"Postman API request failed: {method} {endpoint}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise PostmanApiError(
                f"Postman API error: {response.status_code} {response.text[:500]}",
                status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PostmanApiError(f"Postman API returned invalid JSON for {endpoint}") from exc

    def get_workspaces(self) -> list[dict[str, Any]]:
        return self.request("GET", "/workspaces").get("workspaces") or []

    def get_collections(self, workspace_id: str | None = None) -> list[dict[str, Any]]:
        params = {"workspace": workspace_id} if workspace_id else None
        return self.request("GET", "/collections", params=params).get("collections") or []

    def get_collection(self, uid: str) -> dict[str, Any]:
        return self.request("GET", f"/collections/{uid}").get("collection") or {}

    def create_collection(
        self, collection: dict[str, Any], workspace_id: str | None = None
    ) -> dict[str, Any]:
        params = {"workspace": workspace_id} if workspace_id else None
        return self.request("POST", "/collections", params=params, json={"collection": collection})

    def update_collection(self, uid: str, collection: dict[str, Any]) -> dict[str, Any]:
        return self.request("PUT", f"/collections/{uid}", json={"collection": collection})

    def find_collection_by_name(
        self, name: str, workspace_id: str | None = None
    ) -> dict[str, Any] | None:
        for collection in self.get_collections(workspace_id):
            if collection.get("name") == name:
                return collection
        return None


def human_readable_date(now: datetime) -> str:
    """Render e.g. ``Jan 5, 2024, 10:30 AM``."""
    return f"{now:%b} {now.day}, {now:%Y}, {now:%I:%M %p}"


def collection_timestamp(now: datetime) -> str:
    return now.strftime(TIMESTAMP_FORMAT)


def parse_collection_timestamp(name: str) -> datetime | None:
    """Timestamp encoded after ``-staging-`` in a published collection name."""
    if STAGING_MARKER not in name:
        return None
    suffix = name.split(STAGING_MARKER, 1)[1]
    try:
        return datetime.strptime(suffix, TIMESTAMP_FORMAT)
    except ValueError:
        return None


def build_description(target_name: str, now: datetime) -> str:
    gateway = target_name.split("-")[0]
    return (
        "Auto-generated Postman collection from staging deployment.\n\n"
        f"Generated: {human_readable_date(now)}\n"
        "Environment: Staging\n"
        "Source: GitHub Actions Workflow\n\n"
        f"This collection contains all API endpoints for the {gateway} gateway."
    )


def select_workspace(workspaces: list[dict[str, Any]], project_name: str) -> dict[str, Any] | None:
    """Prefer a team/project workspace, then the first one, else personal (None)."""
    markers = ("team", project_name.lower())
    for workspace in workspaces:
        name = (workspace.get("name") or "").lower()
        if any(marker in name for marker in markers) or workspace.get("type") == "team":
            return workspace
    return workspaces[0] if workspaces else None


def gateway_base_names(config: GatewayConfig | None) -> dict[str, str]:
    """Gateway key -> display name, with the app/dashboard defaults as fallback."""
    if config is None:
        return dict(DEFAULT_GATEWAYS)
    return {name: gateway.name or name for name, gateway in config.gateways.items()}


@dataclass(frozen=True)
class CollectionTarget:
    file: str
    name: str
    display_name: str
    base_name: str


def plan_collections(
    config: GatewayConfig | None, now: datetime, project_name: str
) -> list[CollectionTarget]:
    """One publish target per configured gateway, timestamped with ``now``."""
    timestamp = collection_timestamp(now)
    human = human_readable_date(now)
    gateways = gateway_base_names(config)
    return [
        CollectionTarget(
            file=f"{gateway}-gateway.postman_collection.json",
            name=f"{gateway}{STAGING_MARKER}{timestamp}",
            display_name=f"{project_name} - {base_name} (Staging - {human})",
            base_name=base_name,
        )
        for gateway, base_name in gateways.items()
    ]


def publish_collection(
    client: PostmanClient,
    collection_path: Path,
    target_name: str,
    display_name: str,
    workspace_id: str | None = None,
    now: datetime | None = None,
) -> str:
    """Create or fully replace the remote collection named ``target_name``.

    Returns the remote collection uid.
    """
    now = now or datetime.now()
    collection = PostmanCollection.check(load_json(collection_path), str(collection_path))

    info = collection.setdefault("info", {})
    info["name"] = display_name
    info["description"] = build_description(target_name, now)

    existing = client.find_collection_by_name(target_name, workspace_id)
    if existing:
        uid = existing["uid"]
        logger.info("updating_collection", display_name=display_name, uid=uid)
        client.update_collection(uid, collection)
        return uid

    logger.info("creating_collection", display_name=display_name, workspace_id=workspace_id)
    result = client.create_collection(collection, workspace_id)
    uid = (result.get("collection") or {}).get("uid")
    if not uid:
        raise PipelineError(f"Postman did not return a uid for collection {display_name}")
    logger.info("collection_created", display_name=display_name, uid=uid)
    return uid
