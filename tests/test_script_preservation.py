from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any

import pytest

from conftest import FakeResponse, FakeSession, write_json_file
from gateway_pipeline.errors import PostmanApiError
from gateway_pipeline.postman import PostmanClient
from gateway_pipeline.script_preservation import (
    ScriptPreserver,
    latest_collection,
    make_script_key,
    preserve_scripts,
)

TEST_SCRIPT = ["pm.test('status', () => pm.response.to.have.status(200));"]
PRE_SCRIPT = ["pm.environment.set('token', 'abc');"]


def request_item(
    name: str, method: str, path: Any, events: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    url = {"raw": "{{baseUrl}}/" + "/".join(path), "path": path} if isinstance(path, list) else path
    item: dict[str, Any] = {"name": name, "request": {"method": method, "url": url}}
    if events is not None:
        item["event"] = events
    return item


def event(listen: str, lines: list[str]) -> dict[str, Any]:
    return {"listen": listen, "script": {"exec": lines, "type": "text/javascript"}}


def collection(items: list[dict[str, Any]], name: str = "App API Gateway") -> dict[str, Any]:
    return {"info": {"name": name, "schema": "v2.1.0"}, "item": items}


PRIOR = collection(
    [
        {
            "name": "users",
            "item": [
                request_item("List users", "GET", ["users"], [event("test", TEST_SCRIPT)]),
                request_item(
                    "Create user",
                    "post",
                    ["users"],
                    [event("prerequest", PRE_SCRIPT), event("test", [])],
                ),
                request_item("Delete user", "DELETE", ["users", ":id"], [event("test", [])]),
            ],
        }
    ]
)


class TestScriptKey:
    def test_list_path_is_joined(self) -> None:
        assert make_script_key("get", {"path": ["users", ":id"]}) == "GET:users/:id"

    def test_string_url_is_used_as_is(self) -> None:
        assert make_script_key("POST", "{{baseUrl}}/users") == "POST:{{baseUrl}}/users"

    def test_url_without_path_falls_back_to_raw(self) -> None:
        assert make_script_key("GET", {"raw": "{{baseUrl}}"}) == "GET:{{baseUrl}}"


class TestExtraction:
    def test_records_only_items_with_non_empty_scripts(self) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(PRIOR)

        assert set(preserver.existing_scripts) == {"GET:users", "POST:users"}
        entry = preserver.existing_scripts["POST:users"]
        assert entry.path == "users/Create user"
        assert entry.method == "POST"
        assert entry.scripts.preRequest == PRE_SCRIPT
        assert entry.scripts.test == []

    def test_colliding_keys_keep_last_in_traversal_order(self) -> None:
        first = ["pm.test('first', () => {});"]
        second = ["pm.test('second', () => {});"]
        preserver = ScriptPreserver()
        preserver.extract_from_collection(
            collection(
                [
                    request_item("Users v1", "GET", ["users"], [event("test", first)]),
                    {"name": "nested", "item": [request_item("Users v2", "GET", ["users"], [event("test", second)])]},
                ]
            )
        )

        assert len(preserver.existing_scripts) == 1
        entry = preserver.existing_scripts["GET:users"]
        assert entry.scripts.test == second
        assert entry.path == "nested/Users v2"

    def test_string_exec_is_normalised_to_lines(self) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(
            collection([request_item("Ping", "GET", ["ping"], [event("test", "pm.test('x')")])])
        )

        assert preserver.existing_scripts["GET:ping"].scripts.test == ["pm.test('x')"]


class TestMerge:
    def test_round_trip_restores_test_script(self) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(PRIOR)
        fresh = collection(
            [
                {
                    "name": "Users",
                    "item": [
                        request_item("GET users", "GET", ["users"]),
                        request_item("Orders", "GET", ["orders"]),
                    ],
                }
            ]
        )

        merged = preserver.merge_into_collection(fresh)

        assert merged == 1
        users, orders = fresh["item"][0]["item"]
        assert users["event"] == [
            {"listen": "test", "script": {"exec": TEST_SCRIPT, "type": "text/javascript"}}
        ]
        assert orders == request_item("Orders", "GET", ["orders"])

    def test_existing_events_are_overwritten_not_duplicated(self) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(PRIOR)
        fresh = collection(
            [
                request_item(
                    "Create user",
                    "POST",
                    ["users"],
                    [event("prerequest", ["// generated"]), event("test", ["// generated test"])],
                )
            ]
        )

        preserver.merge_into_collection(fresh)

        events = fresh["item"][0]["event"]
        assert [e["listen"] for e in events] == ["prerequest", "test"]
        assert events[0]["script"]["exec"] == PRE_SCRIPT
        # empty preserved test body leaves the generated one alone
        assert events[1]["script"]["exec"] == ["// generated test"]

    def test_null_event_and_script_are_filled_in(self) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(PRIOR)
        listing = request_item("List users", "GET", ["users"])
        listing["event"] = None
        creating = request_item("Create user", "POST", ["users"], [{"listen": "prerequest", "script": None}])
        fresh = collection([listing, creating])

        assert preserver.merge_into_collection(fresh) == 2
        assert listing["event"] == [event("test", TEST_SCRIPT)]
        assert creating["event"][0]["script"] == {"exec": PRE_SCRIPT}

    def test_merge_into_file_rewrites_collection(self, tmp_path: Path) -> None:
        preserver = ScriptPreserver()
        preserver.extract_from_collection(PRIOR)
        path = write_json_file(
            tmp_path / "app-gateway.postman_collection.json",
            collection([request_item("List", "GET", ["users"])]),
        )

        assert preserver.merge_into_collection_file(path) == 1
        written = json.loads(path.read_text(encoding="utf-8"))
        assert written["item"][0]["event"][0]["script"]["exec"] == TEST_SCRIPT

    def test_missing_file_merges_nothing(self, tmp_path: Path) -> None:
        assert ScriptPreserver().merge_into_collection_file(tmp_path / "missing.json") == 0


class TestSources:
    def test_load_from_directory(self, tmp_path: Path) -> None:
        write_json_file(tmp_path / "app-gateway.postman_collection.json", PRIOR)
        write_json_file(tmp_path / "notes.json", collection([request_item("x", "GET", ["x"], [event("test", ["t"])])]))
        preserver = ScriptPreserver()

        preserver.load_from_directory(tmp_path)

        assert set(preserver.existing_scripts) == {"GET:users", "POST:users"}

    def test_latest_collection_picks_max_timestamp(self) -> None:
        collections = [
            {"name": "app-staging-2024-01-15T10-30-45", "uid": "old"},
            {"name": "app-staging-2024-03-01T08-00-00", "uid": "new"},
            {"name": "app-staging-garbage", "uid": "bad"},
            {"name": "dashboard-staging-2025-01-01T00-00-00", "uid": "other"},
        ]

        assert latest_collection(collections, "app")["uid"] == "new"
        assert latest_collection(collections, "billing") is None

    def test_load_from_postman_uses_latest_then_base_name(self) -> None:
        session = FakeSession(
            {
                ("GET", "/collections"): FakeResponse(
                    payload={
                        "collections": [
                            {"name": "app-staging-2024-01-15T10-30-45", "uid": "app-old"},
                            {"name": "app-staging-2024-02-15T10-30-45", "uid": "app-new"},
                            {"name": "Dashboard API Gateway", "uid": "dash-base"},
                        ]
                    }
                ),
                ("GET", "/collections/app-new"): FakeResponse(payload={"collection": PRIOR}),
                ("GET", "/collections/dash-base"): FakeResponse(
                    payload={
                        "collection": collection(
                            [request_item("Stats", "GET", ["stats"], [event("test", ["t"])])]
                        )
                    }
                ),
            }
        )
        client = PostmanClient("key", base_url="https://postman.test", session=session)
        preserver = ScriptPreserver()

        preserver.load_from_postman(
            client, {"app": "App API Gateway", "dashboard": "Dashboard API Gateway"}
        )

        assert set(preserver.existing_scripts) == {"GET:users", "POST:users", "GET:stats"}
        assert preserver.existing_scripts["GET:stats"].path == "Dashboard API Gateway/Stats"
        fetched = [call["path"] for call in session.calls]
        assert "/collections/app-old" not in fetched


class TestPreserveScripts:
    def test_success_requires_loaded_found_and_merged(self, tmp_path: Path) -> None:
        write_json_file(
            tmp_path / "app-gateway.postman_collection.json",
            collection([request_item("List", "GET", ["users"])]),
        )

        outcome = preserve_scripts(
            ScriptPreserver(), lambda p: p.extract_from_collection(deepcopy(PRIOR)), tmp_path
        )

        assert outcome.success
        assert (outcome.scripts_found, outcome.scripts_merged) == (2, 1)

    def test_load_failure_degrades_to_unsuccessful_outcome(self, tmp_path: Path) -> None:
        original = collection([request_item("List", "GET", ["users"])])
        path = write_json_file(tmp_path / "app-gateway.postman_collection.json", original)

        def failing_load(_: ScriptPreserver) -> None:
            raise PostmanApiError("Postman API error: 500", status=500)

        outcome = preserve_scripts(ScriptPreserver(), failing_load, tmp_path)

        assert not outcome.scripts_loaded
        assert not outcome.success
        assert json.loads(path.read_text(encoding="utf-8")) == original

    @pytest.mark.parametrize("items", [[], [request_item("Other", "GET", ["other"])]])
    def test_nothing_merged_is_unsuccessful(self, tmp_path: Path, items: list) -> None:
        write_json_file(tmp_path / "app-gateway.postman_collection.json", collection(items))

        outcome = preserve_scripts(
            ScriptPreserver(), lambda p: p.extract_from_collection(PRIOR), tmp_path
        )

        assert outcome.scripts_loaded
        assert outcome.scripts_merged == 0
        assert not outcome.success
