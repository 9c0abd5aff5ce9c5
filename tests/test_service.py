"""Tests for the graph service wiring."""

import pytest

from shiftgraph.settings import Settings
from shiftgraph.graph_db.graph_store import GraphConnectionError
from shiftgraph.graph_db.kuzu_client import KuzuGraphStore
from shiftgraph.graph_db.neo4j_client import Neo4jGraphStore
from shiftgraph.service import GraphService, create_graph_store


def test_create_graph_store_kuzu_path_is_workspace_relative(tmp_path):
    store = create_graph_store(Settings(workspace_path=str(tmp_path), graph_db_path="db/graph"))
    assert isinstance(store, KuzuGraphStore)
    assert store.db_path == tmp_path / "db" / "graph"


def test_create_graph_store_neo4j():
    store = create_graph_store(Settings(graph_backend="neo4j", neo4j_uri="bolt://db:7687"))
    assert isinstance(store, Neo4jGraphStore)
    assert store.uri == "bolt://db:7687"


def test_unknown_backend():
    with pytest.raises(ValueError):
        create_graph_store(Settings(graph_backend="sqlite"))


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "u.ts").write_text("export function f() {}\nexport function h() {}\n")
    (tmp_path / "src" / "v.ts").write_text("import { f, h } from './u';\nfunction g() { f(); h(); }\n")
    return tmp_path


async def test_start_propagates_connection_errors(workspace, store):
    store.fail_on.add("connect")
    service = GraphService(Settings(workspace_path=str(workspace)), store=store)
    with pytest.raises(GraphConnectionError):
        await service.start()


async def test_initial_load_and_changes(workspace, store):
    service = GraphService(Settings(workspace_path=str(workspace)), store=store)
    await service.start()

    report = await service.initial_load()
    assert report.synchronized == 2
    assert store.named_calls() == {("g", "f"), ("g", "h")}

    (workspace / "src" / "u.ts").write_text("export function f() {}\n")
    await service.handle_file_changes({"src/u.ts"}, set())
    assert store.named_calls() == {("g", "f")}

    await service.handle_file_changes(set(), {"src/v.ts"})
    assert store.files == {"src/u.ts"}
    assert store.calls == set()
    assert "src/v.ts" not in service.context

    await service.close()
    assert not store.connected


async def test_unreadable_change_is_skipped(workspace, store):
    service = GraphService(Settings(workspace_path=str(workspace)), store=store)
    await service.start()
    await service.handle_file_changes({"src/missing.ts"}, set())
    assert "upsert_file" not in store.operations


async def test_initial_load_skips_populated_graph(workspace, store):
    store.files.add("src/u.ts")
    service = GraphService(Settings(workspace_path=str(workspace)), store=store)
    report = await service.initial_load()
    assert report.skipped
    assert store.functions == {}
