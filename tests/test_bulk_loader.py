"""Tests for first-run population of the graph."""

import pytest

from shiftgraph.graph_db.graph_store import GraphStoreError
from shiftgraph.indexer.bulk_loader import BulkLoader, read_workspace_files
from shiftgraph.indexer.discovery import FileDiscovery
from shiftgraph.indexer.models import SourceFile
from shiftgraph.indexer.source_model import WorkspaceContext
from shiftgraph.indexer.synchronizer import GraphSynchronizer

WORKSPACE = [
    SourceFile("u.ts", "export function f() {}\n"),
    SourceFile("v.ts", "import { f } from './u';\nfunction g() { f(); }\n"),
]


async def test_load_workspace_builds_graph(store, builder):
    report = await BulkLoader(store, builder).load_workspace(WORKSPACE)

    assert not report.skipped
    assert report.synchronized == 2
    assert report.functions == 2
    assert report.calls == 1
    assert store.files == {"u.ts", "v.ts"}
    assert store.calls == {("v.ts:25", "u.ts:7")}
    assert store.file_of("u.ts:7") == "u.ts"
    assert store.file_of("v.ts:25") == "v.ts"


async def test_load_is_skipped_when_graph_is_populated(store, builder):
    store.files.add("existing.ts")

    report = await BulkLoader(store, builder).load_workspace(WORKSPACE)

    assert report.skipped
    assert store.operations == ["count_files"]
    assert store.functions == {}


async def test_second_load_is_a_no_op(store, builder):
    loader = BulkLoader(store, builder)
    await loader.load_workspace(WORKSPACE)
    snapshot = (set(store.files), dict(store.functions), set(store.calls))

    report = await loader.load_workspace(WORKSPACE)

    assert report.skipped
    assert (store.files, store.functions, store.calls) == snapshot


async def test_count_failure_propagates(store, builder):
    store.fail_on.add("count_files")
    with pytest.raises(GraphStoreError):
        await BulkLoader(store, builder).load_workspace(WORKSPACE)


class ExplodingSynchronizer(GraphSynchronizer):
    async def synchronize(self, program, unit):
        if unit.path == "u.ts":
            raise RuntimeError("boom")
        return await super().synchronize(program, unit)


async def test_failing_file_does_not_stop_the_load(store, builder):
    loader = BulkLoader(store, builder, ExplodingSynchronizer(store, builder))

    report = await loader.load_workspace(WORKSPACE)

    assert report.failed_files == ["u.ts"]
    assert report.synchronized == 1
    assert "v.ts" in store.files
    assert store.ids_named("g") == ["v.ts:25"]


async def test_read_workspace_files_drops_unreadable(tmp_path):
    (tmp_path / "a.ts").write_text("export const a = 1;\n")
    context = WorkspaceContext(str(tmp_path))

    files = await read_workspace_files(str(tmp_path), ["a.ts", "missing.ts"], context)

    assert [f.path for f in files] == ["a.ts"]
    assert context.get("a.ts") == "export const a = 1;\n"
    assert "missing.ts" not in context


async def test_load_directory(tmp_path, store, builder):
    (tmp_path / "src").mkdir()
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "src" / "u.ts").write_text("export function f() {}\n")
    (tmp_path / "src" / "v.ts").write_text("import { f } from './u';\nfunction g() { f(); }\n")
    (tmp_path / "node_modules" / "dep.js").write_text("function dep() {}\n")
    (tmp_path / "README.md").write_text("# readme\n")

    context = WorkspaceContext(str(tmp_path))
    report = await BulkLoader(store, builder).load_directory(FileDiscovery(str(tmp_path)), context)

    assert report.total_files == 2
    assert store.files == {"src/u.ts", "src/v.ts"}
    assert store.named_calls() == {("g", "f")}
    assert sorted(context.paths()) == ["src/u.ts", "src/v.ts"]
