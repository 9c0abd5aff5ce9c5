"""Tests for graph synchronization and incremental reconciliation."""

from shiftgraph.indexer.source_model import WorkspaceContext
from shiftgraph.indexer.synchronizer import GraphSynchronizer, collect_function_ids


async def sync_all(store, builder, program):
    synchronizer = GraphSynchronizer(store, builder)
    reports = []
    for unit in program.source_files:
        reports.append(await synchronizer.synchronize(program, unit))
    return reports


async def test_cross_file_call_points_at_declaring_file(store, builder, make_program):
    program = make_program(
        {
            "a.ts": "export function foo() {}\n",
            "b.ts": "import { foo } from './a';\nfunction bar() { foo(); }\n",
        }
    )
    await sync_all(store, builder, program)

    assert store.named_calls() == {("bar", "foo")}
    assert store.file_of(store.id_named("foo")) == "a.ts"
    assert store.file_of(store.id_named("bar")) == "b.ts"


async def test_callee_file_is_written_before_it_is_synchronized(store, builder, make_program):
    program = make_program(
        {
            "a.ts": "export function foo() {}\n",
            "b.ts": "import { foo } from './a';\nfunction bar() { foo(); }\n",
        }
    )
    synchronizer = GraphSynchronizer(store, builder)
    await synchronizer.synchronize(program, program.get_source_file("b.ts"))

    assert store.files == {"a.ts", "b.ts"}
    assert ("a.ts", "a.ts:7") in store.has_function
    assert store.calls == {("b.ts:27", "a.ts:7")}


async def test_re_export_indirection_reaches_original(store, builder, make_program):
    program = make_program(
        {
            "a.ts": "function originalFoo() {}\nconst foo = originalFoo;\nexport { foo };\n",
            "b.ts": "import { foo } from './a';\nfunction run() { foo(); }\n",
        }
    )
    await sync_all(store, builder, program)
    assert store.named_calls() == {("run", "originalFoo")}


async def test_declaration_files_produce_no_functions(store, builder, make_program):
    program = make_program(
        {
            "lib.d.ts": "declare function ambient(): void;\n",
            "main.ts": "function f() { ambient(); }\n",
        }
    )
    reports = await sync_all(store, builder, program)

    assert "lib.d.ts" in store.files
    assert store.ids_named("ambient") == []
    assert store.calls == set()
    assert any(report.skipped for report in reports)


async def test_top_level_calls_create_no_edges(store, builder, make_program):
    program = make_program(
        {
            "a.ts": (
                "function helper() {}\n"
                "helper();\n"
                "setTimeout(function tick() { helper(); }, 10);\n"
            )
        }
    )
    await sync_all(store, builder, program)
    assert store.named_calls() == {("tick", "helper")}


async def test_recursion_is_a_self_edge(store, builder, make_program):
    program = make_program({"a.ts": "function fact(n) { return n ? fact(n - 1) : 1; }\n"})
    await sync_all(store, builder, program)
    assert store.calls == {("a.ts:0", "a.ts:0")}


async def test_nested_functions_use_innermost_caller(store, builder, make_program):
    program = make_program(
        {
            "a.ts": (
                "function target() {}\n"
                "function outer() {\n"
                "  const inner = () => { target(); };\n"
                "  target();\n"
                "}\n"
            )
        }
    )
    await sync_all(store, builder, program)
    assert store.named_calls() == {("anonymous", "target"), ("outer", "target")}


async def test_function_names_and_positions(store, builder, make_program):
    program = make_program(
        {
            "a.ts": (
                "class Box {\n"
                "  constructor() {}\n"
                "  get size() { return 1; }\n"
                "  set size(v) {}\n"
                "  open() {}\n"
                "}\n"
                "const anon = function () {};\n"
            )
        }
    )
    await sync_all(store, builder, program)

    names = sorted(data["name"] for data in store.functions.values())
    assert names == ["anonymous", "constructor", "open", "size", "size"]
    constructor = store.functions[store.id_named("constructor")]
    assert (constructor["start_line"], constructor["start_column"]) == (2, 3)


async def test_ids_are_stable_across_parses(builder):
    content = "function a() {}\nconst b = () => {};\nclass C { m() {} }\n"
    first = collect_function_ids(builder.parse("x.ts", content))
    second = collect_function_ids(builder.parse("x.ts", content))
    assert first == second
    assert "x.ts:0" in first
    assert len(first) == 3


async def test_reference_integrity(store, builder, make_program):
    program = make_program(
        {
            "a.ts": "export function foo() { bar(); }\nexport function bar() {}\n",
            "b.ts": "import { foo, bar } from './a';\nfunction main() { foo(); bar(); }\n",
            "c.ts": "function orphan() { foo(); }\n",
        }
    )
    await sync_all(store, builder, program)

    assert store.calls
    for caller, callee in store.calls:
        for function_id in (caller, callee):
            assert function_id in store.functions
            assert len([edge for edge in store.has_function if edge[1] == function_id]) == 1


async def test_store_failures_do_not_abort_traversal(store, builder, make_program):
    program = make_program({"a.ts": "function a() { b(); }\nfunction b() {}\nfunction c() { b(); }\n"})
    store.fail_on.add("upsert_calls")

    report = (await sync_all(store, builder, program))[0]

    assert report.failures == 2
    assert report.functions == 3
    assert len(store.functions) == 3


async def test_unlinked_functions_are_discarded(store, builder, make_program):
    program = make_program({"a.ts": "function a() { b(); }\nfunction b() {}\n"})
    store.fail_on.add("upsert_has_function")

    report = (await sync_all(store, builder, program))[0]

    assert report.failures >= 2
    assert "delete_function_and_edges" in store.operations
    assert store.functions == {}
    assert store.calls == set()


async def test_update_file_prunes_removed_functions(store, builder):
    context = WorkspaceContext()
    synchronizer = GraphSynchronizer(store, builder)

    await synchronizer.update_file("x.ts", "function A() { B(); }\nfunction B() {}\n", context)
    b_id = store.id_named("B")
    assert store.named_calls() == {("A", "B")}

    report = await synchronizer.update_file("x.ts", "function A() {}\n", context)

    assert report.pruned == [b_id]
    assert store.id_named("A") == "x.ts:0"
    assert store.ids_named("B") == []
    assert store.calls == set()
    assert context.get("x.ts") == "function A() {}\n"


async def test_update_file_keeps_callers_from_other_files_consistent(store, builder):
    context = WorkspaceContext()
    synchronizer = GraphSynchronizer(store, builder)
    context.set("a.ts", "export function foo() {}\nexport function gone() {}\n")

    await synchronizer.update_file("b.ts", "import { foo, gone } from './a';\nfunction bar() { foo(); gone(); }\n", context)
    assert store.named_calls() == {("bar", "foo"), ("bar", "gone")}

    await synchronizer.update_file("a.ts", "export function foo() {}\n", context)

    assert store.named_calls() == {("bar", "foo")}
    assert store.ids_named("gone") == []


async def test_update_file_prunes_even_when_upserts_fail(store, builder):
    context = WorkspaceContext()
    synchronizer = GraphSynchronizer(store, builder)
    await synchronizer.update_file("x.ts", "function A() {}\nfunction B() {}\n", context)

    store.fail_on.add("upsert_function")
    report = await synchronizer.update_file("x.ts", "function A() {}\n", context)

    assert report.failures >= 1
    assert store.ids_named("B") == []


async def test_update_file_skips_pruning_when_lookup_fails(store, builder):
    context = WorkspaceContext()
    synchronizer = GraphSynchronizer(store, builder)
    await synchronizer.update_file("x.ts", "function A() {}\nfunction B() {}\n", context)

    store.fail_on.add("functions_of_file")
    report = await synchronizer.update_file("x.ts", "function A() {}\n", context)

    assert report.pruned == []
    assert store.ids_named("B") == ["x.ts:16"]
