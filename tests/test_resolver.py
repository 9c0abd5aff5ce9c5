"""Tests for call resolution through aliases, re-exports, types and the name scan."""

import pytest

from shiftgraph.indexer.syntax import node_text, walk


def resolve(program, path, callee):
    """Resolve the first call in `path` whose callee text is `callee`."""
    unit = program.get_source_file(path)
    for node in walk(unit.root):
        if node.type == "call_expression" and node_text(node.child_by_field_name("function")) == callee:
            return program.resolver.resolve_call(unit, node)
    raise AssertionError(f"no call to {callee} in {path}")


def single_target(resolution):
    assert len(resolution.targets) == 1, resolution
    return resolution.targets[0]


def test_named_import_resolves_to_declaring_file(make_program):
    program = make_program(
        {
            "a.ts": "export function foo() {}\n",
            "b.ts": "import { foo } from './a';\nfunction bar() { foo(); }\n",
        }
    )
    target = single_target(resolve(program, "b.ts", "foo"))
    assert target.unit.path == "a.ts"
    assert target.name == "foo"
    assert target.function_id == "a.ts:7"


def test_renamed_import(make_program):
    program = make_program(
        {
            "a.ts": "export function foo() {}\n",
            "b.ts": "import { foo as baz } from './a';\nfunction bar() { baz(); }\n",
        }
    )
    assert single_target(resolve(program, "b.ts", "baz")).name == "foo"


def test_re_export_chain(make_program):
    program = make_program(
        {
            "a.ts": "export function original() {}\n",
            "b.ts": "export { original as renamed } from './a';\n",
            "c.ts": "import { renamed } from './b';\nfunction run() { renamed(); }\n",
        }
    )
    target = single_target(resolve(program, "c.ts", "renamed"))
    assert (target.unit.path, target.name) == ("a.ts", "original")


def test_export_star(make_program):
    program = make_program(
        {
            "lib/a.ts": "export function foo() {}\n",
            "lib/index.ts": "export * from './a';\n",
            "main.ts": "import { foo } from './lib';\nfunction run() { foo(); }\n",
        }
    )
    assert single_target(resolve(program, "main.ts", "foo")).unit.path == "lib/a.ts"


def test_variable_initializer_indirection(make_program):
    program = make_program(
        {
            "a.ts": "function originalFoo() {}\nconst foo = originalFoo;\nexport { foo };\n",
            "b.ts": "import { foo } from './a';\nfunction run() { foo(); }\n",
        }
    )
    target = single_target(resolve(program, "b.ts", "foo"))
    assert target.name == "originalFoo"
    assert target.node.type == "function_declaration"


def test_arrow_function_initializer(make_program):
    program = make_program({"a.ts": "const add = (a, b) => a + b;\nfunction g() { add(1, 2); }\n"})
    target = single_target(resolve(program, "a.ts", "add"))
    assert target.node.type == "arrow_function"
    assert target.function_id == "a.ts:12"


def test_default_import(make_program):
    program = make_program(
        {
            "a.ts": "export default function main() {}\n",
            "b.ts": "import start from './a';\nfunction run() { start(); }\n",
        }
    )
    assert single_target(resolve(program, "b.ts", "start")).name == "main"


def test_namespace_import(make_program):
    program = make_program(
        {
            "utils.ts": "export function format() {}\n",
            "b.ts": "import * as utils from './utils';\nfunction run() { utils.format(); }\n",
        }
    )
    target = single_target(resolve(program, "b.ts", "utils.format"))
    assert (target.unit.path, target.name) == ("utils.ts", "format")


def test_method_through_this(make_program):
    program = make_program({"a.ts": "class Svc {\n  helper() {}\n  run() { this.helper(); }\n}\n"})
    assert single_target(resolve(program, "a.ts", "this.helper")).name == "helper"


def test_inherited_method(make_program):
    program = make_program(
        {
            "base.ts": "export class Base {\n  greet() {}\n}\n",
            "child.ts": (
                "import { Base } from './base';\n"
                "class Child extends Base {\n  run() { this.greet(); }\n}\n"
            ),
        }
    )
    target = single_target(resolve(program, "child.ts", "this.greet"))
    assert (target.unit.path, target.name) == ("base.ts", "greet")


def test_super_call_resolves_base_constructor(make_program):
    program = make_program(
        {"a.ts": "class Base {\n  constructor() {}\n}\nclass Child extends Base {\n  constructor() { super(); }\n}\n"}
    )
    target = single_target(resolve(program, "a.ts", "super"))
    assert target.name == "constructor"
    assert target.unit.location(target.node)[0] == 2


def test_method_through_parameter_type(make_program):
    program = make_program(
        {
            "repo.ts": "export class Repo {\n  save() {}\n}\n",
            "svc.ts": "import { Repo } from './repo';\nfunction store(r: Repo) { r.save(); }\n",
        }
    )
    target = single_target(resolve(program, "svc.ts", "r.save"))
    assert (target.unit.path, target.name) == ("repo.ts", "save")


def test_method_through_new_expression(make_program):
    program = make_program(
        {"a.ts": "class Repo {\n  save() {}\n}\nconst repo = new Repo();\nfunction f() { repo.save(); }\n"}
    )
    assert single_target(resolve(program, "a.ts", "repo.save")).name == "save"


def test_method_through_constructor_parameter_property(make_program):
    program = make_program(
        {
            "a.ts": (
                "class Repo {\n  save() {}\n}\n"
                "class Svc {\n  constructor(private repo: Repo) {}\n  run() { this.repo.save(); }\n}\n"
            )
        }
    )
    assert single_target(resolve(program, "a.ts", "this.repo.save")).name == "save"


def test_method_through_call_return_type(make_program):
    program = make_program(
        {
            "a.ts": (
                "class Repo {\n  save() {}\n}\n"
                "function getRepo(): Repo { return new Repo(); }\n"
                "function f() { getRepo().save(); }\n"
            )
        }
    )
    assert single_target(resolve(program, "a.ts", "getRepo().save")).name == "save"


def test_object_literal_members(make_program):
    program = make_program(
        {"a.ts": "const api = {\n  fetch() {},\n  post: () => {},\n};\nfunction f() { api.fetch(); api.post(); }\n"}
    )
    assert single_target(resolve(program, "a.ts", "api.fetch")).name == "fetch"
    assert single_target(resolve(program, "a.ts", "api.post")).node.type == "arrow_function"


def test_declaration_file_target_is_excluded(make_program):
    program = make_program(
        {
            "types/lib.d.ts": "declare function ambient(): void;\n",
            "main.ts": "function f() { ambient(); }\n",
        }
    )
    resolution = resolve(program, "main.ts", "ambient")
    assert resolution.targets == []
    assert not resolution.via_name_scan


def test_name_scan_fallback_for_unbound_identifier(make_program):
    program = make_program(
        {
            "a.ts": "export function helper() {}\n",
            "b.ts": "function f() { helper(); }\n",
        }
    )
    resolution = resolve(program, "b.ts", "helper")
    assert resolution.via_name_scan
    assert [t.unit.path for t in resolution.targets] == ["a.ts"]


def test_name_scan_returns_every_match(make_program):
    program = make_program(
        {
            "a.ts": "export function dup() {}\n",
            "b.ts": "export const dup = () => {};\n",
            "c.ts": "function f() { dup(); }\n",
        }
    )
    resolution = resolve(program, "c.ts", "dup")
    assert sorted(t.unit.path for t in resolution.targets) == ["a.ts", "b.ts"]


def test_name_scan_skips_current_and_declaration_files(make_program):
    program = make_program(
        {
            "a.ts": "function helper() {}\n",
            "lib.d.ts": "export function helper(): void;\n",
        }
    )
    unit = program.get_source_file("a.ts")
    assert program.resolver.name_scan(unit, "helper") == []


@pytest.mark.parametrize("name", ["undefined", "__promisify__", ""])
def test_name_scan_excluded_names(make_program, name):
    program = make_program({"a.ts": "", "b.ts": "function undefined() {}\nfunction __promisify__() {}\n"})
    assert program.resolver.name_scan(program.get_source_file("a.ts"), name) == []


def test_initializer_cycle_terminates(make_program):
    program = make_program({"a.ts": "const a = b;\nconst b = a;\nfunction f() { a(); }\n"})
    resolution = resolve(program, "a.ts", "a")
    assert resolution.targets == []


def test_unknown_receiver_is_unresolved(make_program):
    program = make_program(
        {
            "a.ts": "function f(x) { x.foo(); }\n",
            "b.ts": "export function foo() {}\n",
        }
    )
    resolution = resolve(program, "a.ts", "x.foo")
    assert resolution.targets == []
    assert not resolution.via_name_scan


def test_recursive_call_targets_itself(make_program):
    program = make_program({"a.ts": "function fact(n) { return n ? fact(n - 1) : 1; }\n"})
    assert single_target(resolve(program, "a.ts", "fact")).function_id == "a.ts:0"
