"""Symbol Resolver: maps call sites to the function declarations they name."""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from .binder import ALIAS_KINDS, Declaration, DeclarationKind, Symbol
from .models import make_function_id
from .syntax import (
    CLASS_TYPES,
    FUNCTION_DECLARATION_TYPES,
    FUNCTION_EXPRESSION_TYPES,
    function_kind,
    function_name,
    is_function_value,
    is_static_member,
    node_key,
    node_text,
    unwrap_expression,
    walk,
)

if TYPE_CHECKING:
    from .source_model import Program, SourceUnit

logger = logging.getLogger(__name__)


# Bound on alias / initializer / inheritance chains (cycles are legal input)
MAX_RESOLUTION_DEPTH = 64

# Names never looked up by the textual fallback scan
NAME_SCAN_EXCLUDED = {"undefined", "__promisify__"}

PROMISE_TYPES = {"Promise", "PromiseLike"}

IDENTIFIER_TYPES = {"identifier", "shorthand_property_identifier", "type_identifier"}


@dataclass
class ResolvedTarget:
    """A function-like node a call resolves to."""

    unit: "SourceUnit"
    node: Node

    @property
    def function_id(self) -> str:
        return make_function_id(self.unit.path, self.node.start_byte)

    @property
    def name(self) -> str:
        return function_name(self.node)


@dataclass
class CallResolution:
    """Candidate targets for one call site."""

    targets: List[ResolvedTarget] = field(default_factory=list)
    via_name_scan: bool = False


@dataclass
class Entity:
    """Something whose members can be looked up by name.

    kind is one of: "class" (static side), "instance", "interface",
    "object", "module", "namespace".
    """

    kind: str
    unit: "SourceUnit"
    node: Optional[Node] = None


class SymbolResolver:
    """Resolves identifiers, property accesses and calls within a Program."""

    def __init__(self, program: "Program"):
        self.program = program
        self._name_index: Dict[str, Dict[str, List[Node]]] = {}

    # ------------------------------------------------------------------
    # Symbols
    # ------------------------------------------------------------------

    def symbol_at(self, unit: "SourceUnit", node: Node) -> Optional[Symbol]:
        """Symbol referenced by an identifier or property access."""
        if node.type in IDENTIFIER_TYPES:
            name = node_text(node)
            return unit.binding.lookup(node, name) or self.program.globals.get(name)
        if node.type == "member_expression":
            return self._callee_symbol(unit, node, 0)
        return None

    def export_symbol(
        self, unit: "SourceUnit", name: str, visited: Optional[Set[str]] = None
    ) -> Optional[Symbol]:
        """Symbol a module exports under `name`, following `export *`."""
        binding = unit.binding
        symbol = binding.exports.get(name)
        if symbol is not None or name == "default":
            return symbol

        visited = visited if visited is not None else set()
        if unit.path in visited:
            return None
        visited.add(unit.path)
        for specifier in binding.star_exports:
            target = self.program.resolve_module(unit.path, specifier)
            if target is None:
                continue
            symbol = self.export_symbol(target, name, visited)
            if symbol is not None:
                return symbol
        return None

    def aliased_symbol(self, declaration: Declaration) -> Optional[Symbol]:
        """One step through an import or export specifier."""
        if declaration.kind is DeclarationKind.EXPORT_SPECIFIER and not declaration.module_specifier:
            return declaration.unit.binding.module_scope.symbols.get(declaration.imported_name or "")

        target = self.program.resolve_module(declaration.unit.path, declaration.module_specifier)
        if target is None:
            return None
        if declaration.kind is DeclarationKind.IMPORT_DEFAULT:
            return self.export_symbol(target, "default")
        return self.export_symbol(target, declaration.imported_name or declaration.name)

    def _follow_alias(self, symbol: Optional[Symbol], depth: int) -> Optional[Symbol]:
        seen: Set[int] = set()
        while symbol is not None and depth <= MAX_RESOLUTION_DEPTH:
            declaration = symbol.first_declaration
            if declaration is None or declaration.kind not in ALIAS_KINDS:
                return symbol
            if id(symbol) in seen:
                return None
            seen.add(id(symbol))
            symbol = self.aliased_symbol(declaration)
            depth += 1
        return None

    def resolve_symbol_to_declaration(
        self,
        symbol: Symbol,
        depth: int = 0,
        visited: Optional[Set[Tuple[str, Tuple[int, int, str], str]]] = None,
    ) -> Optional[ResolvedTarget]:
        """Follow a symbol's first declaration to a function-like node.

        Args:
            symbol: Symbol to resolve
            depth: Current chain length
            visited: Declarations already seen on this chain

        Returns:
            The function-like target, or None when the chain ends elsewhere
        """
        declaration = symbol.first_declaration
        if declaration is None or depth > MAX_RESOLUTION_DEPTH:
            return None

        visited = visited if visited is not None else set()
        key = (declaration.unit.path, node_key(declaration.node), declaration.name)
        if key in visited:
            logger.debug(f"Resolution cycle at {declaration.name} in {declaration.unit.path}")
            return None
        visited.add(key)

        kind = declaration.kind
        if kind is DeclarationKind.FUNCTION:
            if function_kind(declaration.node) is not None:
                return ResolvedTarget(declaration.unit, declaration.node)
            return None

        if kind in (DeclarationKind.VARIABLE, DeclarationKind.PROPERTY):
            value = unwrap_expression(declaration.value)
            if value is None:
                return None
            if is_function_value(value):
                return ResolvedTarget(declaration.unit, value)
            if value.type in IDENTIFIER_TYPES:
                inner = self.symbol_at(declaration.unit, value)
                if inner is not None:
                    return self.resolve_symbol_to_declaration(inner, depth + 1, visited)
            return None

        if kind in ALIAS_KINDS:
            target = self.aliased_symbol(declaration)
            if target is not None:
                return self.resolve_symbol_to_declaration(target, depth + 1, visited)
            return None

        return None

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def resolve_call(self, unit: "SourceUnit", call: Node) -> CallResolution:
        """Resolve a call expression's callee.

        Symbol-table resolution is tried first. When it yields nothing, a
        textual scan over the other files of the program supplies every
        same-named function as a candidate.
        """
        callee = unwrap_expression(call.child_by_field_name("function"))
        if callee is None:
            return CallResolution()

        if callee.type == "super":
            target = self._super_constructor(unit, callee)
            return CallResolution([target] if target and not target.unit.is_declaration_file else [])

        symbol = self._callee_symbol(unit, callee, 0)
        if symbol is not None:
            target = self.resolve_symbol_to_declaration(symbol)
            if target is not None:
                if target.unit.is_declaration_file:
                    return CallResolution()
                return CallResolution([target])
            declaration = symbol.first_declaration
            if declaration is not None and declaration.unit.is_declaration_file:
                return CallResolution()
            name = symbol.name
        elif callee.type == "identifier":
            name = node_text(callee)
        else:
            return CallResolution()

        return CallResolution(self.name_scan(unit, name), via_name_scan=True)

    def name_scan(self, unit: "SourceUnit", name: str) -> List[ResolvedTarget]:
        """Every function in another non-declaration file whose name matches."""
        if not name or name in NAME_SCAN_EXCLUDED:
            return []

        matches = []
        for other in self.program.source_files:
            if other.path == unit.path or other.is_declaration_file:
                continue
            for node in self._functions_by_name(other).get(name, []):
                matches.append(ResolvedTarget(other, node))

        if matches:
            logger.debug(f"Name scan for {name!r} from {unit.path} matched {len(matches)} functions")
        return matches

    def _functions_by_name(self, unit: "SourceUnit") -> Dict[str, List[Node]]:
        index = self._name_index.get(unit.path)
        if index is not None:
            return index

        index = {}
        seen: Set[Tuple[str, str]] = set()

        def add(name: str, node: Node) -> None:
            key = (name, f"{node.start_byte}:{node.type}")
            if key not in seen:
                seen.add(key)
                index.setdefault(name, []).append(node)

        for node in walk(unit.root):
            kind = function_kind(node)
            if kind is not None:
                add(function_name(node, kind), node)
            elif node.type == "variable_declarator":
                name_node = node.child_by_field_name("name")
                value = unwrap_expression(node.child_by_field_name("value"))
                if name_node is not None and name_node.type == "identifier" and is_function_value(value):
                    add(node_text(name_node), value)

        self._name_index[unit.path] = index
        return index

    def _callee_symbol(self, unit: "SourceUnit", callee: Node, depth: int) -> Optional[Symbol]:
        if callee.type in IDENTIFIER_TYPES:
            return self.symbol_at(unit, callee)
        if callee.type == "member_expression":
            # declared containers first, then inferred types
            return self._property_symbol(unit, callee, False, depth) or self._property_symbol(
                unit, callee, True, depth
            )
        return None

    def _property_symbol(
        self, unit: "SourceUnit", member: Node, infer: bool, depth: int
    ) -> Optional[Symbol]:
        target = member.child_by_field_name("object")
        prop = member.child_by_field_name("property")
        if target is None or prop is None:
            return None
        entity = self.type_at(unit, target, infer, depth + 1)
        if entity is None:
            return None
        return self.property_of_type(entity, node_text(prop), depth + 1)

    def _super_constructor(self, unit: "SourceUnit", node: Node) -> Optional[ResolvedTarget]:
        entity = self._enclosing_class(unit, node, base=True)
        depth = 0
        while entity is not None and depth <= MAX_RESOLUTION_DEPTH:
            instance, _ = entity.unit.binding.class_members(entity.node)
            constructor = instance.get("constructor")
            if constructor is not None:
                return self.resolve_symbol_to_declaration(constructor)
            entity = self._base_class(entity.unit, entity.node, depth + 1)
            depth += 1
        return None

    # ------------------------------------------------------------------
    # Containers and types
    # ------------------------------------------------------------------

    def type_at(
        self, unit: "SourceUnit", expression: Optional[Node], infer: bool, depth: int = 0
    ) -> Optional[Entity]:
        """What an expression denotes as a container for member lookup.

        Without `infer` only declared containers are used (this, super,
        classes, namespace imports, object literals). With `infer`, type
        annotations, `new` expressions, casts and call return types count.
        """
        if expression is None or depth > MAX_RESOLUTION_DEPTH:
            return None

        expression_type = expression.type
        named = expression.named_children

        if expression_type in ("as_expression", "satisfies_expression", "type_assertion"):
            if not named:
                return None
            if expression_type == "type_assertion":
                inner = named[-1]
                cast = named[0].named_children[0] if named[0].named_children else None
            else:
                inner = named[0]
                cast = named[-1] if expression_type == "as_expression" else None
            if infer and cast is not None:
                entity = self._type_entity(unit, cast, depth + 1)
                if entity is not None:
                    return entity
            return self.type_at(unit, inner, infer, depth + 1)

        if expression_type in ("parenthesized_expression", "non_null_expression"):
            return self.type_at(unit, named[0] if named else None, infer, depth + 1)
        if expression_type == "await_expression" and infer:
            return self.type_at(unit, named[0] if named else None, infer, depth + 1)
        if expression_type == "this":
            return self._this_entity(unit, expression)
        if expression_type == "super":
            return self._enclosing_class(unit, expression, base=True)
        if expression_type in IDENTIFIER_TYPES:
            symbol = self.symbol_at(unit, expression)
            return self._symbol_entity(symbol, infer, depth + 1) if symbol else None
        if expression_type == "member_expression":
            symbol = self._property_symbol(unit, expression, infer, depth + 1)
            return self._symbol_entity(symbol, infer, depth + 1) if symbol else None
        if expression_type == "object":
            return Entity("object", unit, expression)
        if expression_type == "class":
            return Entity("class", unit, expression)

        if infer and expression_type == "new_expression":
            entity = self.type_at(unit, expression.child_by_field_name("constructor"), infer, depth + 1)
            if entity is not None and entity.kind == "class":
                return Entity("instance", entity.unit, entity.node)
            return None
        if infer and expression_type == "call_expression":
            return self._return_type(unit, expression, depth + 1)
        return None

    def property_of_type(self, entity: Entity, name: str, depth: int = 0) -> Optional[Symbol]:
        """Look a member up on a container, walking `extends` chains."""
        if depth > MAX_RESOLUTION_DEPTH:
            return None

        binding = entity.unit.binding
        if entity.kind == "module":
            return self.export_symbol(entity.unit, name)
        if entity.kind == "namespace":
            scope = binding.scopes.get(node_key(entity.node))
            return scope.symbols.get(name) if scope is not None else None
        if entity.kind == "object":
            return binding.object_members(entity.node).get(name)
        if entity.kind == "interface":
            symbol = binding.interface_members(entity.node).get(name)
            if symbol is not None:
                return symbol
            for base in self._interface_bases(entity, depth + 1):
                symbol = self.property_of_type(base, name, depth + 1)
                if symbol is not None:
                    return symbol
            return None

        instance, static = binding.class_members(entity.node)
        symbol = (static if entity.kind == "class" else instance).get(name)
        if symbol is not None:
            return symbol
        base = self._base_class(entity.unit, entity.node, depth + 1)
        if base is None:
            return None
        return self.property_of_type(Entity(entity.kind, base.unit, base.node), name, depth + 1)

    def _symbol_entity(
        self, symbol: Optional[Symbol], infer: bool, depth: int, as_type: bool = False
    ) -> Optional[Entity]:
        symbol = self._follow_alias(symbol, depth)
        declaration = symbol.first_declaration if symbol is not None else None
        if declaration is None or depth > MAX_RESOLUTION_DEPTH:
            return None

        unit = declaration.unit
        kind = declaration.kind
        if kind is DeclarationKind.CLASS:
            return Entity("instance" if as_type else "class", unit, declaration.node)
        if kind is DeclarationKind.INTERFACE:
            return Entity("interface", unit, declaration.node)
        if kind is DeclarationKind.TYPE_ALIAS:
            return self._type_entity(unit, declaration.node.child_by_field_name("value"), depth + 1)
        if kind is DeclarationKind.IMPORT_NAMESPACE:
            target = self.program.resolve_module(unit.path, declaration.module_specifier)
            return Entity("module", target) if target is not None else None
        if kind is DeclarationKind.NAMESPACE:
            body = declaration.node.child_by_field_name("body")
            return Entity("namespace", unit, body) if body is not None else None
        if as_type:
            return None

        if kind in (
            DeclarationKind.VARIABLE,
            DeclarationKind.PROPERTY,
            DeclarationKind.PARAMETER,
            DeclarationKind.BINDING,
        ):
            if declaration.value is not None:
                entity = self.type_at(unit, declaration.value, infer, depth + 1)
                if entity is not None:
                    return entity
            if infer and declaration.type_node is not None:
                return self._type_entity(unit, declaration.type_node, depth + 1)
        return None

    def _type_entity(self, unit: "SourceUnit", type_node: Optional[Node], depth: int) -> Optional[Entity]:
        if type_node is None or depth > MAX_RESOLUTION_DEPTH:
            return None

        node_type = type_node.type
        named = type_node.named_children

        if node_type in ("type_annotation", "parenthesized_type", "readonly_type"):
            return self._type_entity(unit, named[0] if named else None, depth + 1)
        if node_type in ("type_identifier", "identifier"):
            name = node_text(type_node)
            symbol = unit.binding.lookup(type_node, name) or self.program.globals.get(name)
            return self._symbol_entity(symbol, True, depth + 1, as_type=True) if symbol else None
        if node_type == "nested_type_identifier" and len(named) >= 2:
            container = self.type_at(unit, named[0], False, depth + 1)
            if container is None:
                return None
            member = self.property_of_type(container, node_text(named[-1]), depth + 1)
            return self._symbol_entity(member, True, depth + 1, as_type=True) if member else None
        if node_type == "generic_type":
            name_node = type_node.child_by_field_name("name") or (named[0] if named else None)
            arguments = type_node.child_by_field_name("type_arguments")
            if node_text(name_node) in PROMISE_TYPES and arguments is not None and arguments.named_children:
                return self._type_entity(unit, arguments.named_children[0], depth + 1)
            return self._type_entity(unit, name_node, depth + 1)
        if node_type in ("union_type", "intersection_type"):
            for member in named:
                entity = self._type_entity(unit, member, depth + 1)
                if entity is not None:
                    return entity
            return None
        if node_type == "object_type":
            return Entity("interface", unit, type_node)
        return None

    def _return_type(self, unit: "SourceUnit", call: Node, depth: int) -> Optional[Entity]:
        callee = unwrap_expression(call.child_by_field_name("function"))
        if callee is None:
            return None
        symbol = self._callee_symbol(unit, callee, depth + 1)
        if symbol is None:
            return None

        target = self.resolve_symbol_to_declaration(symbol, depth + 1)
        if target is not None:
            return self._type_entity(target.unit, target.node.child_by_field_name("return_type"), depth + 1)

        declaration = symbol.first_declaration
        if declaration is not None and declaration.kind is DeclarationKind.METHOD_SIGNATURE:
            return self._type_entity(
                declaration.unit, declaration.node.child_by_field_name("return_type"), depth + 1
            )
        return None

    def _this_entity(self, unit: "SourceUnit", node: Node) -> Optional[Entity]:
        previous = node
        current = node.parent
        while current is not None:
            if current.type == "class_body" and current.parent is not None:
                return Entity(
                    "class" if self._is_static(previous) else "instance", unit, current.parent
                )
            if current.type == "object" and previous.type in ("method_definition", "pair"):
                return Entity("object", unit, current)
            # a plain function rebinds `this`; arrows and methods do not
            if current.type in FUNCTION_DECLARATION_TYPES or (
                current.type in FUNCTION_EXPRESSION_TYPES
                and (current.parent is None or current.parent.type != "pair")
            ):
                return None
            previous = current
            current = current.parent
        return None

    def _enclosing_class(self, unit: "SourceUnit", node: Node, base: bool = False) -> Optional[Entity]:
        previous = node
        current = node.parent
        while current is not None:
            if current.type == "class_body" and current.parent is not None:
                class_node = current.parent
                kind = "class" if self._is_static(previous) else "instance"
                if not base:
                    return Entity(kind, unit, class_node)
                parent = self._base_class(unit, class_node, 1)
                return Entity(kind, parent.unit, parent.node) if parent is not None else None
            previous = current
            current = current.parent
        return None

    @staticmethod
    def _is_static(member: Node) -> bool:
        if function_kind(member) is not None:
            return is_static_member(member)
        return any(not child.is_named and child.type == "static" for child in member.children)

    def _base_class(self, unit: "SourceUnit", class_node: Node, depth: int) -> Optional[Entity]:
        """Class entity named in a class's `extends` clause."""
        if depth > MAX_RESOLUTION_DEPTH:
            return None
        heritage = next((c for c in class_node.named_children if c.type == "class_heritage"), None)
        if heritage is None:
            return None

        expression = None
        for child in heritage.named_children:
            if child.type == "extends_clause":
                expression = child.child_by_field_name("value") or (
                    child.named_children[0] if child.named_children else None
                )
                break
            if child.type != "implements_clause":
                expression = child
                break

        entity = self.type_at(unit, expression, False, depth + 1)
        if entity is None or entity.node is None or entity.node.type not in CLASS_TYPES:
            return None
        return Entity("class", entity.unit, entity.node)

    def _interface_bases(self, entity: Entity, depth: int) -> List[Entity]:
        bases = []
        if entity.node is None or entity.node.type != "interface_declaration":
            return bases
        for clause in entity.node.named_children:
            if clause.type != "extends_type_clause":
                continue
            for type_node in clause.named_children:
                base = self._type_entity(entity.unit, type_node, depth + 1)
                if base is not None:
                    bases.append(base)
        return bases
