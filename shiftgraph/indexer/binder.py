"""Per-file binding: lexical scopes, declared symbols and module exports.

The binder walks a parsed file once and records, for every scope-creating
node, the names it declares. Lookups happen only after the whole file is
bound, so function hoisting and temporal dead zones are not modeled.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from tree_sitter import Node

from .syntax import (
    CLASS_TYPES,
    FUNCTION_DECLARATION_TYPES,
    FunctionKind,
    NodeKey,
    ancestors,
    function_kind,
    is_static_member,
    node_key,
    node_text,
    string_value,
)

if TYPE_CHECKING:
    from .source_model import SourceUnit

logger = logging.getLogger(__name__)


class DeclarationKind(Enum):
    """What a declaration node introduces."""

    FUNCTION = "function"  # any FunctionKind node
    VARIABLE = "variable"
    PARAMETER = "parameter"
    BINDING = "binding"  # destructured element, catch clause variable
    CLASS = "class"
    INTERFACE = "interface"
    ENUM = "enum"
    TYPE_ALIAS = "type_alias"
    NAMESPACE = "namespace"
    IMPORT_SPECIFIER = "import_specifier"
    IMPORT_DEFAULT = "import_default"
    IMPORT_NAMESPACE = "import_namespace"
    EXPORT_SPECIFIER = "export_specifier"
    PROPERTY = "property"
    METHOD_SIGNATURE = "method_signature"


ALIAS_KINDS = (
    DeclarationKind.IMPORT_SPECIFIER,
    DeclarationKind.IMPORT_DEFAULT,
    DeclarationKind.EXPORT_SPECIFIER,
)

BLOCK_SCOPE_TYPES = {
    "statement_block",
    "for_statement",
    "for_in_statement",
    "catch_clause",
    "switch_body",
    "class_static_block",
}

NAMED_DECLARATION_KINDS = {
    "interface_declaration": DeclarationKind.INTERFACE,
    "enum_declaration": DeclarationKind.ENUM,
    "type_alias_declaration": DeclarationKind.TYPE_ALIAS,
    "internal_module": DeclarationKind.NAMESPACE,
    "module": DeclarationKind.NAMESPACE,
}


@dataclass(eq=False)
class Declaration:
    """One syntactic declaration of a symbol."""

    kind: DeclarationKind
    node: Node
    unit: "SourceUnit"
    name: str
    value: Optional[Node] = None  # initializer / property value
    type_node: Optional[Node] = None  # `: Type` annotation
    module_specifier: Optional[str] = None  # for imports and re-exports
    imported_name: Optional[str] = None  # name on the exporting side
    is_static: bool = False


@dataclass(eq=False)
class Symbol:
    """A named entity; declarations merge under one symbol (overloads, merging)."""

    name: str
    declarations: List[Declaration] = field(default_factory=list)

    @property
    def first_declaration(self) -> Optional[Declaration]:
        return self.declarations[0] if self.declarations else None


class Scope:
    """A lexical scope mapping names to symbols."""

    def __init__(self, node: Node, parent: Optional["Scope"] = None):
        self.node = node
        self.parent = parent
        self.symbols: Dict[str, Symbol] = {}

    def declare(self, declaration: Declaration) -> Symbol:
        symbol = self.symbols.get(declaration.name)
        if symbol is None:
            symbol = Symbol(declaration.name)
            self.symbols[declaration.name] = symbol
        symbol.declarations.append(declaration)
        return symbol

    def lookup(self, name: str) -> Optional[Symbol]:
        scope: Optional[Scope] = self
        while scope is not None:
            symbol = scope.symbols.get(name)
            if symbol is not None:
                return symbol
            scope = scope.parent
        return None


MemberTable = Dict[str, Symbol]


def _add_member(table: MemberTable, declaration: Declaration) -> None:
    symbol = table.get(declaration.name)
    if symbol is None:
        symbol = Symbol(declaration.name)
        table[declaration.name] = symbol
    symbol.declarations.append(declaration)


class ModuleBinding:
    """Binding results for one file."""

    def __init__(self, unit: "SourceUnit", module_scope: Scope):
        self.unit = unit
        self.module_scope = module_scope
        self.scopes: Dict[NodeKey, Scope] = {node_key(module_scope.node): module_scope}
        self.exports: Dict[str, Symbol] = {}
        self.star_exports: List[str] = []
        self.is_module = False
        self._class_members: Dict[NodeKey, Tuple[MemberTable, MemberTable]] = {}
        self._object_members: Dict[NodeKey, MemberTable] = {}
        self._interface_members: Dict[NodeKey, MemberTable] = {}

    def scope_for(self, node: Node) -> Scope:
        """Innermost scope enclosing a node."""
        scope = self.scopes.get(node_key(node))
        if scope is not None:
            return scope
        for ancestor in ancestors(node):
            scope = self.scopes.get(node_key(ancestor))
            if scope is not None:
                return scope
        return self.module_scope

    def lookup(self, node: Node, name: str) -> Optional[Symbol]:
        return self.scope_for(node).lookup(name)

    def class_members(self, class_node: Node) -> Tuple[MemberTable, MemberTable]:
        """Instance and static member tables of a class node."""
        key = node_key(class_node)
        if key not in self._class_members:
            self._class_members[key] = self._collect_class_members(class_node)
        return self._class_members[key]

    def object_members(self, object_node: Node) -> MemberTable:
        key = node_key(object_node)
        if key not in self._object_members:
            self._object_members[key] = self._collect_object_members(object_node)
        return self._object_members[key]

    def interface_members(self, interface_node: Node) -> MemberTable:
        key = node_key(interface_node)
        if key not in self._interface_members:
            self._interface_members[key] = self._collect_interface_members(interface_node)
        return self._interface_members[key]

    def _collect_class_members(self, class_node: Node) -> Tuple[MemberTable, MemberTable]:
        instance: MemberTable = {}
        static: MemberTable = {}
        body = class_node.child_by_field_name("body")
        if body is None:
            return instance, static

        constructors = []
        for member in body.named_children:
            kind = function_kind(member)
            if kind is not None:
                name = node_text(member.child_by_field_name("name"))
                member_static = is_static_member(member)
                declaration = Declaration(
                    DeclarationKind.FUNCTION, member, self.unit, name, is_static=member_static
                )
                _add_member(static if member_static else instance, declaration)
                if kind is FunctionKind.CONSTRUCTOR:
                    constructors.append(member)
            elif member.type in ("public_field_definition", "field_definition"):
                name_node = member.child_by_field_name("name") or member.child_by_field_name("property")
                if name_node is None:
                    continue
                member_static = any(
                    not child.is_named and child.type == "static" for child in member.children
                )
                declaration = Declaration(
                    DeclarationKind.PROPERTY,
                    member,
                    self.unit,
                    node_text(name_node),
                    value=member.child_by_field_name("value"),
                    type_node=member.child_by_field_name("type"),
                    is_static=member_static,
                )
                _add_member(static if member_static else instance, declaration)

        for constructor in constructors:
            self._collect_constructor_properties(constructor, instance)
        return instance, static

    def _collect_constructor_properties(self, constructor: Node, instance: MemberTable) -> None:
        # constructor(private svc: Service) declares an instance property
        params = constructor.child_by_field_name("parameters")
        if params is not None:
            for param in params.named_children:
                if param.type not in ("required_parameter", "optional_parameter"):
                    continue
                has_modifier = any(
                    child.type in ("accessibility_modifier", "override_modifier")
                    or (not child.is_named and child.type == "readonly")
                    for child in param.children
                )
                pattern = param.child_by_field_name("pattern")
                if not has_modifier or pattern is None or pattern.type != "identifier":
                    continue
                _add_member(
                    instance,
                    Declaration(
                        DeclarationKind.PROPERTY,
                        param,
                        self.unit,
                        node_text(pattern),
                        type_node=param.child_by_field_name("type"),
                    ),
                )

        # this.x = value; at the top level of the constructor body
        body = constructor.child_by_field_name("body")
        if body is None:
            return
        for statement in body.named_children:
            if statement.type != "expression_statement" or not statement.named_children:
                continue
            expression = statement.named_children[0]
            if expression.type != "assignment_expression":
                continue
            left = expression.child_by_field_name("left")
            if left is None or left.type != "member_expression":
                continue
            target = left.child_by_field_name("object")
            prop = left.child_by_field_name("property")
            if target is None or target.type != "this" or prop is None:
                continue
            name = node_text(prop)
            if name in instance:
                continue
            _add_member(
                instance,
                Declaration(
                    DeclarationKind.PROPERTY,
                    expression,
                    self.unit,
                    name,
                    value=expression.child_by_field_name("right"),
                ),
            )

    def _collect_object_members(self, object_node: Node) -> MemberTable:
        members: MemberTable = {}
        for member in object_node.named_children:
            if member.type == "pair":
                key = member.child_by_field_name("key")
                if key is None:
                    continue
                name = string_value(key) if key.type == "string" else node_text(key)
                _add_member(
                    members,
                    Declaration(
                        DeclarationKind.PROPERTY,
                        member,
                        self.unit,
                        name or "",
                        value=member.child_by_field_name("value"),
                    ),
                )
            elif function_kind(member) is not None:
                name = node_text(member.child_by_field_name("name"))
                _add_member(members, Declaration(DeclarationKind.FUNCTION, member, self.unit, name))
            elif member.type == "shorthand_property_identifier":
                _add_member(
                    members,
                    Declaration(
                        DeclarationKind.PROPERTY, member, self.unit, node_text(member), value=member
                    ),
                )
        return members

    def _collect_interface_members(self, interface_node: Node) -> MemberTable:
        members: MemberTable = {}
        # object type literals carry their members directly
        body = interface_node.child_by_field_name("body") or interface_node
        for member in body.named_children:
            name_node = member.child_by_field_name("name")
            if name_node is None:
                continue
            if member.type == "property_signature":
                kind = DeclarationKind.PROPERTY
            elif member.type == "method_signature":
                kind = DeclarationKind.METHOD_SIGNATURE
            else:
                continue
            _add_member(
                members,
                Declaration(
                    kind,
                    member,
                    self.unit,
                    node_text(name_node),
                    type_node=member.child_by_field_name("type"),
                ),
            )
        return members


class Binder:
    """Builds a ModuleBinding for a parsed file."""

    def __init__(self, unit: "SourceUnit"):
        self.unit = unit
        self.binding = ModuleBinding(unit, Scope(unit.root))
        # (exported name, local name) pairs resolved once the walk is complete
        self._local_exports: List[Tuple[str, str]] = []

    def bind(self) -> ModuleBinding:
        module_scope = self.binding.module_scope
        stack: List[Tuple[Node, Scope, Scope]] = [
            (child, module_scope, module_scope) for child in reversed(self.unit.root.children)
        ]

        while stack:
            node, scope, var_scope = stack.pop()
            child_scope, child_var_scope = self._visit(node, scope, var_scope)
            if node.type == "import_statement":
                continue
            stack.extend(
                (child, child_scope, child_var_scope) for child in reversed(node.children)
            )

        for exported, local in self._local_exports:
            symbol = module_scope.symbols.get(local)
            if symbol is not None:
                self.binding.exports.setdefault(exported, symbol)

        self.binding.is_module = any(
            child.type in ("import_statement", "export_statement")
            for child in self.unit.root.named_children
        )
        return self.binding

    def _new_scope(self, node: Node, parent: Scope) -> Scope:
        scope = Scope(node, parent)
        self.binding.scopes[node_key(node)] = scope
        return scope

    def _declare(self, scope: Scope, kind: DeclarationKind, node: Node, name: str, **extra) -> Symbol:
        return scope.declare(Declaration(kind, node, self.unit, name, **extra))

    def _visit(self, node: Node, scope: Scope, var_scope: Scope) -> Tuple[Scope, Scope]:
        node_type = node.type
        kind = function_kind(node)

        if kind is not None:
            name_node = node.child_by_field_name("name")
            if node_type in FUNCTION_DECLARATION_TYPES and name_node is not None:
                self._declare(scope, DeclarationKind.FUNCTION, node, node_text(name_node))
            own = self._new_scope(node, scope)
            if kind is FunctionKind.FUNCTION_EXPRESSION and name_node is not None:
                self._declare(own, DeclarationKind.FUNCTION, node, node_text(name_node))
            self._bind_parameters(node, own)
            return own, own

        if node_type in CLASS_TYPES:
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return scope, var_scope
            if node_type == "class":
                # a class expression's name is only visible inside the class
                own = self._new_scope(node, scope)
                self._declare(own, DeclarationKind.CLASS, node, node_text(name_node))
                return own, var_scope
            self._declare(scope, DeclarationKind.CLASS, node, node_text(name_node))
            return scope, var_scope

        if node_type in BLOCK_SCOPE_TYPES:
            if node_type == "statement_block" and node.parent is not None and function_kind(node.parent):
                return scope, var_scope
            own = self._new_scope(node, scope)
            if node_type == "catch_clause":
                self._bind_pattern(node.child_by_field_name("parameter"), own, DeclarationKind.BINDING)
            elif node_type == "for_in_statement":
                self._bind_pattern(node.child_by_field_name("left"), own, DeclarationKind.BINDING)
            return own, var_scope

        if node_type == "variable_declarator":
            target = scope if node.parent is not None and node.parent.type == "lexical_declaration" else var_scope
            self._bind_declarator(node, target)
        elif node_type in NAMED_DECLARATION_KINDS:
            name_node = node.child_by_field_name("name")
            if name_node is not None:
                self._declare(scope, NAMED_DECLARATION_KINDS[node_type], node, node_text(name_node))
        elif node_type == "import_statement":
            self._bind_import(node, scope)
        elif node_type == "export_statement":
            self._bind_export(node)

        return scope, var_scope

    def _bind_declarator(self, node: Node, scope: Scope) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        if name_node.type == "identifier":
            self._declare(
                scope,
                DeclarationKind.VARIABLE,
                node,
                node_text(name_node),
                value=node.child_by_field_name("value"),
                type_node=node.child_by_field_name("type"),
            )
        else:
            self._bind_pattern(name_node, scope, DeclarationKind.BINDING)

    def _bind_parameters(self, function_node: Node, scope: Scope) -> None:
        single = function_node.child_by_field_name("parameter")
        if single is not None:
            self._bind_pattern(single, scope, DeclarationKind.PARAMETER)
        params = function_node.child_by_field_name("parameters")
        if params is None:
            return
        for param in params.named_children:
            if param.type in ("required_parameter", "optional_parameter"):
                self._bind_pattern(
                    param.child_by_field_name("pattern"),
                    scope,
                    DeclarationKind.PARAMETER,
                    declaring_node=param,
                    type_node=param.child_by_field_name("type"),
                )
            else:
                self._bind_pattern(param, scope, DeclarationKind.PARAMETER)

    def _bind_pattern(
        self,
        pattern: Optional[Node],
        scope: Scope,
        kind: DeclarationKind,
        declaring_node: Optional[Node] = None,
        type_node: Optional[Node] = None,
    ) -> None:
        if pattern is None:
            return
        if pattern.type == "identifier":
            self._declare(scope, kind, declaring_node or pattern, node_text(pattern), type_node=type_node)
            return

        stack = [pattern]
        while stack:
            current = stack.pop()
            if current.type in ("identifier", "shorthand_property_identifier_pattern"):
                self._declare(scope, DeclarationKind.BINDING, current, node_text(current))
            elif current.type in ("assignment_pattern", "object_assignment_pattern"):
                left = current.child_by_field_name("left")
                if left is not None:
                    stack.append(left)
            elif current.type == "pair_pattern":
                value = current.child_by_field_name("value")
                if value is not None:
                    stack.append(value)
            elif current.type in ("object_pattern", "array_pattern", "rest_pattern"):
                stack.extend(current.named_children)

    def _bind_import(self, node: Node, scope: Scope) -> None:
        source = string_value(node.child_by_field_name("source"))
        for child in node.named_children:
            if child.type == "import_clause":
                for clause in child.named_children:
                    if clause.type == "identifier":
                        self._declare(
                            scope,
                            DeclarationKind.IMPORT_DEFAULT,
                            clause,
                            node_text(clause),
                            module_specifier=source,
                            imported_name="default",
                        )
                    elif clause.type == "named_imports":
                        for spec in clause.named_children:
                            if spec.type == "import_specifier":
                                self._bind_import_specifier(spec, scope, source)
                    elif clause.type == "namespace_import":
                        names = [c for c in clause.named_children if c.type == "identifier"]
                        if names:
                            self._declare(
                                scope,
                                DeclarationKind.IMPORT_NAMESPACE,
                                clause,
                                node_text(names[0]),
                                module_specifier=source,
                            )
            elif child.type == "import_require_clause":
                names = [c for c in child.named_children if c.type == "identifier"]
                require_source = string_value(child.child_by_field_name("source")) or source
                if names:
                    self._declare(
                        scope,
                        DeclarationKind.IMPORT_NAMESPACE,
                        child,
                        node_text(names[0]),
                        module_specifier=require_source,
                    )

    def _bind_import_specifier(self, spec: Node, scope: Scope, source: Optional[str]) -> None:
        name_node = spec.child_by_field_name("name")
        if name_node is None:
            return
        alias_node = spec.child_by_field_name("alias")
        imported = string_value(name_node) if name_node.type == "string" else node_text(name_node)
        local = node_text(alias_node) if alias_node is not None else imported
        self._declare(
            scope,
            DeclarationKind.IMPORT_SPECIFIER,
            spec,
            local,
            module_specifier=source,
            imported_name=imported,
        )

    def _bind_export(self, node: Node) -> None:
        exports = self.binding.exports
        source = string_value(node.child_by_field_name("source"))
        is_default = any(not child.is_named and child.type == "default" for child in node.children)

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            if declaration.type == "ambient_declaration" and declaration.named_children:
                declaration = declaration.named_children[0]
            names = self._declared_names(declaration)
            if is_default:
                if names:
                    self._local_exports.append(("default", names[0]))
                else:
                    exports["default"] = self._synthetic_default(declaration)
            else:
                self._local_exports.extend((name, name) for name in names)
            return

        value = node.child_by_field_name("value")
        if value is not None and is_default:
            exports["default"] = self._synthetic_default(value)
            return

        for child in node.named_children:
            if child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    if name_node is None:
                        continue
                    alias_node = spec.child_by_field_name("alias")
                    local = string_value(name_node) if name_node.type == "string" else node_text(name_node)
                    if alias_node is None:
                        exported = local
                    elif alias_node.type == "string":
                        exported = string_value(alias_node) or local
                    else:
                        exported = node_text(alias_node)
                    symbol = Symbol(exported)
                    symbol.declarations.append(
                        Declaration(
                            DeclarationKind.EXPORT_SPECIFIER,
                            spec,
                            self.unit,
                            exported,
                            module_specifier=source,
                            imported_name=local,
                        )
                    )
                    exports[exported] = symbol
                return
            if child.type == "namespace_export":
                names = [c for c in child.named_children if c.type in ("identifier", "string")]
                if names and source:
                    exported = string_value(names[0]) if names[0].type == "string" else node_text(names[0])
                    symbol = Symbol(exported)
                    symbol.declarations.append(
                        Declaration(
                            DeclarationKind.IMPORT_NAMESPACE,
                            child,
                            self.unit,
                            exported,
                            module_specifier=source,
                        )
                    )
                    exports[exported] = symbol
                return

        if source and any(not child.is_named and child.type == "*" for child in node.children):
            self.binding.star_exports.append(source)

    def _declared_names(self, declaration: Node) -> List[str]:
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            names = []
            for declarator in declaration.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                if name_node is None:
                    continue
                if name_node.type == "identifier":
                    names.append(node_text(name_node))
                else:
                    names.extend(
                        node_text(n)
                        for n in _pattern_identifiers(name_node)
                    )
            return names
        name_node = declaration.child_by_field_name("name")
        return [node_text(name_node)] if name_node is not None else []

    def _synthetic_default(self, node: Node) -> Symbol:
        # export default <anonymous function | class | expression>
        if function_kind(node) is not None:
            kind = DeclarationKind.FUNCTION
            declaration = Declaration(kind, node, self.unit, "default")
        elif node.type in CLASS_TYPES:
            declaration = Declaration(DeclarationKind.CLASS, node, self.unit, "default")
        else:
            declaration = Declaration(DeclarationKind.VARIABLE, node, self.unit, "default", value=node)
        symbol = Symbol("default")
        symbol.declarations.append(declaration)
        return symbol


def _pattern_identifiers(pattern: Node) -> List[Node]:
    found = []
    stack = [pattern]
    while stack:
        current = stack.pop()
        if current.type in ("identifier", "shorthand_property_identifier_pattern"):
            found.append(current)
        elif current.type in ("assignment_pattern", "object_assignment_pattern"):
            left = current.child_by_field_name("left")
            if left is not None:
                stack.append(left)
        elif current.type == "pair_pattern":
            value = current.child_by_field_name("value")
            if value is not None:
                stack.append(value)
        elif current.type in ("object_pattern", "array_pattern", "rest_pattern"):
            stack.extend(current.named_children)
    return found


def bind_unit(unit: "SourceUnit") -> ModuleBinding:
    """Bind a parsed file."""
    binding = Binder(unit).bind()
    logger.debug(
        f"Bound {unit.path}: {len(binding.module_scope.symbols)} top-level symbols, "
        f"{len(binding.exports)} exports"
    )
    return binding
