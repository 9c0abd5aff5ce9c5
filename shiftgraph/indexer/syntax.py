"""Helpers over tree-sitter TypeScript/JavaScript syntax trees.

Node type names follow the tree-sitter-typescript and tree-sitter-javascript
grammars. Both grammars share the JavaScript core, so the same helpers serve
every dialect.
"""

from enum import Enum
from typing import Iterator, Optional, Tuple

from tree_sitter import Node


class FunctionKind(Enum):
    """Closed set of function-like declaration variants."""

    FUNCTION_DECLARATION = "function_declaration"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    FUNCTION_EXPRESSION = "function_expression"
    ARROW_FUNCTION = "arrow_function"
    GET_ACCESSOR = "get_accessor"
    SET_ACCESSOR = "set_accessor"


# function_signature covers overloads and `declare function` forms
FUNCTION_DECLARATION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_signature",
}
# "function" is the expression node name in older grammar releases
FUNCTION_EXPRESSION_TYPES = {"function_expression", "function", "generator_function"}
METHOD_TYPES = {"method_definition", "abstract_method_signature"}
CLASS_TYPES = {"class_declaration", "abstract_class_declaration", "class"}
TRANSPARENT_EXPRESSION_TYPES = {
    "parenthesized_expression",
    "non_null_expression",
    "as_expression",
    "satisfies_expression",
    "type_assertion",
}

NodeKey = Tuple[int, int, str]


def node_text(node: Optional[Node]) -> str:
    """Decode a node's source text."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def node_key(node: Node) -> NodeKey:
    """Stable per-file key for a node (nodes are re-created on every access)."""
    return (node.start_byte, node.end_byte, node.type)


def walk(root: Node) -> Iterator[Node]:
    """Pre-order traversal without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def ancestors(node: Node) -> Iterator[Node]:
    current = node.parent
    while current is not None:
        yield current
        current = current.parent


def _modifier_before_name(node: Node, keywords: Tuple[str, ...]) -> Optional[str]:
    name = node.child_by_field_name("name")
    for child in node.children:
        if name is not None and child.start_byte >= name.start_byte:
            break
        if not child.is_named and child.type in keywords:
            return child.type
    return None


def accessor_keyword(node: Node) -> Optional[str]:
    """Return "get" or "set" for accessor methods."""
    return _modifier_before_name(node, ("get", "set"))


def is_static_member(node: Node) -> bool:
    return _modifier_before_name(node, ("static",)) is not None


def function_kind(node: Node) -> Optional[FunctionKind]:
    """Classify a node as one of the function-like variants.

    Args:
        node: Tree-sitter node

    Returns:
        The variant, or None when the node does not introduce a callable body
    """
    if not node.is_named:
        return None

    node_type = node.type
    if node_type in FUNCTION_DECLARATION_TYPES:
        return FunctionKind.FUNCTION_DECLARATION
    if node_type in FUNCTION_EXPRESSION_TYPES:
        return FunctionKind.FUNCTION_EXPRESSION
    if node_type == "arrow_function":
        return FunctionKind.ARROW_FUNCTION

    in_class = node.parent is not None and node.parent.type == "class_body"
    # method_signature outside a class body is an interface member, not a body
    if node_type in METHOD_TYPES or (node_type == "method_signature" and in_class):
        accessor = accessor_keyword(node)
        if accessor == "get":
            return FunctionKind.GET_ACCESSOR
        if accessor == "set":
            return FunctionKind.SET_ACCESSOR
        if in_class and node_text(node.child_by_field_name("name")) == "constructor":
            return FunctionKind.CONSTRUCTOR
        return FunctionKind.METHOD

    return None


def function_name(node: Node, kind: Optional[FunctionKind] = None) -> str:
    """Best-effort display name for a function-like node."""
    if kind is None:
        kind = function_kind(node)
    name = node.child_by_field_name("name")

    if kind in (FunctionKind.FUNCTION_DECLARATION, FunctionKind.FUNCTION_EXPRESSION):
        return node_text(name) if name is not None else "anonymous"
    if kind in (FunctionKind.METHOD, FunctionKind.GET_ACCESSOR, FunctionKind.SET_ACCESSOR):
        return node_text(name) if name is not None else "unknown"
    if kind is FunctionKind.CONSTRUCTOR:
        return "constructor"
    if kind is FunctionKind.ARROW_FUNCTION:
        return "anonymous"
    return "unknown"


def unwrap_expression(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses, non-null assertions and type casts."""
    while node is not None and node.type in TRANSPARENT_EXPRESSION_TYPES:
        named = node.named_children
        if not named:
            return None
        # <T>expr puts the expression last, every other form puts it first
        node = named[-1] if node.type == "type_assertion" else named[0]
    return node


def is_function_value(node: Optional[Node]) -> bool:
    """True for function or arrow expressions (after unwrapping)."""
    node = unwrap_expression(node)
    return node is not None and function_kind(node) in (
        FunctionKind.FUNCTION_EXPRESSION,
        FunctionKind.ARROW_FUNCTION,
    )


def string_value(node: Optional[Node]) -> Optional[str]:
    """Return the unquoted value of a string literal node."""
    if node is None:
        return None
    fragments = [node_text(child) for child in node.named_children if child.type == "string_fragment"]
    if fragments:
        return "".join(fragments)
    text = node_text(node)
    if len(text) >= 2 and text[0] in "'\"`" and text[-1] == text[0]:
        return text[1:-1]
    return text or None
