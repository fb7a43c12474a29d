"""
Hoisting pass: pre-declares the bindings of one statement list before it runs.

Only the immediate statement list is scanned (plus `var` heads of loops at that
level); nested blocks and function bodies are hoisted when they are entered.
"""
from typing import Callable, Iterator, List, Optional

from .environment import UNINITIALIZED, LexicalEnvironment
from .values import undefined


def pattern_names(pattern) -> Iterator[str]:
    """Yield every identifier a binding pattern introduces, left to right."""
    if pattern is None:
        return
    t = pattern.type
    if t == "Identifier":
        yield pattern.name
    elif t == "AssignmentPattern":
        yield from pattern_names(pattern.left)
    elif t == "RestElement":
        yield from pattern_names(pattern.argument)
    elif t == "ArrayPattern":
        for element in pattern.elements:
            yield from pattern_names(element)
    elif t == "ObjectPattern":
        for prop in pattern.properties:
            yield from pattern_names(prop.argument if prop.type == "RestElement" else prop.value)


def _var_declaration_of(stmt):
    t = stmt.type
    if t == "VariableDeclaration":
        return stmt
    if t == "ForStatement" and stmt.init is not None and stmt.init.type == "VariableDeclaration":
        return stmt.init
    if t in ("ForInStatement", "ForOfStatement") and stmt.left.type == "VariableDeclaration":
        return stmt.left
    return None


def var_names(statements: List) -> List[str]:
    names: List[str] = []
    for stmt in statements:
        decl = _var_declaration_of(stmt)
        if decl is None or decl.kind != "var":
            continue
        for declarator in decl.declarations:
            for name in pattern_names(declarator.id):
                if name not in names:
                    names.append(name)
    return names


def hoist_declarations(statements: List, env: LexicalEnvironment,
                       make_function: Optional[Callable] = None) -> List[str]:
    """Pre-declare `var`, function and class bindings of `statements` in `env`.

    Function declarations are bound to `make_function(node, env)` so they are
    callable before their textual position; classes stay uninitialized until
    their declaration runs. Returns the hoisted names in declaration order.
    """
    hoisted: List[str] = []
    for stmt in statements:
        if stmt.type == "FunctionDeclaration":
            name = stmt.id.name
            value = make_function(stmt, env) if make_function is not None else undefined
            env.create_mutable_binding(name, "function", value)
            hoisted.append(name)
        elif stmt.type == "ClassDeclaration":
            env.create_mutable_binding(stmt.id.name, "class", UNINITIALIZED)
            hoisted.append(stmt.id.name)
    for name in var_names(statements):
        if not env.record.has_binding(name):
            env.create_mutable_binding(name, "var", undefined)
            hoisted.append(name)
    return hoisted
