"""
Narration helpers: statement headers for "next step" predictions, short value
renderings for control-flow messages, and expression breakdowns.

Nothing here mutates interpreter state; breakdowns only read bindings and
properties and never invoke functions.
"""
import json
import logging
import math
from typing import Any, List, Optional

from .errors import JSRuntimeError
from .values import (
    SIDE_EFFECT, FunctionValue, JSArray, JSObject, NativeFunction, apply_operator, is_callable,
    is_nullish, is_number, number_to_string, to_boolean, to_number, to_property_key, typeof_value, undefined,
)

log = logging.getLogger("jsstep.narration")

SKIPPED_STATEMENTS = ("EmptyStatement", "DebuggerStatement")
HEADER_LIMIT = 80


def first_meaningful_statement(node):
    """First statement of a block that is worth stepping to; non-blocks are returned as-is."""
    if node is None:
        return None
    if node.type != "BlockStatement":
        return node
    for stmt in node.body:
        if stmt is not None and stmt.type not in SKIPPED_STATEMENTS:
            return stmt
    return None


def next_meaningful(statements: List, index: int):
    for stmt in statements[index + 1:]:
        if stmt is not None and stmt.type not in SKIPPED_STATEMENTS:
            return stmt
    return None


def source_of(node, source: str) -> str:
    if node is None:
        return ""
    return source[node.range[0]:node.range[1]]


def first_line_of(node, source: str) -> str:
    text = source_of(node, source).strip()
    if len(text) > HEADER_LIMIT:
        text = text[:HEADER_LIMIT - 3] + "..."
    return text


def _strip_brace(text: str) -> str:
    text = text.rstrip()
    if text.endswith("{"):
        text = text[:-1].rstrip()
    return text


def display_header(node, source: str) -> str:
    """One-line header used in next-step messages (`if (x > 1)`, `for (...)`, ...)."""
    if node is None:
        return ""
    t = node.type
    if t == "BlockStatement":
        first = first_meaningful_statement(node)
        return display_header(first, source) if first is not None else "{}"
    if t == "IfStatement":
        return f"if ({source_of(node.test, source)})"
    if t == "WhileStatement":
        return f"while ({source_of(node.test, source)})"
    if t == "DoWhileStatement":
        return f"do ... while ({source_of(node.test, source)})"
    if t in ("ForStatement", "ForInStatement", "ForOfStatement"):
        return _strip_brace(source[node.range[0]:node.body.range[0]].strip())
    if t == "FunctionDeclaration":
        params = ", ".join(source_of(p, source) for p in node.params)
        return f"function {node.id.name}({params})"
    if t == "ClassDeclaration":
        return f"class {node.id.name}"
    if t == "ExpressionStatement":
        return source_of(node.expression, source)
    if t == "VariableDeclaration":
        return _strip_brace(source_of(node, source).split("\n")[0])
    return _strip_brace(source_of(node, source).strip().split("\n")[0])


def format_for_flow(value: Any) -> str:
    """Very short rendering for flow messages: structures collapse to a marker."""
    if value is SIDE_EFFECT:
        return "[Side Effect]"
    if value is None:
        return "null"
    if value is undefined:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return number_to_string(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, FunctionValue):
        return "[Function]"
    if is_callable(value):
        return "[NativeFunction]"
    if isinstance(value, JSArray):
        return f"[Array({len(value)})]"
    return "[Object]"


def to_jsonable(value: Any, max_depth: int = 3, _depth: int = 0, _ancestors: Optional[set] = None):
    """JSON-style projection: undefined becomes null, functions become markers."""
    if value is undefined or value is None:
        return None
    if value is SIDE_EFFECT:
        return "[Side Effect]"
    if isinstance(value, (bool, str)):
        return value
    if is_number(value):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value) if float(value).is_integer() else value
    if isinstance(value, FunctionValue):
        return "[Function]"
    if is_callable(value):
        return "[NativeFunction]"
    if _depth >= max_depth:
        return "[Object]"
    ancestors = _ancestors if _ancestors is not None else set()
    if id(value) in ancestors:
        return "[Circular]"
    ancestors.add(id(value))
    try:
        if isinstance(value, JSArray):
            return [to_jsonable(v, max_depth, _depth + 1, ancestors) for v in value]
        if isinstance(value, JSObject):
            return {k: to_jsonable(value[k], max_depth, _depth + 1, ancestors)
                    for k in value.own_enumerable_keys() if value[k] is not undefined}
        return str(value)
    finally:
        ancestors.discard(id(value))


def stringify(value: Any, max_depth: int = 3) -> str:
    """Compact JSON text of a value, the way call summaries and console output show structures."""
    if value is undefined:
        return "undefined"
    return json.dumps(to_jsonable(value, max_depth), ensure_ascii=False, separators=(",", ":"))


def describe_value(value: Any) -> str:
    """Argument / return-value summary used in call narration."""
    if isinstance(value, FunctionValue):
        return "[Function]"
    if is_callable(value):
        return "[NativeFunction]"
    if is_number(value) and (math.isnan(value) or math.isinf(value)):
        return number_to_string(value)
    return stringify(value)


def callee_name(node, value=None) -> str:
    if node is None:
        return "<call>"
    if node.type == "Identifier":
        return node.name
    if node.type == "MemberExpression":
        return "<computed>" if node.computed else node.property.name
    if isinstance(value, FunctionValue) and value.is_arrow:
        return "(arrow closure)"
    return "<function>"


def describe_target(node, source: str) -> str:
    """Name a logical-assignment target the way narration refers to it."""
    if node.type == "Identifier":
        return node.name
    if node.type == "MemberExpression" and not node.computed:
        owner = node.object.name if node.object.type == "Identifier" else "object"
        return f"{owner}.{node.property.name}"
    return source_of(node, source)


class ExpressionBreakdown:
    """Walks an expression tree and explains each sub-result, reading state only."""

    def __init__(self, source: str, env, realm):
        self.source = source
        self.env = env
        self.realm = realm
        self.lines: List[str] = []

    def build(self, node) -> List[str]:
        try:
            self._walk(node, "")
        except (JSRuntimeError, RecursionError, TypeError, ValueError) as err:
            log.debug("breakdown aborted: %s", err)
            self.lines.append("(error while building breakdown)")
        return self.lines

    def _show(self, value) -> str:
        return format_for_flow(value) if is_callable(value) else stringify(value)

    def _walk(self, node, indent: str):
        emit = lambda msg: self.lines.append(indent + msg)
        if node is None:
            emit("(empty)")
            return undefined
        t = node.type
        inner = indent + "  "
        if t == "Identifier":
            value = self.env.lookup(node.name)
            emit(f'Identifier "{node.name}" → {self._show(value)}')
            return value
        if t == "Literal":
            emit(f"Literal → {self._show(node.value)}")
            return node.value
        if t == "TemplateLiteral":
            emit(f"Template → {source_of(node, self.source)}")
            return undefined
        if t in ("ArrowFunctionExpression", "FunctionExpression"):
            emit("Arrow Function:" if t == "ArrowFunctionExpression" else "Function Expression:")
            params = ", ".join(source_of(p, self.source) for p in node.params)
            emit(f"  Parameters: ({params})")
            emit(f"  Body: {first_line_of(node.body, self.source)}")
            return "[Function]"
        if t == "BinaryExpression":
            emit(f"Binary Expression ({node.operator}):")
            left = self._walk(node.left, inner)
            right = self._walk(node.right, inner)
            result = apply_operator(node.operator, left, right, self.realm)
            emit(f"=> {self._show(left)} {node.operator} {self._show(right)} = {self._show(result)}")
            return result
        if t == "LogicalExpression":
            emit(f"Logical Expression ({node.operator}):")
            left = self._walk(node.left, inner)
            if node.operator == "&&":
                result = self._walk(node.right, inner) if to_boolean(left) else left
            elif node.operator == "||":
                result = left if to_boolean(left) else self._walk(node.right, inner)
            else:
                result = self._walk(node.right, inner) if is_nullish(left) else left
            emit(f"=> {self._show(result)}")
            return result
        if t == "UnaryExpression":
            if node.operator == "typeof" and node.argument.type == "Identifier" \
                    and not self.env.has_binding(node.argument.name):
                emit("typeof → undefined")
                return "undefined"
            value = self._walk(node.argument, inner)
            if node.operator == "!":
                result = not to_boolean(value)
            elif node.operator == "-":
                result = -to_number(value)
            elif node.operator == "+":
                result = to_number(value)
            elif node.operator == "typeof":
                result = typeof_value(value)
            else:
                emit(f"Unary ({node.operator}) not simulated")
                return undefined
            emit(f"Unary {node.operator} → {self._show(result)}")
            return result
        if t == "UpdateExpression":
            target = source_of(node.argument, self.source)
            current = self.env.lookup(node.argument.name) if node.argument.type == "Identifier" else undefined
            delta = 1 if node.operator == "++" else -1
            new_value = to_number(current) + delta
            emit(f"Update: {target} {node.operator} (old = {self._show(current)}, new = {self._show(new_value)})")
            return new_value if node.prefix else current
        if t == "MemberExpression":
            emit("Member access:")
            obj = self._walk(node.object, inner)
            if node.computed:
                prop = self._walk(node.property, inner)
            else:
                prop = node.property.name
                emit(f'  Property: "{prop}"')
            if is_nullish(obj):
                emit(f"  Cannot read property of {self._show(obj)}")
                return undefined
            result = self.realm.get_property(obj, to_property_key(prop))
            emit(f"  Result → {self._show(result)}")
            return result
        if t == "ChainExpression":
            return self._walk(node.expression, indent)
        if t == "ConditionalExpression":
            emit("Conditional Expression:")
            test = self._walk(node.test, inner)
            branch = node.consequent if to_boolean(test) else node.alternate
            result = self._walk(branch, inner)
            emit(f"=> {self._show(result)}")
            return result
        if t == "ArrayExpression":
            emit("Array Expression:")
            items = [self._walk(el, inner) if el is not None else undefined for el in node.elements]
            emit("  [" + ", ".join(self._show(i) for i in items) + "]")
            return JSArray(items)
        if t == "ObjectExpression":
            emit("Object Expression:")
            for prop in node.properties:
                if prop.type == "SpreadElement":
                    emit(f"  ...{source_of(prop.argument, self.source)}")
                    continue
                key = prop.key.name if prop.key.type == "Identifier" and not prop.computed \
                    else self._walk(prop.key, inner)
                value = self._walk(prop.value, inner) if not prop.method else "[Function]"
                emit(f"  {to_property_key(key)}: {self._show(value)}")
            return undefined
        if t in ("CallExpression", "NewExpression"):
            emit("Call Expression:" if t == "CallExpression" else "New Expression:")
            callee = self._walk(node.callee, inner)
            emit(f"  Callee → {format_for_flow(callee)}")
            if node.arguments:
                emit("  Arguments:")
                for arg in node.arguments:
                    emit("    " + self._show(self._walk(arg, indent + "    ")))
            else:
                emit("  (no arguments)")
            emit("  (call result not evaluated here)")
            return SIDE_EFFECT
        if t == "AssignmentExpression":
            emit(f"Assignment ({node.operator}):")
            if node.left.type != "Identifier":
                emit(f"Target: {source_of(node.left, self.source)}")
                return self._walk(node.right, inner)
            name = node.left.name
            old = self.env.lookup(name)
            emit(f'Left side identifier "{name}" → old value {self._show(old)}')
            right = self._walk(node.right, inner)
            if node.operator == "=":
                new_value = right
            elif node.operator in ("&&=", "||=", "??="):
                emit(f"=> logical assignment on {name}")
                return right
            else:
                new_value = apply_operator(node.operator[:-1], old, right, self.realm)
            emit(f"=> {name} {node.operator} {self._show(right)} sets new value {self._show(new_value)}")
            return new_value
        if t == "SequenceExpression":
            emit("Sequence Expression:")
            result = undefined
            for expr in node.expressions:
                result = self._walk(expr, inner)
            return result
        if t == "ThisExpression":
            emit("this")
            return undefined
        emit(f"(Unsupported node type in breakdown: {t})")
        return undefined


def expression_breakdown(node, source: str, env, realm) -> List[str]:
    return ExpressionBreakdown(source, env, realm).build(node)


def captured_bindings(env) -> List[str]:
    """`name = value` for every non-global binding a closure can reach from `env`."""
    out: List[str] = []
    for scope in env.chain():
        if scope.kind == "global":
            break
        for name, binding in scope.record.items():
            if binding.kind != "builtin" and binding.initialized:
                out.append(f"{name} = {describe_value(binding.value)}")
    return out
