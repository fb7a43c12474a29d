"""
Tree-walking evaluator that narrates what it does.

Statements evaluate to `None` or a completion signal (Return / Break /
Continue / Throw). Expressions evaluate to a value, or to a `Throw` when an
in-language exception is in flight: every composite expression hands a
`Throw` from a sub-expression straight back to its caller.

Safe mode (`safe=True`) is the read-only evaluation used for condition
previews: calls, `new` and class creation give `SIDE_EFFECT`, assignments and
updates give the current value of their target, and nothing is narrated.
"""
import logging
import sys
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Tuple

from .environment import UNINITIALIZED, LexicalEnvironment
from .errors import JSRangeError, JSReferenceError, JSRuntimeError, JSSyntaxError, JSTypeError
from .hoisting import hoist_declarations
from .narration import (
    callee_name, captured_bindings, describe_target, describe_value, display_header, expression_breakdown,
    first_meaningful_statement, format_for_flow, next_meaningful, source_of,
)
from .signals import Break, Continue, Return, Throw
from .values import (
    SIDE_EFFECT, ClassConstructor, FunctionValue, JSArray, JSObject, NativeFunction, apply_operator,
    is_callable, is_nullish, is_object, strict_equals, to_boolean, to_int32, to_number, to_property_key,
    to_string, type_label, typeof_value, undefined,
)

log = logging.getLogger("jsstep.interpreter")

try:
    # deep JS recursion maps onto deep Python recursion; the call-depth limit stops it first
    if sys.getrecursionlimit() < 20000:
        sys.setrecursionlimit(20000)
except (ValueError, RecursionError):
    pass

# statements that get their own timeline step
REAL_STATEMENTS = frozenset((
    "VariableDeclaration", "ExpressionStatement", "IfStatement", "ReturnStatement",
    "FunctionDeclaration", "ClassDeclaration", "BreakStatement", "ContinueStatement",
    "SwitchStatement", "TryStatement", "ThrowStatement", "LabeledStatement",
))

STATEMENT_TYPES = {
    "VariableDeclaration": "_exec_variable_declaration",
    "FunctionDeclaration": "_exec_function_declaration",
    "ClassDeclaration": "_exec_class_declaration",
    "ExpressionStatement": "_exec_expression_statement",
    "ReturnStatement": "_exec_return",
    "IfStatement": "_exec_if",
    "BlockStatement": "_exec_block",
    "ForStatement": "_exec_for",
    "WhileStatement": "_exec_while",
    "DoWhileStatement": "_exec_do_while",
    "ForInStatement": "_exec_for_in",
    "ForOfStatement": "_exec_for_of",
    "SwitchStatement": "_exec_switch",
    "TryStatement": "_exec_try",
    "ThrowStatement": "_exec_throw",
    "BreakStatement": "_exec_break",
    "ContinueStatement": "_exec_continue",
    "LabeledStatement": "_exec_labeled",
    "EmptyStatement": "_exec_empty",
    "DebuggerStatement": "_exec_empty",
}

EXPRESSION_TYPES = {
    "Identifier": "_eval_identifier",
    "Literal": "_eval_literal",
    "TemplateLiteral": "_eval_template",
    "ThisExpression": "_eval_this",
    "ArrayExpression": "_eval_array",
    "ObjectExpression": "_eval_object",
    "FunctionExpression": "_eval_function",
    "ArrowFunctionExpression": "_eval_function",
    "ClassExpression": "_eval_class",
    "UnaryExpression": "_eval_unary",
    "UpdateExpression": "_eval_update",
    "BinaryExpression": "_eval_binary",
    "LogicalExpression": "_eval_logical",
    "ConditionalExpression": "_eval_conditional",
    "SequenceExpression": "_eval_sequence",
    "AssignmentExpression": "_eval_assignment",
    "MemberExpression": "_eval_member",
    "CallExpression": "_eval_call",
    "NewExpression": "_eval_new",
    "ChainExpression": "_eval_chain",
}


class _ChainBreak:
    """Short-circuit marker of an optional chain; `ChainExpression` turns it into undefined."""

    def __repr__(self):
        return "<chain-break>"


CHAIN_BREAK = _ChainBreak()


def _abrupt(value) -> bool:
    return isinstance(value, Throw) or value is SIDE_EFFECT or value is CHAIN_BREAK


@dataclass(frozen=True)
class EvalContext:
    this: Any = undefined
    # running function (closure or class constructor) for `super` lookups
    function: Any = None
    new_target: Any = undefined
    # labels attached to the statement about to run (loops consume them)
    labels: Tuple[str, ...] = ()
    # statement that follows the current one in its list, for next-step predictions
    next_statement: Any = None
    # derived-class constructors keep `this` in a one-slot cell until super() runs
    this_cell: Optional[list] = None


class _Reference:
    """Assignable target: a binding name or an object property."""

    __slots__ = ("interp", "env", "base", "key")

    def __init__(self, interp, env, base, key):
        self.interp = interp
        self.env = env
        self.base = base
        self.key = key

    def get(self):
        if self.base is None:
            return self.env.get(self.key)
        return self.interp.realm.get_property(self.base, self.key)

    def put(self, value):
        if self.base is None:
            self.env.set(self.key, value)
        else:
            self.interp.realm.set_property(self.base, self.key, value)
        return value


class Interpreter:
    def __init__(self, source: str, arena, global_env: LexicalEnvironment, realm, logger, options):
        self.source = source
        self.arena = arena
        self.global_env = global_env
        self.realm = realm
        self.logger = logger
        self.options = options
        self.call_stack: List[str] = logger.stack
        self.call_counter = 0
        self.max_call_depth = options.max_call_depth
        self._statement_handlers = {t: getattr(self, name) for t, name in STATEMENT_TYPES.items()}
        self._expression_handlers = {t: getattr(self, name) for t, name in EXPRESSION_TYPES.items()}

    # ------------------------------------------------------------------ helpers

    def _header(self, node) -> str:
        return display_header(node, self.source)

    def _src(self, node) -> str:
        return source_of(node, self.source)

    def _predict(self, node, prefix: str, fallback: str):
        """Point the current step at `node` (or at `fallback` when nothing follows)."""
        if node is not None:
            self.logger.set_next(node.line, f"{prefix} → {self._header(node)}")
        else:
            self.logger.set_next(None, fallback)

    def _predict_first(self, body, fallback: str = "End of block"):
        self._predict(first_meaningful_statement(body), "Next Step", fallback)

    @staticmethod
    def _this_value(ctx: EvalContext):
        if ctx.this_cell is not None:
            value = ctx.this_cell[0]
            if value is UNINITIALIZED:
                raise JSReferenceError(
                    "Must call super constructor in derived class before accessing 'this'")
            return value
        return ctx.this

    # --------------------------------------------------------------- statements

    def run_program(self, program):
        """Hoist and run the top-level statement list; returns its completion signal."""
        hoist_declarations(program.body, self.global_env, self.make_hoisted_function)
        return self.exec_statements(program.body, self.global_env, EvalContext())

    def exec_statements(self, statements: List, env: LexicalEnvironment, ctx: EvalContext):
        for index, stmt in enumerate(statements):
            following = next_meaningful(statements, index)
            if following is None:
                following = ctx.next_statement
            stmt_ctx = replace(ctx, labels=(), next_statement=following)
            result = self.exec_statement(stmt, env, stmt_ctx)
            if result is not None:
                return result
        return None

    def exec_statement(self, node, env: LexicalEnvironment, ctx: EvalContext):
        handler = self._statement_handlers.get(node.type)
        if handler is None:
            log.warning("unsupported statement type %s at line %s", node.type, node.line)
            raise JSSyntaxError(f"Unsupported statement type: {node.type}", node.line)
        if node.type in REAL_STATEMENTS:
            self.logger.current_env = env
            self.logger.log(node.line, node, env)
        try:
            result = handler(node, env, ctx)
        except JSRuntimeError as err:
            if err.line is None:
                err.line = node.line
            raise
        if not self.logger.has_next():
            self._predict(ctx.next_statement, "Next Step", "End of block")
        return result

    def _exec_empty(self, node, env, ctx):
        return None

    def _exec_variable_declaration(self, node, env, ctx):
        for decl in node.declarations:
            if decl.init is None:
                if node.kind == "var":
                    scope = env.var_scope()
                    if not scope.record.has_binding(decl.id.name):
                        scope.create_mutable_binding(decl.id.name, "var", undefined)
                    continue
                signal = self.bind_pattern(decl.id, undefined, env, ctx, node.kind)
            else:
                value = self.eval_expr(decl.init, env, ctx)
                if isinstance(value, Throw):
                    return value
                if decl.id.type == "Identifier":
                    self._infer_name(value, decl.init, decl.id.name)
                else:
                    self.logger.add_flow(f"Destructuring: {self._src(decl.id)}")
                signal = self.bind_pattern(decl.id, value, env, ctx, node.kind)
            if signal is not None:
                return signal
        return None

    def _exec_function_declaration(self, node, env, ctx):
        fn = self.create_function(node, env, ctx)
        name = node.id.name
        binding = env.record.bindings.get(name)
        if binding is not None and binding.kind == "function":
            binding.value = fn
        else:
            env.create_mutable_binding(name, "function", fn)
        self.logger.add_flow(f"Declared function {name}")
        return None

    def _exec_class_declaration(self, node, env, ctx):
        cls = self.create_class(node, env, ctx)
        if isinstance(cls, Throw):
            return cls
        name = node.id.name
        binding = env.record.bindings.get(name)
        if binding is not None and binding.kind == "class" and not binding.initialized:
            env.initialize_binding(name, cls)
        else:
            env.create_mutable_binding(name, "class", cls)
        self.logger.add_flow(f"Declared class {name}")
        return None

    def _exec_expression_statement(self, node, env, ctx):
        expr = node.expression
        self.logger.add_flow(f"Evaluating expression: {self._src(expr)}")
        breakdown = expression_breakdown(expr, self.source, env, self.realm)
        value = self.eval_expr(expr, env, ctx)
        if isinstance(value, Throw):
            return value
        self.logger.current_env = env
        self.logger.add_expression_eval(expr, value, breakdown)
        self.logger.add_flow(f"Expression result → {format_for_flow(value)}")
        return None

    def _exec_return(self, node, env, ctx):
        value = undefined
        if node.argument is not None:
            value = self.eval_expr(node.argument, env, ctx)
            if isinstance(value, Throw):
                return value
        self.logger.add_flow(f"Return encountered → value: {format_for_flow(value)}")
        self.logger.set_next(None, "Return: control returns to caller")
        return Return(value)

    def _check_condition(self, test, env, ctx, context: str):
        """Evaluate a branch/loop test; returns (truthy, signal)."""
        breakdown = expression_breakdown(test, self.source, env, self.realm)
        preview = self.preview(test, env, ctx)
        value = self.eval_expr(test, env, ctx)
        if isinstance(value, Throw):
            return False, value
        self.logger.current_env = env
        if preview is SIDE_EFFECT:
            breakdown.append("(condition has side effects; result comes from running it)")
        self.logger.add_expression_eval(test, value, breakdown)
        self.logger.add_expression_context(test, context)
        return to_boolean(value), None

    def _exec_if(self, node, env, ctx):
        truthy, signal = self._check_condition(node.test, env, ctx, "If Condition")
        if signal is not None:
            return signal
        self.logger.add_flow("IF CHECK:")
        if truthy:
            self.logger.add_flow("Result: TRUE → taking THEN branch")
            branch = node.consequent
        else:
            self.logger.add_flow("Result: FALSE → taking ELSE / skipping")
            branch = node.alternate
        if branch is None:
            self._predict(ctx.next_statement, "If false → continue to", "End of block")
            return None
        self._predict_first(branch)
        return self._exec_branch(branch, env, ctx)

    def _exec_branch(self, branch, env, ctx):
        if branch.type == "BlockStatement":
            block_env = env.extend("block")
            self.logger.current_env = block_env
            result = self.exec_statements(branch.body, block_env, ctx)
            self.logger.current_env = env
            return result
        return self.exec_statement(branch, env, replace(ctx, labels=()))

    def _exec_block(self, node, env, ctx):
        block_env = env.extend("block")
        self.logger.current_env = block_env
        self.logger.add_flow("Entering new block scope")
        self._predict_first(node)
        result = self.exec_statements(node.body, block_env, ctx)
        self.logger.current_env = env
        self.logger.add_flow("Exiting new block scope")
        if result is None:
            self._predict(ctx.next_statement, "Exit block", "Exit block → end of block")
        return result

    # --- loops ---

    @staticmethod
    def _loop_control(result, labels) -> Optional[str]:
        """Classify a body completion: "break", "continue", "exit" (propagate) or None."""
        if result is None:
            return None
        if isinstance(result, Break) and (result.label is None or result.label in labels):
            return "break"
        if isinstance(result, Continue) and (result.label is None or result.label in labels):
            return "continue"
        return "exit"

    def _exec_loop_body(self, body, env, ctx):
        if body.type == "BlockStatement":
            iter_env = env.extend("block")
            self.logger.current_env = iter_env
            result = self.exec_statements(body.body, iter_env, ctx)
        else:
            result = self.exec_statement(body, env, ctx)
        self.logger.current_env = env
        return result

    def _break_out(self, ctx):
        self._predict(ctx.next_statement, "Break → exit loop to", "Break → exit loop")

    def _copy_iteration_env(self, loop_env, outer, names):
        """Fresh environment holding the current values of the per-iteration `let` bindings."""
        fresh = outer.extend("block")
        for name in names:
            binding = loop_env.record.bindings[name]
            fresh.create_mutable_binding(name, binding.kind, binding.value)
        return fresh

    def _exec_for(self, node, env, ctx):
        loop_env = env.extend("block")
        self.logger.current_env = loop_env
        body_ctx = replace(ctx, labels=(), next_statement=None)
        per_iteration: List[str] = []
        if node.init is not None:
            self.logger.add_flow("FOR LOOP INIT:")
            if node.init.type == "VariableDeclaration":
                signal = self._exec_variable_declaration(node.init, loop_env, ctx)
                if node.init.kind in ("let", "const"):
                    per_iteration = list(loop_env.record.bindings)
            else:
                value = self.eval_expr(node.init, loop_env, ctx)
                signal = value if isinstance(value, Throw) else None
            if signal is not None:
                return signal
        iteration = 0
        while True:
            iteration += 1
            self.logger.current_env = loop_env
            if node.test is not None:
                self.logger.log(node.test.line, node, loop_env)
                truthy, signal = self._check_condition(node.test, loop_env, ctx, "For Loop Condition")
                if signal is not None:
                    return signal
                self.logger.add_flow(f"FOR LOOP CHECK (iteration #{iteration})")
                if not truthy:
                    self.logger.add_flow("Result: FALSE → exit loop")
                    self._predict(ctx.next_statement, "Exit FOR loop", "Exit FOR loop → End")
                    break
                self.logger.add_flow("Result: TRUE → enter loop body")
            else:
                self.logger.log(node.line, node, loop_env)
                self.logger.add_flow(f"FOR LOOP CHECK (iteration #{iteration})")
                self.logger.add_flow("No condition → enter loop body")
            self._predict_first(node.body, "Next Step → loop update")
            result = self._exec_loop_body(node.body, loop_env, body_ctx)
            control = self._loop_control(result, ctx.labels)
            if control == "break":
                self._break_out(ctx)
                break
            if control == "exit":
                return result
            if per_iteration:
                loop_env = self._copy_iteration_env(loop_env, env, per_iteration)
                self.logger.current_env = loop_env
            if node.update is not None:
                self.logger.add_flow("FOR LOOP UPDATE:")
                self.logger.log(node.update.line, node, loop_env)
                value = self.eval_expr(node.update, loop_env, ctx)
                if isinstance(value, Throw):
                    return value
                self.logger.add_expression_eval(node.update, value)
                if node.test is not None:
                    self.logger.set_next(node.test.line, "Go to loop condition check")
                else:
                    self._predict_first(node.body)
            elif node.test is not None:
                self.logger.set_next(node.test.line, "Next Step → evaluate for condition again")
        self.logger.current_env = env
        return None

    def _exec_while(self, node, env, ctx):
        body_ctx = replace(ctx, labels=(), next_statement=None)
        iteration = 0
        while True:
            iteration += 1
            self.logger.current_env = env
            self.logger.log(node.test.line, node, env)
            truthy, signal = self._check_condition(node.test, env, ctx, "While Loop Condition")
            if signal is not None:
                return signal
            self.logger.add_flow(f"WHILE CHECK (#{iteration})")
            if not truthy:
                self.logger.add_flow("FALSE → exit")
                self._predict(ctx.next_statement, "Exit WHILE", "End of block")
                return None
            self.logger.add_flow("TRUE → body")
            self._predict_first(node.body)
            result = self._exec_loop_body(node.body, env, body_ctx)
            control = self._loop_control(result, ctx.labels)
            if control == "break":
                self._break_out(ctx)
                return None
            if control == "exit":
                return result
            if control == "continue":
                self.logger.set_next(node.test.line, "Continue → check condition again")
            else:
                self.logger.set_next(node.test.line, "Next Step → evaluate while condition again")

    def _exec_do_while(self, node, env, ctx):
        body_ctx = replace(ctx, labels=(), next_statement=None)
        iteration = 0
        while True:
            iteration += 1
            self.logger.current_env = env
            self.logger.log(node.line, node, env)
            self.logger.add_flow(f"DO-WHILE body (#{iteration})")
            self._predict_first(node.body, "Next Step → check condition")
            result = self._exec_loop_body(node.body, env, body_ctx)
            control = self._loop_control(result, ctx.labels)
            if control == "break":
                self._break_out(ctx)
                return None
            if control == "exit":
                return result
            self.logger.log(node.test.line, node, env)
            truthy, signal = self._check_condition(node.test, env, ctx, "Do-While Loop Condition")
            if signal is not None:
                return signal
            self.logger.add_flow(f"DO-WHILE CHECK (#{iteration})")
            if not truthy:
                self.logger.add_flow("FALSE → exit")
                self._predict(ctx.next_statement, "Exit DO-WHILE", "End of block")
                return None
            self.logger.add_flow("TRUE → body again")
            self._predict_first(node.body)

    def _bind_loop_head(self, left, value, env, ctx):
        if left.type == "VariableDeclaration":
            return self.bind_pattern(left.declarations[0].id, value, env, ctx, left.kind)
        return self.assign_pattern(left, value, env, ctx)

    def _exec_for_each(self, node, env, ctx, items, label: str, noun: str):
        body_ctx = replace(ctx, labels=(), next_statement=None)
        for index, item in enumerate(items, 1):
            iter_env = env.extend("block")
            self.logger.current_env = iter_env
            signal = self._bind_loop_head(node.left, item, iter_env, ctx)
            if signal is not None:
                return signal
            self.logger.log(node.line, node, iter_env)
            self.logger.add_flow(f"{label} (#{index}) → {noun} = {format_for_flow(item)}")
            self._predict_first(node.body)
            result = self._exec_loop_body(node.body, iter_env, body_ctx)
            control = self._loop_control(result, ctx.labels)
            if control == "break":
                self._break_out(ctx)
                self.logger.current_env = env
                return None
            if control == "exit":
                return result
        self.logger.current_env = env
        self._predict(ctx.next_statement, f"After {label}", f"After {label} → end of block")
        return None

    def _exec_for_in(self, node, env, ctx):
        subject = self.eval_expr(node.right, env, ctx)
        if isinstance(subject, Throw):
            return subject
        keys = self.realm.enumerable_keys(subject)
        return self._exec_for_each(node, env, ctx, keys, "FOR-IN", "key")

    def _exec_for_of(self, node, env, ctx):
        subject = self.eval_expr(node.right, env, ctx)
        if isinstance(subject, Throw):
            return subject
        items = self.realm.iterate(subject)
        return self._exec_for_each(node, env, ctx, items, "FOR-OF", "value")

    # --- other control flow ---

    def _exec_switch(self, node, env, ctx):
        discriminant = self.eval_expr(node.discriminant, env, ctx)
        if isinstance(discriminant, Throw):
            return discriminant
        self.logger.add_flow(f"SWITCH discriminant evaluated → {format_for_flow(discriminant)}")
        switch_env = env.extend("block")
        matched = default = -1
        for index, case in enumerate(node.cases):
            if case.test is None:
                default = index
                continue
            value = self.eval_expr(case.test, switch_env, ctx)
            if isinstance(value, Throw):
                return value
            if strict_equals(value, discriminant):
                matched = index
                break
        if matched < 0:
            matched = default
        if matched < 0:
            self.logger.add_flow("SWITCH: no case matched")
            self._predict(ctx.next_statement, "After switch", "End of block")
            return None
        case = node.cases[matched]
        self.logger.add_flow("SWITCH: default case" if case.test is None
                             else f"SWITCH: matched case {self._src(case.test)}")
        statements = [stmt for c in node.cases[matched:] for stmt in c.consequent]
        first = next((s for s in statements if s.type not in ("EmptyStatement", "DebuggerStatement")), None)
        self._predict(first, "Next Step", "End of switch")
        self.logger.current_env = switch_env
        result = self.exec_statements(statements, switch_env, replace(ctx, labels=()))
        self.logger.current_env = env
        if isinstance(result, Break) and result.label is None:
            self.logger.add_flow("SWITCH: break → end switch")
            result = None
        if result is None:
            self._predict(ctx.next_statement, "After switch", "End of block")
        return result

    def _exec_scoped_block(self, block, env, ctx):
        block_env = env.extend("block")
        self.logger.current_env = block_env
        result = self.exec_statements(block.body, block_env, ctx)
        self.logger.current_env = env
        return result

    def _exec_try(self, node, env, ctx):
        self.logger.add_flow("TRY block start")
        self._predict_first(node.block)
        result = self._exec_scoped_block(node.block, env, ctx)
        if isinstance(result, Throw) and node.handler is not None:
            handler = node.handler
            self.logger.add_flow("Exception caught → entering catch")
            catch_env = env.extend("block")
            if handler.param is not None:
                signal = self.bind_pattern(handler.param, result.value, catch_env, ctx, "let")
                if signal is not None:
                    return signal
            self.logger.current_env = catch_env
            self._predict_first(handler.body)
            result = self.exec_statements(handler.body.body, catch_env, ctx)
            self.logger.current_env = env
        if node.finalizer is not None:
            self.logger.add_flow("Entering finally")
            self._predict_first(node.finalizer)
            final = self._exec_scoped_block(node.finalizer, env, ctx)
            if final is not None:
                return final
        return result

    def _exec_throw(self, node, env, ctx):
        value = self.eval_expr(node.argument, env, ctx)
        if isinstance(value, Throw):
            return value
        self.logger.add_flow(f"Throw: {format_for_flow(value)}")
        self.logger.set_next(None, "Throw: looking for a catch block")
        return Throw(value)

    def _exec_break(self, node, env, ctx):
        label = node.label.name if node.label is not None else None
        self.logger.add_flow(f"Break encountered → label: {label}" if label else "Break encountered")
        self.logger.set_next(None, "Break → leaving the loop")
        return Break(label)

    def _exec_continue(self, node, env, ctx):
        label = node.label.name if node.label is not None else None
        self.logger.add_flow(f"Continue encountered → label: {label}" if label else "Continue encountered")
        self.logger.set_next(None, "Continue → next iteration")
        return Continue(label)

    def _exec_labeled(self, node, env, ctx):
        name = node.label.name
        self.logger.add_flow(f"Label: {name}")
        result = self.exec_statement(node.body, env, replace(ctx, labels=ctx.labels + (name,)))
        if isinstance(result, Break) and result.label == name:
            self.logger.add_flow(f"Break matched label {name} → exit labeled block")
            self._predict(ctx.next_statement, f"After label {name}:", f"After label {name}: end")
            return None
        return result

    # -------------------------------------------------------------- expressions

    def eval_expr(self, node, env: LexicalEnvironment, ctx: EvalContext, safe: bool = False):
        handler = self._expression_handlers.get(node.type)
        if handler is None:
            if node.type == "Super":
                raise JSSyntaxError("'super' keyword unexpected here", node.line)
            log.warning("unsupported expression type %s at line %s", node.type, node.line)
            raise JSSyntaxError(f"Unsupported expression type: {node.type}", node.line)
        return handler(node, env, ctx, safe)

    def preview(self, node, env, ctx):
        """Side-effect-free evaluation for narration; SIDE_EFFECT when it cannot tell."""
        try:
            value = self.eval_expr(node, env, ctx, safe=True)
        except JSRuntimeError as err:
            log.debug("preview of %s failed: %s", node.type, err)
            return SIDE_EFFECT
        if isinstance(value, Throw) or value is CHAIN_BREAK:
            return SIDE_EFFECT
        return value

    def _eval_identifier(self, node, env, ctx, safe):
        return env.get(node.name)

    def _eval_literal(self, node, env, ctx, safe):
        return node.value

    def _eval_template(self, node, env, ctx, safe):
        parts = []
        for index, quasi in enumerate(node.quasis):
            cooked = quasi.value.get("cooked")
            parts.append(cooked if cooked is not None else quasi.value.get("raw", ""))
            if index < len(node.expressions):
                value = self.eval_expr(node.expressions[index], env, ctx, safe)
                if _abrupt(value):
                    return value
                parts.append(to_string(value))
        return "".join(parts)

    def _eval_this(self, node, env, ctx, safe):
        return self._this_value(ctx)

    def _eval_array(self, node, env, ctx, safe):
        items = JSArray()
        for element in node.elements:
            if element is None:
                items.append(undefined)
                continue
            if element.type == "SpreadElement":
                value = self.eval_expr(element.argument, env, ctx, safe)
                if _abrupt(value):
                    return value
                items.extend(self.realm.iterate(value))
                continue
            value = self.eval_expr(element, env, ctx, safe)
            if _abrupt(value):
                return value
            items.append(value)
        return items

    def _property_key(self, prop, env, ctx, safe):
        key = prop.key
        if not prop.computed:
            if key.type == "Identifier":
                return key.name
            return to_property_key(key.value)
        value = self.eval_expr(key, env, ctx, safe)
        if _abrupt(value):
            return value
        return to_property_key(value)

    def _eval_object(self, node, env, ctx, safe):
        obj = self.realm.new_object()
        for prop in node.properties:
            if prop.type == "SpreadElement":
                source = self.eval_expr(prop.argument, env, ctx, safe)
                if _abrupt(source):
                    return source
                if not is_nullish(source):
                    for key in self.realm.own_keys(source):
                        obj[key] = self.realm.get_property(source, key)
                continue
            key = self._property_key(prop, env, ctx, safe)
            if _abrupt(key):
                return key
            if prop.method:
                value = self.create_function(prop.value, env, ctx, name=key, home_object=obj)
            else:
                value = self.eval_expr(prop.value, env, ctx, safe)
                if _abrupt(value):
                    return value
                self._infer_name(value, prop.value, key)
            obj[key] = value
        return obj

    def _eval_function(self, node, env, ctx, safe):
        return self.create_function(node, env, ctx)

    def _eval_class(self, node, env, ctx, safe):
        if safe:
            return SIDE_EFFECT
        return self.create_class(node, env, ctx)

    def _eval_unary(self, node, env, ctx, safe):
        op = node.operator
        arg = node.argument
        if op == "typeof" and arg.type == "Identifier" and not env.has_binding(arg.name):
            return "undefined"
        if op == "delete":
            if safe:
                return SIDE_EFFECT
            if arg.type != "MemberExpression":
                return arg.type != "Identifier"
            obj = self.eval_expr(arg.object, env, ctx)
            if _abrupt(obj):
                return obj
            key = self._member_key(arg, env, ctx, safe)
            if _abrupt(key):
                return key
            return self.realm.delete_property(obj, key)
        value = self.eval_expr(arg, env, ctx, safe)
        if _abrupt(value):
            return value
        if op == "typeof":
            return typeof_value(value)
        if op == "!":
            return not to_boolean(value)
        if op == "-":
            return -to_number(value)
        if op == "+":
            return to_number(value)
        if op == "~":
            return float(~to_int32(value))
        if op == "void":
            return undefined
        raise JSSyntaxError(f"Unsupported unary operator: {op}", node.line)

    def _reference(self, node, env, ctx, safe=False):
        """Resolve an assignment target to a `_Reference` (or an abrupt value)."""
        if node.type == "Identifier":
            return _Reference(self, env, None, node.name)
        if node.type == "MemberExpression":
            if node.object.type == "Super":
                base = self._this_value(ctx)
            else:
                base = self.eval_expr(node.object, env, ctx, safe)
                if _abrupt(base):
                    return base
            key = self._member_key(node, env, ctx, safe)
            if _abrupt(key):
                return key
            if is_nullish(base):
                raise JSTypeError(f"Cannot set properties of {to_string(base)} "
                                  f"(setting '{to_property_key(key)}')")
            return _Reference(self, env, base, key)
        raise JSSyntaxError("Invalid assignment target", node.line)

    def _eval_update(self, node, env, ctx, safe):
        ref = self._reference(node.argument, env, ctx, safe)
        if _abrupt(ref):
            return ref
        old = to_number(ref.get())
        if safe:
            return old
        new = old + 1 if node.operator == "++" else old - 1
        ref.put(new)
        return new if node.prefix else old

    def _eval_binary(self, node, env, ctx, safe):
        left = self.eval_expr(node.left, env, ctx, safe)
        if _abrupt(left):
            return left
        right = self.eval_expr(node.right, env, ctx, safe)
        if _abrupt(right):
            return right
        return apply_operator(node.operator, left, right, self.realm)

    def _eval_logical(self, node, env, ctx, safe):
        left = self.eval_expr(node.left, env, ctx, safe)
        if _abrupt(left):
            return left
        op = node.operator
        if op == "&&" and not to_boolean(left):
            return left
        if op == "||" and to_boolean(left):
            return left
        if op == "??" and not is_nullish(left):
            return left
        return self.eval_expr(node.right, env, ctx, safe)

    def _eval_conditional(self, node, env, ctx, safe):
        test = self.eval_expr(node.test, env, ctx, safe)
        if _abrupt(test):
            return test
        branch = node.consequent if to_boolean(test) else node.alternate
        return self.eval_expr(branch, env, ctx, safe)

    def _eval_sequence(self, node, env, ctx, safe):
        value = undefined
        for expr in node.expressions:
            value = self.eval_expr(expr, env, ctx, safe)
            if _abrupt(value):
                return value
        return value

    def _eval_assignment(self, node, env, ctx, safe):
        op = node.operator
        target = node.left
        if target.type not in ("Identifier", "MemberExpression"):
            if safe:
                return SIDE_EFFECT
            value = self.eval_expr(node.right, env, ctx)
            if isinstance(value, Throw):
                return value
            signal = self.assign_pattern(target, value, env, ctx)
            return signal if signal is not None else value
        ref = self._reference(target, env, ctx, safe)
        if _abrupt(ref):
            return ref
        if safe:
            return ref.get()
        if op in ("&&=", "||=", "??="):
            return self._logical_assignment(node, ref, env, ctx)
        if op == "=":
            value = self.eval_expr(node.right, env, ctx)
            if isinstance(value, Throw):
                return value
            if target.type == "Identifier":
                self._infer_name(value, node.right, target.name)
            return ref.put(value)
        current = ref.get()
        right = self.eval_expr(node.right, env, ctx)
        if isinstance(right, Throw):
            return right
        return ref.put(apply_operator(op[:-1], current, right, self.realm))

    def _logical_assignment(self, node, ref, env, ctx):
        op = node.operator
        target = describe_target(node.left, self.source)
        current = ref.get()
        flow = self.logger.add_flow
        flow(f"Logical assignment: {target} {op} <rhs>")
        flow(f"Current value of {target} is {format_for_flow(current)}")
        truthy = to_boolean(current)
        if op == "&&=":
            assign = truthy
            flow(f"{target} is truthy → will evaluate RHS and assign" if truthy
                 else f"{target} is falsy → skip RHS")
        elif op == "||=":
            assign = not truthy
            flow(f"{target} is truthy → skip RHS" if truthy
                 else f"{target} is falsy → will evaluate RHS and assign")
        else:
            assign = is_nullish(current)
            flow(f"{target} is nullish → evaluating RHS" if assign else f"{target} NOT nullish → skip RHS")
        if not assign:
            return current
        value = self.eval_expr(node.right, env, ctx)
        if isinstance(value, Throw):
            return value
        flow(f"RHS evaluated → {format_for_flow(value)}")
        if node.left.type == "Identifier":
            self._infer_name(value, node.right, node.left.name)
        ref.put(value)
        flow(f"Assigned {target} = {format_for_flow(value)}")
        return value

    def _member_key(self, node, env, ctx, safe):
        if not node.computed:
            return node.property.name
        key = self.eval_expr(node.property, env, ctx, safe)
        if _abrupt(key):
            return key
        return to_property_key(key)

    def _super_property(self, key, ctx):
        fn = ctx.function
        home = fn.home_object if fn is not None else None
        if home is None:
            raise JSSyntaxError("'super' keyword unexpected here")
        if isinstance(home, ClassConstructor):
            if home.parent is None:
                return undefined
            return self.realm.get_property(home.parent, key)
        if home.proto is None:
            return undefined
        return self.realm.get_property(home.proto, key)

    def _member_base(self, node, env, ctx, safe):
        """Evaluate `obj.key` to (obj, key, value); abrupt results come back as the value."""
        if node.object.type == "Super":
            key = self._member_key(node, env, ctx, safe)
            if _abrupt(key):
                return None, None, key
            return self._this_value(ctx), key, self._super_property(key, ctx)
        obj = self.eval_expr(node.object, env, ctx, safe)
        if _abrupt(obj):
            return None, None, obj
        if node.optional and is_nullish(obj):
            return None, None, CHAIN_BREAK
        key = self._member_key(node, env, ctx, safe)
        if _abrupt(key):
            return None, None, key
        return obj, key, self.realm.get_property(obj, key)

    def _eval_member(self, node, env, ctx, safe):
        return self._member_base(node, env, ctx, safe)[2]

    def _eval_chain(self, node, env, ctx, safe):
        value = self.eval_expr(node.expression, env, ctx, safe)
        return undefined if value is CHAIN_BREAK else value

    def _eval_arguments(self, nodes, env, ctx):
        args: List[Any] = []
        for arg in nodes:
            if arg.type == "SpreadElement":
                value = self.eval_expr(arg.argument, env, ctx)
                if isinstance(value, Throw):
                    return value
                args.extend(self.realm.iterate(value))
                continue
            value = self.eval_expr(arg, env, ctx)
            if isinstance(value, Throw):
                return value
            args.append(value)
        return args

    def _eval_call(self, node, env, ctx, safe):
        if safe:
            return SIDE_EFFECT
        callee = node.callee
        if callee.type == "Super":
            return self._super_call(node, env, ctx)
        self.call_counter += 1
        number = self.call_counter
        self.logger.add_flow(f"── Call #{number} start ──")
        if callee.type == "MemberExpression":
            this, _key, fn = self._member_base(callee, env, ctx, False)
        else:
            this, fn = undefined, self.eval_expr(callee, env, ctx)
        if isinstance(fn, Throw) or fn is CHAIN_BREAK:
            return fn
        if node.optional and is_nullish(fn):
            return CHAIN_BREAK
        args = self._eval_arguments(node.arguments, env, ctx)
        if isinstance(args, Throw):
            return args
        name = callee_name(callee, fn)
        if not is_callable(fn):
            raise JSTypeError(f"{self._src(callee)} is not a function")
        self.logger.add_flow(f"Calling function {name}({', '.join(describe_value(a) for a in args)})")
        if isinstance(fn, NativeFunction) and fn.builtin and fn.builtin.startswith("console."):
            result = fn.call(self, this, args)
            self.logger.add_flow(f"console.log → {self.logger.output[-1]}")
        else:
            result = self.invoke(fn, this, args)
        self.logger.current_env = env
        if isinstance(result, Throw):
            self.logger.add_flow(f"── Call #{number} threw {format_for_flow(result.value)} ──")
        else:
            self.logger.add_flow(f"── Call #{number} complete (returned {describe_value(result)}) ──")
        return result

    def _eval_new(self, node, env, ctx, safe):
        if safe:
            return SIDE_EFFECT
        ctor = self.eval_expr(node.callee, env, ctx)
        if _abrupt(ctor):
            return ctor
        args = self._eval_arguments(node.arguments, env, ctx)
        if isinstance(args, Throw):
            return args
        name = callee_name(node.callee, ctor)
        self.logger.add_flow(f"Creating new {name}({', '.join(describe_value(a) for a in args)})")
        result = self.construct(ctor, args, node=node)
        self.logger.current_env = env
        return result

    # ------------------------------------------------------------- invocation

    def invoke(self, fn, this, args, node=None):
        """Call any callable value with an explicit receiver; used by natives for callbacks."""
        if isinstance(fn, FunctionValue):
            if fn.is_class_constructor:
                raise JSTypeError(f"Class constructor {fn.name} cannot be invoked without 'new'")
            return self.call_function(fn, this, list(args))
        if isinstance(fn, NativeFunction):
            return fn.impl(self, this, list(args))
        if is_callable(fn):
            return fn(*args)
        name = self._src(node) if node is not None else type_label(fn)
        raise JSTypeError(f"{name} is not a function")

    def _bind_parameters(self, fn, fn_env, args, ctx):
        for index, param in enumerate(fn.params):
            if param.type == "RestElement":
                signal = self.bind_pattern(param.argument, JSArray(args[index:]), fn_env, ctx, "param")
            else:
                value = args[index] if index < len(args) else undefined
                signal = self.bind_pattern(param, value, fn_env, ctx, "param")
            if signal is not None:
                return signal
        return None

    def _narrate_closure(self, fn, args):
        params = []
        for index, param in enumerate(fn.params):
            value = args[index] if index < len(args) else undefined
            params.append(f"{self._src(param)} = {describe_value(value)}")
        self.logger.add_flow(f"Entering closure ({', '.join(params)})")
        if self.options.narrate_closures and not fn.closure_explained:
            fn.closure_explained = True
            remembered = captured_bindings(fn.env)
            if remembered:
                self.logger.add_flow(f"Closure created. It remembers: {', '.join(remembered)}")

    def call_function(self, fn: FunctionValue, this, args, new_target=undefined, this_cell=None):
        """Run a user function body in a fresh function environment and return its value."""
        if len(self.call_stack) >= self.max_call_depth:
            raise JSRangeError("Maximum call stack size exceeded")
        name = fn.display_name()
        fn_env = self.arena.allocate("function", fn.name or "", fn.env_handle)
        if fn.is_arrow:
            ctx = EvalContext(this=fn.lexical_this, function=fn, new_target=undefined)
        else:
            ctx = EvalContext(this=this, function=fn, new_target=new_target, this_cell=this_cell)
            fn_env.create_mutable_binding("arguments", "builtin", JSArray(args))
        signal = self._bind_parameters(fn, fn_env, args, ctx)
        if signal is not None:
            return signal
        saved_env = self.logger.current_env
        self.call_stack.append(name)
        try:
            self.logger.current_env = fn_env
            body = fn.body
            if body is None:
                result = None
            elif body.type == "BlockStatement":
                entry_node = getattr(fn, "constructor_node", None) or fn.node
                self.logger.log(entry_node.line, fn.node, fn_env)
                if fn.is_arrow:
                    self._narrate_closure(fn, args)
                else:
                    self.logger.add_flow(f"Entering function {name}")
                self._predict_first(body, "End of function")
                hoist_declarations(body.body, fn_env, self.make_hoisted_function)
                result = self.exec_statements(body.body, fn_env, ctx)
            else:
                self._narrate_closure(fn, args)
                self.logger.add_flow(f"Evaluating arrow body: {self._src(body)}")
                value = self.eval_expr(body, fn_env, ctx)
                if isinstance(value, Throw):
                    result = value
                else:
                    self.logger.current_env = fn_env
                    self.logger.add_expression_eval(body, value)
                    self.logger.add_expression_context(body, "Arrow function body")
                    self.logger.add_flow(f"Arrow body result → {format_for_flow(value)}")
                    result = Return(value)
        finally:
            self.call_stack.pop()
            self.logger.current_env = saved_env
        if isinstance(result, Throw):
            return result
        if isinstance(result, Break):
            raise JSSyntaxError("Illegal break statement")
        if isinstance(result, Continue):
            raise JSSyntaxError("Illegal continue statement: no surrounding iteration statement")
        value = result.value if isinstance(result, Return) else undefined
        if body is not None and body.type == "BlockStatement":
            self.logger.add_flow(f"The function finished running.\nReturned → {describe_value(value)}")
        return value

    # ------------------------------------------------------------ construction

    def construct(self, ctor, args, new_target=None, node=None):
        if isinstance(ctor, ClassConstructor):
            return self.construct_class(ctor, args, new_target or ctor)
        if isinstance(ctor, FunctionValue) and not ctor.is_arrow and isinstance(ctor.prototype, JSObject):
            target = new_target or ctor
            proto = target.prototype if isinstance(target.prototype, JSObject) else self.realm.object_prototype
            obj = JSObject(proto=proto, class_name=target.name or "Object")
            result = self.call_function(ctor, obj, args, new_target=target)
            if isinstance(result, Throw):
                return result
            return result if is_object(result) else obj
        if isinstance(ctor, NativeFunction) and ctor.construct_impl is not None:
            return ctor.construct_impl(self, list(args), new_target or ctor)
        name = self._src(node.callee) if node is not None else type_label(ctor)
        raise JSTypeError(f"{name} is not a constructor")

    def _init_fields(self, cls: ClassConstructor, obj):
        ctx = EvalContext(this=obj, function=cls)
        for key, value_node in cls.fields:
            value = undefined
            if value_node is not None:
                value = self.eval_expr(value_node, cls.env, ctx)
                if isinstance(value, Throw):
                    return value
                self._infer_name(value, value_node, key)
            self.realm.set_property(obj, key, value)
        return None

    def construct_class(self, cls: ClassConstructor, args, new_target):
        if len(self.call_stack) >= self.max_call_depth:
            raise JSRangeError("Maximum call stack size exceeded")
        if cls.parent is None:
            proto = new_target.prototype
            obj = JSObject(proto=proto if isinstance(proto, JSObject) else self.realm.object_prototype,
                           class_name=new_target.name or "Object")
            signal = self._init_fields(cls, obj)
            if signal is not None:
                return signal
            if cls.constructor_node is None:
                return obj
            result = self.call_function(cls, obj, args, new_target=new_target)
            if isinstance(result, Throw):
                return result
            return result if is_object(result) else obj
        if cls.constructor_node is None:
            # implicit constructor(...args) { super(...args); }
            obj = self.construct(cls.parent, args, new_target)
            if isinstance(obj, Throw):
                return obj
            signal = self._init_fields(cls, obj)
            return signal if signal is not None else obj
        cell = [UNINITIALIZED]
        result = self.call_function(cls, undefined, args, new_target=new_target, this_cell=cell)
        if isinstance(result, Throw):
            return result
        if is_object(result):
            return result
        if cell[0] is UNINITIALIZED:
            raise JSReferenceError("Must call super constructor in derived class before returning")
        return cell[0]

    def _super_call(self, node, env, ctx):
        cls = ctx.function
        if ctx.this_cell is None or not isinstance(cls, ClassConstructor) or cls.parent is None:
            raise JSSyntaxError("'super' keyword unexpected here", node.line)
        if ctx.this_cell[0] is not UNINITIALIZED:
            raise JSReferenceError("Super constructor may only be called once")
        args = self._eval_arguments(node.arguments, env, ctx)
        if isinstance(args, Throw):
            return args
        self.logger.add_flow(f"Calling parent constructor {getattr(cls.parent, 'name', None) or '(anonymous)'}")
        obj = self.construct(cls.parent, args, ctx.new_target)
        if isinstance(obj, Throw):
            return obj
        ctx.this_cell[0] = obj
        signal = self._init_fields(cls, obj)
        if signal is not None:
            return signal
        self.logger.current_env = env
        return undefined

    # --------------------------------------------------------- function values

    def create_function(self, node, env, ctx: Optional[EvalContext] = None, name=None, home_object=None):
        lexical_this = undefined
        if node.type == "ArrowFunctionExpression" and ctx is not None:
            if ctx.this_cell is not None:
                lexical_this = ctx.this_cell[0] if ctx.this_cell[0] is not UNINITIALIZED else undefined
            else:
                lexical_this = ctx.this
            if home_object is None and ctx.function is not None:
                home_object = ctx.function.home_object
        fn = FunctionValue(node, self.arena, env.handle, name=name, lexical_this=lexical_this,
                           home_object=home_object, function_proto=self.realm.function_prototype)
        if isinstance(fn.prototype, JSObject):
            fn.prototype.proto = self.realm.object_prototype
        return fn

    def make_hoisted_function(self, node, env):
        return self.create_function(node, env)

    @staticmethod
    def _infer_name(value, value_node, name):
        """Anonymous function and class expressions take the name they are bound to."""
        if isinstance(value, FunctionValue) and value.name is None and value_node.type in (
                "FunctionExpression", "ArrowFunctionExpression", "ClassExpression"):
            value.name = name

    def create_class(self, node, env, ctx: EvalContext):
        parent = None
        if node.superClass is not None:
            parent = self.eval_expr(node.superClass, env, ctx)
            if isinstance(parent, Throw):
                return parent
            if parent is not None and not isinstance(getattr(parent, "prototype", None), JSObject):
                raise JSTypeError(f"Class extends value {to_string(parent)} is not a constructor or null")
        name = node.id.name if node.id is not None else None
        members = node.body.body
        ctor_def = next((m for m in members if m.type == "MethodDefinition" and m.kind == "constructor"), None)
        cls = ClassConstructor(node, self.arena, env.handle, name,
                               constructor_node=ctor_def.value if ctor_def is not None else None,
                               parent=parent, function_proto=self.realm.function_prototype)
        prototype = cls.prototype
        prototype.proto = parent.prototype if parent is not None else self.realm.object_prototype
        cls.home_object = prototype
        static_ctx = EvalContext(this=cls, function=cls)
        for member in members:
            if member is ctor_def:
                continue
            key = self._property_key(member, env, ctx, False)
            if isinstance(key, Throw):
                return key
            if member.type == "MethodDefinition":
                home = cls if member.static else prototype
                method = FunctionValue(member.value, self.arena, env.handle, name=key, home_object=home,
                                       function_proto=self.realm.function_prototype)
                target = cls.properties if member.static else prototype
                target.define_hidden(key, method)
            elif member.static:
                value = undefined
                if member.value is not None:
                    value = self.eval_expr(member.value, env, static_ctx)
                    if isinstance(value, Throw):
                        return value
                    self._infer_name(value, member.value, key)
                cls.properties[key] = value
            else:
                cls.fields.append((key, member.value))
        return cls

    # ----------------------------------------------------------------- patterns

    def _bind_name(self, name, value, env, kind):
        if kind is None:
            env.set(name, value)
        elif kind == "var":
            scope = env.var_scope()
            if scope.record.has_binding(name):
                scope.record.set_mutable_binding(name, value)
            else:
                scope.create_mutable_binding(name, "var", value)
        else:
            env.create_mutable_binding(name, kind, value)

    def _destructure(self, pattern, value, env, ctx, kind):
        t = pattern.type
        if t == "Identifier":
            self._bind_name(pattern.name, value, env, kind)
            return None
        if t == "MemberExpression" and kind is None:
            ref = self._reference(pattern, env, ctx)
            if isinstance(ref, Throw):
                return ref
            ref.put(value)
            return None
        if t == "AssignmentPattern":
            if value is undefined:
                value = self.eval_expr(pattern.right, env, ctx)
                if isinstance(value, Throw):
                    return value
                if pattern.left.type == "Identifier":
                    self._infer_name(value, pattern.right, pattern.left.name)
            return self._destructure(pattern.left, value, env, ctx, kind)
        if t == "ArrayPattern":
            items = [] if is_nullish(value) else self.realm.iterate(value)
            for index, element in enumerate(pattern.elements):
                if element is None:
                    continue
                if element.type == "RestElement":
                    return self._destructure(element.argument, JSArray(items[index:]), env, ctx, kind)
                item = items[index] if index < len(items) else undefined
                signal = self._destructure(element, item, env, ctx, kind)
                if signal is not None:
                    return signal
            return None
        if t == "ObjectPattern":
            used: List[str] = []
            for prop in pattern.properties:
                if prop.type == "RestElement":
                    rest = self.realm.new_object()
                    if not is_nullish(value):
                        for key in self.realm.own_keys(value):
                            if key not in used:
                                rest[key] = self.realm.get_property(value, key)
                    signal = self._destructure(prop.argument, rest, env, ctx, kind)
                else:
                    key = self._property_key(prop, env, ctx, False)
                    if isinstance(key, Throw):
                        return key
                    used.append(key)
                    item = undefined if is_nullish(value) else self.realm.get_property(value, key)
                    signal = self._destructure(prop.value, item, env, ctx, kind)
                if signal is not None:
                    return signal
            return None
        raise JSSyntaxError(f"Invalid destructuring target: {t}", pattern.line)

    def bind_pattern(self, pattern, value, env, ctx, kind: str):
        """Declare every name of `pattern` in `env` (or its var scope) as `kind`."""
        return self._destructure(pattern, value, env, ctx, kind)

    def assign_pattern(self, pattern, value, env, ctx):
        """Destructuring assignment to existing bindings and properties."""
        return self._destructure(pattern, value, env, ctx, None)
