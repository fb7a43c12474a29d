"""
Timeline recording.

`TimelineLogger` appends one `TimelineEntry` per real statement the interpreter
reaches. Narration (control-flow lines, expression evaluations, next-step
predictions, console output) is attached to the most recent entry.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import StepLimitExceeded
from .narration import describe_value, expression_breakdown, source_of, stringify
from .values import (
    SIDE_EFFECT, FunctionValue, JSArray, JSObject, is_callable, is_error_object, error_to_string,
    is_number, to_string, undefined,
)

log = logging.getLogger("jsstep.timeline")


@dataclass
class NextStep:
    line: Optional[int]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"line": self.line, "message": self.message}


@dataclass
class ExpressionInfo:
    result: Any
    breakdown: List[str] = field(default_factory=list)
    friendly: List[str] = field(default_factory=list)
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {"result": to_plain(self.result), "breakdown": list(self.breakdown),
               "friendly": list(self.friendly)}
        if self.context is not None:
            out["context"] = self.context
        return out


@dataclass
class TimelineEntry:
    step: int
    line: int
    variables: Dict[str, Dict[str, Any]]
    stack: List[str]
    output: List[str]
    control_flow: List[str] = field(default_factory=list)
    expression_eval: Dict[str, ExpressionInfo] = field(default_factory=dict)
    next_step: Optional[NextStep] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    diff: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """camelCase rendering consumed by the debugger UI; `undefined` becomes None."""
        out = {
            "step": self.step,
            "line": self.line,
            "variables": to_plain(self.variables),
            "stack": list(self.stack),
            "output": list(self.output),
            "controlFlow": list(self.control_flow),
            "expressionEval": {k: v.to_dict() for k, v in self.expression_eval.items()},
            "nextStep": self.next_step.to_dict() if self.next_step is not None else None,
            "metadata": dict(self.metadata),
            "diff": to_plain(self.diff),
        }
        if self.error is not None:
            out["error"] = self.error
        return out


def to_plain(value):
    if value is undefined:
        return None
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    return value


def same_value(a, b) -> bool:
    """Type-aware structural equality of two serialized values (1 != True != "1")."""
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(same_value(a[k], b[k]) for k in a)
    if isinstance(a, list):
        return len(a) == len(b) and all(same_value(x, y) for x, y in zip(a, b))
    return a == b


def compute_diff(prev: Optional[Dict[str, Dict[str, Any]]], curr: Dict[str, Dict[str, Any]]):
    """Added / changed / removed variables keyed "Scope.name"."""
    diff = {"added": {}, "changed": {}, "removed": {}}
    prev = prev or {}
    for scope, variables in curr.items():
        before = prev.get(scope, {})
        for name, value in variables.items():
            key = f"{scope}.{name}"
            if name not in before:
                diff["added"][key] = value
            elif not same_value(before[name], value):
                diff["changed"][key] = {"from": before[name], "to": value}
    for scope, variables in prev.items():
        after = curr.get(scope, {})
        for name, value in variables.items():
            if name not in after:
                diff["removed"][f"{scope}.{name}"] = value
    return diff


class TimelineLogger:
    def __init__(self, source: str, stack: List[str], max_steps: int = 2000,
                 max_serialize_depth: int = 3, realm=None):
        self.source = source
        # live reference to the interpreter's call stack
        self.stack = stack
        self.max_steps = max_steps
        self.max_serialize_depth = max_serialize_depth
        self.realm = realm
        self.entries: List[TimelineEntry] = []
        self.output: List[str] = []
        self.step = 0
        self.current_env = None
        self._last_vars: Optional[Dict[str, Dict[str, Any]]] = None

    # --- serialization ---

    def serialize_value(self, value, depth: int = 0, ancestors: Optional[set] = None):
        if value is undefined or value is None or isinstance(value, (bool, str)):
            return value
        if value is SIDE_EFFECT:
            return "[Side Effect]"
        if is_number(value):
            if math.isnan(value):
                return "NaN"
            if math.isinf(value):
                return "Infinity" if value > 0 else "-Infinity"
            return int(value) if float(value).is_integer() else float(value)
        if isinstance(value, FunctionValue):
            return "[Function]"
        if is_callable(value):
            return "[NativeFunction]"
        if depth >= self.max_serialize_depth:
            return "[Object]"
        ancestors = ancestors if ancestors is not None else set()
        if id(value) in ancestors:
            return "[Circular]"
        ancestors.add(id(value))
        try:
            if isinstance(value, JSArray):
                return [self.serialize_value(v, depth + 1, ancestors) for v in value]
            if isinstance(value, JSObject):
                out: Dict[str, Any] = {}
                if value.class_name != "Object":
                    out["[Object]"] = value.class_name
                for key in value.own_enumerable_keys():
                    out[key] = self.serialize_value(value[key], depth + 1, ancestors)
                return out
            return to_string(value)
        finally:
            ancestors.discard(id(value))

    def serialize_scopes(self, groups) -> Dict[str, Dict[str, Any]]:
        out = {}
        for label, bindings in groups:
            if bindings:
                out[label] = {name: self.serialize_value(v) for name, v in bindings.items()}
        return out

    # --- entries ---

    def log(self, line: int, node=None, env=None, enforce_limit: bool = True) -> TimelineEntry:
        if enforce_limit and self.step >= self.max_steps:
            raise StepLimitExceeded(self.max_steps)
        env = env if env is not None else self.current_env
        groups = env.snapshot_chain() if env is not None else []
        variables = self.serialize_scopes(groups)
        diff = compute_diff(self._last_vars, variables)
        self._last_vars = variables
        entry = TimelineEntry(
            step=self.step,
            line=line if line is not None else 0,
            variables=variables,
            stack=list(self.stack),
            output=list(self.output),
            metadata={
                "statementKind": node.type if node is not None else None,
                "callDepth": len(self.stack),
                "activeScope": groups[0][0] if groups else "Global",
            },
            diff=diff,
        )
        self.step += 1
        self.entries.append(entry)
        return entry

    def log_terminal(self, flow: str, next_message: str, error: Optional[str] = None,
                     line: Optional[int] = None) -> TimelineEntry:
        """Closing entry that repeats the last known state; never subject to the step limit."""
        last = self.last_entry
        entry = TimelineEntry(
            step=self.step,
            line=line if line is not None else (last.line if last is not None else 0),
            variables=dict(last.variables) if last is not None else {},
            stack=list(last.stack) if last is not None else [],
            output=list(self.output),
            control_flow=[flow],
            next_step=NextStep(None, next_message),
            metadata={
                "statementKind": None,
                "callDepth": last.metadata.get("callDepth", 0) if last is not None else 0,
                "activeScope": last.metadata.get("activeScope", "Global") if last is not None else "Global",
            },
            diff=compute_diff(self._last_vars, self._last_vars or {}),
            error=error,
        )
        self.step += 1
        self.entries.append(entry)
        log.debug("terminal entry at step %d: %s", entry.step, flow)
        return entry

    @property
    def last_entry(self) -> Optional[TimelineEntry]:
        return self.entries[-1] if self.entries else None

    def set_next(self, line: Optional[int], message: str, entry: Optional[TimelineEntry] = None):
        target = entry if entry is not None else self.last_entry
        if target is not None:
            target.next_step = NextStep(line, message)

    def has_next(self) -> bool:
        last = self.last_entry
        return last is not None and last.next_step is not None

    def add_flow(self, message: str):
        last = self.last_entry
        if last is not None:
            last.control_flow.append(str(message))

    # --- expressions ---

    def _expression_key(self, node) -> str:
        text = source_of(node, self.source)
        return text or node.type

    def add_expression_eval(self, node, value, breakdown: Optional[List[str]] = None):
        last = self.last_entry
        if last is None or node is None:
            return
        if breakdown is None:
            env = self.current_env
            breakdown = expression_breakdown(node, self.source, env, self.realm) if env is not None else []
        last.expression_eval[self._expression_key(node)] = ExpressionInfo(
            result=self.serialize_value(value),
            breakdown=[str(line) for line in breakdown],
            friendly=[f"Expression result: {describe_value(value)}"],
        )

    def add_expression_context(self, node, context: str):
        last = self.last_entry
        if last is None or node is None:
            return
        key = self._expression_key(node)
        info = last.expression_eval.get(key)
        if info is None:
            info = last.expression_eval[key] = ExpressionInfo(result=undefined)
        info.context = context

    # --- console ---

    def format_output_arg(self, value) -> str:
        if isinstance(value, str):
            return value
        if is_error_object(value):
            return error_to_string(value)
        if isinstance(value, (JSObject, JSArray)):
            return stringify(value, self.max_serialize_depth)
        if is_callable(value):
            return describe_value(value)
        return to_string(value)

    def log_output(self, *args):
        text = " ".join(self.format_output_arg(a) for a in args)
        self.output.append(text)
        last = self.last_entry
        if last is not None:
            last.output = list(self.output)
