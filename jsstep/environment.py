"""
Scope chain for the interpreter.

Environments live in a per-run `EnvironmentArena` and refer to their parent by
integer handle, so closures that outlive their creating frame never build
reference cycles between environments.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import JSReferenceError, JSSyntaxError, JSTypeError
from .values import undefined


class _Uninitialized:
    def __repr__(self):
        return "<uninitialized>"


UNINITIALIZED = _Uninitialized()

BINDING_KINDS = ("var", "let", "const", "function", "class", "param", "builtin")

# kinds that may be declared again in the same record (sloppy-mode var semantics)
_REDECLARABLE = ("var", "function", "param", "builtin")


@dataclass
class Binding:
    kind: str
    value: Any = undefined

    @property
    def mutable(self) -> bool:
        return self.kind != "const"

    @property
    def initialized(self) -> bool:
        return self.value is not UNINITIALIZED


class EnvironmentRecord:
    def __init__(self):
        self.bindings: Dict[str, Binding] = {}

    def has_binding(self, name: str) -> bool:
        return name in self.bindings

    def create_mutable_binding(self, name: str, kind: str, value: Any = undefined):
        if kind not in BINDING_KINDS:
            raise ValueError(f"unknown binding kind {kind!r}")
        existing = self.bindings.get(name)
        if existing is not None:
            if existing.kind in _REDECLARABLE and kind in _REDECLARABLE:
                # a plain `var` keeps a stronger existing kind (function, param)
                if kind != "var" or existing.kind == "builtin":
                    existing.kind = kind
                existing.value = value
                return existing
            raise JSSyntaxError(f"Identifier '{name}' has already been declared")
        binding = Binding(kind, value)
        self.bindings[name] = binding
        return binding

    def initialize_binding(self, name: str, value: Any):
        binding = self.bindings.get(name)
        if binding is None:
            raise JSReferenceError(f"Cannot initialize undeclared binding '{name}'")
        binding.value = value

    def set_mutable_binding(self, name: str, value: Any):
        binding = self.bindings[name]
        if not binding.initialized:
            raise JSReferenceError(f"Cannot access '{name}' before initialization")
        if not binding.mutable:
            raise JSTypeError(f"Assignment to constant variable '{name}'")
        if binding.kind == "builtin":
            # overwritten builtins become ordinary globals and show up in snapshots
            binding.kind = "var"
        binding.value = value

    def get_binding_value(self, name: str):
        binding = self.bindings.get(name)
        if binding is None:
            raise JSReferenceError(f"{name} is not defined")
        if not binding.initialized:
            raise JSReferenceError(f"Cannot access '{name}' before initialization")
        return binding.value

    def items(self) -> Iterator[Tuple[str, Binding]]:
        return iter(self.bindings.items())

    def __len__(self):
        return len(self.bindings)


class LexicalEnvironment:
    """One node of the scope chain; `outer` is an arena handle (or None for global)."""

    def __init__(self, arena: 'EnvironmentArena', handle: int, kind: str, name: str,
                 outer: Optional[int]):
        self.arena = arena
        self.handle = handle
        self.kind = kind
        self.name = name
        self.outer = outer
        self.record = EnvironmentRecord()

    def __repr__(self):
        return f"<LexicalEnvironment #{self.handle} {self.kind} {self.name!r}>"

    @property
    def outer_env(self) -> Optional['LexicalEnvironment']:
        if self.outer is None:
            return None
        return self.arena.resolve(self.outer)

    def chain(self) -> Iterator['LexicalEnvironment']:
        """Yield this environment and every ancestor up to the global one."""
        env: Optional[LexicalEnvironment] = self
        while env is not None:
            yield env
            env = env.outer_env

    def extend(self, kind: str, name: Optional[str] = None) -> 'LexicalEnvironment':
        return self.arena.allocate(kind, name if name is not None else kind.capitalize(), self.handle)

    def global_env(self) -> 'LexicalEnvironment':
        env = self
        for env in self.chain():
            pass
        return env

    def find(self, name: str) -> Optional['LexicalEnvironment']:
        for env in self.chain():
            if env.record.has_binding(name):
                return env
        return None

    def has_binding(self, name: str) -> bool:
        return self.find(name) is not None

    def get(self, name: str):
        env = self.find(name)
        if env is None:
            raise JSReferenceError(f"{name} is not defined")
        return env.record.get_binding_value(name)

    def lookup(self, name: str, default=undefined):
        """Non-raising read used by narration; TDZ and unbound names give `default`."""
        env = self.find(name)
        if env is None:
            return default
        binding = env.record.bindings[name]
        return binding.value if binding.initialized else default

    def set(self, name: str, value: Any):
        env = self.find(name)
        if env is not None:
            env.record.set_mutable_binding(name, value)
            return
        # sloppy-mode auto-global
        self.global_env().record.create_mutable_binding(name, "var", value)

    def create_mutable_binding(self, name: str, kind: str, value: Any = undefined):
        return self.record.create_mutable_binding(name, kind, value)

    def initialize_binding(self, name: str, value: Any):
        self.record.initialize_binding(name, value)

    def var_scope(self) -> 'LexicalEnvironment':
        """Nearest function or global environment (where `var` bindings live)."""
        for env in self.chain():
            if env.kind in ("function", "global"):
                return env
        return self.global_env()

    def snapshot_chain(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Labelled view of the visible bindings, innermost scope first.

        Labels are `Global`, a function's name (or `Function#n`) and `Block#n`;
        adjacent block scopes collapse into one label with inner bindings
        winning. `n` counts labelled scopes from the outermost one. Builtins and
        uninitialized bindings are left out; empty scopes are kept so callers
        can still name the active scope.
        """
        envs = list(self.chain())
        envs.reverse()
        groups: List[Tuple[str, Dict[str, Any]]] = []
        used = set()
        prev_kind = None
        for env in envs:
            visible = {name: b.value for name, b in env.record.items()
                       if b.kind != "builtin" and b.initialized}
            if env.kind == "block" and prev_kind == "block" and groups:
                merged = groups[-1][1]
                merged.update(visible)
                continue
            if env.kind == "global":
                label = "Global"
            elif env.kind == "function":
                label = env.name if env.name and env.name not in used else f"Function#{len(groups)}"
            else:
                label = f"Block#{len(groups)}"
            used.add(label)
            groups.append((label, visible))
            prev_kind = env.kind
        groups.reverse()
        return groups


class EnvironmentArena:
    """Owns every environment of one run; handles are list indices."""

    def __init__(self):
        self._envs: List[LexicalEnvironment] = []

    def allocate(self, kind: str, name: str, outer: Optional[int] = None) -> LexicalEnvironment:
        if outer is not None and not 0 <= outer < len(self._envs):
            raise ValueError(f"unknown outer environment handle {outer}")
        env = LexicalEnvironment(self, len(self._envs), kind, name, outer)
        self._envs.append(env)
        return env

    def resolve(self, handle: int) -> LexicalEnvironment:
        return self._envs[handle]

    def new_global(self) -> LexicalEnvironment:
        return self.allocate("global", "Global", None)

    def __len__(self):
        return len(self._envs)
