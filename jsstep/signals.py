"""
Completion signals returned by statement evaluation.

A statement evaluates to `None` (normal completion) or to one of the frozen
signal objects below. Blocks and loops inspect the value and either consume it
or hand it back unchanged to their caller.
"""
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Return:
    value: Any


@dataclass(frozen=True)
class Break:
    label: Optional[str] = None


@dataclass(frozen=True)
class Continue:
    label: Optional[str] = None


@dataclass(frozen=True)
class Throw:
    value: Any


SIGNAL_TYPES = (Return, Break, Continue, Throw)


def is_signal(value) -> bool:
    return isinstance(value, SIGNAL_TYPES)

