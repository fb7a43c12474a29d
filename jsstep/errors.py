"""
Host-level error taxonomy for jsstep.

Everything raised here is fatal to a run: the driver catches it and turns it
into the closing timeline entry. In-language `throw` never uses these classes;
it travels as a `Throw` signal (see signals.py) and only becomes fatal when it
escapes the program uncaught.
"""
from typing import Optional


class JSRuntimeError(Exception):
    """Base for interpreter-detected language errors (ReferenceError, TypeError, ...)."""
    name = "Error"

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        # 0-based source line when known
        self.line = line

    def display(self) -> str:
        return f"{self.name}: {self.message}"


class JSSyntaxError(JSRuntimeError):
    name = "SyntaxError"

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None,
                 offset: Optional[int] = None):
        super().__init__(message, line)
        self.column = column
        self.offset = offset


class JSReferenceError(JSRuntimeError):
    name = "ReferenceError"


class JSTypeError(JSRuntimeError):
    name = "TypeError"


class JSRangeError(JSRuntimeError):
    name = "RangeError"


class StepLimitExceeded(Exception):
    """Raised by the timeline logger when a run would exceed its step budget."""

    def __init__(self, max_steps: int):
        super().__init__("Step limit exceeded")
        self.max_steps = max_steps
