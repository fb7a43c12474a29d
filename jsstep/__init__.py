"""
jsstep: run a small JavaScript subset and record a step-by-step debugger timeline.

    from jsstep import generate_timeline
    timeline = generate_timeline(source)
    timeline.to_json()
"""
from .config import RunOptions, load_options
from .driver import TimelineResult, generate_timeline
from .errors import JSRangeError, JSReferenceError, JSRuntimeError, JSSyntaxError, JSTypeError, StepLimitExceeded
from .parser import parse
from .timeline import NextStep, TimelineEntry

__version__ = "0.1.0"

__all__ = [
    "generate_timeline", "TimelineResult", "TimelineEntry", "NextStep", "RunOptions", "load_options",
    "parse", "JSRuntimeError", "JSSyntaxError", "JSReferenceError", "JSTypeError", "JSRangeError",
    "StepLimitExceeded",
]
