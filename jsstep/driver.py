"""
Entry point: source text in, debugger timeline out.

    from jsstep import generate_timeline
    timeline = generate_timeline("let x = 1;\\nconsole.log(x);")
    for entry in timeline:
        print(entry.step, entry.line, entry.control_flow)

Every run builds its own realm, environments, builtins and logger, so runs
never share state and the same source always produces the same timeline.
"""
import json
import logging
import random
from collections.abc import Sequence
from dataclasses import replace
from typing import Dict, List, Optional

from .builtins import register_builtins
from .config import RunOptions
from .environment import EnvironmentArena
from .errors import JSRuntimeError, JSSyntaxError, StepLimitExceeded
from .interpreter import Interpreter
from .narration import display_header, first_meaningful_statement, stringify
from .parser import parse
from .signals import Break, Continue, Throw
from .timeline import TimelineEntry, TimelineLogger
from .values import JSArray, JSObject, Realm, error_to_string, is_error_object, to_string

log = logging.getLogger("jsstep.driver")

STEP_LIMIT_MESSAGE = "Execution stopped: too many steps (possible infinite loop)"


class TimelineResult(Sequence):
    """Ordered timeline entries plus a step-number index."""

    def __init__(self, entries: List[TimelineEntry]):
        self.entries = list(entries)
        self.index_by_step: Dict[int, int] = {entry.step: i for i, entry in enumerate(self.entries)}

    def __getitem__(self, index):
        return self.entries[index]

    def __len__(self):
        return len(self.entries)

    def by_step(self, step: int) -> TimelineEntry:
        return self.entries[self.index_by_step[step]]

    @property
    def final(self) -> Optional[TimelineEntry]:
        return self.entries[-1] if self.entries else None

    def to_dicts(self) -> List[dict]:
        return [entry.to_dict() for entry in self.entries]

    def to_json(self, **kwargs) -> str:
        payload = {
            "timeline": self.to_dicts(),
            "indexByStep": {str(step): index for step, index in self.index_by_step.items()},
        }
        return json.dumps(payload, **kwargs)


def _uncaught_text(value) -> str:
    if is_error_object(value):
        return error_to_string(value)
    if isinstance(value, (JSObject, JSArray)):
        return stringify(value)
    return to_string(value)


def _syntax_error_timeline(source: str, err: JSSyntaxError, options: RunOptions) -> TimelineResult:
    logger = TimelineLogger(source, [], options.max_steps, options.max_serialize_depth)
    text = err.display()
    logger.output.append(text)
    logger.log_terminal(text, "Execution failed due to a syntax error.", error=text,
                        line=err.line if err.line is not None else 0)
    return TimelineResult(logger.entries)


def generate_timeline(source: str, max_steps: Optional[int] = None,
                      options: Optional[RunOptions] = None) -> TimelineResult:
    """Run `source` and return the full step-by-step timeline.

    Language errors never escape: syntax errors give a single step-0 entry,
    runtime errors, uncaught throws and step-limit overruns give a closing
    entry carrying the last known state and an `error`.
    """
    options = options or RunOptions()
    if max_steps is not None:
        options = replace(options, max_steps=max_steps)
    log.debug("run start: %d chars, max_steps=%d", len(source), options.max_steps)
    try:
        program = parse(source)
    except JSSyntaxError as err:
        log.debug("syntax error at line %s: %s", err.line, err.message)
        return _syntax_error_timeline(source, err, options)

    realm = Realm()
    arena = EnvironmentArena()
    global_env = arena.new_global()
    stack: List[str] = []
    logger = TimelineLogger(source, stack, options.max_steps, options.max_serialize_depth, realm)
    register_builtins(global_env, realm, logger, random.Random(options.seed))
    interp = Interpreter(source, arena, global_env, realm, logger, options)
    logger.current_env = global_env

    first = first_meaningful_statement(program)
    try:
        logger.log(first.line if first is not None else 0, program, global_env)
        if first is not None:
            logger.add_flow("Ready to run. Click Next to start.")
            logger.set_next(first.line, f"Next Step → {display_header(first, source)}")
        else:
            logger.add_flow("Ready to run, but no code found.")
            logger.set_next(None, "End of program.")
        result = interp.run_program(program)
        if isinstance(result, Break):
            raise JSSyntaxError("Illegal break statement")
        if isinstance(result, Continue):
            raise JSSyntaxError("Illegal continue statement: no surrounding iteration statement")
    except StepLimitExceeded as err:
        log.debug("step limit of %d reached", err.max_steps)
        logger.log_terminal(STEP_LIMIT_MESSAGE, STEP_LIMIT_MESSAGE, error=str(err))
        return TimelineResult(logger.entries)
    except RecursionError:
        message = "Execution error: RangeError: Maximum call stack size exceeded"
        logger.log_terminal(message, message, error="RangeError: Maximum call stack size exceeded")
        return TimelineResult(logger.entries)
    except JSRuntimeError as err:
        log.debug("runtime error at line %s: %s", err.line, err.display())
        message = f"Execution error: {err.display()}"
        logger.log_terminal(message, message, error=err.display())
        return TimelineResult(logger.entries)
    except Exception as err:
        log.exception("internal error while running program")
        detail = f"Internal error: {type(err).__name__}: {err}"
        logger.log_terminal(f"Execution error: {detail}", f"Execution error: {detail}", error=detail)
        return TimelineResult(logger.entries)

    if isinstance(result, Throw):
        text = f"Uncaught {_uncaught_text(result.value)}"
        logger.log_terminal(text, text, error=text)
        return TimelineResult(logger.entries)

    if not stack:
        last = logger.last_entry
        logger.log(last.line if last is not None else 0, None, global_env, enforce_limit=False)
        logger.add_flow("Program finished")
        logger.set_next(None, "No more steps")
    log.debug("run finished after %d steps", logger.step)
    return TimelineResult(logger.entries)
