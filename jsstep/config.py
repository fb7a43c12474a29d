"""
Run options for timeline generation.

Options can come from code (`RunOptions(...)`) or from an INI file with an
`[Interpreter]` section; keys missing from the file fall back to
DEFAULT_CONFIG.
"""
import configparser
import logging
import os
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger("jsstep.config")

DEFAULT_CONFIG = {
    'Interpreter': {
        'maxSteps': '2000',
        'maxCallDepth': '200',
        'seed': '1337',
        'maxSerializeDepth': '3',
        'narrateClosures': 'True',
    }
}


@dataclass(frozen=True)
class RunOptions:
    max_steps: int = 2000
    max_call_depth: int = 200
    # seed for Math.random, fixed per run so timelines are reproducible
    seed: int = 1337
    max_serialize_depth: int = 3
    narrate_closures: bool = True

    def __post_init__(self):
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if self.max_call_depth < 1:
            raise ValueError("max_call_depth must be at least 1")
        if self.max_serialize_depth < 0:
            raise ValueError("max_serialize_depth cannot be negative")


def options_from_config(config: configparser.ConfigParser) -> RunOptions:
    section = 'Interpreter'
    return RunOptions(
        max_steps=config.getint(section, 'maxSteps'),
        max_call_depth=config.getint(section, 'maxCallDepth'),
        seed=config.getint(section, 'seed'),
        max_serialize_depth=config.getint(section, 'maxSerializeDepth'),
        narrate_closures=config.getboolean(section, 'narrateClosures'),
    )


def load_options(path: Optional[str] = None) -> RunOptions:
    """Read RunOptions from `path`; a missing file yields the defaults."""
    config = configparser.ConfigParser()
    config.optionxform = str
    config.read_dict(DEFAULT_CONFIG)
    if path is not None:
        if os.path.isfile(path):
            config.read(path)
        else:
            log.debug("config file %s not found, using defaults", path)
    return options_from_config(config)
