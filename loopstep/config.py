"""
Interpreter limits and where they come from.

The three ceilings can be given in code, in an INI file

    [interpreter]
    maxSteps = 2000
    maxCallStackDepth = 50

or in a YAML file (either at the top level or under an `interpreter:` key).
"""
from __future__ import annotations
import configparser
import logging
import os
from dataclasses import asdict, dataclass, replace
from typing import Any, Mapping, Optional

import yaml

from .errors import ConfigError

log = logging.getLogger(__name__)

SECTION = 'interpreter'

DEFAULT_CONFIG = {
    SECTION: {
        'maxSteps': '1000',
        'maxCallStackDepth': '100',
        'maxLoopIterations': '100',
    },
}

# camelCase key -> dataclass field
_KEYS = {
    'maxSteps': 'max_steps',
    'maxCallStackDepth': 'max_call_stack_depth',
    'maxLoopIterations': 'max_loop_iterations',
}


@dataclass(frozen=True)
class InterpreterConfig:
    max_steps: int = 1000
    max_call_stack_depth: int = 100
    max_loop_iterations: int = 100

    def __post_init__(self):
        for name in _KEYS.values():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> 'InterpreterConfig':
        """Build a config from camelCase or snake_case keys; unknown keys are rejected."""
        values = {}
        for key, raw in (mapping or {}).items():
            name = _KEYS.get(key, key)
            if name not in _KEYS.values():
                raise ConfigError(f"unknown interpreter setting {key!r}")
            values[name] = _to_int(key, raw)
        return cls(**values)

    def with_overrides(self, **overrides) -> 'InterpreterConfig':
        """Copy with the given fields replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        """camelCase form, matching the config file keys."""
        data = asdict(self)
        return {key: data[name] for key, name in _KEYS.items()}


def _to_int(key: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _load_ini(path: str) -> Mapping[str, Any]:
    parser = configparser.ConfigParser()
    parser.optionxform = str  # keep camelCase keys
    parser.read_dict(DEFAULT_CONFIG)
    try:
        with open(path, encoding='utf-8') as fh:
            parser.read_file(fh)
    except configparser.Error as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    return dict(parser[SECTION])


def _load_yaml(path: str) -> Mapping[str, Any]:
    with open(path, encoding='utf-8') as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    section = data.get(SECTION, data)
    if not isinstance(section, dict):
        raise ConfigError(f"{path}: '{SECTION}' must be a mapping")
    return section


def load_config(path: Optional[str] = None) -> InterpreterConfig:
    """Read limits from an .ini/.cfg or .yaml/.yml file; defaults when path is None."""
    if path is None:
        return InterpreterConfig()
    if not os.path.exists(path):
        raise ConfigError(f"config file not found: {path}")
    ext = os.path.splitext(path)[1].lower()
    if ext in ('.yaml', '.yml'):
        mapping = _load_yaml(path)
    elif ext in ('.ini', '.cfg'):
        mapping = _load_ini(path)
    else:
        raise ConfigError(f"unsupported config format {ext or '(none)'!r}; use .ini, .cfg, .yaml or .yml")
    config = InterpreterConfig.from_mapping(mapping)
    log.debug("loaded %s from %s", config, path)
    return config
