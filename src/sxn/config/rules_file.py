"""Load a rules config from a YAML, TOML or JSON file.

The engine takes a plain mapping; this module is how the CLI gets one.
A top-level ``rules`` key is unwrapped so a rules file may also carry
other sections.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from sxn.errors import SxnError

YAML_SUFFIXES = frozenset({".yml", ".yaml"})
TOML_SUFFIXES = frozenset({".toml"})
JSON_SUFFIXES = frozenset({".json"})


class RulesFileError(SxnError):
    """A rules file is missing, unparseable, or not a mapping."""


def _to_builtin(value: Any) -> Any:
    """Convert ruamel's round-trip containers into plain dicts and lists."""
    if isinstance(value, dict):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_builtin(v) for v in value]
    return value


def parse_rules_text(text: str, fmt: str) -> dict[str, Any]:
    """Parse *text* as ``"yaml"``, ``"toml"`` or ``"json"``."""
    try:
        if fmt == "yaml":
            data = YAML(typ="safe").load(text)
        elif fmt == "toml":
            data = tomllib.loads(text)
        elif fmt == "json":
            data = json.loads(text)
        else:
            msg = f"Unsupported rules file format: {fmt}"
            raise RulesFileError(msg)
    except (YAMLError, tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
        msg = f"Could not parse rules ({fmt}): {exc}"
        raise RulesFileError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = "Rules file must contain a mapping of rule names to rule definitions"
        raise RulesFileError(msg)
    data = _to_builtin(data)
    if "rules" in data and isinstance(data["rules"], dict):
        data = data["rules"]
    return data


def detect_format(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in YAML_SUFFIXES:
        return "yaml"
    if suffix in TOML_SUFFIXES:
        return "toml"
    if suffix in JSON_SUFFIXES:
        return "json"
    msg = f"Unrecognised rules file extension: {path.name} (use .yml, .yaml, .toml or .json)"
    raise RulesFileError(msg)


def load_rules_file(path: Path) -> dict[str, Any]:
    """Read and parse the rules file at *path*."""
    fmt = detect_format(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read rules file {path}: {exc}"
        raise RulesFileError(msg) from exc
    return parse_rules_text(text, fmt)
