"""Config file discovery and loading.

Walk-up finder locates sxn.toml, the way git finds .git/.
Supports the SXN_CONFIG env var and the --config CLI flag.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from sxn.config.models import SxnConfig

CONFIG_FILENAME = "sxn.toml"
CONFIG_ENV_VAR = "SXN_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for sxn.toml.

    SXN_CONFIG, when set, wins; a value naming a missing file yields None.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None, cwd: Path | None = None) -> SxnConfig:
    """Load and validate sxn.toml, or return defaults when none is found."""
    if path is None:
        path = find_config(cwd)
    if path is None:
        return SxnConfig()

    data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
    return SxnConfig.model_validate(data)
