"""Unified settings: CLI flags, env vars and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs, the CLI flags passed by Click
  2. Env vars with the ``SXN_`` prefix (nested sections use ``__``)
  3. ``sxn.toml`` discovered via walk-up
  4. Code defaults baked into the section models
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any, ClassVar

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from sxn.config.discovery import find_config
from sxn.config.models import RulesConfig, SecurityConfig, TemplatesConfig


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from an ``sxn.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for the TOML path during construction.
_tls = threading.local()


class SxnSettings(BaseSettings):
    """Settings for the sxn CLI and the rules engine.

    Stored in ``click.Context.obj`` at the CLI root; the engine accepts it
    (or ``None`` for defaults) through its ``settings`` argument.

    Attributes:
        config_path: The sxn.toml that was loaded, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "SXN_",
        "env_nested_delimiter": "__",
    }

    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    rules: RulesConfig = Field(default_factory=RulesConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)

    _toml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        start: Path | None = None,
        **cli_flags: Any,
    ) -> SxnSettings:
        """Construct settings from a CLI invocation.

        Uses the explicit *config_path* when given, otherwise discovers
        ``sxn.toml`` by walking up from *start* (default: cwd).

        Raises:
            click.ClickException: If an explicit *config_path* is missing or
                the TOML cannot be parsed.
        """
        toml_path: Path | None
        if config_path:
            toml_path = Path(config_path)
            if not toml_path.is_file():
                msg = f"Config file not found: {config_path}"
                raise click.ClickException(msg)
        else:
            toml_path = find_config(start)

        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **cli_flags)
        finally:
            _tls.toml_path = None
