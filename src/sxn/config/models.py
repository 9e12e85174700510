"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults live here, sxn.toml only carries overrides.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# --- sxn.toml sections ---


class RulesConfig(BaseModel):
    """[rules] section. Defaults for ``apply_rules`` options."""

    model_config = {"frozen": True}

    parallel: bool = True
    max_parallelism: int = Field(default=4, ge=1)
    continue_on_failure: bool = False


class SecurityConfig(BaseModel):
    """[security] section."""

    model_config = {"frozen": True}

    # Executable -> subcommand patterns; null allows any arguments.
    extra_commands: dict[str, list[str] | None] = Field(default_factory=dict)
    max_file_size: int = Field(default=100 * 1024 * 1024, gt=0)
    # Base64-encoded 32-byte AES key for ``encrypt: true`` copies.
    encryption_key: str | None = None


class TemplatesConfig(BaseModel):
    """[templates] section."""

    model_config = {"frozen": True}

    max_size: int = Field(default=1024 * 1024, gt=0)


# --- Root config ---


class SxnConfig(BaseModel):
    """Top-level sxn.toml model."""

    model_config = {"frozen": True}

    rules: RulesConfig = Field(default_factory=RulesConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
