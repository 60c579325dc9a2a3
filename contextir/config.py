from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextir.models.envelope import EnvelopeOptions, TokenBudgetOptions

ENV_PREFIX = "CONTEXTIR_"


class BudgetConfig(BaseModel):
    max_tokens: int | None = Field(default=None, ge=0)
    """Default token ceiling; ``None`` leaves envelopes unbudgeted."""
    task_reserve: int = Field(default=500, ge=0)
    min_chunks: int = Field(default=3, ge=0)

    def as_options(self, max_tokens: int | None = None) -> TokenBudgetOptions | None:
        """Budget options with *max_tokens* overriding the configured ceiling.

        Returns ``None`` when neither sets a ceiling.
        """
        effective = self.max_tokens if max_tokens is None else max_tokens
        if effective is None:
            return None
        return TokenBudgetOptions(
            max_tokens=effective,
            task_reserve=self.task_reserve,
            min_chunks=self.min_chunks,
        )


class EnvelopeConfig(BaseModel):
    include_attachments: bool = True

    def as_options(self, max_tokens: int | None = None) -> EnvelopeOptions:
        return EnvelopeOptions(max_tokens=max_tokens, include_attachments=self.include_attachments)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value}")
        return level


class ContextIRSettings(BaseSettings):
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    envelope: EnvelopeConfig = Field(default_factory=EnvelopeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
        else:
            existing = dict(existing)
        current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/contextir.yaml") -> ContextIRSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("contextir", loaded)
    if not isinstance(raw, dict):
        raise ValueError("contextir config section must be a mapping")

    merged = _apply_env_overrides(raw)
    return ContextIRSettings.model_validate(merged)


__all__ = [
    "BudgetConfig",
    "ContextIRSettings",
    "EnvelopeConfig",
    "LoggingConfig",
    "load_config",
]
