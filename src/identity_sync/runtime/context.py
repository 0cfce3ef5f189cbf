"""Application context holding the active configuration.

The configuration is loaded once from ``config.yaml`` (path overridable with
``APP_CONFIG_FILE``) and kept in a context variable so tests can swap it for
the duration of a block with :func:`with_context`.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path

from pydantic import BaseModel

from src.identity_sync.runtime.config.config_data import ConfigData
from src.identity_sync.runtime.config.config_template import load_templated_yaml


@dataclass
class AppContext:
    """Application context containing configuration and other app-wide state."""

    config: ConfigData


_default_config = load_templated_yaml(Path(os.getenv("APP_CONFIG_FILE", "config.yaml")))
_app_context: ContextVar[AppContext] = ContextVar(
    "app_context", default=AppContext(config=_default_config)
)


def get_context() -> AppContext:
    """Get the current application context."""
    return _app_context.get()


def set_context(context: AppContext) -> Token[AppContext]:
    """Set the current application context."""
    return _app_context.set(context)


def _explicit_fields(model: BaseModel) -> dict:
    """Dump only the fields that were explicitly set, recursing into sub-models."""
    result = {}
    for field_name in type(model).model_fields:
        value = getattr(model, field_name)
        if isinstance(value, BaseModel):
            nested = _explicit_fields(value)
            if nested:
                result[field_name] = nested
            elif field_name in model.model_fields_set:
                result[field_name] = value.model_dump()
        elif field_name in model.model_fields_set:
            result[field_name] = value
    return result


def _deep_merge(base: dict, override: dict) -> dict:
    merged = base.copy()
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_configs(base_config: ConfigData, override_config: ConfigData) -> ConfigData:
    """Overlay the explicitly-set fields of ``override_config`` onto ``base_config``."""
    merged = _deep_merge(
        base_config.model_dump(),
        _explicit_fields(override_config),
    )
    return ConfigData.model_validate(merged)


@contextmanager
def with_context(config_override: ConfigData | None = None) -> Iterator[None]:
    """Temporarily override the application configuration.

    Only fields explicitly set on ``config_override`` replace the current
    values; everything else is inherited.

    Example:
        override = ConfigData(sync=SyncConfig(push_batch_size=2))
        with with_context(override):
            assert get_config().sync.push_batch_size == 2
    """
    if config_override is None:
        yield
        return

    if not isinstance(config_override, ConfigData):
        raise ValueError(
            f"config_override must be ConfigData, or None, got {type(config_override)}"
        )

    merged = merge_configs(get_context().config, config_override)
    token = set_context(replace(get_context(), config=merged))
    try:
        yield
    finally:
        _app_context.reset(token)


def set_config(config: ConfigData) -> None:
    """Replace the current application configuration."""
    set_context(replace(get_context(), config=config))


def get_config() -> ConfigData:
    """Convenience function to get the current configuration."""
    return get_context().config
