"""Global configuration management for muesli."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict

from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".muesli"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "muesli_config_dir_override",
    default=None,
)
DEFAULT_API_BASE = "https://api.granola.ai"
DEFAULT_THROTTLE_MIN_MS = 100
DEFAULT_THROTTLE_MAX_MS = 300
DEFAULT_EMBED_PROVIDER = "local"
DEFAULT_LOCAL_MODEL = "intfloat/multilingual-e5-small"
DEFAULT_OPENAI_EMBED_MODEL = "text-embedding-3-small"
DEFAULT_EMBED_CHAR_BUDGET = 2000
DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"
DEFAULT_CONTEXT_WINDOW = 6000
SUPPORTED_EMBED_PROVIDERS: tuple[str, ...] = ("local", "openai")
ENV_BEARER_TOKEN = "BEARER_TOKEN"
ENV_OPENAI_KEY = "MUESLI_OPENAI_API_KEY"
OPENAI_ENV = "OPENAI_API_KEY"


@dataclass
class Config:
    api_base: str = DEFAULT_API_BASE
    data_dir: str | None = None
    throttle_min_ms: int = DEFAULT_THROTTLE_MIN_MS
    throttle_max_ms: int = DEFAULT_THROTTLE_MAX_MS
    embed_provider: str = DEFAULT_EMBED_PROVIDER
    embed_model: str | None = None
    embed_char_budget: int = DEFAULT_EMBED_CHAR_BUDGET
    openai_api_key: str | None = None
    summary_model: str = DEFAULT_SUMMARY_MODEL
    context_window: int = DEFAULT_CONTEXT_WINDOW
    prompt_file: str | None = None


def _resolve_config_dir() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    return override if override is not None else CONFIG_DIR


def _resolve_config_file() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


@contextmanager
def config_dir_context(path: Path | str | None):
    """Temporarily override the config directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _CONFIG_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def load_config() -> Config:
    config_file = _resolve_config_file()
    if not config_file.exists():
        return Config()
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    provider = (raw.get("embed_provider") or DEFAULT_EMBED_PROVIDER).strip().lower()
    if provider not in SUPPORTED_EMBED_PROVIDERS:
        provider = DEFAULT_EMBED_PROVIDER
    return Config(
        api_base=raw.get("api_base") or DEFAULT_API_BASE,
        data_dir=raw.get("data_dir") or None,
        throttle_min_ms=int(raw.get("throttle_min_ms", DEFAULT_THROTTLE_MIN_MS)),
        throttle_max_ms=int(raw.get("throttle_max_ms", DEFAULT_THROTTLE_MAX_MS)),
        embed_provider=provider,
        embed_model=raw.get("embed_model") or None,
        embed_char_budget=int(raw.get("embed_char_budget", DEFAULT_EMBED_CHAR_BUDGET)),
        openai_api_key=raw.get("openai_api_key") or None,
        summary_model=raw.get("summary_model") or DEFAULT_SUMMARY_MODEL,
        context_window=int(raw.get("context_window", DEFAULT_CONTEXT_WINDOW)),
        prompt_file=raw.get("prompt_file") or None,
    )


def save_config(config: Config) -> None:
    config_dir = _resolve_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {}
    if config.api_base:
        data["api_base"] = config.api_base
    if config.data_dir:
        data["data_dir"] = config.data_dir
    data["throttle_min_ms"] = config.throttle_min_ms
    data["throttle_max_ms"] = config.throttle_max_ms
    data["embed_provider"] = config.embed_provider
    if config.embed_model:
        data["embed_model"] = config.embed_model
    data["embed_char_budget"] = config.embed_char_budget
    if config.openai_api_key:
        data["openai_api_key"] = config.openai_api_key
    data["summary_model"] = config.summary_model
    data["context_window"] = config.context_window
    if config.prompt_file:
        data["prompt_file"] = config.prompt_file
    config_file = _resolve_config_file()
    config_file.write_text(
        json.dumps(data, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def default_data_dir() -> Path:
    """Return the data directory used when no override is configured."""
    return _resolve_config_dir() / "data"


def resolve_data_dir(override: Path | str | None, config: Config | None = None) -> Path:
    """Return the effective data directory: CLI override, config, then default."""
    if override:
        return Path(override).expanduser().resolve()
    cfg = config if config is not None else load_config()
    if cfg.data_dir:
        return Path(cfg.data_dir).expanduser().resolve()
    return default_data_dir()


def resolve_embed_model(provider: str | None, model: str | None) -> str:
    """Return the effective embedding model for the selected provider."""
    clean_model = (model or "").strip()
    if clean_model:
        return clean_model
    normalized = (provider or DEFAULT_EMBED_PROVIDER).lower()
    if normalized == "openai":
        return DEFAULT_OPENAI_EMBED_MODEL
    return DEFAULT_LOCAL_MODEL


def config_from_json(
    payload: str | Mapping[str, object], *, base: Config | None = None
) -> Config:
    """Return a Config from a JSON string or mapping without saving it."""
    data = _coerce_config_payload(payload)
    config = Config() if base is None else _clone_config(base)
    _apply_config_payload(config, data)
    return config


def update_config_from_json(
    payload: str | Mapping[str, object], *, replace: bool = False
) -> Config:
    """Update config from a JSON string or mapping and persist it."""
    base = None if replace else load_config()
    config = config_from_json(payload, base=base)
    save_config(config)
    return config


def _coerce_config_payload(payload: str | Mapping[str, object]) -> Mapping[str, object]:
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID) from exc
    elif isinstance(payload, Mapping):
        data = dict(payload)
    else:
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    if not isinstance(data, Mapping):
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    return data


def _clone_config(config: Config) -> Config:
    return Config(
        api_base=config.api_base,
        data_dir=config.data_dir,
        throttle_min_ms=config.throttle_min_ms,
        throttle_max_ms=config.throttle_max_ms,
        embed_provider=config.embed_provider,
        embed_model=config.embed_model,
        embed_char_budget=config.embed_char_budget,
        openai_api_key=config.openai_api_key,
        summary_model=config.summary_model,
        context_window=config.context_window,
        prompt_file=config.prompt_file,
    )


def _apply_config_payload(config: Config, payload: Mapping[str, object]) -> None:
    if "api_base" in payload:
        config.api_base = _coerce_required_str(
            payload["api_base"], "api_base", DEFAULT_API_BASE
        ).rstrip("/")
    if "data_dir" in payload:
        config.data_dir = _coerce_optional_str(payload["data_dir"], "data_dir")
    if "throttle_min_ms" in payload:
        config.throttle_min_ms = _coerce_int(
            payload["throttle_min_ms"], "throttle_min_ms", DEFAULT_THROTTLE_MIN_MS
        )
    if "throttle_max_ms" in payload:
        config.throttle_max_ms = _coerce_int(
            payload["throttle_max_ms"], "throttle_max_ms", DEFAULT_THROTTLE_MAX_MS
        )
    if config.throttle_min_ms < 0 or config.throttle_max_ms < config.throttle_min_ms:
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="throttle"))
    if "embed_provider" in payload:
        config.embed_provider = _normalize_embed_provider(payload["embed_provider"])
    if "embed_model" in payload:
        config.embed_model = _coerce_optional_str(payload["embed_model"], "embed_model")
    if "embed_char_budget" in payload:
        budget = _coerce_int(
            payload["embed_char_budget"], "embed_char_budget", DEFAULT_EMBED_CHAR_BUDGET
        )
        if budget <= 0:
            raise ValueError(
                Messages.ERROR_CONFIG_VALUE_INVALID.format(field="embed_char_budget")
            )
        config.embed_char_budget = budget
    if "openai_api_key" in payload:
        config.openai_api_key = _coerce_optional_str(
            payload["openai_api_key"], "openai_api_key"
        )
    if "summary_model" in payload:
        config.summary_model = _coerce_required_str(
            payload["summary_model"], "summary_model", DEFAULT_SUMMARY_MODEL
        )
    if "context_window" in payload:
        window = _coerce_int(
            payload["context_window"], "context_window", DEFAULT_CONTEXT_WINDOW
        )
        if window <= 0:
            raise ValueError(
                Messages.ERROR_CONFIG_VALUE_INVALID.format(field="context_window")
            )
        config.context_window = window
    if "prompt_file" in payload:
        config.prompt_file = _coerce_optional_str(payload["prompt_file"], "prompt_file")


def _coerce_optional_str(value: object, field: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_required_str(value: object, field: str, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or default
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_int(value: object, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            return int(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _normalize_embed_provider(value: object) -> str:
    if value is None:
        return DEFAULT_EMBED_PROVIDER
    if isinstance(value, str):
        normalized = value.strip().lower() or DEFAULT_EMBED_PROVIDER
        if normalized in SUPPORTED_EMBED_PROVIDERS:
            return normalized
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="embed_provider"))
