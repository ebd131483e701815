from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

DEFAULT_DATA_DIR = Path("~/.cortex").expanduser()

CONFIG_ENV_OVERRIDES = {
    "auto_save_threshold": "CORTEX_AUTO_SAVE_THRESHOLD",
    "auto_clear_threshold": "CORTEX_AUTO_CLEAR_THRESHOLD",
    "auto_clear_enabled": "CORTEX_AUTO_CLEAR_ENABLED",
    "restoration_token_budget": "CORTEX_RESTORATION_TOKEN_BUDGET",
    "restoration_message_count": "CORTEX_RESTORATION_MESSAGE_COUNT",
    "min_content_length": "CORTEX_MIN_CONTENT_LENGTH",
    "archive_project_scope": "CORTEX_ARCHIVE_PROJECT_SCOPE",
    "archive_auto_on_compact": "CORTEX_ARCHIVE_AUTO_ON_COMPACT",
    "monitor_token_threshold": "CORTEX_MONITOR_TOKEN_THRESHOLD",
    "context_warning_threshold": "CORTEX_CONTEXT_WARNING_THRESHOLD",
    "statusline_enabled": "CORTEX_STATUSLINE_ENABLED",
    "embedding_model": "CORTEX_EMBEDDING_MODEL",
    "embedding_dim": "CORTEX_EMBEDDING_DIM",
    "embedding_batch_size": "CORTEX_EMBEDDING_BATCH_SIZE",
    "db_path": "CORTEX_DB_PATH",
}

_INT_FIELDS = {
    "auto_save_threshold",
    "auto_clear_threshold",
    "restoration_token_budget",
    "restoration_message_count",
    "min_content_length",
    "monitor_token_threshold",
    "context_warning_threshold",
    "embedding_dim",
    "embedding_batch_size",
}
_BOOL_FIELDS = {
    "auto_clear_enabled",
    "archive_project_scope",
    "archive_auto_on_compact",
    "statusline_enabled",
}
_PERCENT_FIELDS = {
    "auto_save_threshold",
    "auto_clear_threshold",
    "monitor_token_threshold",
    "context_warning_threshold",
}
_INT_RANGES = {
    "restoration_token_budget": (0, 50000),
    "restoration_message_count": (0, 50),
    "min_content_length": (0, 10000),
    "embedding_dim": (1, 8192),
    "embedding_batch_size": (1, 1024),
}


def get_data_dir() -> Path:
    return Path(os.getenv("CORTEX_DATA_DIR", DEFAULT_DATA_DIR)).expanduser()


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("CORTEX_CONFIG", get_data_dir() / "config.json"))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = config_path.with_name(f"{config_path.name}.tmp.{os.getpid()}")
    try:
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
        tmp_path.replace(config_path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass(frozen=True)
class CortexConfig:
    # Automation thresholds are context-window percentages (0-100).
    auto_save_threshold: int = 80
    auto_clear_threshold: int = 80
    auto_clear_enabled: bool = False
    restoration_token_budget: int = 2000
    restoration_message_count: int = 5

    min_content_length: int = 50
    archive_project_scope: bool = True
    archive_auto_on_compact: bool = True

    monitor_token_threshold: int = 70
    context_warning_threshold: int = 60
    statusline_enabled: bool = True

    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_dim: int = 384
    embedding_batch_size: int = 32

    db_path: str | None = None

    def resolved_db_path(self) -> Path:
        if self.db_path:
            return Path(self.db_path).expanduser()
        return get_data_dir() / "memory.sqlite"


CONFIG_PRESETS: dict[str, dict[str, Any]] = {
    "full": {
        "statusline_enabled": True,
        "context_warning_threshold": 70,
        "archive_auto_on_compact": True,
        "archive_project_scope": True,
        "min_content_length": 50,
        "monitor_token_threshold": 70,
        "auto_save_threshold": 70,
        "auto_clear_threshold": 80,
        "auto_clear_enabled": False,
        "restoration_token_budget": 2000,
        "restoration_message_count": 5,
    },
    "essential": {
        "statusline_enabled": True,
        "context_warning_threshold": 80,
        "archive_auto_on_compact": True,
        "archive_project_scope": True,
        "min_content_length": 100,
        "monitor_token_threshold": 80,
        "auto_save_threshold": 75,
        "auto_clear_threshold": 85,
        "auto_clear_enabled": False,
        "restoration_token_budget": 1500,
        "restoration_message_count": 5,
    },
    "minimal": {
        "statusline_enabled": False,
        "context_warning_threshold": 90,
        "archive_auto_on_compact": False,
        "archive_project_scope": True,
        "min_content_length": 50,
        "monitor_token_threshold": 90,
        "auto_save_threshold": 85,
        "auto_clear_threshold": 90,
        "auto_clear_enabled": False,
        "restoration_token_budget": 1000,
        "restoration_message_count": 3,
    },
}


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    low, high = (0, 100) if key in _PERCENT_FIELDS else _INT_RANGES.get(key, (None, None))
    if (low is not None and parsed < low) or (high is not None and parsed > high):
        warnings.warn(f"Out of range value for {key}: {parsed}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> CortexConfig:
    cfg = CortexConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text() or "{}")
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: CortexConfig, data: dict[str, Any]) -> CortexConfig:
    updates: dict[str, Any] = {}
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_FIELDS:
            updates[key] = _parse_int(value, getattr(cfg, key), key=key)
            continue
        if key in _BOOL_FIELDS:
            updates[key] = _coerce_bool(value, getattr(cfg, key), key=key)
            continue
        updates[key] = None if value is None else str(value)
    return replace(cfg, **updates)


def apply_preset(name: str, path: Path | None = None) -> CortexConfig:
    preset = CONFIG_PRESETS.get(name)
    if preset is None:
        raise ValueError(f"Unknown preset: {name}")
    current = read_config_file(path)
    current.update(preset)
    write_config_file(current, path)
    return _apply_dict(CortexConfig(), current)
