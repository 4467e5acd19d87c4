from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Callable

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import ProxyConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "FALBRIDGE_CONFIG_FILE"
ENV_PREFIX = "FALBRIDGE_"
DEFAULT_CONFIG_PATH = Path("configs/falbridge.toml")

# Unprefixed variables understood by container deployments
_LEGACY_ENV = {"PORT": "port", "FAL_KEY": "default_api_key"}

_SECTION_MAP: dict[str, list[str]] = {
    "server": ["host", "port"],
    "upstream": [
        "upstream_base_url",
        "models_url",
        "image_models_url",
        "balance_url",
        "user_agent",
        "upstream_timeout_s",
    ],
    "auth": ["default_api_key"],
    "logging": ["log_path", "max_log_bytes", "log_requests", "log_level"],
}


def _field_types() -> dict[str, Any]:
    return {f.name: f.type for f in fields(ProxyConfig)}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value))


def _coerce_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value))


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_optional(value: Any, caster: Callable[[Any], Any]) -> Any:
    if value in ("", None):
        return None
    return caster(value)


_CASTERS: dict[str, Callable[[Any], Any]] = {
    "bool": _coerce_bool,
    "int": _coerce_int,
    "float": _coerce_float,
    "str": _coerce_str,
}


def _coerce_value(field_type: Any, value: Any) -> Any:
    # Annotations are strings under ``from __future__ import annotations``
    type_name = field_type if isinstance(field_type, str) else getattr(
        field_type, "__name__", str(field_type)
    )
    if type_name.startswith("Optional[") and type_name.endswith("]"):
        caster = _CASTERS.get(type_name[len("Optional[") : -1])
        if caster:
            return _coerce_optional(value, caster)
        return value
    caster = _CASTERS.get(type_name)
    if caster:
        return caster(value)
    return value


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    return out


def _env_values() -> dict[str, Any]:
    env = os.environ
    values: dict[str, Any] = {}
    for name, key in _LEGACY_ENV.items():
        if env.get(name):
            values[key] = env[name]
    for f in fields(ProxyConfig):
        if f.name == "config_file_path":
            continue
        val = env.get(ENV_PREFIX + f.name.upper())
        if val is not None:
            values[f.name] = val
    return values


def _default_config_dict() -> dict[str, Any]:
    data = asdict(ProxyConfig())
    data.pop("config_file_path", None)
    return data


def _normalize(config: dict[str, Any]) -> dict[str, Any]:
    field_types = _field_types()
    normalized = {}
    for key, default_value in _default_config_dict().items():
        value = config.get(key, default_value)
        try:
            normalized[key] = _coerce_value(field_types.get(key), value)
        except (TypeError, ValueError):
            logger.warning("[config] Ignoring invalid value for %s: %r", key, value)
            normalized[key] = default_value
    return normalized


def _config_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def load_file_config() -> dict[str, Any]:
    base = _default_config_dict()
    base.update(_read_config_file(_config_path()))
    return _normalize(base)


def load_proxy_config() -> ProxyConfig:
    """Build the runtime config: environment > config file > defaults."""
    path = _config_path()
    values = _read_config_file(path)
    values.update(_env_values())
    cfg = ProxyConfig(**_normalize(values))
    cfg.config_file_path = str(path) if path.exists() else None
    return cfg


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_value(item) for item in value)
        return f"[{inner}]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return '""'
    escaped = str(value).replace('"', '\\"')
    return f'"{escaped}"'


def write_config(config: ProxyConfig, path: Path | None = None) -> Path:
    path = Path(path or _config_path()).expanduser()
    config_dict = asdict(config)
    lines: list[str] = [
        "# falbridge configuration.",
        "# Environment variables (FALBRIDGE_*, PORT, FAL_KEY) override these values.",
    ]
    for section, keys in _SECTION_MAP.items():
        lines.append("")
        lines.append(f"[{section}]")
        for key in keys:
            lines.append(f"{key} = {_format_value(config_dict[key])}")

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix="falbridge_config_", suffix=".toml", dir=str(path.parent)
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
        Path(tmp_path).replace(path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
    return path


def list_env_overrides() -> dict[str, str]:
    """Return active overrides; credential values are masked."""
    names = set(_LEGACY_ENV) | {CONFIG_FILE_ENV}
    return {
        key: ("***" if key.endswith("_KEY") else value)
        for key, value in os.environ.items()
        if key.startswith(ENV_PREFIX) or key in names
    }
