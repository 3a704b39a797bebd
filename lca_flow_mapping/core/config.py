"""Application configuration primitives."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from .parsing import coerce_float

DEFAULT_SECRETS_PATH = Path(".secrets/secrets.toml")


def _authorization_header(
    api_key: str | None,
    header_name: str | None = None,
    prefix: str | None = None,
) -> dict[str, str]:
    if not api_key:
        return {}
    header = (header_name or "Authorization").strip()
    if not header:
        return {}
    if prefix is None:
        prefix = "Bearer"
    prefix = prefix.strip()
    if prefix:
        value = f"{prefix} {api_key}".strip()
    else:
        value = api_key
    return {header: value}


class Settings(BaseSettings):
    """Central configuration for flow mapping."""

    store_base_url: HttpUrl = "http://localhost:8080"
    store_api_key: str | None = None
    store_api_key_header: str = "Authorization"
    store_api_key_prefix: str = "Bearer"

    request_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    max_concurrency: int = 4

    mapping_dir: Path = Path("artifacts/mappings")
    mapping_file_name: str = "flow_mapping.csv"
    mapping_delimiter: str = ";"
    file_lock_timeout: float = 60.0
    match_min_score: int = 1

    model_config = SettingsConfigDict(env_prefix="LCA_", env_file=(), extra="ignore")

    @property
    def mapping_path(self) -> Path:
        return self.mapping_dir / self.mapping_file_name

    def store_headers(self) -> dict[str, str]:
        """Return the HTTP headers sent with every reference store request."""
        headers = {"Accept": "application/json"}
        headers.update(
            _authorization_header(
                self.store_api_key,
                self.store_api_key_header,
                self.store_api_key_prefix,
            )
        )
        return headers


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    overrides = _load_settings_overrides()
    settings = Settings(**overrides)
    settings.mapping_dir.mkdir(parents=True, exist_ok=True)
    return settings


def _load_settings_overrides(secrets_path: Path = DEFAULT_SECRETS_PATH) -> dict[str, Any]:
    """Load configuration overrides from the secrets TOML file."""
    if not secrets_path.exists():
        return {}
    data = _read_toml(secrets_path)
    overrides: dict[str, Any] = {}

    store_cfg = _extract_section(data, "reference_store", "openlca", "store")
    if store_cfg:
        overrides["store_base_url"] = store_cfg.get("url")
        api_key = _sanitize_api_key(
            store_cfg.get("api_key") or store_cfg.get("authorization"),
            store_cfg.get("api_key_prefix"),
        )
        if api_key is not None:
            overrides["store_api_key"] = api_key
        if isinstance(store_cfg.get("api_key_prefix"), str):
            overrides["store_api_key_prefix"] = store_cfg["api_key_prefix"].strip()
        if isinstance(store_cfg.get("api_key_header"), str) and store_cfg["api_key_header"].strip():
            overrides["store_api_key_header"] = store_cfg["api_key_header"].strip()
        timeout_value = coerce_float(store_cfg.get("timeout"))
        if timeout_value is not None:
            overrides["request_timeout"] = timeout_value

    general_cfg = data.get("lca") or {}
    overrides.update({key: value for key, value in general_cfg.items() if key in Settings.model_fields})
    return {key: value for key, value in overrides.items() if value is not None}


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _extract_section(data: dict[str, Any], *candidates: str) -> dict[str, Any] | None:
    for key in candidates:
        section = data.get(key)
        if isinstance(section, dict):
            return section
    return None


def _sanitize_api_key(value: str | None, prefix: str | None = None) -> str | None:
    if not value:
        return None
    token = value.strip()
    if prefix is None:
        prefix_text = "Bearer"
    elif isinstance(prefix, str):
        prefix_text = prefix.strip()
    else:
        prefix_text = ""
    if prefix_text and token.lower().startswith(f"{prefix_text.lower()} "):
        token = token[len(prefix_text) + 1 :].strip()
    return token or None
