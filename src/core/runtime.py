"""Runtime configuration loader (platform ordering and defaults)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator

from src.core.config import get_settings


SUPPORTED_PLATFORMS = ("instagram", "short_video", "feed_post")


def _normalize_platform_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise ValueError("platform list must be a list of names")

    normalized: List[str] = []
    for raw in value:
        name = str(raw).strip().lower()
        if not name:
            continue
        if name not in SUPPORTED_PLATFORMS:
            raise ValueError(f"unsupported platform: {name}")
        if name not in normalized:
            normalized.append(name)
    return normalized


class RuntimeConfig(BaseModel):
    platform_priority: List[str] = Field(default_factory=lambda: list(SUPPORTED_PLATFORMS))
    default_platforms: List[str] = Field(default_factory=lambda: ["instagram", "short_video"])

    @field_validator("platform_priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> List[str]:
        normalized = _normalize_platform_list(value)
        # Platforms left out of the configured ranking keep their canonical order at the end.
        for name in SUPPORTED_PLATFORMS:
            if name not in normalized:
                normalized.append(name)
        return normalized

    @field_validator("default_platforms", mode="before")
    @classmethod
    def _normalize_defaults(cls, value: Any) -> List[str]:
        normalized = _normalize_platform_list(value)
        if not normalized:
            raise ValueError("default_platforms must name at least one platform")
        return normalized

    def rank(self, platform: str) -> int:
        try:
            return self.platform_priority.index(platform)
        except ValueError:
            return len(self.platform_priority)


def _resolve_runtime_path() -> Path:
    settings = get_settings()
    configured = Path(settings.runtime_file_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


@lru_cache(maxsize=1)
def load_runtime_config() -> RuntimeConfig:
    path = _resolve_runtime_path()
    if not path.exists():
        return RuntimeConfig()

    content = path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(content) or {}
    if not isinstance(parsed, dict):
        raise ValueError("Runtime config must be a YAML object")

    data: Dict[str, Any] = dict(parsed)
    return RuntimeConfig.model_validate(data)


def reset_runtime_config_cache() -> None:
    load_runtime_config.cache_clear()
