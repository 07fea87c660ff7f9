from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, field_validator

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ASSETS_DIR = BASE_DIR / "assets"
DEFAULT_CONFIG_PATH = ASSETS_DIR / "config.default.json"
USER_CONFIG_PATH = ASSETS_DIR / "config.json"


class AppConfig(BaseModel, extra="allow"):
    """Application settings for the report suite."""

    app_name: str = "custom-report-suite"
    version: str = "0.1.0"
    reports_enabled: bool = True
    max_query_length: int = 64 * 1024
    preview_length: int = 100
    default_row_limit: int = 1000
    check_execution_on_save: bool = True

    @field_validator("max_query_length", "preview_length", "default_row_limit")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v


def load_config(default_path: Path | None = None, user_path: Path | None = None) -> AppConfig:
    """Load the default configuration and overlay user settings when present."""

    default_path = default_path or DEFAULT_CONFIG_PATH
    user_path = user_path or USER_CONFIG_PATH
    if not default_path.exists():
        raise FileNotFoundError(f"Default configuration file not found: {default_path}")
    with default_path.open(encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)
    if user_path.exists():
        with user_path.open(encoding="utf-8") as f:
            user_data = json.load(f)
        data.update(user_data)
    return AppConfig(**data)
