#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "settings.json"
ENV_CONFIG_PATH = "SOPS_CONTEXT_CONFIG"


class SopsSettings(BaseModel):
    command: List[str] = Field(default_factory=lambda: ["sops"], min_length=1)
    timeout: Optional[PositiveFloat] = None


class ServerSettings(BaseModel):
    max_workers: Optional[PositiveInt] = None


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseModel):
    sops: SopsSettings = Field(default_factory=SopsSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_config(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from JSON.

    Lookup order: explicit ``path``, then ``$SOPS_CONTEXT_CONFIG``, then
    ``config/settings.json``. An explicitly named file must exist; a missing
    default file just means built-in defaults.
    """
    explicit = path or os.environ.get(ENV_CONFIG_PATH)
    config_path = Path(explicit).expanduser() if explicit else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Config not found: {config_path}. "
                f"Copy from config/settings.example.json"
            )
        return Settings()

    with config_path.open("r", encoding="utf-8") as f:
        return Settings.model_validate_json(f.read())
