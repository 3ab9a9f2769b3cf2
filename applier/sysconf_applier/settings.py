from __future__ import annotations
import os
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    base = os.environ.get("PROGRAMDATA")
    return Path(base) / "SysconfApplier" if base else Path.home() / ".sysconf-applier"


class Settings(BaseSettings):
    plans_dir: Optional[Path] = Field(default=None, alias="APPLIER_PLANS_DIR")
    log_dir: Path = Field(default_factory=lambda: _default_data_dir() / "logs", alias="APPLIER_LOG_DIR")
    download_dir: Path = Field(default_factory=lambda: _default_data_dir() / "downloads", alias="APPLIER_DOWNLOAD_DIR")

    powershell: str = Field(default="powershell.exe", alias="APPLIER_POWERSHELL")
    command_timeout: Optional[float] = Field(default=None, gt=0, alias="APPLIER_COMMAND_TIMEOUT")
    require_admin: bool = Field(default=True, alias="APPLIER_REQUIRE_ADMIN")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)
