from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"


class ConfigurationError(RuntimeError):
    pass


class AppSettings(BaseSettings):
    etherscan_api_key: str = ""
    etherscan_base_url: str = "https://api.etherscan.io/api"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    artifacts_dir: Path = ARTIFACTS_DIR

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
