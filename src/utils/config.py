"""Configuration management for SatoshiPay Publisher."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

VERSION = "0.8.0"

DEFAULT_API_URL = "https://api.satoshipay.io/v1"
DEFAULT_CLIENT_URL = "https://wallet.satoshipay.io/satoshipay.js"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    url: str = "sqlite:///data/db/satoshipay.db"
    echo: bool = False


class ProviderConfig(BaseModel):
    """SatoshiPay provider configuration."""

    api_url: str = DEFAULT_API_URL
    client_url: str = DEFAULT_CLIENT_URL
    use_ad_blocker_detection: bool = True
    timeout: Optional[float] = None


class SiteConfig(BaseModel):
    """Configuration of the publishing site."""

    name: str = "SatoshiPay Publisher"
    home_url: str = "http://localhost:8000"


class APIConfig(BaseModel):
    """API configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "data/logs/satoshipay.log"


class Config(BaseModel):
    """Main configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Settings(BaseSettings):
    """Environment-based settings."""

    # Provider
    satoshipay_api_url: str = ""
    satoshipay_client_url: str = ""
    satoshipay_use_ad_blocker_detection: Optional[bool] = None

    # Database
    database_url: str = ""

    # Site
    site_home_url: str = ""

    # Logging
    log_level: str = ""

    # API
    api_host: str = ""
    api_port: Optional[int] = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("satoshipay_use_ad_blocker_detection", mode="before")
    @classmethod
    def _parse_ad_blocker_flag(cls, value: Any) -> Optional[bool]:
        # Only the literal "true" switches the feature on
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return value == "true"
        return bool(value)


class ConfigManager:
    """Configuration manager for loading and merging config sources."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to YAML configuration file
        """
        load_dotenv()

        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "config.yaml"

        self.config_path = config_path
        self.yaml_config = self._load_yaml()

        self.env_settings = Settings()

        self.config = self._merge_config()

    def _load_yaml(self) -> Dict[str, Any]:
        """Load YAML configuration file."""
        if not self.config_path.exists():
            return {}

        with open(self.config_path, "r") as f:
            return yaml.safe_load(f) or {}

    def _merge_config(self) -> Config:
        """Merge YAML config with environment variables."""
        merged = self.yaml_config.copy()
        env = self.env_settings

        if env.satoshipay_api_url:
            merged.setdefault("provider", {})["api_url"] = env.satoshipay_api_url

        if env.satoshipay_client_url:
            merged.setdefault("provider", {})["client_url"] = env.satoshipay_client_url

        if env.satoshipay_use_ad_blocker_detection is not None:
            merged.setdefault("provider", {})[
                "use_ad_blocker_detection"
            ] = env.satoshipay_use_ad_blocker_detection

        if env.database_url:
            merged.setdefault("database", {})["url"] = env.database_url

        if env.site_home_url:
            merged.setdefault("site", {})["home_url"] = env.site_home_url

        if env.log_level:
            merged.setdefault("logging", {})["level"] = env.log_level

        if env.api_host:
            merged.setdefault("api", {})["host"] = env.api_host

        if env.api_port:
            merged.setdefault("api", {})["port"] = env.api_port

        return Config(**merged)


# Global config instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> Config:
    """Get global configuration instance."""
    return get_config_manager().config


def get_settings() -> Settings:
    """Get environment settings."""
    return get_config_manager().env_settings


def get_config_manager() -> ConfigManager:
    """Get configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
