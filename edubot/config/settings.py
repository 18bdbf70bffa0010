"""Configuration management for EDUBot."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edubot.core.interfaces import ConfigProvider


WAIT_UNTIL_ALIASES: Dict[str, str] = {
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
}
VALID_WAIT_UNTIL = {"load", "domcontentloaded", "networkidle", "commit"}


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Browser Configuration
    browser_headless: bool = Field(
        default=False,
        description="Run browser in headless mode (operator login needs a visible window)",
    )
    browser_timeout: int = Field(
        default=30000, ge=1000, description="Default browser timeout (ms)"
    )
    browser_viewport_width: int = Field(
        default=1366, ge=800, description="Browser viewport width"
    )
    browser_viewport_height: int = Field(
        default=768, ge=600, description="Browser viewport height"
    )
    browser_cdp_url: Optional[str] = Field(
        default=None,
        description="Attach to an already running Chrome over CDP (e.g. http://localhost:9222)",
    )
    browser_user_agent: Optional[str] = Field(
        default=None, description="User agent override"
    )
    browser_accept_language: str = Field(
        default="tr-TR,tr;q=0.9,en-US;q=0.8,en;q=0.7",
        description="Accept-Language header sent by the browser context",
    )

    # Element Resolution
    resolver_max_attempts: int = Field(
        default=4, ge=1, description="Strategy passes per resolution, ends the window early when used up"
    )
    resolver_attempt_delay_ms: int = Field(
        default=400, ge=0, description="Delay between strategy passes (ms)"
    )
    resolver_timeout_ms: int = Field(
        default=30000, ge=0, description="Upper bound on the element resolution window (ms)"
    )

    # Execution Configuration
    step_retry_delay_ms: int = Field(
        default=1000, ge=0, description="Fixed delay between step retries (ms)"
    )
    default_wait_ms: int = Field(
        default=1000, ge=0, description="Duration of a wait step without config"
    )
    type_delay_ms: int = Field(
        default=50, ge=0, description="Per-keystroke delay for type steps (ms)"
    )
    min_type_timeout_ms: int = Field(
        default=5000, ge=0, description="Lower bound for type step resolution window"
    )
    navigation_wait_until: str = Field(
        default="networkidle", description="Default load condition for navigation"
    )
    initial_page_settle_ms: int = Field(
        default=2000, ge=0, description="Pause after the first navigation of a run"
    )
    delay_between_records_ms: int = Field(
        default=0, ge=0, description="Pause between two records (ms)"
    )

    # Login Handling
    login_url_markers: str = Field(
        default="login,auth,ekampus",
        description="Comma separated URL fragments that indicate a login page",
    )
    login_poll_interval_ms: int = Field(
        default=1000, ge=100, description="Login state polling interval (ms)"
    )
    login_wait_timeout_ms: int = Field(
        default=120000, ge=1000, description="Login wait window when auto-resume is on"
    )
    auto_resume_on_login: bool = Field(
        default=False, description="Continue automatically once a login is detected"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="text",
        description="Log format (json or text)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("data"), description="Data storage directory"
    )
    screenshots_dir: Path = Field(
        default=Path("screenshots"), description="Default screenshot directory"
    )
    database_path: Path = Field(
        default=Path("data/edubot.db"), description="SQLite database file"
    )

    # Development Configuration
    debug_mode: bool = Field(
        default=False, description="Enable debug mode"
    )

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("navigation_wait_until")
    def validate_wait_until(cls, v: str) -> str:
        """Map Puppeteer-style load conditions onto Playwright ones."""
        normalized = normalize_wait_until(v)
        if normalized not in VALID_WAIT_UNTIL:
            raise ValueError(f"Invalid navigation wait condition: {v}")
        return normalized

    @property
    def login_markers(self) -> List[str]:
        """Login URL markers as a lowercase list."""
        return [
            item.strip().lower()
            for item in self.login_url_markers.split(",")
            if item.strip()
        ]

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [
            self.data_dir,
            self.screenshots_dir,
            self.database_path.parent,
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)


def normalize_wait_until(value: Optional[str], default: str = "networkidle") -> str:
    """Return a Playwright load condition for a stored wait-until value."""
    if not value:
        return default
    lowered = str(value).strip().lower()
    return WAIT_UNTIL_ALIASES.get(lowered, lowered)


class ConfigManager(ConfigProvider):
    """Configuration manager implementation."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Initialize config manager.

        Args:
            settings: Optional settings instance
        """
        self.settings = settings or get_settings()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return getattr(self.settings, key, default)

    def get_required(self, key: str) -> Any:
        """Get required configuration value."""
        try:
            return getattr(self.settings, key)
        except AttributeError:
            raise KeyError(f"Required configuration key not found: {key}")

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self.settings.model_dump()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    settings = Settings()
    settings.create_directories()
    return settings


def get_config() -> ConfigManager:
    """Get configuration manager instance."""
    return ConfigManager(get_settings())
