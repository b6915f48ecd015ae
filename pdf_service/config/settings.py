"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Dict, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="PDF Rendering Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Expose error details in responses")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")
    api_prefix: str = Field(default="/api", description="Mount point for API routes")

    # Security Configuration
    allowed_origins: List[str] = Field(default=["*"], description="Allowed origins for CORS")
    max_payload_bytes: int = Field(
        default=10 * 1024 * 1024, description="Maximum accepted request body size"
    )

    # Template Configuration
    templates_path: Path = Field(
        default=PACKAGE_ROOT / "templates", description="Root directory for templates"
    )
    filename_identifier_field: str = Field(
        default="patient.full_name",
        description="Dotted path into template data used to build the download filename",
    )

    # Locale Configuration
    locales_path: Path = Field(
        default=PACKAGE_ROOT / "locales", description="Directory holding <locale>.json labels"
    )
    supported_locales: List[str] = Field(default=["en", "mk"], description="Supported locales")
    default_locale: str = Field(default="en", description="Fallback locale")
    namespace_locales: Dict[str, str] = Field(
        default_factory=dict,
        description="Locale applied to a template namespace when the request names none",
    )

    # Browser Configuration
    browser_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_args: List[str] = Field(
        default=[
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
        ],
        description="Extra Chromium launch arguments",
    )
    render_timeout_ms: int = Field(
        default=30000, gt=0, description="Content load timeout in milliseconds"
    )
    exit_on_engine_failure: bool = Field(
        default=True, description="Terminate the process when the browser cannot be launched"
    )

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Optional[Path] = Field(default=None, description="Directory for rotating log files")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("allowed_origins", "supported_locales", mode="before")
    @classmethod
    def parse_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse a list from a JSON-like or comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @model_validator(mode="after")
    def validate_default_locale(self) -> "Settings":
        """The default locale has to be one of the supported ones."""
        if self.default_locale not in self.supported_locales:
            raise ValueError(
                f"Default locale '{self.default_locale}' is not in supported locales "
                f"{self.supported_locales}"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="PDF_SERVICE_"
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
