from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """Application configuration settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(default="INFO", description="Root logging level")

    # Tutor backend
    api_base_url: str = Field(default="http://localhost:3000/api", description="Tutor backend base URL")
    api_token: str = Field(default="", description="Bearer token used when none is supplied per connection")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # Collaborative reveal pacing
    reveal_immediate_after_ms: int = Field(
        default=5000,
        description="Messages older than this are shown without animation"
    )
    reveal_first_delay_ms: int = Field(default=800, description="Delay before the first contribution")
    reveal_min_delay_ms: int = Field(default=1000, description="Lower bound of later contribution delays")
    reveal_max_delay_ms: int = Field(default=4000, description="Upper bound (exclusive) of later contribution delays")

    # Emotional pulse
    pulse_cooldown_ms: int = Field(default=10000, description="Cooldown after a logged pulse")
    pulse_tick_ms: int = Field(default=1000, description="Cooldown countdown granularity")
    pulse_history_limit: int = Field(default=50, description="Pulses fetched for the history view")

    # WebSocket Configuration
    ws_host: str = Field(default="0.0.0.0", description="WebSocket host")
    ws_port: int = Field(default=8000, description="WebSocket port")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


# Global settings instance
settings = Settings()
