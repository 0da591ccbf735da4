"""Configuration management using pydantic-settings"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API keys - support both Anthropic and Groq
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key for Claude")
    groq_api_key: Optional[str] = Field(default=None, description="Groq API key for LLM access")

    # LLM provider: 'anthropic' or 'groq'
    llm_provider: str = Field(default="anthropic", description="Lease generation backend")

    # LLM settings
    llm_model: Optional[str] = Field(default=None, description="LLM model to use (backend default if unset)")
    llm_temperature: float = Field(default=0.2, description="LLM temperature")
    llm_max_tokens: int = Field(default=4096, description="Max tokens in response")
    llm_timeout_seconds: float = Field(default=60.0, description="Backend request timeout")

    # Pricing in USD per million tokens, used for cost estimates only
    llm_input_cost_per_mtok: float = Field(default=3.0, description="Prompt token price")
    llm_output_cost_per_mtok: float = Field(default=15.0, description="Completion token price")

    # Captcha settings
    captcha_required: bool = Field(default=False, description="Require a captcha token on every request")
    captcha_secret_key: Optional[str] = Field(default=None, description="Secret for the captcha siteverify API")
    captcha_verify_url: str = Field(
        default="https://challenges.cloudflare.com/turnstile/v0/siteverify",
        description="Captcha siteverify endpoint",
    )
    captcha_timeout_seconds: float = Field(default=10.0, description="Captcha verification timeout")

    # Rate limiting
    rate_limit_max_requests: int = Field(default=10, ge=1, description="Requests allowed per window")
    rate_limit_window_seconds: int = Field(default=3600, ge=1, description="Rate limit window length")
    trusted_proxy_hops: int = Field(
        default=0, ge=0, description="Reverse proxies in front of the API whose X-Forwarded-For entries are trusted"
    )

    # Runtime
    environment: str = Field(default="production", description="'development' or 'production'")
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0", description="Bind address for the API server")
    port: int = Field(default=8000, description="Port for the API server")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


def get_settings() -> Settings:
    """Get application settings"""
    return Settings()
