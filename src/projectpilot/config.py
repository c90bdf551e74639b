"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Reasoning backend configuration
    BACKEND: str = "gemini"  # Options: gemini, openai, anthropic
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash-lite"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"

    # Retry policy for the reasoning backend (interactive chat)
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 2.0

    # Repository service
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT: float = 30.0
    GITHUB_TOKEN: str | None = None  # Used by the CLI client when creating a session
    COMMIT_HISTORY_LIMIT: int = 20
    DEFAULT_BRANCH: str = "main"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
