from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Foundation Sprint"
    debug: bool = False

    # API
    frontend_url: str = "http://localhost:3000"

    # Anthropic
    anthropic_api_key: str = ""

    # LLM
    sprint_model: str = "claude-sonnet-4-20250514"
    llm_max_output_tokens: int = 1000
    llm_temperature: float = 0.7
    llm_timeout_seconds: float = 120.0  # env: LLM_TIMEOUT_SECONDS, per-request client timeout

    def validate_required(self) -> None:
        """Fail fast when settings needed to serve sprints are missing.

        Raises:
            RuntimeError: If the text-completion provider credential is empty
        """
        required = {"anthropic_api_key": self.anthropic_api_key}
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise RuntimeError(f"Missing required settings at startup: {missing}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
