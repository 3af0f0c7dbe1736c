from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///forge.db"
    secret_key: str = "change-me-in-production"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    admin_email: str = "admin@forge.local"
    admin_password: str = "admin"
    log_level: str = "INFO"

    # Comma separated; every key is tried once before giving up
    ai_api_keys: str = ""
    ai_base_url: str = "https://openrouter.ai/api/v1"
    ai_model: str = "z-ai/glm-4.5-air:free"
    ai_max_tokens: int = 4096
    ai_timeout_seconds: float = 120.0
    ai_rate_limit_backoff_seconds: float = 2.0

    default_credits: float = 30

    # A "generating" sequence untouched for this long is assumed abandoned
    generation_stale_seconds: int = 600

    class Config:
        env_prefix = "FORGE_"

    @property
    def api_keys(self) -> list[str]:
        return [k.strip() for k in self.ai_api_keys.split(",") if k.strip()]


settings = Settings()
