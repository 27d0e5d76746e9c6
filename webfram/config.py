from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # True for production (structured JSON), False for dev (colored)

    # Binding
    BIND_STRICT_JSON: bool = True       # Reject unknown keys in JSON bodies
    BIND_EAGER_RULE_CHECK: bool = False  # Check rule applicability for every model at startup

    # Documentation
    OPENAPI_COMPONENTS: bool = True  # Build bind components and merge them into /openapi.json

    model_config = SettingsConfigDict(env_file=".env", env_prefix="WEBFRAM_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
