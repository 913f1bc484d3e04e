from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    service_name: str = Field(default="easyroute", alias="EASYROUTE_SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="EASYROUTE_LOG_LEVEL")
    log_json: bool = Field(default=True, alias="EASYROUTE_LOG_JSON")
    log_body_limit: int = Field(default=1024, alias="EASYROUTE_LOG_BODY_LIMIT")
    tracing_enabled: bool = Field(default=False, alias="EASYROUTE_TRACING_ENABLED")
    profiling_enabled: bool = Field(default=False, alias="EASYROUTE_PROFILING_ENABLED")

    airbrake_enabled: bool = Field(default=False, alias="AIRBRAKE_ENABLED")
    # Kept as a string so a malformed id disables reporting instead of failing startup.
    airbrake_project_id: str = Field(default="", alias="AIRBRAKE_PROJECT_ID")
    airbrake_project_key: str = Field(default="", alias="AIRBRAKE_PROJECT_KEY")
    airbrake_environment: str = Field(default="production", alias="AIRBRAKE_ENVIRONMENT")

    @property
    def airbrake_project_id_int(self) -> int | None:
        try:
            return int(self.airbrake_project_id)
        except ValueError:
            return None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
