from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # Empty string disables the Loki sink (stdout only).
    loki_url: str = Field(default="http://loki:3100", alias="LOKI_URL")
    loki_job: str = Field(default="observability-demo", alias="LOKI_JOB")
    loki_timeout_seconds: float = Field(default=2.0, alias="LOKI_TIMEOUT_SECONDS")
    service_name: str = Field(default="api-service", alias="SERVICE_NAME")

    project: str = Field(default="observability-demo", alias="METRICS_PROJECT")

    @property
    def loki_enabled(self) -> bool:
        return bool(self.loki_url.strip())

    @property
    def loki_push_url(self) -> str:
        return self.loki_url.rstrip("/") + "/loki/api/v1/push"

    @property
    def loki_labels(self) -> dict[str, str]:
        return {"job": self.loki_job, "service": self.service_name}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
