from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./storestats.db"
    environment: str = "development"
    allowed_origins: str = ""

    # --- Estadísticas de acceso ---
    disable_access_stats: bool = False
    stats_query_timeout_ms: int = 3000
    stats_timezone: str = "UTC"
    stats_max_workers: int = 4
    access_log_salt: str = "change-me-in-production-storestats"

    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.0
    enable_prometheus_metrics: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_default_access_log_salt(self) -> bool:
        return self.access_log_salt.strip() == "change-me-in-production-storestats"

    def get_cors_origins(self) -> list[str]:
        """Lista de origins permitidos. Vacío en producción si ALLOWED_ORIGINS no está definido."""
        if self.allowed_origins and self.allowed_origins.strip():
            lista = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
            if lista:
                return lista
        if self.is_production:
            return []
        return ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
