"""Shared configuration."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for the shipment tracker."""

    # Service info
    service_name: str = "shipping-service"
    service_port: int = 3000

    # Storage: one of "file", "gist", "redis", "sql"
    storage_backend: str = "file"

    # JSON file backend
    data_file: str = "data/db.json"

    # GitHub Gist backend
    github_token: str = ""
    gist_id: str = ""
    gist_filename: str = "initial-db.json"

    # Redis backend
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_key: str = "shipment-tracker:db"

    # SQL backend
    database_url: str = "sqlite+aiosqlite:///./data/tracker.db"

    # External tracking (AfterShip)
    aftership_key: str = ""

    # Outbound HTTP
    http_timeout: float = 30.0
    http_max_attempts: int = 3

    # Shipments
    initial_status: str = "In Transit"

    # Frontend
    static_dir: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL."""
        return f"redis://{self.redis_host}:{self.redis_port}"

    class Config:
        env_file = ".env"
        case_sensitive = False
