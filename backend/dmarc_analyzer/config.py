from pydantic_settings import BaseSettings
from functools import lru_cache


def _split_csv(value: str) -> list[str]:
    """Parse a comma-separated setting into a list"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    # Database
    database_url: str = "postgresql://dmarc:dmarc@db:5432/dmarc"

    # AWS
    aws_region: str = "us-east-1"
    s3_bucket_name: str = ""
    sqs_queue_url: str = ""

    # Queue consumer
    sqs_max_messages: int = 10
    sqs_wait_seconds: int = 20  # Long polling
    sqs_visibility_timeout: int = 30  # Seconds to process a batch before redelivery
    sqs_error_backoff_seconds: float = 5.0

    # Enrichment
    senderbase_zone: str = "query.senderbase.org"
    dns_timeout: float = 2.0
    dns_nameservers: str = ""  # Comma-separated; empty means use the system resolver

    # Application
    app_name: str = "DMARC Analyzer"
    debug: bool = False
    log_level: str = "INFO"

    # Logging
    log_dir: str = ""  # Empty disables file logging
    log_json: bool = False  # Enable JSON logging for production
    enable_request_logging: bool = True

    # CORS
    cors_origins: str = ""  # Comma-separated

    # Celery (backfill and one-off ingestion)
    celery_broker_url: str = "redis://redis:6379/1"
    celery_task_time_limit: int = 1800  # 30 minutes hard limit

    @property
    def dns_nameserver_list(self) -> list[str]:
        return _split_csv(self.dns_nameservers)

    @property
    def cors_origin_list(self) -> list[str]:
        return _split_csv(self.cors_origins)

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
