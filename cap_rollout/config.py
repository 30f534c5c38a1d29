"""
Configuration settings for the CAP rollout waiter.
"""
import logging
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    APP_NAME: str = Field(default="cap-rollout", description="Application name")
    APP_ENV: str = Field(default="dev", description="Environment: dev|staging|prod")

    # HTTP Configuration
    HTTP_PORT: int = Field(default=8002, description="Service port")

    # Kubernetes Configuration
    K8S_CONTEXT: Optional[str] = Field(default=None, description="Kubernetes context")
    K8S_IN_CLUSTER: bool = Field(default=False, description="Running in cluster")
    REQUEST_TIMEOUT_SECS: int = Field(default=30, description="Kubernetes API request timeout")

    # CAP deployment order
    CAP_NAMESPACES: List[str] = Field(
        default_factory=lambda: ["uaa", "scf", "stratos"],
        description="CAP namespaces, in the order they are rolled out",
    )

    # Wait Configuration
    WAIT_TIMEOUT_SECS: float = Field(default=600, ge=0, description="Default rollout wait timeout")
    DELETE_TIMEOUT_SECS: float = Field(default=300, ge=0, description="Default deletion wait timeout")
    POLL_INTERVAL_SECS: float = Field(default=10, gt=0, description="Seconds between polls")
    MAX_ERROR_STREAK: int = Field(default=5, ge=1, description="Consecutive query failures before giving up")
    FAIL_FAST: bool = Field(default=True, description="Stop a rollout at the first failed wait")
    MAX_WORKERS: int = Field(default=1, ge=1, description="Independent target groups waited on in parallel")
    HTTP_MAX_WAIT_SECS: float = Field(default=900, ge=0, description="Longest timeout an HTTP wait request may ask for")

    # Service Configuration
    LOG_LEVEL: str = Field(default="info", description="Log level: info|debug|warning")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


def configure_logging(level: str) -> None:
    """Configure root logging once for an entry point."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


# Global settings instance
settings = Settings()
