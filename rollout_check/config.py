"""
Configuration settings for the rollout status check.
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    APP_NAME: str = Field(default="kube-rollout-check", description="Application name")
    APP_ENV: str = Field(default="dev", description="Environment: dev|staging|prod")

    # HTTP Configuration
    HTTP_PORT: int = Field(default=8002, description="Service port")

    # Kubernetes Configuration
    K8S_NAMESPACE: str = Field(default="default", description="Kubernetes namespace")
    K8S_CONTEXT: Optional[str] = Field(default=None, description="Kubernetes context")
    K8S_IN_CLUSTER: bool = Field(default=False, description="Running in cluster")
    KUBECTL_BINARY: str = Field(default="kubectl", description="kubectl executable")
    KUBECTL_TIMEOUT_SECS: int = Field(default=30, description="Timeout for a single kubectl call")

    # Status check
    RUN_ID_LABEL: str = Field(default="rollout-check.dev/run-id", description="Label holding the run id")
    STATUS_CHECK_DEADLINE_SECS: int = Field(default=600, ge=1, description="Default per-deployment deadline")
    POLL_PERIOD_MS: int = Field(default=1000, ge=1, description="Interval between rollout polls")

    LOG_LEVEL: str = Field(default="info", description="Log level: info|debug|warning")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
