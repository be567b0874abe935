"""AppSettings -- DeployHub application configuration.

All environment variables are read via pydantic-settings.
DB_URL, JWT_SECRET and ENCRYPTION_KEY are required and will cause a startup
failure if missing.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """DeployHub application settings, loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database - Required, application fails to start if missing
    DB_URL: str
    DB_POOL_SIZE: int = 5
    DB_ECHO: bool = False

    # Authentication - Required, application fails to start if missing
    JWT_SECRET: str

    # Secret vault key: base64 of 32 random bytes (openssl rand -base64 32)
    ENCRYPTION_KEY: str

    # External hostnames are <subdomain>.<BASE_DOMAIN>
    BASE_DOMAIN: str = "apps.localhost"

    # Kubernetes connection
    K8S_IN_CLUSTER: bool = False
    K8S_KUBECONFIG: str | None = None
    K8S_API_TIMEOUT_SECONDS: float = 10.0
    K8S_MAX_RETRIES: int = 3
    DEFAULT_NAMESPACE: str = "default"

    # Networking objects
    SERVICE_PORT: int = 80
    INGRESS_CLASS_NAME: str = "traefik"
    INGRESS_ENTRYPOINTS: str = "websecure"
    CLUSTER_ISSUER: str = "letsencrypt-prod"

    # Live status channel
    STATUS_POLL_INTERVAL_SECONDS: float = 5.0

    MAX_REPLICAS: int = 50

    LOG_LEVEL: str = "INFO"


settings = AppSettings()
