"""
Configuration module — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = _flag("IN_CLUSTER")

    # Helm
    CHART_PATH: str = os.environ.get("CHART_PATH", "urumi-platform/woocommerce-store")
    VALUES_PATH: str = os.environ.get("VALUES_PATH", "values-gcp.yaml")
    HELM_TIMEOUT: int = int(os.environ.get("HELM_TIMEOUT", "300"))

    # Admission
    MAX_CONCURRENT: int = int(os.environ.get("MAX_CONCURRENT", "2"))
    MAX_STORES_TOTAL: int = int(os.environ.get("MAX_STORES_TOTAL", "5"))

    # Event log
    AUDIT_FILE: str = os.environ.get("AUDIT_FILE", "audit.log")
    LOG_BUFFER_SIZE: int = int(os.environ.get("LOG_BUFFER_SIZE", "50"))
    REDIS_URL: str = os.environ.get("REDIS_URL", "")

    # Hardening (ResourceQuota)
    QUOTA_PODS: str = os.environ.get("QUOTA_PODS", "10")
    QUOTA_REQUESTS_CPU: str = os.environ.get("QUOTA_REQUESTS_CPU", "1")
    QUOTA_REQUESTS_MEMORY: str = os.environ.get("QUOTA_REQUESTS_MEMORY", "1Gi")
    QUOTA_LIMITS_CPU: str = os.environ.get("QUOTA_LIMITS_CPU", "2")
    QUOTA_LIMITS_MEMORY: str = os.environ.get("QUOTA_LIMITS_MEMORY", "2Gi")

    # Readiness / public address polling
    POD_READY_TIMEOUT: float = float(os.environ.get("POD_READY_TIMEOUT", "300"))
    POD_READY_POLL_INTERVAL: float = float(os.environ.get("POD_READY_POLL_INTERVAL", "5"))
    PUBLIC_SERVICE_NAME: str = os.environ.get("PUBLIC_SERVICE_NAME", "gcp-shop-svc")
    ADDRESS_POLL_INTERVAL: float = float(os.environ.get("ADDRESS_POLL_INTERVAL", "5"))
    ADDRESS_MAX_ATTEMPTS: int = int(os.environ.get("ADDRESS_MAX_ATTEMPTS", "100"))
    ADDRESS_PROGRESS_EVERY: int = int(os.environ.get("ADDRESS_PROGRESS_EVERY", "5"))

    # Content bootstrap (WP-CLI inside the store pod)
    WORDPRESS_CONTAINER: str = os.environ.get("WORDPRESS_CONTAINER", "wordpress")
    WP_CLI_URL: str = os.environ.get(
        "WP_CLI_URL",
        "https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar",
    )
    EXEC_TIMEOUT: float = float(os.environ.get("EXEC_TIMEOUT", "300"))
    DB_SETTLE_DELAY: float = float(os.environ.get("DB_SETTLE_DELAY", "20"))
    DB_RETRY_INTERVAL: float = float(os.environ.get("DB_RETRY_INTERVAL", "5"))
    DB_MAX_ATTEMPTS: int = int(os.environ.get("DB_MAX_ATTEMPTS", "10"))
    DB_NAME: str = os.environ.get("DB_NAME", "wordpress")
    DB_USER: str = os.environ.get("DB_USER", "wp_user")
    DB_PASSWORD: str = os.environ.get("DB_PASSWORD", "wp_password")
    DB_HOST: str = os.environ.get("DB_HOST", "127.0.0.1")
    ADMIN_EMAIL: str = os.environ.get("ADMIN_EMAIL", "admin@example.com")
    COMMERCE_PLUGIN: str = os.environ.get("COMMERCE_PLUGIN", "woocommerce")
    THEME: str = os.environ.get("THEME", "storefront")
    SAMPLE_PRODUCT_NAME: str = os.environ.get("SAMPLE_PRODUCT_NAME", "Cloud Sneakers")
    SAMPLE_PRODUCT_PRICE: str = os.environ.get("SAMPLE_PRODUCT_PRICE", "99")

    # Finalize
    SHOP_PAGE_SLUG: str = os.environ.get("SHOP_PAGE_SLUG", "shop")
    PAGE_LOOKUP_INTERVAL: float = float(os.environ.get("PAGE_LOOKUP_INTERVAL", "5"))
    PAGE_LOOKUP_MAX_ATTEMPTS: int = int(os.environ.get("PAGE_LOOKUP_MAX_ATTEMPTS", "10"))

    # Writes the generated admin password into the event log (demo visibility)
    DEMO_MODE: bool = _flag("DEMO_MODE")

    # Rate limiting
    RATE_LIMIT: str = os.environ.get("RATE_LIMIT", "10/minute")

    # API
    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT", "3000"))
    CORS_ORIGINS: tuple = tuple(os.environ.get("CORS_ORIGINS", "*").split(","))


settings = Settings()
