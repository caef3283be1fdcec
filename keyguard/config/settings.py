"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Gateway authentication
    # Comma-separated list of valid API keys for clients
    gateway_api_keys: str = "dev-key-1"

    # Management API (device binding admin). Empty = admin API disabled
    management_key: str = ""

    # Upstream service behind the gateway
    upstream_base_url: str = "http://localhost:8080"
    upstream_timeout: float = 60.0
    trust_forwarded_for: bool = False  # take client IP from X-Forwarded-For

    # Device binding
    device_binding_enabled: bool = False
    device_binding_max_devices: int = 1  # accepted but not enforced
    device_binding_header: str = "X-Device-ID"
    device_binding_concurrent_threshold: float = 60.0  # seconds

    # Binding store
    binding_store_backend: str = "json"  # "json" | "memory" | "dynamodb"
    binding_store_path: str = "device_bindings.json"
    dynamodb_table_name: str = "keyguard-device-bindings"
    aws_region: str = "us-east-1"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [k.strip() for k in self.gateway_api_keys.split(",") if k.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
