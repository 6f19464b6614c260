from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the project directory (parent of the package directory)
PROJECT_DIR = Path(__file__).parent.parent
ENV_FILE = PROJECT_DIR / ".env"

class Settings(BaseSettings):
    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Database settings
    database_url: str = "sqlite:///./circulation.db"
    db_echo: bool = False
    db_pool_size: int = 10  # Ignored for SQLite
    db_max_overflow: int = 20  # Ignored for SQLite
    db_pool_recycle: int = 300

    # Timestamps are stored in UTC and produced in this timezone
    timezone: str = "UTC"

    # Circulation rules
    max_active_loans: int = 3
    loan_period_days: int = 14
    lock_timeout_seconds: float = 10.0

    # Actor used when a request carries no X-User-Id header
    default_actor_id: str = "anonymous"

    # Populate the sample libraries and books on startup when the store is empty
    seed_demo_data: bool = False

    # MQTT notification sink - optional, events are only published when enabled
    mqtt_enabled: bool = False
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None  # Confidential, from .env only
    mqtt_client_id_prefix: str = "circulation-core"
    mqtt_topic_prefix: str = "library/events"

    # MQTT TLS/SSL settings
    mqtt_use_tls: bool = False
    mqtt_tls_insecure: bool = False  # Allow self-signed certs, not recommended for production
    mqtt_ca_cert: Optional[str] = None  # Path to CA certificate file (required for TLS)
    mqtt_client_cert: Optional[str] = None  # Path to client certificate file (optional, for mutual TLS)
    mqtt_client_key: Optional[str] = None  # Path to client private key file (optional, for mutual TLS)

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
