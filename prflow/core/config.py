from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("prflow", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    # PR system base URL (used for links in notification bodies)
    base_url: str = Field("http://127.0.0.1:8000", alias="PR_SYSTEM_BASE_URL")

    # Currency used when a PR, quote or rule record carries none
    default_currency: str = Field("LSL", alias="DEFAULT_CURRENCY")

    # Fallback procurement contact when the organization record has none
    default_procurement_email: str = Field("procurement@example.com", alias="DEFAULT_PROCUREMENT_EMAIL")

    # Exchange rate service
    exchange_rate_api_url: str = Field("https://api.frankfurter.app/latest", alias="EXCHANGE_RATE_API_URL")
    exchange_rate_timeout: float = Field(5.0, alias="EXCHANGE_RATE_TIMEOUT")
    exchange_rate_cache_ttl: float = Field(3600.0, alias="EXCHANGE_RATE_CACHE_TTL")

    # Approval Rules Configuration
    quote_count_required: int = Field(3, alias="APPROVAL_QUOTE_COUNT")
    quote_escalation_multiplier: float = Field(4.0, alias="APPROVAL_ESCALATION_MULTIPLIER")

    # Record store (unset = in-memory store, otherwise path to a SQLite file)
    record_store_path: str | None = Field(default=None, alias="RECORD_STORE_PATH")

    # Service Bus hand-off to the email delivery consumer
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue: str = Field("pr-notifications", alias="SERVICE_BUS_QUEUE")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
