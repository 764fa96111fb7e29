"""
Application configuration settings.
Handles environment variables and application-wide settings.
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application settings
    app_name: str = Field(default="Storefront Orders API")
    app_version: str = Field(default="1.0.0")
    app_description: str = Field(
        default="Order placement and payment reconciliation for the storefront backend"
    )
    debug: bool = Field(default=False)

    # Server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=True)

    # Database settings
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    database_name: str = Field(default="ecommerce_db")

    # MongoDB connection settings
    server_selection_timeout_ms: int = Field(default=30000, alias="MONGODB_SERVER_SELECTION_TIMEOUT_MS")
    connect_timeout_ms: int = Field(default=30000, alias="MONGODB_CONNECT_TIMEOUT_MS")
    socket_timeout_ms: int = Field(default=30000, alias="MONGODB_SOCKET_TIMEOUT_MS")
    max_pool_size: int = Field(default=10, alias="MONGODB_MAX_POOL_SIZE")
    min_pool_size: int = Field(default=1, alias="MONGODB_MIN_POOL_SIZE")
    retry_writes: bool = Field(default=True, alias="MONGODB_RETRY_WRITES")
    direct_connection: bool = Field(default=False, alias="MONGODB_DIRECT_CONNECTION")

    # Logging settings
    log_level: str = Field(default="INFO")

    # API settings
    api_v1_prefix: str = Field(default="/api/v1")

    # Pagination defaults
    default_page_size: int = Field(default=10)
    max_page_size: int = Field(default=100)

    # Business logic settings
    max_order_items: int = Field(default=50)
    max_item_quantity: int = Field(default=100)
    currency: str = Field(default="INR")
    hold_ttl_minutes: int = Field(default=30, description="Minutes an unpaid online order keeps its stock")
    hold_sweep_interval_seconds: int = Field(default=60)

    # Payment gateway settings
    razorpay_key_id: str = Field(default="")
    razorpay_key_secret: str = Field(default="")
    razorpay_webhook_secret: str = Field(default="")
    razorpay_base_url: str = Field(default="https://api.razorpay.com/v1")
    gateway_timeout_seconds: float = Field(default=10.0)

    # Notification settings
    smtp_host: str = Field(default="", description="Empty disables email delivery")
    smtp_port: int = Field(default=465)
    smtp_username: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default="orders@localhost")
    admin_email: str = Field(default="")
    notification_timeout_seconds: float = Field(default=10.0)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
