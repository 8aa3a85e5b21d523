"""
Configuration management for the feed sync service.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    redis_url: str = Field(default="redis://localhost:6379/0")
    log_level: str = Field(default="INFO")
    key_prefix: str = Field(default="feedsync")

    # Feed files
    feed_dir: str = Field(default="./data/feeds")
    feed_base_url: str = Field(default="http://localhost:8000/feeds")
    feed_file_prefix: str = Field(default="pinterest-for-woocommerce")

    # Generation job tuning
    products_per_step: int = Field(default=500)  # entity cap per slice
    products_per_write: int = Field(default=100)  # buffer flush threshold
    stale_after_seconds: int = Field(default=86400)
    dataset_ttl_seconds: int = Field(default=604800)

    # Scheduling
    sync_interval_seconds: int = Field(default=600)
    worker_poll_seconds: float = Field(default=5.0)
    lock_ttl_seconds: int = Field(default=900)

    # WooCommerce catalog
    store_url: str = Field(default="")
    store_name: str = Field(default="")
    consumer_key: Optional[str] = Field(default=None)
    consumer_secret: Optional[str] = Field(default=None)
    excluded_product_types: str = Field(default="grouped")  # comma separated
    hide_out_of_stock_items: bool = Field(default=False)
    woo_webhook_secret: Optional[str] = Field(default=None)

    # Pinterest registration
    product_sync_enabled: bool = Field(default=True)
    pinterest_api_url: str = Field(default="https://api.pinterest.com/v3/")
    pinterest_access_token: Optional[str] = Field(default=None)
    currency: str = Field(default="USD")
    base_country: str = Field(default="US")
    locale: str = Field(default="en_US")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def excluded_types(self) -> List[str]:
        """Product types never included directly in the feed."""
        return [t.strip() for t in self.excluded_product_types.split(",") if t.strip()]

    @property
    def feed_locale(self) -> str:
        """Locale in the registration service's format (en-US)."""
        return self.locale.replace("_", "-")

    def is_product_sync_enabled(self) -> bool:
        """Sync runs only when switched on and the registration service is configured."""
        return bool(self.product_sync_enabled and self.pinterest_access_token)


@lru_cache()
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
