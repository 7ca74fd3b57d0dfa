"""
Configuration settings for the billing service
"""
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_timeout_seconds: float = Field(default=20.0, alias="STRIPE_TIMEOUT_SECONDS")
    stripe_max_network_retries: int = Field(default=1, alias="STRIPE_MAX_NETWORK_RETRIES")

    # Comma separated Stripe price IDs; the order defines the plan choices (1-based)
    subscription_price_ids: str = Field(default="", alias="SUBSCRIPTION_PRICE_IDS")

    # Public URL of this service, used for checkout/portal redirects
    domain_url: str = Field(default="http://localhost:8000/", alias="DOMAIN_URL")

    # Flat JSON storage
    data_dir: Path = Field(default=Path("./db_data"), alias="DATA_DIR")

    # Guards the administrative reset endpoint
    admin_token: Optional[str] = Field(default=None, alias="ADMIN_TOKEN")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    @property
    def plan_price_ids(self) -> List[str]:
        return [p.strip() for p in self.subscription_price_ids.split(",") if p.strip()]

    @property
    def users_file(self) -> Path:
        return self.data_dir / "users.json"

    @property
    def events_file(self) -> Path:
        return self.data_dir / "processed_events.json"

    def url(self, path: str = "") -> str:
        """Join ``path`` onto the public domain URL."""
        return self.domain_url.rstrip("/") + "/" + path.lstrip("/")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")
