"""Application settings loaded from the environment."""

from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
    return Field(default=default, validation_alias=alias)


class Settings(BaseSettings):
    """Runtime configuration. Built once and handed to the app factory."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    stripe_secret_key: Optional[str] = _env_field(None, "STRIPE_SECRET_KEY")
    stripe_api_version: str = _env_field("2024-06-20", "STRIPE_API_VERSION")

    # Base URL for checkout redirects; falls back to the request origin
    app_url: Optional[str] = _env_field(None, "APP_URL", "NEXT_PUBLIC_APP_URL")
    site_url: str = _env_field("http://localhost:3000", "SITE_URL", "NEXT_PUBLIC_SITE_URL")

    supabase_url: Optional[str] = _env_field(None, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    supabase_service_role_key: Optional[str] = _env_field(None, "SUPABASE_SERVICE_ROLE_KEY")
    supabase_anon_key: Optional[str] = _env_field(
        None, "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
    )

    instagram_client_id: Optional[str] = _env_field(None, "INSTAGRAM_CLIENT_ID")
    facebook_client_id: Optional[str] = _env_field(None, "FACEBOOK_CLIENT_ID")
    tiktok_client_key: Optional[str] = _env_field(None, "TIKTOK_CLIENT_KEY")
    linkedin_client_id: Optional[str] = _env_field(None, "LINKEDIN_CLIENT_ID")

    # Comma-separated list
    cors_origins: str = _env_field("*", "CORS_ORIGINS")
    log_level: str = _env_field("INFO", "LOG_LEVEL")
    log_json: bool = _env_field(False, "LOG_JSON")

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_default_settings() -> Settings:
    """Reads settings from the process environment"""
    return Settings()
