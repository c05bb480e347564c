from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import urlparse

class Settings(BaseSettings):
    app_name: str = "CoachHub Whitelabel"
    api_v1_str: str = "/api/v1"
    environment: str = "development"

    # Supabase configuration
    supabase_url: str = "https://your-project.supabase.co"
    supabase_key: str = "your_supabase_key_here"

    # Level for the coachhub.* loggers; libraries stay at INFO or quieter
    log_level: str = "INFO"

    # New Relic (optional)
    new_relic_license_key: Optional[str] = None

    # Default brand, used whenever no tenant is resolved
    default_primary_color: str = "#D4FF00"
    default_secondary_color: str = "#0A0A0B"
    brand_title: str = "APEX PRO"

    # Where the client lands after sign-out
    signed_out_path: str = "/login"

    # Dev-only ?tenant=<subdomain> override for bare hosts (localhost, IPs)
    allow_tenant_override: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @model_validator(mode="after")
    def _no_override_in_production(self):
        if self.environment == "production":
            self.allow_tenant_override = False
        return self

    @property
    def auth_storage_key(self) -> str:
        """Key under which the auth client persists its session."""
        project_ref = (urlparse(self.supabase_url).hostname or "local").split(".")[0]
        return f"sb-{project_ref}-auth-token"

settings = Settings()
