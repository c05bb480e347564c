from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Literal
from datetime import datetime

class Tenant(BaseModel):
    id: str
    subdomain: str
    custom_domain: Optional[str] = None
    business_name: str
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    font_family: Optional[str] = None
    tagline: Optional[str] = None
    contact_email: Optional[str] = None
    plan_tier: Optional[Literal["free", "pro", "elite"]] = None
    terminology: Optional[Dict[str, str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

class BrandingResponse(BaseModel):
    primary_color: str
    secondary_color: str
    theme: Dict[str, str]
    title: str
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None

class TenantResolution(BaseModel):
    tenant: Optional[Tenant] = None
    branding: BrandingResponse
