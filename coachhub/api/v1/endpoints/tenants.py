import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import Optional
from supabase import AsyncClient
from coachhub.api.deps import get_client, get_optional_user, get_tenant_profile, load_profile
from coachhub.schemas.profile import Profile
from coachhub.schemas.tenant import Tenant, TenantResolution
from coachhub.services.branding import BrandingState
from coachhub.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/resolve", response_model=TenantResolution)
async def resolve_tenant(
    request: Request,
    tenant: Optional[str] = Query(None, description="Development-only subdomain override for bare hosts"),
    current_user = Depends(get_optional_user),
    client: AsyncClient = Depends(get_client),
):
    """
    Resolve the tenant for the requesting host (or the signed-in user's own tenant)
    and return the branding to paint with.
    """
    hostname = request.headers.get("x-forwarded-host") or request.headers.get("host")

    identity = None
    if current_user:
        try:
            identity = await load_profile(client, current_user.id)
        except Exception as e:
            logger.error(f"Profile lookup failed for {current_user.id}, resolving by host only: {e}")

    try:
        resolved = await TenantResolver(client).resolve(hostname, identity, dev_override=tenant)
    except Exception as e:
        logger.error(f"Tenant resolution failed for {hostname!r}: {e}")
        resolved = None
    state = BrandingState.for_tenant(resolved) if resolved else BrandingState.default()
    return TenantResolution(tenant=resolved, branding=state.to_response())

@router.get("/me", response_model=Tenant)
async def get_my_tenant(
    profile: Profile = Depends(get_tenant_profile),
    client: AsyncClient = Depends(get_client),
):
    """
    Get the tenant the authenticated user belongs to.
    """
    tenant = await TenantResolver(client).fetch_by_id(profile.tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant profile not found.")
    return tenant
