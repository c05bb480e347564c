import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import AsyncClient

from coachhub.core.supabase_client import get_supabase
from coachhub.schemas.profile import Profile

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

async def get_client() -> AsyncClient:
    return await get_supabase()

async def verify_token(client: AsyncClient, token: str):
    """
    Verifies the Supabase JWT and returns the user object.
    """
    try:
        res = await client.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Auth error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
        )
    if not res or not res.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return res.user

async def get_current_user(
    auth: HTTPAuthorizationCredentials = Depends(security),
    client: AsyncClient = Depends(get_client),
):
    return await verify_token(client, auth.credentials)

async def get_optional_user(
    auth: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    client: AsyncClient = Depends(get_client),
):
    """Like get_current_user, but anonymous requests get None."""
    if auth is None:
        return None
    return await verify_token(client, auth.credentials)

async def load_profile(client: AsyncClient, user_id: str) -> Optional[Profile]:
    res = await client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
    if not res.data:
        return None
    return Profile.model_validate(res.data[0])

async def get_current_profile(
    current_user = Depends(get_current_user),
    client: AsyncClient = Depends(get_client),
) -> Profile:
    profile = await load_profile(client, current_user.id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found.")
    return profile

async def get_tenant_profile(profile: Profile = Depends(get_current_profile)) -> Profile:
    """A profile that is already bound to a tenant."""
    if not profile.tenant_id:
        raise HTTPException(status_code=404, detail="Tenant not found for this user.")
    return profile
