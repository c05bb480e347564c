import asyncio
import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from coachhub.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[AsyncClient] = None
_lock = asyncio.Lock()

async def get_supabase() -> AsyncClient:
    """
    Returns the shared async Supabase client, creating it on first use.
    The async client is required for realtime channels.
    """
    global _client
    if _client is not None:
        return _client
    async with _lock:
        if _client is None:
            logger.info(f"Creating Supabase client for {settings.supabase_url}")
            _client = await acreate_client(settings.supabase_url, settings.supabase_key)
    return _client
