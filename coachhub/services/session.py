import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from supabase import AsyncClient

from coachhub.core.config import settings
from coachhub.schemas.profile import Profile
from coachhub.services.branding import BrandingController, branding as default_branding
from coachhub.services.cache import QueryCache, query_cache
from coachhub.services.chat_feed import ChatFeed
from coachhub.services.moderation import ModerationGuard
from coachhub.services.tenant_resolver import TenantController, TenantResolver

logger = logging.getLogger(__name__)

Navigate = Callable[[str], Any]


class SessionBoundary:
    """
    Ties tenant, branding and chat state to the signed-in identity.

    While `logging_out` is set, resolver and feed callbacks drop their
    results so nothing from the old session is written after sign-out.
    """
    def __init__(
        self,
        client: AsyncClient,
        hostname: Optional[str] = None,
        navigate: Optional[Navigate] = None,
        storage: Any = None,
        branding: Optional[BrandingController] = None,
        cache: Optional[QueryCache] = None,
        dev_override: Optional[str] = None,
    ):
        self.client = client
        self.hostname = hostname
        self.dev_override = dev_override
        self.navigate = navigate
        self.storage = storage
        self.branding = branding or default_branding
        self.cache = cache if cache is not None else query_cache

        self.logging_out = False
        self.profile: Optional[Profile] = None

        self.moderation = ModerationGuard(client, self.cache)
        self.tenants = TenantController(TenantResolver(client), self.branding, suspended=self.is_logging_out)
        self.feed = ChatFeed(client, self.moderation, suspended=self.is_logging_out)

        self._auth_subscription = None
        self._tasks: Set[asyncio.Task] = set()

    def is_logging_out(self) -> bool:
        return self.logging_out

    # --- Identity changes ---

    async def on_identity_changed(self, profile: Optional[Profile]):
        if profile is None:
            logger.info("[Session] No session. Resetting state and branding.")
            self.profile = None
            await self.feed.close()
            self.tenants.clear()
            self.branding.reset()
            return

        self.logging_out = False
        self.profile = profile
        tenant = await self.tenants.refresh(self.hostname, profile, self.dev_override)
        if self.profile is not profile or self.logging_out:
            # Superseded by a newer identity or a sign-out while resolving
            return

        # The feed is scoped to the identity's own tenant binding first
        tenant_id = profile.tenant_id or (tenant.id if tenant else None)
        if tenant_id is None:
            logger.info(f"[Session] Profile {profile.id} has no tenant yet, chat stays closed")
            await self.feed.close()
            return
        await self.feed.open(profile.id, tenant_id)

    async def sign_in(self, user_id: str) -> Optional[Profile]:
        profile = await self.load_profile(user_id)
        await self.on_identity_changed(profile)
        return profile

    async def load_profile(self, user_id: str) -> Optional[Profile]:
        try:
            res = await self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        except Exception as e:
            logger.error(f"[Session] Error loading profile {user_id}: {e}")
            return None
        if not res.data:
            logger.info(f"[Session] No profile for user {user_id} yet")
            return None
        return Profile.model_validate(res.data[0])

    # --- Sign-out ---

    async def sign_out(self):
        logger.info("[Session] Starting deep sign out...")
        # 1. Stop in-flight work from writing
        self.logging_out = True
        try:
            # 2. Branding back to default
            self.branding.reset()

            # 3. Cached queries and the open conversation
            self.cache.clear()
            self.tenants.clear()
            self.profile = None
            await self.feed.close()

            # 4. Persisted session
            if self.storage is not None:
                await _maybe_await(self.storage.remove_item(settings.auth_storage_key))
            await self.client.auth.sign_out()
            logger.info("[Session] Supabase sign out complete.")
        except Exception as e:
            logger.error(f"[Session] Error during sign out: {e}")
        finally:
            # 5. Always leave the signed-in area
            if self.navigate is not None:
                await _maybe_await(self.navigate(settings.signed_out_path))

    # --- Auth provider wiring ---

    def attach(self):
        """Follows Supabase Auth session changes."""
        def on_change(event, session):
            user = getattr(session, "user", None) if session else None
            logger.debug(f"[Session] Auth event {event}")
            if user is None:
                if not self.logging_out:
                    self._spawn(self.on_identity_changed(None))
                return
            if self.profile is None or self.profile.id != user.id:
                self._spawn(self.sign_in(user.id))

        self._auth_subscription = self.client.auth.on_auth_state_change(on_change)
        return self._auth_subscription

    def detach(self):
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None

    def _spawn(self, coro: Awaitable):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.feed.drain()


async def _maybe_await(result):
    if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
        return await result
    return result
