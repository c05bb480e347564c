import logging
from typing import FrozenSet, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient

from coachhub.core.errors import ReportFailed
from coachhub.services.cache import QueryCache

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

class ModerationGuard:
    """
    Block and report primitives.

    Blocking is repeatable: a duplicate block is a success. Reporting is a
    one-shot audit record and any failure is raised to the caller.
    The block list lives in the query cache and is only written here.
    """
    def __init__(self, client: AsyncClient, cache: Optional[QueryCache] = None):
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self._owner: Optional[str] = None

    @property
    def blocked_ids(self) -> FrozenSet[str]:
        if self._owner is None:
            return frozenset()
        return self.cache.get(("user_blocks", self._owner), frozenset())

    def is_blocked(self, user_id: str) -> bool:
        return user_id in self.blocked_ids

    async def fetch_blocks(self, blocker_id: str) -> FrozenSet[str]:
        res = await self.client.table("user_blocks").select("blocked_id").eq("blocker_id", blocker_id).execute()
        return frozenset(row["blocked_id"] for row in (res.data or []))

    def set_owner(self, blocker_id: str, blocked: Optional[FrozenSet[str]] = None):
        """Points `blocked_ids` at `blocker_id`, storing a freshly fetched list if given."""
        self._owner = blocker_id
        if blocked is not None:
            self.cache.set(("user_blocks", blocker_id), blocked)

    async def load_blocks(self, blocker_id: str) -> FrozenSet[str]:
        blocked = await self.fetch_blocks(blocker_id)
        self.set_owner(blocker_id, blocked)
        return blocked

    async def block(self, blocker_id: str, blocked_id: str) -> FrozenSet[str]:
        try:
            await self.client.table("user_blocks").insert({
                "blocker_id": blocker_id,
                "blocked_id": blocked_id,
            }).execute()
            logger.info(f"User {blocker_id} blocked {blocked_id}")
        except APIError as e:
            if e.code != UNIQUE_VIOLATION:
                raise
            logger.info(f"User {blocker_id} already blocked {blocked_id}")
        return await self.load_blocks(blocker_id)

    async def report(self, reporter_id: str, reported_id: str, message_id: str, reason: str):
        try:
            res = await self.client.table("message_reports").insert({
                "reporter_id": reporter_id,
                "reported_id": reported_id,
                "message_id": message_id,
                "reason": reason,
                "status": "pending",
            }).execute()
        except Exception as e:
            logger.error(f"Failed to report message {message_id}: {e}")
            raise ReportFailed(message_id, str(e)) from e
        logger.info(f"User {reporter_id} reported message {message_id} from {reported_id}")
        return res.data[0] if res.data else None
