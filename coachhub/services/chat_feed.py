import asyncio
import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError
from supabase import AsyncClient

from coachhub.core.errors import InvalidRecipient
from coachhub.schemas.message import ChatMessage
from coachhub.schemas.profile import Profile, Role
from coachhub.services.message_router import MessageRouter
from coachhub.services.moderation import ModerationGuard

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = "*, sender:profiles!chat_messages_sender_id_fkey(full_name, avatar_url)"

class FeedStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"


def extract_record(payload: Any) -> Optional[Dict[str, Any]]:
    """Pulls the inserted row out of a realtime postgres_changes payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None
    record = data.get("record") or data.get("new")
    return record if isinstance(record, dict) else None


class ChatFeed:
    """
    Live view of one user's direct messages within a tenant.

    History is loaded once on open and re-fetched after every relevant
    insert event and on foreground resume. Refetches merge by message id,
    so the final list is the same whichever request completes first.
    The visible list always excludes senders on the current block list.
    """
    def __init__(
        self,
        client: AsyncClient,
        moderation: ModerationGuard,
        router: Optional[MessageRouter] = None,
        suspended: Callable[[], bool] = lambda: False,
    ):
        self.client = client
        self.moderation = moderation
        self.router = router or MessageRouter(client)
        self._suspended = suspended

        self.status = FeedStatus.IDLE
        self.identity_id: Optional[str] = None
        self.tenant_id: Optional[str] = None
        self.draft = ""
        self.sending = False

        self._messages: List[ChatMessage] = []
        self._channel = None
        self._generation = 0
        self._opening = 0
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Callable[["ChatFeed"], None]] = []

    # --- Read side ---

    @property
    def messages(self) -> List[ChatMessage]:
        blocked = self.moderation.blocked_ids
        return [m for m in self._messages if m.sender_id not in blocked]

    @property
    def unread_count(self) -> int:
        return sum(1 for m in self.messages if m.receiver_id == self.identity_id and not m.is_read)

    @property
    def is_open(self) -> bool:
        return self.identity_id is not None

    @property
    def is_live(self) -> bool:
        return self._channel is not None

    def add_listener(self, listener: Callable[["ChatFeed"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Chat feed listener failed: {e}")

    # --- Lifecycle ---

    async def open(self, identity_id: str, tenant_id: str, live: bool = True):
        self._opening += 1
        ticket = self._opening
        await self._teardown()
        if ticket != self._opening:
            logger.debug(f"Chat feed open for {identity_id} superseded")
            return

        self._generation += 1
        generation = self._generation
        self.identity_id = identity_id
        self.tenant_id = tenant_id
        self.status = FeedStatus.LOADING
        logger.info(f"Opening chat feed for {identity_id} in tenant {tenant_id}")

        if live:
            await self._subscribe(identity_id, tenant_id)
            if not self._is_current(generation):
                return

        try:
            blocked = await self.moderation.fetch_blocks(identity_id)
        except Exception as e:
            logger.error(f"Failed to load block list for {identity_id}: {e}")
            blocked = None

        # Another open() or close() ran while the block list was loading
        if not self._is_current(generation):
            logger.debug(f"Discarding block list for superseded feed ({identity_id})")
            return
        self.moderation.set_owner(identity_id, blocked)

        await self.refresh()

    async def close(self):
        self._opening += 1
        await self._teardown()

    async def _teardown(self):
        channel, self._channel = self._channel, None
        self._generation += 1
        was_open = self.is_open
        self.identity_id = None
        self.tenant_id = None
        self._messages = []
        self.status = FeedStatus.IDLE
        self.draft = ""

        if channel is not None:
            try:
                await self.client.remove_channel(channel)
            except Exception as e:
                logger.error(f"Failed to remove chat channel: {e}")
        if was_open:
            self._notify()

    async def drain(self):
        """Waits for background refetches scheduled by insert events."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def on_foreground(self) -> bool:
        # Realtime has no replay; a full refetch is the only way to pick up
        # events missed while suspended.
        logger.debug("App returned to foreground, refreshing chat feed")
        return await self.refresh()

    async def _subscribe(self, identity_id: str, tenant_id: str):
        channel = self.client.channel(f"chat:{identity_id}")
        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table="chat_messages",
            filter=f"tenant_id=eq.{tenant_id}",
            callback=self._on_insert,
        )
        self._channel = channel
        await channel.subscribe()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.is_open and not self._suspended()

    # --- Sync ---

    async def refresh(self) -> bool:
        if not self.is_open:
            return False

        generation = self._generation
        me, tenant_id = self.identity_id, self.tenant_id
        if self.status == FeedStatus.READY:
            self.status = FeedStatus.REFRESHING

        try:
            res = await self.client.table("chat_messages")\
                .select(HISTORY_COLUMNS)\
                .eq("tenant_id", tenant_id)\
                .or_(f"sender_id.eq.{me},receiver_id.eq.{me}")\
                .order("created_at")\
                .execute()
            fetched = [ChatMessage.model_validate(row) for row in (res.data or [])]
        except Exception as e:
            logger.error(f"Error fetching messages for {me}: {e}")
            if self._is_current(generation) and self.status != FeedStatus.READY:
                self.status = FeedStatus.READY
                self._notify()
            return False

        if not self._is_current(generation):
            logger.debug(f"Discarding chat refetch for closed feed ({me})")
            return False

        known = {m.id for m in fetched}
        pending = [m for m in self._messages if m.id not in known]
        self._messages = sorted(fetched + pending, key=lambda m: m.created_at)
        self.status = FeedStatus.READY
        self._notify()
        return True

    def _on_insert(self, payload: Any):
        record = extract_record(payload)
        if not record or not self.is_open or self._suspended():
            return

        me = self.identity_id
        if record.get("sender_id") != me and record.get("receiver_id") != me:
            return
        if record.get("tenant_id") not in (None, self.tenant_id):
            return

        try:
            message = ChatMessage.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed chat insert event: {e}")
            return

        if self._append(message):
            self._notify()

        # Insert events lack the embedded sender profile
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _append(self, message: ChatMessage) -> bool:
        if any(m.id == message.id for m in self._messages):
            return False
        self._messages = self._messages + [message]
        return True

    # --- Actions ---

    async def send(self, sender: Profile, content: str, receiver_id: Optional[str] = None) -> Optional[ChatMessage]:
        """
        Sends a message from the feed owner. Clients are routed to their
        coach; coaches pass `receiver_id`. On failure the text is put back
        in `draft` and the error is raised.
        """
        text = content.strip()
        if not text or not self.is_open:
            return None
        is_client = sender.role == Role.CLIENT
        if is_client and receiver_id is not None:
            raise InvalidRecipient(receiver_id, "clients are always routed to their coach")
        if not is_client and receiver_id is None:
            raise ValueError("receiver_id is required when a coach or admin sends a message")

        self.draft = ""
        self.sending = True
        try:
            if is_client:
                receiver_id = await self.router.route_outbound(sender, self.tenant_id)
            else:
                await self.router.check_recipient(sender, receiver_id, self.tenant_id)
            res = await self.client.table("chat_messages").insert({
                "tenant_id": self.tenant_id,
                "sender_id": sender.id,
                "receiver_id": receiver_id,
                "content": text,
            }).execute()
        except Exception as e:
            logger.error(f"Error sending message from {sender.id}: {e}")
            self.draft = content
            raise
        finally:
            self.sending = False

        message = ChatMessage.model_validate(res.data[0]) if res.data else None
        if message and self._append(message):
            self._notify()
        await self.refresh()
        return message

    async def block(self, user_id: str):
        await self.moderation.block(self.identity_id, user_id)
        self._notify()
        await self.refresh()

    async def report(self, reported_id: str, message_id: str, reason: str):
        return await self.moderation.report(self.identity_id, reported_id, message_id, reason)

    async def mark_read(self) -> int:
        """Marks every message received by the feed owner as read."""
        unread = [m.id for m in self._messages if m.receiver_id == self.identity_id and not m.is_read]
        if not unread:
            return 0

        await self.client.table("chat_messages")\
            .update({"is_read": True})\
            .eq("tenant_id", self.tenant_id)\
            .eq("receiver_id", self.identity_id)\
            .in_("id", unread)\
            .execute()

        ids = set(unread)
        self._messages = [m.model_copy(update={"is_read": True}) if m.id in ids else m for m in self._messages]
        self._notify()
        return len(unread)
