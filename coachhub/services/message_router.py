import logging
from typing import Optional

from supabase import AsyncClient

from coachhub.core.errors import InvalidRecipient, NoCoachAvailable
from coachhub.schemas.profile import Profile, Role

logger = logging.getLogger(__name__)

class MessageRouter:
    """
    Picks the receiver for a client's outbound message.
    Evaluated on every send since coach assignment can change between messages.
    When several candidates match, the earliest-created profile wins (ties by id).
    """
    def __init__(self, client: AsyncClient):
        self.client = client

    async def route_outbound(self, sender: Profile, tenant_id: str) -> str:
        # 1. Assigned coach
        if sender.assigned_coach_id:
            return sender.assigned_coach_id

        # 2. Any coach in the tenant
        coach_id = await self._first_profile_id(
            self.client.table("profiles").select("id")
            .eq("tenant_id", tenant_id)
            .eq("role", Role.COACH.value)
            .neq("id", sender.id)
        )
        if coach_id:
            logger.info(f"Client {sender.id} has no assigned coach, routing to coach {coach_id}")
            return coach_id

        # 3. Any non-client (admin as fallback contact)
        contact_id = await self._first_profile_id(
            self.client.table("profiles").select("id")
            .eq("tenant_id", tenant_id)
            .neq("role", Role.CLIENT.value)
            .neq("id", sender.id)
        )
        if contact_id:
            logger.info(f"No coach in tenant {tenant_id}, routing client {sender.id} to {contact_id}")
            return contact_id

        logger.warning(f"No coach available in tenant {tenant_id} for client {sender.id}")
        raise NoCoachAvailable(tenant_id, sender.id)

    async def _first_profile_id(self, query) -> Optional[str]:
        res = await query.order("created_at").order("id").limit(1).execute()
        if not res.data:
            return None
        return res.data[0]["id"]

    async def check_recipient(self, sender: Profile, receiver_id: str, tenant_id: str) -> str:
        """Coaches and admins may only message other profiles in their own tenant."""
        if receiver_id == sender.id:
            raise InvalidRecipient(receiver_id, "cannot message yourself")
        res = await self.client.table("profiles").select("id")\
            .eq("id", receiver_id)\
            .eq("tenant_id", tenant_id)\
            .limit(1)\
            .execute()
        if not res.data:
            logger.warning(f"{sender.id} tried to message {receiver_id} outside tenant {tenant_id}")
            raise InvalidRecipient(receiver_id, "not a member of this tenant")
        return receiver_id
