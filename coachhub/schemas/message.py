from pydantic import BaseModel, ConfigDict, StringConstraints
from typing import Annotated, Optional
from datetime import datetime

class SenderInfo(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

class ChatMessage(BaseModel):
    id: str
    tenant_id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    is_read: bool = False
    # Embedded by the history query; realtime insert events don't carry it
    sender: Optional[SenderInfo] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

class MessageCreate(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=4000)]
    # Clients omit this and are routed to their coach
    receiver_id: Optional[str] = None

class MarkReadResponse(BaseModel):
    updated: int
