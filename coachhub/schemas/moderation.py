from pydantic import BaseModel, Field
from typing import List

class BlockCreate(BaseModel):
    blocked_id: str

class BlockListResponse(BaseModel):
    blocked_ids: List[str]

class ReportCreate(BaseModel):
    reported_id: str
    message_id: str
    reason: str = Field(min_length=1, max_length=1000)
