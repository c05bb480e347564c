from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
import enum

class Role(str, enum.Enum):
    COACH = "coach"
    CLIENT = "client"
    ADMIN = "admin"

class Profile(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    role: Role = Role.CLIENT
    assigned_coach_id: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")
