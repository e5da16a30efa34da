from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum
from ptscheduler.models.mod_schedule import Schedule

class ScheduleChangeState(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

class ScheduleChangeRequest(BaseModel):
    id: str
    pt_record_id: str
    pt_id: str
    trainer_id: str
    member_id: str
    requestor_id: str
    responder_id: Optional[str] = None
    state: ScheduleChangeState = ScheduleChangeState.PENDING
    reason: str
    response_message: Optional[str] = None
    original: Schedule
    requested: Schedule
    created_at: datetime
    responded_at: Optional[datetime] = None
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def is_expired(self, now: datetime) -> bool:
        """Expiry is evaluated lazily; there is no EXPIRED state"""
        return now > self.expires_at
