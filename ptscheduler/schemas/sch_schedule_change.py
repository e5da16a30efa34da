from pydantic import BaseModel, Field
from typing import Optional
from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.models.mod_schedule_change import ScheduleChangeRequest

class ScheduleChangeCreate(BaseModel):
    pt_record_id: str
    requested: Schedule
    reason: str = Field(min_length=1)
    force_cancel_existing: bool = Field(
        default=False,
        description="Cancel the caller's own pending request for this session in the same write"
    )

class ScheduleChangeRespond(BaseModel):
    response_message: Optional[str] = None

class ScheduleChangeDetail(BaseModel):
    request: ScheduleChangeRequest
    current: Schedule
    is_expired: bool
    can_respond: bool
    is_my_request: bool

class ExistingRequestResponse(BaseModel):
    pt_record_id: str
    has_pending: bool
    request: Optional[ScheduleChangeRequest] = None
