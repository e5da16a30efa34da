from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from enum import Enum
from ptscheduler.models.mod_schedule import WeekSchedule

class PtState(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

# Bookings whose sessions still hold trainer time
ACTIVE_PT_STATES = [PtState.PENDING.value, PtState.CONFIRMED.value]

class PtProduct(BaseModel):
    id: str
    title: str
    total_count: int
    session_minutes: int = 60

    model_config = ConfigDict(from_attributes=True)

class Pt(BaseModel):
    """A PT contract between a member and a trainer"""
    id: str
    member_id: str
    trainer_id: str
    pt_product_id: str
    start_date: date
    is_regular: bool
    week_times: List[WeekSchedule] = []
    state: PtState = PtState.PENDING
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class PtRecord(BaseModel):
    """One session of a Pt, bound to exactly one schedule row at a time"""
    id: str
    pt_id: str
    trainer_id: str
    member_id: str
    pt_schedule_id: str
    date: date
    start_time: int
    end_time: int
    pending_request_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

# A field named "date" with a default shadows the type inside the class body
OffDate = Optional[date]

class TrainerOff(BaseModel):
    """
    Time a trainer does not work. Either a specific date or a weekly
    repeating week_day (0=Monday); no time range means the whole day.
    """
    id: str
    trainer_id: str
    date: OffDate = None
    week_day: Optional[int] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
