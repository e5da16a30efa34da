from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import date
from ptscheduler.models.mod_schedule import Schedule, WeekSchedule

class ScheduleCheckRequest(BaseModel):
    trainer_id: str
    pt_product_id: str
    is_regular: bool
    day_schedule: Dict[date, List[int]] = Field(
        description="Chosen start slots per date, e.g. {\"2025-03-11\": [1000, 1030]}"
    )

class BookingConfirmRequest(ScheduleCheckRequest):
    pass

class ScheduleCheckResponse(BaseModel):
    success: List[Schedule]
    fail: List[Schedule]
    week_schedules: List[WeekSchedule] = []
    requested_count: int
    is_complete: bool

class BookingResult(BaseModel):
    pt_id: Optional[str] = None
    booked: List[Schedule] = []
    not_booked: List[Schedule] = []
    requested_count: int
    message: str
    is_complete: bool

class CancelBookingResponse(BaseModel):
    pt_id: str
    released_sessions: int

class TimeSlotsResponse(BaseModel):
    open_time: int
    close_time: int
    slots: List[int]

class SlotFitResponse(BaseModel):
    start_time: int
    duration_minutes: int
    slots: List[int]
    fits: bool

class OccupiedSlotsResponse(BaseModel):
    trainer_id: str
    from_date: date
    to_date: date
    occupied: Dict[date, List[int]]
