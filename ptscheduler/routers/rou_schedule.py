from fastapi import APIRouter, Depends, Query
from datetime import date, datetime
from typing import Optional
from ptscheduler.configuration.clock import get_current_time, local_today
from ptscheduler.configuration.config import Config
from ptscheduler.configuration.database import get_store
from ptscheduler.dependencies.dep_auth import get_current_user
from ptscheduler.models.mod_auth import AuthUser
from ptscheduler.schemas.sch_schedule import (
    BookingConfirmRequest, BookingResult, CancelBookingResponse, OccupiedSlotsResponse,
    ScheduleCheckRequest, ScheduleCheckResponse, SlotFitResponse, TimeSlotsResponse
)
from ptscheduler.services.svc_availability import AvailabilityService
from ptscheduler.services.svc_booking import BookingService
from ptscheduler.services.svc_timeslot import TimeSlotService
from ptscheduler.stores.sto_pt import PtStore
from ptscheduler.validators.val_errors import ScheduleValidationError

router = APIRouter(
    prefix="/schedules",
    tags=["Schedules"],
    responses={404: {"description": "Not found"}},
)

def _validate_hours(open_time: int, close_time: int):
    if not TimeSlotService.is_valid_slot(open_time) or not TimeSlotService.is_valid_end(close_time):
        raise ScheduleValidationError("Opening hours must be HHMM values on the 30 minute grid")

@router.get('/time-slots', response_model=TimeSlotsResponse)
def get_time_slots(
    open_time: int = Query(Config.SLOT_OPEN_TIME),
    close_time: int = Query(Config.SLOT_CLOSE_TIME),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    List every 30 minute start slot between open_time and close_time.

    - Times are HHMM integers (930 = 09:30)
    - close_time is exclusive
    """
    _validate_hours(open_time, close_time)
    return TimeSlotsResponse(
        open_time=open_time,
        close_time=close_time,
        slots=TimeSlotService.slot_range(open_time, close_time)
    )

@router.get('/time-slots/fit', response_model=SlotFitResponse)
def get_slot_fit(
    start_time: int,
    duration_minutes: int = Query(60, gt=0),
    open_time: int = Query(Config.SLOT_OPEN_TIME),
    close_time: int = Query(Config.SLOT_CLOSE_TIME),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Slots a session of duration_minutes starting at start_time would occupy.
    fits is false when the session would run past opening hours.
    """
    _validate_hours(open_time, close_time)
    if not TimeSlotService.is_valid_slot(start_time):
        raise ScheduleValidationError(f"{start_time} is not a valid time slot")
    slots = TimeSlotService.slots_for_duration(start_time, duration_minutes, open_time, close_time)
    return SlotFitResponse(
        start_time=start_time,
        duration_minutes=duration_minutes,
        slots=slots,
        fits=len(slots) == TimeSlotService.slots_needed(duration_minutes)
    )

@router.get('/trainers/{trainer_id}/occupied', response_model=OccupiedSlotsResponse)
def get_trainer_occupied_slots(
    trainer_id: str,
    target_date: Optional[date] = None,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Occupied slots of a trainer from the first day of target_date's month
    (today by default) over the following months: booked sessions and
    days off.
    """
    target = target_date or local_today(now)
    from_date, to_date = AvailabilityService.month_window(target)
    return OccupiedSlotsResponse(
        trainer_id=trainer_id,
        from_date=from_date,
        to_date=to_date,
        occupied=AvailabilityService.build_index(store, trainer_id, from_date, to_date)
    )

@router.post('/check', response_model=ScheduleCheckResponse)
def check_schedule(
    request: ScheduleCheckRequest,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Check a member's date and time selection against the trainer's schedule.

    - Irregular: every chosen date is accepted or rejected as a whole
    - Regular: the chosen weekdays repeat weekly until the product's session count is reached
    - Nothing is booked; confirm with POST /schedules/bookings
    """
    checked = BookingService.check_schedule(store, current_user, request, now)
    return ScheduleCheckResponse(
        success=checked.success,
        fail=checked.fail,
        week_schedules=checked.week_schedules,
        requested_count=checked.requested_count,
        is_complete=len(checked.success) >= checked.requested_count
    )

@router.post('/bookings', response_model=BookingResult, status_code=201)
def confirm_booking(
    request: BookingConfirmRequest,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Book the selection. Availability is checked again at write time; sessions
    taken in the meantime are reported in not_booked.
    """
    return BookingService.confirm_booking(store, current_user, request, now)

@router.delete('/bookings/{pt_id}', response_model=CancelBookingResponse)
def cancel_pending_booking(
    pt_id: str,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """Withdraw a booking the trainer has not confirmed yet"""
    return BookingService.cancel_pending_booking(store, current_user, pt_id, now)
