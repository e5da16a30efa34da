from datetime import datetime
from typing import Iterable
from ptscheduler.configuration.clock import get_schedule_timezone
from ptscheduler.configuration.config import Config
from ptscheduler.models.mod_auth import AuthUser, UserRole
from ptscheduler.models.mod_pt import PtProduct
from ptscheduler.models.mod_schedule import DaySchedule
from ptscheduler.schemas.sch_schedule import ScheduleCheckRequest
from ptscheduler.services.svc_day_schedule import DayScheduleService
from ptscheduler.services.svc_timeslot import SLOT_MINUTES, TimeSlotService
from ptscheduler.validators.val_errors import AuthorizationError, ScheduleValidationError

class ScheduleValidator:
    @staticmethod
    def validate_member(user: AuthUser):
        """Only members go through the booking checkout flow"""
        if user.role != UserRole.MEMBER:
            raise AuthorizationError("Only members can book PT sessions")

    @staticmethod
    def validate_slots(slots: Iterable[int]):
        for slot in slots:
            if not TimeSlotService.is_valid_slot(slot):
                raise ScheduleValidationError(
                    f"{slot} is not a valid time slot (HHMM on the 30 minute grid)"
                )

    @staticmethod
    def validate_not_empty(day_schedule: DaySchedule):
        if not any(day_schedule.values()):
            raise ScheduleValidationError("Select at least one date and time")

    @staticmethod
    def validate_future_dates(day_schedule: DaySchedule, now: datetime):
        """Every chosen session must start after now in the schedule timezone"""
        tz = get_schedule_timezone()
        for day, slots in day_schedule.items():
            if not slots:
                continue
            start = TimeSlotService.to_datetime(day, min(slots), tz)
            if start <= now:
                raise ScheduleValidationError(
                    f"{day.isoformat()} {TimeSlotService.format_slot(min(slots))} is in the past"
                )

    @staticmethod
    def validate_session_length(day_schedule: DaySchedule, product: PtProduct):
        """
        Each date must cover exactly one session of the product's length,
        inside opening hours.
        """
        required = TimeSlotService.slots_needed(product.session_minutes)
        for schedule in DayScheduleService.to_schedules(day_schedule):
            span = TimeSlotService.span_slots(schedule.start_time, schedule.end_time)
            if len(span) != required:
                raise ScheduleValidationError(
                    f"{schedule.date.isoformat()} must cover {product.session_minutes} minutes, "
                    f"got {len(span) * SLOT_MINUTES}"
                )
            fitting = TimeSlotService.slots_for_duration(
                schedule.start_time, product.session_minutes,
                Config.SLOT_OPEN_TIME, Config.SLOT_CLOSE_TIME
            )
            if fitting != span:
                raise ScheduleValidationError(
                    f"{schedule.date.isoformat()} falls outside opening hours "
                    f"({TimeSlotService.format_slot(Config.SLOT_OPEN_TIME)}"
                    f"-{TimeSlotService.format_slot(Config.SLOT_CLOSE_TIME)})"
                )

    @staticmethod
    def validate_irregular(day_schedule: DaySchedule, product: PtProduct):
        chosen = [day for day, slots in day_schedule.items() if slots]
        if len(chosen) != product.total_count:
            raise ScheduleValidationError(
                f"Select exactly {product.total_count} dates, got {len(chosen)}"
            )

    @staticmethod
    def validate_regular(day_schedule: DaySchedule, product: PtProduct):
        """A regular selection is one date per weekday, the weekly pattern anchor"""
        chosen = [day for day, slots in day_schedule.items() if slots]
        weekdays = [day.weekday() for day in chosen]
        if len(set(weekdays)) != len(weekdays):
            raise ScheduleValidationError("Select at most one date per weekday for a regular booking")
        if len(chosen) > product.total_count:
            raise ScheduleValidationError(
                f"Select at most {product.total_count} weekdays, got {len(chosen)}"
            )

    @staticmethod
    def validate_batch_size(record_count: int, date_count: int):
        """One booking, its sessions and the touched slot ledgers go in one batch"""
        operations = 1 + record_count + date_count
        if operations > Config.MAX_BATCH_OPERATIONS:
            raise ScheduleValidationError(
                f"A booking of {record_count} sessions exceeds the {Config.MAX_BATCH_OPERATIONS} "
                "operations a single write allows"
            )

    @staticmethod
    def validate_check_request(request: ScheduleCheckRequest, product: PtProduct, now: datetime):
        """Validate all rules for checking or confirming a booking selection"""
        ScheduleValidator.validate_not_empty(request.day_schedule)
        for slots in request.day_schedule.values():
            ScheduleValidator.validate_slots(slots)
        ScheduleValidator.validate_future_dates(request.day_schedule, now)
        ScheduleValidator.validate_session_length(request.day_schedule, product)
        if request.is_regular:
            ScheduleValidator.validate_regular(request.day_schedule, product)
        else:
            ScheduleValidator.validate_irregular(request.day_schedule, product)
