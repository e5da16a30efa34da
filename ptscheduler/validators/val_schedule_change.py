from datetime import datetime, timedelta
from ptscheduler.configuration.clock import get_schedule_timezone
from ptscheduler.configuration.config import Config
from ptscheduler.models.mod_auth import AuthUser
from ptscheduler.models.mod_pt import PtRecord
from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.models.mod_schedule_change import ScheduleChangeRequest, ScheduleChangeState
from ptscheduler.services.svc_timeslot import TimeSlotService
from ptscheduler.validators.val_errors import (
    AuthorizationError, ConflictError, CutoffViolationError, ScheduleValidationError
)

class ScheduleChangeValidator:
    @staticmethod
    def is_participant(user: AuthUser, member_id: str, trainer_id: str) -> bool:
        return user.id in (member_id, trainer_id)

    @staticmethod
    def validate_participant(user: AuthUser, member_id: str, trainer_id: str):
        if not ScheduleChangeValidator.is_participant(user, member_id, trainer_id):
            raise AuthorizationError("Only the member or the trainer of this session can do this")

    @staticmethod
    def validate_requested_schedule(requested: Schedule, current: Schedule, now: datetime):
        """The proposed schedule must be a real, future, different time range"""
        if not TimeSlotService.is_valid_slot(requested.start_time) \
                or not TimeSlotService.is_valid_end(requested.end_time) \
                or not TimeSlotService.is_reachable(requested.start_time, requested.end_time):
            raise ScheduleValidationError(
                f"{requested.start_time}-{requested.end_time} is not a valid time range"
            )
        if requested.start_time < Config.SLOT_OPEN_TIME or requested.end_time > Config.SLOT_CLOSE_TIME:
            raise ScheduleValidationError("The requested time is outside opening hours")
        start = TimeSlotService.to_datetime(requested.date, requested.start_time, get_schedule_timezone())
        if start <= now:
            raise ScheduleValidationError("The requested time is in the past")
        if requested == current:
            raise ScheduleValidationError("The requested time is the same as the current one")

    @staticmethod
    def validate_creation_cutoff(record: PtRecord, now: datetime):
        """Changes can be requested only while the session is at least the cutoff away"""
        start = TimeSlotService.to_datetime(record.date, record.start_time, get_schedule_timezone())
        if start - now < timedelta(hours=Config.CHANGE_REQUEST_CUTOFF_HOURS):
            raise CutoffViolationError(
                f"Changes must be requested at least {Config.CHANGE_REQUEST_CUTOFF_HOURS} hours "
                "before the session starts"
            )

    @staticmethod
    def validate_pending(request: ScheduleChangeRequest):
        if request.state != ScheduleChangeState.PENDING:
            raise ConflictError(f"The request is already {request.state.value.lower()}")

    @staticmethod
    def validate_not_expired(request: ScheduleChangeRequest, now: datetime):
        if request.is_expired(now):
            raise CutoffViolationError("The request has expired", code="request_expired")

    @staticmethod
    def validate_respond(user: AuthUser, request: ScheduleChangeRequest, now: datetime):
        """Approve and reject belong to the participant who did not make the request"""
        ScheduleChangeValidator.validate_participant(user, request.member_id, request.trainer_id)
        if user.id == request.requestor_id:
            raise AuthorizationError("You cannot respond to your own request", code="self_response")
        ScheduleChangeValidator.validate_pending(request)
        ScheduleChangeValidator.validate_not_expired(request, now)

    @staticmethod
    def validate_cancel(user: AuthUser, request: ScheduleChangeRequest, now: datetime):
        if user.id != request.requestor_id:
            raise AuthorizationError("Only the requestor can cancel this request")
        ScheduleChangeValidator.validate_pending(request)
        ScheduleChangeValidator.validate_not_expired(request, now)
