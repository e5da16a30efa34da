import pytest
from datetime import date, datetime, timezone

from ptscheduler.models.mod_auth import AuthUser, UserRole
from ptscheduler.models.mod_pt import PtProduct
from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.schemas.sch_schedule import ScheduleCheckRequest
from ptscheduler.validators.val_errors import (
    AuthorizationError, ConflictError, CutoffViolationError, ScheduleValidationError
)
from ptscheduler.validators.val_schedule import ScheduleValidator
from ptscheduler.validators.val_schedule_change import ScheduleChangeValidator

@pytest.fixture
def product():
    return PtProduct(id="product1", title="PT 2", total_count=2, session_minutes=60)

def selection(day_schedule, is_regular=False):
    return ScheduleCheckRequest(
        trainer_id="trainer1", pt_product_id="product1", is_regular=is_regular, day_schedule=day_schedule
    )

class TestSchedulingErrors:
    def test_detail_payload(self):
        error = ConflictError("Taken", retryable=True)
        assert error.status_code == 409
        assert error.detail == {"code": "conflict", "message": "Taken", "retryable": True}

    def test_custom_code(self):
        error = CutoffViolationError("Too late", code="request_expired")
        assert error.status_code == 400
        assert error.code == "request_expired"
        assert error.retryable is False

class TestScheduleValidator:
    def test_only_members_book(self, trainer, member):
        ScheduleValidator.validate_member(member)
        with pytest.raises(AuthorizationError):
            ScheduleValidator.validate_member(trainer)

    @pytest.mark.parametrize("slot", [1015, 2400, -30, "1000", True])
    def test_invalid_slots(self, slot):
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_slots([1000, slot])

    def test_empty_selection(self):
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_not_empty({date(2030, 1, 8): []})

    def test_past_session(self, now):
        # Monday 2030-01-07 09:00 Seoul is exactly now
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_future_dates({date(2030, 1, 7): [900, 930]}, now)
        ScheduleValidator.validate_future_dates({date(2030, 1, 7): [930, 1000]}, now)

    def test_session_too_short(self, product):
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_session_length({date(2030, 1, 8): [1000]}, product)

    def test_session_past_closing(self, product):
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_session_length({date(2030, 1, 8): [2130, 2200]}, product)

    def test_irregular_needs_exact_count(self, product):
        ScheduleValidator.validate_irregular(
            {date(2030, 1, 8): [1000, 1030], date(2030, 1, 9): [1000, 1030]}, product
        )
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_irregular({date(2030, 1, 8): [1000, 1030]}, product)

    def test_regular_one_date_per_weekday(self, product):
        ScheduleValidator.validate_regular({date(2030, 1, 8): [1000, 1030]}, product)
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_regular(
                {date(2030, 1, 8): [1000, 1030], date(2030, 1, 15): [1000, 1030]}, product
            )

    def test_regular_weekdays_bounded_by_count(self, product):
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_regular({
                date(2030, 1, 8): [1000, 1030],
                date(2030, 1, 9): [1000, 1030],
                date(2030, 1, 10): [1000, 1030]
            }, product)

    def test_batch_size(self):
        ScheduleValidator.validate_batch_size(48, 51)
        with pytest.raises(ScheduleValidationError):
            ScheduleValidator.validate_batch_size(50, 50)

    def test_check_request(self, product, now):
        ScheduleValidator.validate_check_request(
            selection({date(2030, 1, 8): [1030, 1000], date(2030, 1, 10): [1400, 1430]}), product, now
        )

class TestScheduleChangeValidator:
    @pytest.fixture
    def current(self):
        return Schedule(date=date(2030, 1, 10), start_time=1400, end_time=1500)

    def test_participants(self, member, trainer):
        outsider = AuthUser(id="member2", name="Other", role=UserRole.MEMBER)
        assert ScheduleChangeValidator.is_participant(member, "member1", "trainer1")
        assert ScheduleChangeValidator.is_participant(trainer, "member1", "trainer1")
        assert not ScheduleChangeValidator.is_participant(outsider, "member1", "trainer1")

    @pytest.mark.parametrize("start,end", [(1000, 1015), (1100, 1000), (500, 600), (2130, 2230)])
    def test_requested_range_rejected(self, current, now, start, end):
        with pytest.raises(ScheduleValidationError):
            ScheduleChangeValidator.validate_requested_schedule(
                Schedule(date=date(2030, 1, 11), start_time=start, end_time=end), current, now
            )

    def test_requested_in_the_past(self, current):
        later = datetime(2030, 1, 12, 0, 0, tzinfo=timezone.utc)
        with pytest.raises(ScheduleValidationError):
            ScheduleChangeValidator.validate_requested_schedule(
                Schedule(date=date(2030, 1, 11), start_time=1000, end_time=1100), current, later
            )

    def test_requested_different_length_allowed(self, current, now):
        ScheduleChangeValidator.validate_requested_schedule(
            Schedule(date=date(2030, 1, 11), start_time=1000, end_time=1130), current, now
        )
