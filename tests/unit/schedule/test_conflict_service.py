import pytest
from datetime import date, timedelta

from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.services.svc_conflict import ConflictService
from ptscheduler.services.svc_timeslot import TimeSlotService

TUESDAY = date(2030, 1, 8)
THURSDAY = date(2030, 1, 10)

class TestIrregularResolution:
    def test_free_dates_are_all_accepted(self):
        checked = ConflictService.resolve_irregular(
            {THURSDAY: [1400, 1430], TUESDAY: [1000, 1030]},
            {}
        )
        assert [s.date for s in checked.success] == [TUESDAY, THURSDAY]
        assert checked.fail == []
        assert checked.requested_count == 2

    def test_date_overlapping_a_session_fails_whole(self):
        index = {THURSDAY: [1400, 1430]}
        checked = ConflictService.resolve_irregular(
            {TUESDAY: [1000, 1030], THURSDAY: [1400, 1430]},
            index
        )
        assert checked.success == [Schedule(date=TUESDAY, start_time=1000, end_time=1100)]
        assert checked.fail == [Schedule(date=THURSDAY, start_time=1400, end_time=1500)]

    def test_partial_overlap_is_a_conflict(self):
        checked = ConflictService.resolve_irregular({TUESDAY: [1000, 1030]}, {TUESDAY: [1030]})
        assert checked.success == []
        assert len(checked.fail) == 1

    def test_adjacent_session_is_not_a_conflict(self):
        checked = ConflictService.resolve_irregular({TUESDAY: [1000, 1030]}, {TUESDAY: [930, 1100]})
        assert len(checked.success) == 1

    def test_accepted_and_failed_are_exclusive_against_index(self):
        index = {TUESDAY: [1000], THURSDAY: [1500]}
        chosen = {
            TUESDAY: [1000, 1030],
            THURSDAY: [1400, 1430],
            date(2030, 1, 11): [1500, 1530]
        }
        checked = ConflictService.resolve_irregular(chosen, index)
        for schedule in checked.success:
            spanned = TimeSlotService.span_slots(schedule.start_time, schedule.end_time)
            assert not set(spanned) & set(index.get(schedule.date, []))
        for schedule in checked.fail:
            spanned = TimeSlotService.span_slots(schedule.start_time, schedule.end_time)
            assert set(spanned) & set(index.get(schedule.date, []))

class TestRegularResolution:
    def test_two_weekday_pattern_fills_total_count(self):
        checked = ConflictService.resolve_regular(
            {TUESDAY: [1000, 1030], THURSDAY: [1400, 1430]},
            total_count=8,
            index={}
        )
        assert len(checked.success) == 8
        assert checked.fail == []
        weekdays = [s.date.weekday() for s in checked.success]
        assert weekdays == [1, 3] * 4
        assert [s.start_time for s in checked.success] == [1000, 1400] * 4

    def test_accepted_dates_increase_on_expected_weekday(self):
        index = {TUESDAY + timedelta(weeks=1): [1000], THURSDAY + timedelta(weeks=3): [1430]}
        checked = ConflictService.resolve_regular(
            {TUESDAY: [1000, 1030], THURSDAY: [1400, 1430]},
            total_count=10,
            index=index
        )
        dates = [s.date for s in checked.success]
        assert dates == sorted(dates)
        assert len(set(dates)) == len(dates)
        for schedule in checked.success:
            expected_day = 1 if schedule.start_time == 1000 else 3
            assert schedule.date.weekday() == expected_day
        assert [s.date for s in checked.fail] == [
            TUESDAY + timedelta(weeks=1), THURSDAY + timedelta(weeks=3)
        ]

    def test_blocked_weeks_are_skipped_not_fatal(self):
        index = {TUESDAY: [1000]}
        checked = ConflictService.resolve_regular({TUESDAY: [1000, 1030]}, total_count=3, index=index)
        assert [s.date for s in checked.success] == [
            TUESDAY + timedelta(weeks=1),
            TUESDAY + timedelta(weeks=2),
            TUESDAY + timedelta(weeks=3)
        ]
        assert [s.date for s in checked.fail] == [TUESDAY]

    def test_short_horizon_gives_partial_result(self):
        index = {TUESDAY + timedelta(weeks=1): [1000]}
        checked = ConflictService.resolve_regular(
            {TUESDAY: [1000, 1030]}, total_count=4, index=index, horizon_weeks=3
        )
        assert len(checked.success) == 2
        assert checked.requested_count == 4

    def test_week_template_is_returned(self):
        checked = ConflictService.resolve_regular(
            {THURSDAY: [1400, 1430], TUESDAY: [1000, 1030]}, total_count=2, index={}
        )
        assert [(w.day, w.start_time, w.end_time) for w in checked.week_schedules] == [
            (1, 1000, 1100), (3, 1400, 1500)
        ]

    @pytest.mark.parametrize("horizon", [1, 2, 5])
    def test_never_projects_past_horizon(self, horizon):
        checked = ConflictService.resolve_regular({TUESDAY: [1000]}, total_count=100, index={}, horizon_weeks=horizon)
        assert len(checked.success) == horizon
        assert checked.success[-1].date == TUESDAY + timedelta(weeks=horizon - 1)
