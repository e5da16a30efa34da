import pytest
from datetime import date

from ptscheduler.services.svc_availability import AvailabilityService

FROM = date(2030, 1, 7)
TO = date(2030, 1, 21)

def record(record_id, day, start, end, trainer_id="trainer1"):
    return {
        "id": record_id,
        "type": "pt_record",
        "pt_id": "pt1",
        "trainer_id": trainer_id,
        "member_id": "member1",
        "pt_schedule_id": f"schedule_{day}_{start}_{end}",
        "date": day,
        "start_time": start,
        "end_time": end,
        "_etag": "etag"
    }

class TestAvailabilityService:
    def test_sessions_are_expanded_into_slots(self, mock_store):
        mock_store.find_sessions_for_trainer_in_range.return_value = [
            record("r1", "2030-01-08", 1000, 1100),
            record("r2", "2030-01-08", 1400, 1530)
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO)

        assert index == {date(2030, 1, 8): [1000, 1030, 1400, 1430, 1500]}
        mock_store.find_sessions_for_trainer_in_range.assert_called_once_with("trainer1", FROM, TO)
        mock_store.find_sessions_for_member_in_range.assert_not_called()

    def test_excluded_session_is_ignored(self, mock_store):
        mock_store.find_sessions_for_trainer_in_range.return_value = [
            record("r1", "2030-01-08", 1000, 1100),
            record("r2", "2030-01-09", 1000, 1100)
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO, exclude_record_id="r1")
        assert list(index) == [date(2030, 1, 9)]

    def test_dated_off_with_time_range(self, mock_store):
        mock_store.find_trainer_off_days.return_value = [
            {"id": "off1", "trainer_id": "trainer1", "date": "2030-01-10", "start_time": 1200, "end_time": 1300}
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO)
        assert index == {date(2030, 1, 10): [1200, 1230]}

    def test_whole_day_off_blocks_every_slot(self, mock_store):
        mock_store.find_trainer_off_days.return_value = [
            {"id": "off1", "trainer_id": "trainer1", "date": "2030-01-10"}
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO)
        assert len(index[date(2030, 1, 10)]) == 48

    def test_weekly_off_repeats_inside_window(self, mock_store):
        # Every Wednesday morning
        mock_store.find_trainer_off_days.return_value = [
            {"id": "off1", "trainer_id": "trainer1", "week_day": 2, "start_time": 600, "end_time": 700}
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO)
        assert index == {date(2030, 1, 9): [600, 630], date(2030, 1, 16): [600, 630]}

    def test_member_sessions_with_other_trainers_are_included(self, mock_store):
        mock_store.find_sessions_for_trainer_in_range.return_value = [
            record("r1", "2030-01-08", 1000, 1100)
        ]
        mock_store.find_sessions_for_member_in_range.return_value = [
            record("r1", "2030-01-08", 1000, 1100),
            record("r9", "2030-01-11", 1800, 1900, trainer_id="trainer2")
        ]
        index = AvailabilityService.build_index(mock_store, "trainer1", FROM, TO, member_id="member1")

        assert index == {
            date(2030, 1, 8): [1000, 1030],
            date(2030, 1, 11): [1800, 1830]
        }
        mock_store.find_sessions_for_member_in_range.assert_called_once_with("member1", FROM, TO)

    def test_store_errors_propagate(self, mock_store):
        mock_store.find_sessions_for_trainer_in_range.side_effect = RuntimeError("cosmos down")
        with pytest.raises(RuntimeError):
            AvailabilityService.build_index(mock_store, "trainer1", FROM, TO)

    @pytest.mark.parametrize("target,expected", [
        (date(2030, 1, 17), (date(2030, 1, 1), date(2030, 4, 1))),
        (date(2030, 11, 3), (date(2030, 11, 1), date(2031, 2, 1))),
        (date(2030, 12, 31), (date(2030, 12, 1), date(2031, 3, 1)))
    ])
    def test_month_window(self, target, expected):
        assert AvailabilityService.month_window(target) == expected
