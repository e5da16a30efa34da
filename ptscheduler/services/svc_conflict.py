from datetime import date, timedelta
from typing import Dict, Iterator, List, Set
from ptscheduler.configuration.config import Config
from ptscheduler.models.mod_schedule import CheckedSchedule, DaySchedule, Schedule
from ptscheduler.services.svc_day_schedule import DayScheduleService
from ptscheduler.services.svc_timeslot import TimeSlotService

class ConflictService:
    """
    Splits candidate sessions into accepted and rejected against an
    availability index ({date: occupied slots}).
    """

    @staticmethod
    def _as_lookup(index: DaySchedule) -> Dict[date, Set[int]]:
        return {day: set(slots) for day, slots in index.items()}

    @staticmethod
    def is_available(schedule: Schedule, occupied: Dict[date, Set[int]]) -> bool:
        """True when no slot spanned by the schedule is already occupied"""
        taken = occupied.get(schedule.date)
        if not taken:
            return True
        return taken.isdisjoint(TimeSlotService.span_slots(schedule.start_time, schedule.end_time))

    @staticmethod
    def resolve_irregular(chosen: DaySchedule, index: DaySchedule) -> CheckedSchedule:
        """Each chosen date is accepted or rejected as a whole"""
        occupied = ConflictService._as_lookup(index)
        success: List[Schedule] = []
        fail: List[Schedule] = []
        candidates = DayScheduleService.to_schedules(chosen)
        for schedule in candidates:
            if ConflictService.is_available(schedule, occupied):
                success.append(schedule)
            else:
                fail.append(schedule)
        return CheckedSchedule(
            success=success,
            fail=fail,
            requested_count=len(candidates)
        )

    @staticmethod
    def project_regular_dates(chosen: DaySchedule, horizon_weeks: int) -> Iterator[Schedule]:
        """
        Weekly occurrences of every chosen date's pattern, merged in ascending
        date order. Each chosen date anchors its own weekday so a pattern never
        yields a date earlier than the one the member picked.
        """
        anchors = DayScheduleService.to_schedules(chosen)
        projected = []
        for anchor in anchors:
            for week in range(horizon_weeks):
                projected.append(Schedule(
                    date=anchor.date + timedelta(weeks=week),
                    start_time=anchor.start_time,
                    end_time=anchor.end_time
                ))
        # One pattern per weekday, so dates never tie
        return iter(sorted(projected, key=lambda s: s.sort_key()))

    @staticmethod
    def resolve_regular(chosen: DaySchedule, total_count: int, index: DaySchedule,
                        horizon_weeks: int = Config.REGULAR_HORIZON_WEEKS) -> CheckedSchedule:
        """
        Walk the weekly projection forward until total_count sessions are
        accepted or the horizon runs out. Fewer than total_count accepted
        sessions is a partial result, not an error.
        """
        occupied = ConflictService._as_lookup(index)
        success: List[Schedule] = []
        fail: List[Schedule] = []
        for schedule in ConflictService.project_regular_dates(chosen, horizon_weeks):
            if len(success) >= total_count:
                break
            if ConflictService.is_available(schedule, occupied):
                success.append(schedule)
            else:
                fail.append(schedule)
        return CheckedSchedule(
            success=success,
            fail=fail,
            week_schedules=DayScheduleService.to_week_schedules(chosen),
            requested_count=total_count
        )
