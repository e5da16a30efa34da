from datetime import date
from typing import Dict, Iterable, List, Set
from ptscheduler.models.mod_schedule import DaySchedule, Schedule, WeekSchedule
from ptscheduler.services.svc_timeslot import TimeSlotService

class DayScheduleService:
    """Projects sparse per-date slot selections onto Schedules and weekly patterns"""

    @staticmethod
    def to_schedule(day: date, slots: Iterable[int]) -> Schedule:
        """
        Canonical session for one date: earliest chosen slot up to one slot
        past the latest. Duplicate or overlapping selections collapse here.
        """
        unique_slots = sorted(set(slots))
        if not unique_slots:
            raise ValueError(f"No slots chosen for {day.isoformat()}")
        return Schedule(
            date=day,
            start_time=unique_slots[0],
            end_time=TimeSlotService.next_slot(unique_slots[-1])
        )

    @staticmethod
    def to_schedules(day_schedule: DaySchedule) -> List[Schedule]:
        """One Schedule per date with at least one slot, ascending by date"""
        return [
            DayScheduleService.to_schedule(day, slots)
            for day, slots in sorted(day_schedule.items())
            if slots
        ]

    @staticmethod
    def to_week_schedules(day_schedule: DaySchedule) -> List[WeekSchedule]:
        """Weekly recurrence template derived from the anchor week's selection"""
        week_schedules = []
        for schedule in DayScheduleService.to_schedules(day_schedule):
            week_schedules.append(WeekSchedule(
                day=schedule.date.weekday(),
                start_time=schedule.start_time,
                end_time=schedule.end_time
            ))
        return sorted(week_schedules, key=lambda w: w.day)

    @staticmethod
    def to_day_schedule(schedules: Iterable[Schedule]) -> DaySchedule:
        """Expand sessions into every 30 minute slot they cover, per date"""
        occupied: Dict[date, Set[int]] = {}
        for schedule in schedules:
            occupied.setdefault(schedule.date, set()).update(
                TimeSlotService.span_slots(schedule.start_time, schedule.end_time)
            )
        return {day: sorted(slots) for day, slots in occupied.items()}

    @staticmethod
    def merge(*day_schedules: DaySchedule) -> DaySchedule:
        merged: Dict[date, Set[int]] = {}
        for day_schedule in day_schedules:
            for day, slots in day_schedule.items():
                merged.setdefault(day, set()).update(slots)
        return {day: sorted(slots) for day, slots in merged.items()}
