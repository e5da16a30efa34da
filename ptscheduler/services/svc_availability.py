from datetime import date, timedelta
from typing import List, Optional, Tuple
from ptscheduler.configuration.config import Config
from ptscheduler.configuration.monitor import log_event, log_exception, start_span
from ptscheduler.models.mod_pt import PtRecord, TrainerOff
from ptscheduler.models.mod_schedule import DaySchedule, Schedule
from ptscheduler.services.svc_day_schedule import DayScheduleService
from ptscheduler.services.svc_timeslot import END_OF_DAY
from ptscheduler.stores.sto_pt import PtStore

class AvailabilityService:
    @staticmethod
    def month_window(target: date) -> Tuple[date, date]:
        """First day of target's month up to the first day AVAILABILITY_WINDOW_MONTHS later"""
        start = target.replace(day=1)
        months = start.month - 1 + Config.AVAILABILITY_WINDOW_MONTHS
        return start, date(start.year + months // 12, months % 12 + 1, 1)

    @staticmethod
    def _record_schedules(items: List[dict], exclude_record_id: Optional[str]) -> List[Schedule]:
        schedules = []
        for item in items:
            record = PtRecord(**item)
            if record.id == exclude_record_id:
                continue
            schedules.append(Schedule(date=record.date, start_time=record.start_time, end_time=record.end_time))
        return schedules

    @staticmethod
    def _off_schedules(items: List[dict], from_date: date, to_date: date) -> List[Schedule]:
        """Expand dated and weekly offs into concrete schedules inside [from_date, to_date)"""
        schedules = []
        for item in items:
            off = TrainerOff(**item)
            start_time = off.start_time if off.start_time is not None else 0
            end_time = off.end_time if off.end_time is not None else END_OF_DAY
            if off.date is not None:
                if from_date <= off.date < to_date:
                    schedules.append(Schedule(date=off.date, start_time=start_time, end_time=end_time))
            elif off.week_day is not None:
                day = from_date + timedelta(days=(off.week_day - from_date.weekday()) % 7)
                while day < to_date:
                    schedules.append(Schedule(date=day, start_time=start_time, end_time=end_time))
                    day += timedelta(weeks=1)
        return schedules

    @staticmethod
    def build_index(store: PtStore, trainer_id: str, from_date: date, to_date: date,
                    member_id: str = None, exclude_record_id: str = None) -> DaySchedule:
        """
        Occupied slots per date for a trainer over [from_date, to_date):
        sessions of active bookings, trainer offs and, when member_id is
        given, the member's own sessions with any trainer.
        """
        try:
            with start_span("build_availability_index", attributes={
                "trainer_id": trainer_id,
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat()
            }):
                sessions = store.find_sessions_for_trainer_in_range(trainer_id, from_date, to_date)
                offs = store.find_trainer_off_days(trainer_id, from_date, to_date)

                schedules = AvailabilityService._record_schedules(sessions, exclude_record_id)
                schedules.extend(AvailabilityService._off_schedules(offs, from_date, to_date))

                if member_id:
                    member_sessions = store.find_sessions_for_member_in_range(member_id, from_date, to_date)
                    # Sessions with this trainer were already collected above
                    schedules.extend(AvailabilityService._record_schedules(
                        [s for s in member_sessions if s["trainer_id"] != trainer_id],
                        exclude_record_id
                    ))

                index = DayScheduleService.to_day_schedule(schedules)
                log_event("Availability index built", {
                    "trainer_id": trainer_id,
                    "sessions": len(sessions),
                    "offs": len(offs),
                    "occupied_dates": len(index)
                })
                return index
        except Exception as e:
            log_exception(e, {
                "operation": "build_index",
                "trainer_id": trainer_id
            })
            raise
