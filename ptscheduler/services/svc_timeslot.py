from datetime import date, datetime, time, tzinfo
from typing import List
from ptscheduler.configuration.config import Config

SLOT_MINUTES = 30
END_OF_DAY = 2400

class TimeSlotService:
    """
    Arithmetic on HHMM time slots (930 = 09:30) laid out on a 30 minute grid.

    Comparisons between slots rely on the decimal HHMM ordering matching the
    chronological one, which only holds while minutes are restricted to 00/30.
    """

    @staticmethod
    def is_valid_slot(value) -> bool:
        """A start slot: an int in [0, 2400) whose minute part is 00 or 30"""
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return 0 <= value < END_OF_DAY and value % 100 in (0, 30)

    @staticmethod
    def is_valid_end(value) -> bool:
        """An exclusive end boundary; 2400 closes the last slot of the day"""
        return value == END_OF_DAY or TimeSlotService.is_valid_slot(value)

    @staticmethod
    def next_slot(slot: int) -> int:
        """
        Advance by one slot. 2330 advances to 2400, which is never a start
        slot: callers must treat it as "no slot" rather than wrap to 0.
        """
        if not TimeSlotService.is_valid_slot(slot):
            raise ValueError(f"{slot} is not a slot on the 30 minute grid")
        if slot % 100 == 30:
            return (slot // 100 + 1) * 100
        return slot + 30

    @staticmethod
    def slots_needed(duration_minutes: int) -> int:
        """Whole slots covering duration_minutes; a partial slot counts as a full one"""
        return -(-duration_minutes // SLOT_MINUTES)

    @staticmethod
    def slots_for_duration(start: int, duration_minutes: int,
                           open_time: int = Config.SLOT_OPEN_TIME,
                           close_time: int = Config.SLOT_CLOSE_TIME) -> List[int]:
        """
        Slots [start, start+30, ...] covering duration_minutes.

        Stops early instead of raising when a slot would fall outside
        [open_time, close_time); a result shorter than
        slots_needed(duration_minutes) means the duration does not fit.
        """
        slots = []
        current = start
        for _ in range(TimeSlotService.slots_needed(duration_minutes)):
            if current >= close_time or current < open_time:
                break
            if not TimeSlotService.is_valid_slot(current):
                break
            slots.append(current)
            current = TimeSlotService.next_slot(current)
        return slots

    @staticmethod
    def slot_range(open_time: int = Config.SLOT_OPEN_TIME,
                   close_time: int = Config.SLOT_CLOSE_TIME) -> List[int]:
        """All start slots in [open_time, close_time)"""
        if not TimeSlotService.is_valid_slot(open_time):
            raise ValueError(f"{open_time} is not a slot on the 30 minute grid")
        slots = []
        current = open_time
        while current < close_time and current < END_OF_DAY:
            slots.append(current)
            current = TimeSlotService.next_slot(current)
        return slots

    @staticmethod
    def span_slots(start_time: int, end_time: int) -> List[int]:
        """Slots occupied by a session running from start_time to end_time"""
        return TimeSlotService.slot_range(start_time, end_time)

    @staticmethod
    def slot_count(start_time: int, end_time: int) -> int:
        return len(TimeSlotService.span_slots(start_time, end_time))

    @staticmethod
    def is_reachable(start_time: int, end_time: int) -> bool:
        """True when end_time lies whole slots after start_time"""
        if not TimeSlotService.is_valid_slot(start_time) or not TimeSlotService.is_valid_end(end_time):
            return False
        return start_time < end_time

    @staticmethod
    def format_slot(slot: int) -> str:
        return f"{slot // 100:02d}:{slot % 100:02d}"

    @staticmethod
    def to_datetime(day: date, slot: int, tz: tzinfo) -> datetime:
        """Instant at which a slot starts on a given calendar date"""
        return datetime.combine(day, time(slot // 100, slot % 100), tzinfo=tz)
