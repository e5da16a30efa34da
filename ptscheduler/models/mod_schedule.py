from pydantic import BaseModel, Field
from typing import Dict, List
from datetime import date

# Time of day encoded as HHMM on a 30 minute grid (930 = 09:30)
TimeSlot = int

# {date: [start slot, start slot, ...]}, each slot is 30 minutes long.
# Key order carries no meaning; consumers sort explicitly.
DaySchedule = Dict[date, List[TimeSlot]]

class Schedule(BaseModel):
    """One concrete session occurrence: a date and a [start_time, end_time) slot span"""
    date: date
    start_time: TimeSlot
    end_time: TimeSlot

    def sort_key(self):
        return (self.date, self.start_time)

class WeekSchedule(BaseModel):
    """Weekly recurrence template. day follows date.weekday() (0=Monday, 6=Sunday)"""
    day: int = Field(ge=0, le=6)
    start_time: TimeSlot
    end_time: TimeSlot

class CheckedSchedule(BaseModel):
    success: List[Schedule] = []
    fail: List[Schedule] = []
    week_schedules: List[WeekSchedule] = []
    requested_count: int = 0
