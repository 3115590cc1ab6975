"""
Working hours and booking horizon rules.

All dates and times are local to the salon. The clock is injectable so the
horizon boundary can be tested deterministically.
"""

from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config import DayHours, Settings
from utils.datetime_utils import local_now
from utils.exceptions import StepCondition

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class BusinessPolicy:
    """Answers whether a date/time window is bookable."""

    def __init__(
        self,
        working_hours: Dict[str, DayHours],
        max_booking_days: int,
        now: Callable[[], datetime],
    ):
        self.working_hours = working_hours
        self.max_booking_days = max_booking_days
        self._now = now

    @classmethod
    def from_settings(
        cls, settings: Settings, now: Optional[Callable[[], datetime]] = None
    ) -> "BusinessPolicy":
        tz_name = settings.timezone
        return cls(
            working_hours=settings.working_hours,
            max_booking_days=settings.max_booking_days,
            now=now or (lambda: local_now(tz_name)),
        )

    def now(self) -> datetime:
        return self._now()

    def today(self) -> date:
        return self._now().date()

    @property
    def last_bookable_date(self) -> date:
        return self.today() + timedelta(days=self.max_booking_days)

    def hours_for(self, on_date: date) -> Optional[DayHours]:
        """Opening hours for the date, or None when the salon is closed."""
        hours = self.working_hours.get(WEEKDAYS[on_date.weekday()])
        if hours is None or not hours.open:
            return None
        return hours

    def opening_window(self, on_date: date) -> Optional[Tuple[time, time]]:
        """The whole working day as a (start, end) pair."""
        hours = self.hours_for(on_date)
        if hours is None:
            return None
        return hours.start, hours.end

    def is_within_horizon(self, on_date: date) -> bool:
        """Today through today + max_booking_days inclusive."""
        return self.today() <= on_date <= self.last_bookable_date

    def is_within_hours(self, on_date: date, start_time: time, end_time: Optional[time]) -> bool:
        hours = self.hours_for(on_date)
        if hours is None or end_time is None:
            return False
        return hours.start <= start_time and end_time <= hours.end and start_time < end_time

    def window_problems(
        self, on_date: date, start_time: time, end_time: Optional[time]
    ) -> List[Tuple[StepCondition, str]]:
        """
        Every reason the window cannot be booked, empty when it can.

        ``end_time`` is None when the appointment would run past midnight.
        """
        problems: List[Tuple[StepCondition, str]] = []
        today = self.today()

        if on_date < today:
            problems.append((StepCondition.DATE_IN_PAST, f"{on_date.isoformat()} is in the past"))
        elif on_date > self.last_bookable_date:
            problems.append(
                (
                    StepCondition.BEYOND_BOOKING_HORIZON,
                    f"Bookings are possible up to {self.max_booking_days} days in advance",
                )
            )
        elif on_date == today and start_time <= self.now().time():
            problems.append(
                (StepCondition.DATE_IN_PAST, f"{start_time.strftime('%H:%M')} has already passed")
            )

        hours = self.hours_for(on_date)
        if hours is None:
            problems.append(
                (StepCondition.BUSINESS_CLOSED, f"The salon is closed on {WEEKDAYS[on_date.weekday()]}")
            )
        elif not self.is_within_hours(on_date, start_time, end_time):
            problems.append(
                (
                    StepCondition.OUTSIDE_WORKING_HOURS,
                    f"Appointment must fit within {hours.start.strftime('%H:%M')}"
                    f"-{hours.end.strftime('%H:%M')}",
                )
            )

        return problems
