import enum
from datetime import date
from typing import Optional

from pydantic import Field, model_validator

from noticeboard.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class RecurrenceType(enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    INTERVAL = "INTERVAL"
    RANDOM_WEEKLY = "RANDOM_WEEKLY"
    RANDOM_MONTHLY = "RANDOM_MONTHLY"
    RANDOM_DATE_RANGE = "RANDOM_DATE_RANGE"


RANDOM_TYPES = (
    RecurrenceType.RANDOM_WEEKLY,
    RecurrenceType.RANDOM_MONTHLY,
    RecurrenceType.RANDOM_DATE_RANGE,
)

# Range bounds are checked against a non-leap year, so Feb 29 is never a bound
RANGE_REFERENCE_YEAR = 2001


class RecurrenceRule(BaseModel):
    """
    Recurrence rule persisted as JSON on a notification.

    Field meaning by type:
    - WEEKLY / RANDOM_WEEKLY: day_of_week, 1 (Monday) to 7 (Sunday)
    - MONTHLY / RANDOM_MONTHLY: day_of_month, 1 to 31
    - YEARLY: month and day_of_month
    - RANDOM_DATE_RANGE: start_month/start_day to end_month/end_day, possibly
      crossing the year end; the drawn date is kept in month and day_of_month
    - INTERVAL: every interval_days days starting at anchor_date

    Random types carry their drawn value once random_values_initialized is set.
    """

    type: RecurrenceType
    day_of_week: Optional[int] = Field(default=None, ge=1, le=7)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    interval_days: Optional[int] = Field(default=None, ge=1)
    anchor_date: Optional[date] = None
    start_month: Optional[int] = Field(default=None, ge=1, le=12)
    start_day: Optional[int] = Field(default=None, ge=1, le=31)
    end_month: Optional[int] = Field(default=None, ge=1, le=12)
    end_day: Optional[int] = Field(default=None, ge=1, le=31)
    random_values_initialized: bool = False

    @model_validator(mode="after")
    def validate_for_type(self):
        rule_type = self.type
        if rule_type == RecurrenceType.WEEKLY and self.day_of_week is None:
            raise ValueError("Day of week is required for weekly recurrence")
        if rule_type == RecurrenceType.MONTHLY and self.day_of_month is None:
            raise ValueError("Day of month is required for monthly recurrence")
        if rule_type == RecurrenceType.YEARLY:
            if self.month is None or self.day_of_month is None:
                raise ValueError("Month and day of month are required for yearly recurrence")
            # Raises for impossible dates such as April 31; 2000 is a leap year
            date(2000, self.month, self.day_of_month)
        if rule_type == RecurrenceType.INTERVAL:
            if self.interval_days is None or self.anchor_date is None:
                raise ValueError("Interval days and anchor date are required for interval recurrence")
        if rule_type == RecurrenceType.RANDOM_DATE_RANGE:
            bounds = (self.start_month, self.start_day, self.end_month, self.end_day)
            if any(value is None for value in bounds):
                raise ValueError("Start and end month/day are required for random date range recurrence")
            date(RANGE_REFERENCE_YEAR, self.start_month, self.start_day)
            date(RANGE_REFERENCE_YEAR, self.end_month, self.end_day)
        if self.random_values_initialized:
            if rule_type == RecurrenceType.RANDOM_WEEKLY and self.day_of_week is None:
                raise ValueError("Initialized random weekly rule needs a day of week")
            if rule_type == RecurrenceType.RANDOM_MONTHLY and self.day_of_month is None:
                raise ValueError("Initialized random monthly rule needs a day of month")
            if rule_type == RecurrenceType.RANDOM_DATE_RANGE and (
                self.month is None or self.day_of_month is None
            ):
                raise ValueError("Initialized random date range rule needs a month and day of month")
        return self

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["RecurrenceRule"]:
        """Parse a stored rule. Blank input means no rule; invalid input raises ValidationError."""
        if raw is None or not raw.strip():
            return None
        return cls.model_validate_json(raw)
