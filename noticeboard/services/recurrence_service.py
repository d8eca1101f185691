import calendar
import random
from datetime import date, timedelta
from typing import Optional, Union

from pydantic import ValidationError

from noticeboard.schemas.recurrence_schemas import (
    RANDOM_TYPES,
    RANGE_REFERENCE_YEAR,
    RecurrenceRule,
    RecurrenceType,
)
from noticeboard.utils.logging import get_logger

logger = get_logger()

RuleInput = Union[RecurrenceRule, str, None]

# Random monthly days stop at 28 so the drawn day exists in every month
RANDOM_MONTHLY_MAX_DAY = 28
NEXT_OCCURRENCE_HORIZON_DAYS = 366


def parse_rule(rule: RuleInput) -> Optional[RecurrenceRule]:
    """
    Normalize a stored or in-memory rule.

    Returns None for absent, blank or malformed rules; malformed ones are logged.
    """
    if rule is None or isinstance(rule, RecurrenceRule):
        return rule
    try:
        return RecurrenceRule.from_json(rule)
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning(f"Malformed recurrence rule ignored: {rule!r} ({e.__class__.__name__})")
        return None


def is_occurrence(rule: RuleInput, on_date: date) -> bool:
    """
    Decide whether `on_date` is an occurrence of `rule`.

    Pure and deterministic: the same (rule, date) always gives the same answer.
    Anything that cannot be evaluated (bad JSON, unknown type, a random rule whose
    value was never drawn) is treated as "not an occurrence".
    """
    parsed = parse_rule(rule)
    if parsed is None:
        return False

    rule_type = parsed.type

    if rule_type in RANDOM_TYPES and not parsed.random_values_initialized:
        logger.warning(f"Random recurrence rule evaluated before initialization: {parsed.to_json()}")
        return False

    if rule_type == RecurrenceType.DAILY:
        return True

    if rule_type in (RecurrenceType.WEEKLY, RecurrenceType.RANDOM_WEEKLY):
        return parsed.day_of_week is not None and on_date.isoweekday() == parsed.day_of_week

    if rule_type in (RecurrenceType.MONTHLY, RecurrenceType.RANDOM_MONTHLY):
        return _matches_day_of_month(parsed.day_of_month, on_date)

    if rule_type in (RecurrenceType.YEARLY, RecurrenceType.RANDOM_DATE_RANGE):
        return on_date.month == parsed.month and on_date.day == parsed.day_of_month

    if rule_type == RecurrenceType.INTERVAL:
        if parsed.anchor_date is None or not parsed.interval_days:
            return False
        delta = (on_date - parsed.anchor_date).days
        return delta >= 0 and delta % parsed.interval_days == 0

    return False


def _matches_day_of_month(day_of_month: Optional[int], on_date: date) -> bool:
    if day_of_month is None:
        return False
    # A 31st-of-month rule has no occurrence in 30-day months
    days_in_month = calendar.monthrange(on_date.year, on_date.month)[1]
    if day_of_month > days_in_month:
        return False
    return on_date.day == day_of_month


class RecurrenceService:
    """Evaluates recurrence rules and prepares randomized ones for storage."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def is_occurrence(self, rule: RuleInput, on_date: date) -> bool:
        return is_occurrence(rule, on_date)

    def initialize_random_values(self, rule: RecurrenceRule) -> RecurrenceRule:
        """
        Draw the day for RANDOM_WEEKLY / RANDOM_MONTHLY rules, or the month and day
        for RANDOM_DATE_RANGE rules.

        Already initialized rules and non-random types come back unchanged.
        """
        if rule.type not in RANDOM_TYPES or rule.random_values_initialized:
            return rule

        if rule.type == RecurrenceType.RANDOM_WEEKLY:
            return rule.model_copy(
                update={
                    "day_of_week": self.rng.randint(1, 7),
                    "random_values_initialized": True,
                }
            )

        if rule.type == RecurrenceType.RANDOM_DATE_RANGE:
            drawn = self._draw_date_in_range(rule)
            return rule.model_copy(
                update={
                    "month": drawn.month,
                    "day_of_month": drawn.day,
                    "random_values_initialized": True,
                }
            )

        return rule.model_copy(
            update={
                "day_of_month": self.rng.randint(1, RANDOM_MONTHLY_MAX_DAY),
                "random_values_initialized": True,
            }
        )

    def _draw_date_in_range(self, rule: RecurrenceRule) -> date:
        start = date(RANGE_REFERENCE_YEAR, rule.start_month, rule.start_day)
        end = date(RANGE_REFERENCE_YEAR, rule.end_month, rule.end_day)
        if end < start:
            # Crosses the year end, e.g. Dec 15 to Jan 15
            end = end.replace(year=RANGE_REFERENCE_YEAR + 1)
        span = (end - start).days + 1
        return start + timedelta(days=self.rng.randrange(span))

    def next_occurrence_date(
        self,
        rule: RuleInput,
        from_date: date,
        horizon_days: int = NEXT_OCCURRENCE_HORIZON_DAYS,
    ) -> Optional[date]:
        """First occurrence on or after `from_date`, or None within the horizon."""
        parsed = parse_rule(rule)
        if parsed is None:
            return None

        if parsed.type == RecurrenceType.INTERVAL and parsed.anchor_date and parsed.interval_days:
            if from_date <= parsed.anchor_date:
                return parsed.anchor_date
            elapsed = (from_date - parsed.anchor_date).days
            steps = -(-elapsed // parsed.interval_days)
            return parsed.anchor_date + timedelta(days=steps * parsed.interval_days)

        if parsed.type == RecurrenceType.YEARLY and parsed.month == 2 and parsed.day_of_month == 29:
            # Feb 29 can be up to eight years away
            horizon_days = max(horizon_days, 8 * 366)

        for offset in range(horizon_days + 1):
            candidate = from_date + timedelta(days=offset)
            if is_occurrence(parsed, candidate):
                return candidate
        return None
