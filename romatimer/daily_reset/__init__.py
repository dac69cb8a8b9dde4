"""Daily reset package."""

from .scheduler import (
    calculate_next_reset_time,
    daily_reset_cron_expression,
    get_current_session_count,
    localize,
    resolve_reset_time,
    should_reset_today,
    todays_reset_time,
    validate_session_count,
)
from .service import DailyResetService, ResetType, TriggerSource, MAX_TASK_FAILURES

__all__ = [
    "calculate_next_reset_time",
    "daily_reset_cron_expression",
    "get_current_session_count",
    "localize",
    "resolve_reset_time",
    "should_reset_today",
    "todays_reset_time",
    "validate_session_count",
    "DailyResetService",
    "ResetType",
    "TriggerSource",
    "MAX_TASK_FAILURES",
]
