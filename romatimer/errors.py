"""Exception taxonomy for Roma Timer.

Every error is a value-level result: callers catch it and turn it into a
rejected request.  Nothing here is fatal to the process.

``code`` is the stable identifier sent to WebSocket clients.
"""

from __future__ import annotations


class RomaTimerError(Exception):
    code = "internal_error"


# ── state conflicts ───────────────────────────────────────────────────────


class TimerStateError(RomaTimerError):
    code = "invalid_state"


class AlreadyRunning(TimerStateError):
    code = "already_running"

    def __init__(self) -> None:
        super().__init__("Timer session is already running")


class NotRunning(TimerStateError):
    code = "not_running"

    def __init__(self) -> None:
        super().__init__("Timer session is not running")


# ── validation ────────────────────────────────────────────────────────────


class ValidationError(RomaTimerError, ValueError):
    code = "validation_error"


class InvalidDuration(ValidationError):
    code = "invalid_duration"

    def __init__(self, value: int) -> None:
        self.value = value
        super().__init__(
            f"Timer session duration {value} is invalid (must be 1-7200 seconds)"
        )


class InvalidElapsed(ValidationError):
    code = "invalid_elapsed"

    def __init__(self, value: int) -> None:
        self.value = value
        super().__init__(
            f"Timer session elapsed time {value} is invalid (cannot exceed duration)"
        )


class InvalidTimestamps(ValidationError):
    code = "invalid_timestamps"

    def __init__(self) -> None:
        super().__init__("Timestamps are inconsistent (updated_at < created_at)")


class InvalidTimezone(ValidationError):
    code = "invalid_timezone"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid timezone: {name!r}")


class InvalidResetTime(ValidationError):
    code = "invalid_reset_time"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid daily reset time: {detail}")


class OutOfRange(ValidationError):
    code = "out_of_range"

    def __init__(self, min: int, max: int, value: int) -> None:
        self.min = min
        self.max = max
        self.value = value
        super().__init__(f"Value {value} is out of range ({min}-{max})")


class InvalidConfiguration(ValidationError):
    code = "invalid_configuration"

    def __init__(self, field: str, value, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# ── lookup / scheduling ───────────────────────────────────────────────────


class ConfigurationNotFound(RomaTimerError):
    code = "configuration_not_found"

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"No configuration for user {user_id!r}")


class InvalidCronExpression(ValidationError):
    code = "invalid_cron_expression"

    def __init__(self, expression: str) -> None:
        self.expression = expression
        super().__init__(f"Invalid cron expression: {expression!r}")


class UnsupportedTask(RomaTimerError):
    code = "unsupported_task"

    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"Unsupported task type: {task_type}")


# ── wire protocol ─────────────────────────────────────────────────────────


class InvalidMessage(ValidationError):
    code = "invalid_message"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid message: {detail}")


class UnknownMessageType(InvalidMessage):
    code = "unknown_message_type"

    def __init__(self, message_type) -> None:
        self.message_type = message_type
        super().__init__(f"unknown type {message_type!r}")
