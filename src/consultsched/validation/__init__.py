"""Validation module for verifying task and schedule correctness."""

from consultsched.validation.validator import (
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
    ValidationGroup,
    ValidationResult,
)

__all__ = [
    "ScheduleValidator",
    "ValidationError",
    "ValidationErrorType",
    "ValidationGroup",
    "ValidationResult",
]
