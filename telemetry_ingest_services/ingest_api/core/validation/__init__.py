from .reading_validator import (
    ReadingValidator,
    ValidationErrorCode,
    ValidationIssue,
    ValidationResult,
    utc_now,
    validate_reading,
)

__all__ = [
    "ReadingValidator",
    "ValidationErrorCode",
    "ValidationIssue",
    "ValidationResult",
    "utc_now",
    "validate_reading",
]
