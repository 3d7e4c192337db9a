"""
Structured validation outcomes.

Validation-style operations return these instead of raising: an invalid
input is an expected result, not a system failure.
"""

from dataclasses import dataclass, field as dc_field
from typing import Any, Optional

from src.core.enums import ValidationSeverity


@dataclass
class ValidationIssue:
    """A single error or warning found during validation."""

    code: str
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR
    field: Optional[str] = None
    context: dict[str, Any] = dc_field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "field": self.field,
            "context": self.context,
        }


@dataclass
class ValidationResult:
    """Accumulated errors and warnings; valid when there are no errors."""

    errors: list[ValidationIssue] = dc_field(default_factory=list)
    warnings: list[ValidationIssue] = dc_field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def add_error(self, code: str, message: str, field: Optional[str] = None, **context: Any) -> None:
        self.errors.append(ValidationIssue(code, message, ValidationSeverity.ERROR, field, context))

    def add_warning(self, code: str, message: str, field: Optional[str] = None, **context: Any) -> None:
        self.warnings.append(ValidationIssue(code, message, ValidationSeverity.WARNING, field, context))

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Fold another result's findings into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    @classmethod
    def failure(cls, code: str, message: str, field: Optional[str] = None) -> "ValidationResult":
        result = cls()
        result.add_error(code, message, field)
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }
