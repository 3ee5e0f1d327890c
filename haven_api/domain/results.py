# SPDX-License-Identifier: Apache-2.0

"""
Result containers shared by the workflow domain functions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from ..models.entities import Notification


class ErrorKind(str, Enum):
    """Why a workflow operation was rejected."""
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    DUPLICATE_PROFILE = "duplicate_profile"
    INVALID_STATE = "invalid_state"


@dataclass
class ValidationResult:
    """Result of a precondition check."""
    is_valid: bool
    errors: List[str]
    error_kind: Optional[ErrorKind] = None
    warnings: List[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []


@dataclass
class WorkflowResult:
    """Result of a workflow operation.

    ``entity`` is the mutated (copied) entity; ``notifications`` are the
    outbox records to persist together with it. ``changed`` is False when the
    operation was an idempotent no-op.
    """
    success: bool
    entity: Optional[Any] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    validation_errors: List[str] = None
    notifications: List[Notification] = field(default_factory=list)
    changed: bool = True

    def __post_init__(self):
        if self.validation_errors is None:
            self.validation_errors = []

    @classmethod
    def rejected(cls, validation: ValidationResult, message: str) -> "WorkflowResult":
        """Build a failed result from a failed precondition check."""
        return cls(
            success=False,
            error_message=message,
            error_kind=validation.error_kind or ErrorKind.VALIDATION,
            validation_errors=validation.errors
        )


def check(errors: List[str], kind: ErrorKind) -> ValidationResult:
    """Wrap collected errors into a ValidationResult of the given kind."""
    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        error_kind=kind if errors else None
    )
