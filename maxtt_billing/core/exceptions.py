"""Exceptions raised by the billing core.

Soft risk signals (outlier level, tyre-count mismatch, missing consent) are
values on the workflow run, not exceptions. Only conditions that stop the
caller from proceeding are raised.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationIssue:
    """A single blocking problem, addressable to a form field or wheel position."""

    field: str
    message: str
    position: str | None = None


class BillingCoreError(Exception):
    """Base class for billing core errors."""


class BlockingValidationError(BillingCoreError):
    """Draft inputs cannot produce an invoice."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


class InvalidTransitionError(BillingCoreError):
    """A workflow transition was requested from a state that does not allow it."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move from '{current}' to '{requested}'")


class ConfirmationBlockedError(BillingCoreError):
    """The review guard is not satisfied yet."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = reasons
        super().__init__("; ".join(reasons))


class PersistenceError(BillingCoreError):
    """Saving or fetching an invoice through the billing API failed."""

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)
