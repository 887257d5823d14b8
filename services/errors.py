"""Domain exceptions raised by the expense and budget services."""


class ExpenseCalendarError(Exception):
    """Base class for service-layer failures."""


class ValidationError(ExpenseCalendarError, ValueError):
    """Raised when a required field is missing or has the wrong type."""


class NotFoundError(ExpenseCalendarError, LookupError):
    """Raised when no record exists for the given id."""


class StoreError(ExpenseCalendarError):
    """Raised when the underlying database operation fails."""
