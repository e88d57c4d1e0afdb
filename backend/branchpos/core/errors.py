"""Domain exceptions raised by the service layer.

Services raise these; the API layer turns them into HTTP responses through
a single exception handler registered in ``branchpos.main``.
"""


class POSError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400
    code = "pos_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class OrderValidationError(POSError):
    """Input the cashier can correct: empty cart, bad discount, short cash."""

    status_code = 400
    code = "validation_error"


class NotFoundError(POSError):
    status_code = 404
    code = "not_found"


class TableUnavailableError(POSError):
    """The table is already occupied, inactive, or was taken concurrently."""

    status_code = 409
    code = "table_unavailable"


class InvalidStateError(POSError):
    """The record exists but its lifecycle state forbids the operation."""

    status_code = 409
    code = "invalid_state"


class NumberingConflictError(POSError):
    """A unique sale number could not be allocated; the checkout can be retried."""

    status_code = 409
    code = "numbering_conflict"


class PermissionDeniedError(POSError):
    status_code = 403
    code = "forbidden"
