"""Custom exceptions for the delivery notes ledger."""


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class NoteLedgerError(Exception):
    """Base exception for all ledger errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv


class ValidationError(NoteLedgerError):
    """Raised when a request is rejected before anything is written."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class DuplicateProductError(ValidationError):
    """Raised when the same product appears on more than one line of a note."""
    def __init__(self, product_ids):
        self.product_ids = sorted(product_ids)
        ids = ', '.join(str(pid) for pid in self.product_ids)
        super().__init__(
            f"Duplicate product on note lines: {ids}",
            payload={'product_ids': self.product_ids}
        )


class DuplicateNoteCodeError(ValidationError):
    """Raised when a note code is already taken."""
    def __init__(self, code):
        self.code = code
        super().__init__(f"Note code '{code}' already exists", payload={'code': code})


class InvalidStatusError(ValidationError):
    """Raised for a value that is not a known note status."""
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid note status: {value!r}", payload={'status_value': str(value)})


class InvalidStatusTransitionError(ValidationError):
    """Raised when the transition table forbids a status change."""
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move note from {current.name} to {requested.name}",
            status_code=409
        )


class ImmutableNoteError(ValidationError):
    """Raised when a committed note's code, total or lines would change."""
    def __init__(self, message):
        super().__init__(message, status_code=409)


class NotFoundError(NoteLedgerError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnknownProductError(NotFoundError):
    """Raised when a note line references a product that does not exist."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found", payload={'product_id': product_id})


class InsufficientStockError(NoteLedgerError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available, product_id=None):
        self.product_id = product_id
        self.required = required
        self.available = available
        message = (
            f"Insufficient stock for {product_name}: "
            f"requested {_fmt_qty(required)}, available {_fmt_qty(available)}"
        )
        super().__init__(message, status_code=409, payload={'product_id': product_id})


class NegativeStockError(InsufficientStockError):
    """Raised by the catalog when a decrement would drive stock below zero."""


class ConcurrencyConflict(NoteLedgerError):
    """Raised when a commit collided with another transaction and was rolled back."""
    def __init__(self, message="The note could not be committed because of a concurrent update, retry"):
        super().__init__(message, status_code=409)
