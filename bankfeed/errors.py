# bankfeed/errors.py
# Role: Error taxonomy raised by the services and mapped to HTTP responses
#       by the single exception handler registered in bankfeed/main.py.


class BankFeedError(Exception):
    """Base class for all expected, user-visible failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BankFeedError):
    """Missing account, transaction, invoice, bill or batch."""

    status_code = 404


class ValidationFailed(BankFeedError):
    """Missing required field, unrecognized category, malformed allocation."""

    status_code = 400


class Conflict(BankFeedError):
    """Mutating a reconciled transaction, or a duplicate on the strict-insert path."""

    status_code = 409


class ParseFailure(BankFeedError):
    """The whole statement file is unreadable (bad encoding, corrupt archive)."""

    status_code = 422
