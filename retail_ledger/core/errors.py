from fastapi import status


class LedgerError(Exception):
    """Base class for every typed failure raised by ledger and contract operations."""

    code = "LedgerError"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.code
        super().__init__(self.message)


class InvalidQuantity(LedgerError):
    code = "InvalidQuantity"


class InsufficientStock(LedgerError):
    code = "InsufficientStock"
    status_code = status.HTTP_409_CONFLICT


class OverSale(LedgerError):
    code = "OverSale"
    status_code = status.HTTP_409_CONFLICT


class OverReturn(LedgerError):
    code = "OverReturn"
    status_code = status.HTTP_409_CONFLICT


class InvalidTerms(LedgerError):
    code = "InvalidTerms"


class ContractAlreadySettled(LedgerError):
    code = "ContractAlreadySettled"
    status_code = status.HTTP_409_CONFLICT


class ContractCancelled(LedgerError):
    code = "ContractCancelled"
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(LedgerError):
    code = "ConcurrencyConflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class NotFound(LedgerError):
    code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
