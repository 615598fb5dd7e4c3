from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidAmount(ValueError):
    """Raised when an untrusted amount is not a non-negative decimal with at most 2 places."""

    def __init__(self, raw: object, reason: str = "Enter a valid amount") -> None:
        super().__init__(f"{reason}: {raw!r}")
        self.raw = raw
        self.reason = reason


class UnknownFeeItem(KeyError):
    """Raised when a selection refers to an item that is not in the fee catalog."""

    def __init__(self, item_id: str) -> None:
        super().__init__(item_id)
        self.item_id = item_id


class ItemNotSelected(ValueError):
    """Raised when an override is set on an item that is not selected."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Fee item {item_id} is not selected")
        self.item_id = item_id


class BackendError(ServiceError):
    """Failure reported by (or while reaching) the external fee backend."""

    def __init__(self, message: str, status_code: int = status.HTTP_502_BAD_GATEWAY) -> None:
        super().__init__(message, status_code)


class CatalogFetchError(BackendError):
    pass


class SubmissionError(BackendError):
    pass


class AdjustmentError(BackendError):
    pass
