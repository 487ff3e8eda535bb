"""Document store exceptions."""

from chatsync.core.exceptions import CapacityError, ExternalServiceError


class StoreError(ExternalServiceError):
    """A store read, write or live query failed."""

    error_type = "store_error"

    def __init__(self, message: str = "Document store operation failed"):
        super().__init__(message)


class StorePermissionError(StoreError):
    """The store rejected the operation for the current credentials."""

    status_code = 403
    error_type = "store_permission_denied"

    def __init__(self, message: str = "Permission denied by document store"):
        super().__init__(message)


class DocumentNotFoundError(StoreError):
    """An update or batch targeted a document that does not exist."""

    status_code = 404
    error_type = "document_not_found"

    def __init__(self, message: str = "Document not found"):
        super().__init__(message)


class SubscriptionLimitError(CapacityError):
    """Opening another live query would exceed the process-wide cap."""

    error_type = "subscription_limit"

    def __init__(self, message: str = "Too many open live subscriptions"):
        super().__init__(message)
