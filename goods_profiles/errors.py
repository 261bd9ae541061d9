from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status
        self.details = details


class RecordStoreError(Exception):
    """Base of the failure kinds a record operation can end with."""

    kind = "fatal"

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.record_id = record_id


class RecordNotFoundError(RecordStoreError):
    kind = "not_found"


class RecordLockedError(RecordStoreError):
    kind = "locked"


class RecordInactiveError(RecordStoreError):
    kind = "inactive"


class DuplicateKeyConflictError(RecordStoreError):
    kind = "conflict"


class StoreUnavailableError(RecordStoreError):
    kind = "fatal"


class TraderProfileNotFoundError(Exception):
    def __init__(self, eori: str) -> None:
        super().__init__(f"trader profile not found: {eori}")
        self.eori = eori
