"""Domain errors raised by the service layer.

Routes never build error payloads for these themselves; the handlers
registered in ``admissions_backend.main`` turn them into the standard
``{"success": false, "message": ...}`` envelope.
"""


class DomainError(Exception):
    """Base class for business errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(DomainError):
    """A referenced entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, status_code: int | None = None) -> None:
        self.entity = entity
        super().__init__(f'{entity} not found', status_code=status_code)


class ValidationError(DomainError):
    """Malformed input or a reference to the wrong kind of record."""


class ConflictError(DomainError):
    """The request breaks a booking rule (capacity, overlap, duplicate)."""
