"""Service-layer error taxonomy.

Services raise these; create_app registers one handler that turns them
into JSON responses with the matching HTTP status code.
"""


class ServiceError(Exception):
    """Base for errors surfaced to API callers unmodified."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """A referenced request, machine or user does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """A unique key is already taken (e.g. machine code)."""

    status_code = 409


class PermissionDeniedError(ServiceError):
    """The actor may not perform this operation on this request."""

    status_code = 403


class ValidationError(ServiceError):
    """Input is well-formed JSON but semantically invalid."""

    status_code = 422
