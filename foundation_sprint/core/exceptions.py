class FoundationSprintError(Exception):
    """Base exception for the Foundation Sprint service.

    ``status_code`` is the HTTP status the API layer reports for this error.
    """

    status_code: int = 500


class ValidationError(FoundationSprintError):
    """Raised when required input is missing or malformed."""

    status_code = 400


class NotFoundError(FoundationSprintError):
    """Raised when a sprint id is unknown."""

    status_code = 404

    def __init__(self, sprint_id: str):
        self.sprint_id = sprint_id
        super().__init__(f"Sprint not found: {sprint_id}")


class ConflictError(FoundationSprintError):
    """Raised when an operation does not fit the sprint's current phase or status."""

    status_code = 409


class ProviderError(FoundationSprintError):
    """Raised when the text-completion provider fails or returns no usable text."""

    status_code = 502
