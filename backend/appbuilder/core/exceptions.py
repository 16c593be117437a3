class AppBuilderError(Exception):
    """Base exception for the App Builder backend."""

    pass


class NotFoundError(AppBuilderError):
    """Raised when a record does not exist or is not owned by the caller.

    Both cases are reported identically so callers cannot probe for the
    existence of other users' records.
    """

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found or not authorized")


class GenerationServiceError(AppBuilderError):
    """Raised when the AI service call fails or returns an unusable response.

    Timeouts, quota/auth errors, malformed envelopes and empty bodies all
    surface as this single error kind.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RequirementsValidationError(AppBuilderError):
    """Raised when user-supplied requirements input fails validation."""

    pass
