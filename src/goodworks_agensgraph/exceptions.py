from typing import Any, Dict, Union


class GoodWorksError(Exception):
    """Base class for errors raised by the GoodWorks data-access layer."""


class ValidationError(GoodWorksError):
    """Malformed input, such as an identifier that is not a graph id."""


class ExternalDependencyError(GoodWorksError):
    """A remote collaborator (the geocoding service) failed or returned an error status."""


class NotFoundOrUnauthorized(GoodWorksError):
    """The target record does not exist or is not owned by the caller."""


class ConflictError(GoodWorksError):
    """A uniqueness constraint could not be satisfied, e.g. no free slug was found."""


class GraphQueryException(GoodWorksError):
    """Exception for the AgensGraph queries."""

    def __init__(self, exception: Union[str, Dict]) -> None:
        if isinstance(exception, dict):
            self.message = exception["message"] if "message" in exception else "unknown"
            self.details = exception["details"] if "details" in exception else "unknown"
        else:
            self.message = exception
            self.details = "unknown"
        super().__init__(self.message)

    def get_message(self) -> str:
        return self.message

    def get_details(self) -> Any:
        return self.details
