"""Exception hierarchy for Imagegate.

``ValidationError`` subclasses are raised before the backend is ever called
and map to HTTP 400.  ``BackendError`` is raised by backends for failures the
remote service reports; the gateway maps it (and any other backend exception)
to HTTP 500.
"""


class ImagegateError(Exception):
    """Base class for all Imagegate errors."""


class ValidationError(ImagegateError):
    """User-friendly validation error.

    The message is intended to be returned directly to the caller.
    """


class PromptRequiredError(ValidationError):
    """The request carried no usable prompt."""

    def __init__(self, message: str = "Prompt is required") -> None:
        super().__init__(message)


class BackendError(ImagegateError):
    """The inference backend rejected or failed a generation request.

    Attributes:
        status_code: HTTP status returned by a remote backend, if any.
        body: Response body text returned by a remote backend, if any.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
