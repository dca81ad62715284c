"""Failures raised by the listing refresh collaborators."""


class ItemRefreshError(Exception):
    """A single listing could not be refreshed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(ItemRefreshError):
    """The listing page could not be downloaded."""


class ExtractionError(ItemRefreshError):
    """The structured-extraction service failed or refused the request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.response_body = response_body
