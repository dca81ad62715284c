"""Typed failures raised by the identity broker and the token exchange."""


class AuthError(Exception):
    """Base exception for authentication failures."""


class BrokerError(AuthError):
    """The identity broker could not produce a third-party token."""


class ExchangeRejectedError(AuthError):
    """The remote API refused the third-party token."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(AuthError):
    """Transport-level failure talking to the remote API or identity provider."""


class LoginFailedError(ExchangeRejectedError):
    """
    Interactive login exhausted its attempts.

    Carries the message and status code of the final rejection, which is
    also available as ``last_error``.
    """

    def __init__(self, last_error: ExchangeRejectedError, attempts: int):
        super().__init__(str(last_error), status_code=last_error.status_code)
        self.attempts = attempts
        self.last_error = last_error
