"""
Exchange gateway errors.
"""


class ExchangeError(Exception):
    """
    The exchange rejected a request or answered with garbage.

    Attributes:
        status: HTTP status of the response, if one was received
        code: Exchange error code from the response body, if any
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: int | str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class ExchangeTimeoutError(ExchangeError):
    """
    The request timed out or the connection dropped.

    The exchange may or may not have acted on it.
    """


class ExchangeRequestNotSentError(ExchangeError):
    """
    The request failed before it was sent.

    The exchange never saw it, so nothing was executed.
    """
