class ResponseError(RuntimeError):
    """Structured failure of an outbound call.

    Carries the fields a downstream API reports on error (``code``, ``message``,
    ``info``) together with the HTTP status and the underlying exception, if any.
    """

    def __init__(
        self,
        code: str = "",
        message: str = "",
        status_code: int = 0,
        error: BaseException | None = None,
        info: str = "",
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.error = error
        self.info = info
        super().__init__(message or (str(error) if error is not None else code))

    def __repr__(self) -> str:
        return (
            f"ResponseError(code={self.code!r}, message={self.message!r}, "
            f"status_code={self.status_code}, info={self.info!r}, error={self.error!r})"
        )


class TransportError(Exception):
    """No response was received (connection failure, timeout)."""


class BodyReadError(Exception):
    """A response arrived but its body could not be read."""

    def __init__(self, status_code: int, cause: BaseException):
        self.status_code = status_code
        self.cause = cause
        super().__init__(f"failed reading body of {status_code} response: {cause}")


class BreakerOpenError(RuntimeError):
    """The breaker rejected the call without running it."""


class BreakerTimeoutError(RuntimeError):
    """The call finished after the breaker's timeout and was counted as a failure."""
