"""Exceptions shared by the outbound transports."""


class TransportError(Exception):
    """A call to an external service failed.

    Attributes:
        status_code: HTTP status of the failed response, if one was received
    """

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code
