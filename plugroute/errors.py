"""Base error type shared by every router component"""


class RouterError(Exception):
    """Base class for all routing errors.

    ``code`` is the stable error code reported to hosts.
    """
    code = "ROUTER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
