from fastapi import status


class ProxyError(Exception):
    """Base error; every subclass ends the request with a plain-text body."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Empty SQL, unknown method, malformed body or header bytes
class ClientFormatError(ProxyError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ProxyError):
    status_code = status.HTTP_401_UNAUTHORIZED


# The database refused the statement (or `get` found nothing)
class ExecutionError(ProxyError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
