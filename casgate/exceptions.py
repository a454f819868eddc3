class AuthenticationFailure(Exception):
    """
    Base class for every failure reported by a CAS server round trip.
    """
    pass

class RequestInvalidError(AuthenticationFailure):
    pass

class TicketInvalidError(AuthenticationFailure):
    pass

class ServiceInvalidError(AuthenticationFailure):
    pass

class MissingPGT(AuthenticationFailure):
    """
    The CAS server answered without a proxyGrantingTicket although a pgtUrl
    was supplied. Usually the server could not reach the callback URL.
    """
    pass

class ServerUnavailable(AuthenticationFailure):
    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message)
        self.status_code = status_code

class InvalidCallError(ValueError):
    """
    Raised before any I/O when a caller breaks an argument contract.
    """
    pass

class URLParseError(ValueError):
    pass
