class ServiceError(Exception):
    """Base class for failures reported back to callers.

    ``message`` is user facing; ``status_code`` is the HTTP status the API
    answers with.
    """

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(ServiceError):
    status_code = 401
    default_message = "Not authenticated"


class InvalidCredentials(ServiceError):
    status_code = 401
    default_message = "Invalid email or password"


class InvalidApiKey(ServiceError):
    status_code = 401
    default_message = "Invalid API key"


class AccessDenied(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Channel not found"


class EmailInUse(ServiceError):
    status_code = 409
    default_message = "Email already in use"


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Invalid field numbers"
