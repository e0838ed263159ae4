"""Domain error kinds raised by the service layer.

Each kind carries the HTTP status the API layer answers with. Server-side
kinds (status >= 500) keep their message out of the response body.
"""


class CanteenError(Exception):
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    @property
    def response_message(self) -> str:
        if self.status_code >= 500:
            return self.public_message
        return self.message


class ValidationError(CanteenError):
    status_code = 400
    public_message = "Invalid request"


class InsufficientFunds(CanteenError):
    status_code = 400
    public_message = "Insufficient wallet balance"


class AuthError(CanteenError):
    status_code = 401
    public_message = "Not authenticated"


class NotFound(CanteenError):
    status_code = 404
    public_message = "Not found"


class InvalidTransition(CanteenError):
    status_code = 409
    public_message = "Order cannot move to that status"


class GatewayError(CanteenError):
    public_message = "Payment gateway error"


class StoreError(CanteenError):
    public_message = "Could not complete the request"


class IdAllocationError(StoreError):
    pass
