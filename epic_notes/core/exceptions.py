"""
Centralised custom exceptions.
Redirects are NOT exceptions here. Flow transitions come back from services as
Continue/Redirect results (see core/responses.py). These classes cover the
genuine error cases only.
"""
from fastapi import HTTPException, status


class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundException(HTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class ConflictException(HTTPException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class UnknownProviderException(HTTPException):
    def __init__(self, provider_name: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown auth provider: {provider_name}",
        )


class EmailDeliveryError(Exception):
    """
    Raised by the email service when the SMTP send fails.
    Routers turn it into a form error; it never reaches the client as a 500 page.
    """


class ProviderAuthError(Exception):
    """
    Raised when an OAuth provider exchange fails (bad code, state mismatch,
    provider outage). The message is for server logs only.
    """

    def __init__(self, message: str, provider_name: str):
        super().__init__(message)
        self.provider_name = provider_name
