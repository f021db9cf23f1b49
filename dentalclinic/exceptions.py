# dentalclinic/exceptions.py
from fastapi import status


class ClinicError(Exception):
    """Base class for failures raised by the service layer."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(ClinicError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class ForbiddenError(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(ClinicError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation"


class ConflictError(ClinicError):
    # Booking clients expect a taken slot to come back as 400.
    status_code = status.HTTP_400_BAD_REQUEST
    code = "conflict"


class UpstreamError(ClinicError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream"
