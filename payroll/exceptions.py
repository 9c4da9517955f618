from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError

__all__ = ["ConflictError", "NotFoundError", "UpstreamUnavailable", "ValidationError"]


class NotFoundError(NotFound):
    default_detail = "Salary record not found."
    default_code = "not_found"


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A salary record already exists for this employee and period."
    default_code = "conflict"


class UpstreamUnavailable(APIException):
    """Attendance, incentive or directory source could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Upstream payroll source is unavailable."
    default_code = "upstream_unavailable"

    def __init__(self, detail=None, code=None, *, source: str = ""):
        super().__init__(detail, code)
        self.source = source
