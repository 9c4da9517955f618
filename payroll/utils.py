from rest_framework.response import Response
from rest_framework.views import exception_handler


def payroll_exception_handler(exc, context):
    """Wrap DRF error responses in the same envelope as api_response"""
    response = exception_handler(exc, context)

    if response is not None:
        body = {
            "success": False,
            "message": "An error occurred",
            "data": None,
            "errors": [],
        }

        if isinstance(response.data, dict):
            if "detail" in response.data and len(response.data) == 1:
                body["message"] = str(response.data["detail"])
            else:
                body["message"] = "Validation failed"
                body["errors"] = response.data
        elif isinstance(response.data, list):
            body["errors"] = response.data
        else:
            body["message"] = str(response.data)

        response.data = body

    return response


def api_response(success=True, message="", data=None, errors=None, status=200):
    """Consistent API response format"""
    response_data = {
        "success": success,
        "message": message,
        "data": data if data is not None else {},
        "errors": errors if errors is not None else [],
    }
    return Response(response_data, status=status)
