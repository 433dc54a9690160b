# common/responses.py
from rest_framework.response import Response


def domain_error_response(exc):
    """
    Domain exceptions carry `code` and `status_code`; render them the same
    way everywhere: {"detail": ..., "code": ...}.
    """
    return Response(
        {"detail": str(exc), "code": getattr(exc, "code", "error")},
        status=getattr(exc, "status_code", 400),
    )
