from __future__ import annotations

from typing import Any

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from market.attributes.errors import (
    AttributeCoreError,
    AttributeValidationFailed,
    DuplicateFieldName,
    NotFound,
)


def status_for(exc: AttributeCoreError) -> int:
    if isinstance(exc, DuplicateFieldName):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


def _attribute_error_response(exc: AttributeCoreError) -> Response:
    data: dict[str, Any] = {"detail": exc.message, "error": exc.as_dict()}
    if isinstance(exc, AttributeValidationFailed):
        data["errors"] = [err.as_dict() for err in exc.errors]
    return Response(data, status=status_for(exc))


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    """DRF exception handler that adds request correlation without breaking clients.

    This keeps DRF's default error shapes, but:
    - Converts attribute core errors into `{detail, error: {code, message}}` bodies
      (plus `errors` for aggregated validation failures).
    - Adds `request_id` to dict-based error responses when available.
    - Adds a lightweight `error` object for common `detail` errors (additive).
    """

    if isinstance(exc, AttributeCoreError):
        response = _attribute_error_response(exc)
    else:
        response = drf_exception_handler(exc, context)
    if response is None:
        return None

    request = context.get("request")
    request_id = getattr(request, "request_id", None)

    data = getattr(response, "data", None)

    if isinstance(data, dict) and request_id and "request_id" not in data:
        data["request_id"] = request_id

    if isinstance(data, dict) and "detail" in data and "error" not in data:
        data["error"] = {"message": str(data.get("detail"))}
        code = getattr(exc, "default_code", None)
        if code:
            data["error"]["code"] = str(code)

    return response
