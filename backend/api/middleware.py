import logging
import time
import uuid


def _get_client_ip(request) -> str | None:
    # Best-effort for logging only; proxy trust is not validated.
    xff = request.META.get("HTTP_X_FORWARDED_FOR")
    if xff:
        ip = str(xff).split(",")[0].strip()
        return ip or None
    ip = request.META.get("REMOTE_ADDR")
    return str(ip).strip() if ip else None


logger = logging.getLogger("classifieds.request")


class RequestIdAndLoggingMiddleware:
    """Attach a request id to each request and log API requests.

    - Accepts an incoming X-Request-ID if provided.
    - Always emits X-Request-ID in the response.
    - Adds `request_id` to API error bodies that views returned directly.
    - Logs one line per /api/ request with request_id, user_id, status_code, duration_ms.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.perf_counter()

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.request_id = request_id

        response = self.get_response(request)
        is_api = request.path.startswith("/api/")

        status_code = getattr(response, "status_code", None)
        data = getattr(response, "data", None)
        if is_api and status_code is not None and int(status_code) >= 400 and isinstance(data, dict):
            data.setdefault("request_id", request_id)
            if "detail" in data and "error" not in data:
                data["error"] = {"message": str(data.get("detail"))}
            # The body was rendered before this point.
            if getattr(response, "is_rendered", False):
                response.content = response.rendered_content

        response["X-Request-ID"] = request_id

        if is_api:
            user = getattr(request, "user", None)
            match = getattr(request, "resolver_match", None)
            logger.info(
                "request",
                extra={
                    "request_id": request_id,
                    "user_id": user.id if user is not None and user.is_authenticated else None,
                    "client_ip": _get_client_ip(request),
                    "method": request.method,
                    "path": request.path,
                    "view": getattr(match, "view_name", None),
                    "route": getattr(match, "route", None),
                    "status_code": status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
                },
            )

        return response
