import json
import logging
from datetime import datetime, timezone


class JsonFormatter(logging.Formatter):
    """Small JSON logger for request/ops logs without extra dependencies."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in (
            "request_id",
            "user_id",
            "client_ip",
            "method",
            "path",
            "view",
            "route",
            "status_code",
            "duration_ms",
            "category_id",
            "attribute_id",
            "listing_id",
            "field_name",
            "values_deleted",
        ):
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)
