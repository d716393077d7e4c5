import logging
import os
import re
import uuid
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger


request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_BEARER_RE = re.compile(r"(Bearer\s+)[^\s,;\"']+", re.IGNORECASE)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        # The formatter expects ``request_id`` unconditionally, including for
        # startup logs emitted outside a request.
        record.request_id = request_id_ctx.get() or ""
        return True


class BearerRedactionFilter(logging.Filter):
    """Replace bearer credentials in rendered messages with a placeholder."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        message = record.getMessage()
        redacted = _BEARER_RE.sub(r"\1[redacted]", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger()
    logger.setLevel(level)
    # Clear default handlers
    logger.handlers = []
    handler = logging.StreamHandler()
    fmt = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s")
    handler.setFormatter(fmt)
    handler.addFilter(ContextFilter())
    handler.addFilter(BearerRedactionFilter())
    logger.addHandler(handler)


def bind_request_id(req_id: str | None = None) -> str:
    rid = req_id or str(uuid.uuid4())
    request_id_ctx.set(rid)
    return rid
