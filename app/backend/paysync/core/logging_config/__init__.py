import logging
import sys
import uuid
from contextvars import ContextVar

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s request_id=%(request_id)s %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Route all loggers to stdout with the current request id on each line."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(RequestIdFilter())

    root.handlers.clear()
    root.addHandler(handler)

    # Stripe logs every request at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]
