import logging
from logging.handlers import RotatingFileHandler
import os
from audit.request_context import get_request_id

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = "audit.log"
LOG_FORMAT = "%(asctime)s | %(levelname)s | request_id=%(request_id)s | %(message)s"

os.makedirs(LOG_DIR, exist_ok=True)


def _build_handlers():
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        filename=os.path.join(LOG_DIR, LOG_FILE),
        maxBytes=5_000_000,  # 5MB
        backupCount=3
    )
    console_handler = logging.StreamHandler()

    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
    return file_handler, console_handler


_base_logger = logging.getLogger("payment_monitor")
_base_logger.setLevel(logging.INFO)

# Module may be imported again under the Flask reloader
if not _base_logger.handlers:
    for handler in _build_handlers():
        _base_logger.addHandler(handler)


class RequestIdAdapter(logging.LoggerAdapter):
    """
    Stamps every record with the X-Request-Id of the request being served,
    so the format string can always reference %(request_id)s. Startup and
    other work done without a request context is stamped "-".
    """
    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        extra.setdefault("request_id", get_request_id())
        kwargs["extra"] = extra
        return msg, kwargs


logger = RequestIdAdapter(_base_logger, {})
