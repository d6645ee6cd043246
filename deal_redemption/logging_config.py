"""
Logging setup for the deal redemption service.

Modules log through ``logging.getLogger(__name__)``; this only decides how
records leave the process. ``LOG_JSON=true`` switches to one JSON object per
line so the log shipper can index ``deal_id``/``user_id``/``reason`` extras.
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from deal_redemption.config import settings

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def configure_logging(level: str = None, json_logs: bool = None) -> None:
    global _configured
    if _configured:
        return

    level = level or settings.log_level
    json_logs = settings.log_json if json_logs is None else json_logs

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
