import logging
from typing import Optional

_HANDLER_NAME = "tasklist_api"


class SafeFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        for key in ("user_id", "task_id"):
            if key not in record.__dict__:
                record.__dict__[key] = "-"
        return super().format(record)


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the log level; the stream handler is installed at most once."""
    level_name = (level or "INFO").upper()
    resolved_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        fmt = "%(asctime)s %(levelname)s %(name)s user=%(user_id)s task=%(task_id)s %(message)s"
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(SafeFormatter(fmt))
        root.addHandler(handler)

    root.setLevel(resolved_level)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(resolved_level)
