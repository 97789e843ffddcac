"""
Root logger setup shared by the worker, the HTTP app and the migrate script.

Modules log through named loggers (``logging.getLogger("automation_orchestrator")``
and so on); this helper only decides where records go and how they look.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# Library loggers that flood INFO with per-packet or per-statement lines.
QUIET_LOGGERS = ("paho.mqtt.client", "sqlalchemy.engine")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    ``level`` accepts a number or a name such as ``"DEBUG"``; unknown names
    fall back to INFO. When ``log_file`` is given, records are written there
    as well as to stderr.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    root_level = _resolve_level(level)
    logging.basicConfig(level=root_level, format=LOG_FORMAT, handlers=handlers)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))
