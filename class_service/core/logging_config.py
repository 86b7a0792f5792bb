import logging
import sys

from class_service.core.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(filename)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Librerías que solo interesan cuando algo va mal
QUIET_LOGGERS = {
    "apscheduler": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def setup_logging() -> logging.Logger:
    """
    Logging del servicio: un único handler a stdout, nivel según DEBUG_MODE.

    Se puede llamar más de una vez; los handlers previos del logger raíz
    (por ejemplo los que instala uvicorn) se sustituyen.
    """
    settings = get_settings()
    level = logging.DEBUG if settings.DEBUG_MODE else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.INFO)
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    root.info("Logging configurado (nivel %s)", logging.getLevelName(level))
    return root
