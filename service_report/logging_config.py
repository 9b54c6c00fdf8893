"""Logging setup shared by the app factory and scripts."""
import logging
import sys


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the root logger with a single stdout handler."""
    log_format = "%(asctime)s - [%(levelname)s] - %(name)s - (%(filename)s).%(funcName)s(%(lineno)d) - %(message)s"

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))

    logging.basicConfig(level=level, handlers=[stdout_handler])

    # SQLAlchemy echoes through its own loggers; keep them quiet unless asked
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
