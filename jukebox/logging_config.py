import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    """Forward stdlib log records (discord.py uses them) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    """
    Configure loguru sinks: stderr always, plus a rotating file if log_file is set.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file, empty for console only
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
    )
    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention=5,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    logger.debug(f"Logging initialized (level={level}, file={log_file or '-'})")
