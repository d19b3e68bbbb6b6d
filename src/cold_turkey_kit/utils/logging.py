import sys

from loguru import logger

from cold_turkey_kit.settings import settings

# Logging Constants
LOG_FORMAT_CONSOLE = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
LOG_FORMAT_FILE = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} | {message}"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "10 days"
LOG_COMPRESSION = "zip"


def setup_logging(verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    The console sink only shows warnings unless verbose output is requested,
    since the interactive prompts share the terminal with it.

    Args:
        verbose (bool): If True, enables DEBUG level logging to stderr and file.
    """
    logger.remove()

    is_debug = verbose or settings.debug
    console_level = "DEBUG" if is_debug else "WARNING"
    file_level = "DEBUG" if is_debug else "INFO"

    # 1. Console Sink
    logger.add(sys.stderr, level=console_level, format=LOG_FORMAT_CONSOLE)

    # 2. File Sink
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file_path = settings.log_dir / "app.log"
    logger.add(
        log_file_path,
        level=file_level,
        format=LOG_FORMAT_FILE,
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        compression=LOG_COMPRESSION,
    )

    logger.debug(f"Logging initialized. Logs saved to: {log_file_path}")
