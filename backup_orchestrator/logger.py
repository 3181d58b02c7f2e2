import logging
import logging.handlers
import os
import sys
from typing import Optional

LOG_FILE_PATH = "data/backup_orchestrator.log"

def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = LOG_FILE_PATH):
    """Configure the logging for the application."""
    log_level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    # Get the root logger
    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    if logger.hasHandlers():
        logger.handlers.clear()

    # Create formatter
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s",
        "%Y-%m-%d %H:%M:%S"
    )

    # Console Handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotating File Handler
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=10 * 1024 * 1024, backupCount=5  # 10 MB
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to create log file handler: {e}")

    # Set the logger for the application
    app_logger = logging.getLogger("backup_orchestrator")
    app_logger.setLevel(log_level)

    logging.debug(f"Logging configured with level {log_level}")

def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
