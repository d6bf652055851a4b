"""
Stock Costing Logging Configuration
Centralized logging setup for the stock costing engine
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional
from .config import settings

ROOT_LOGGER_NAME = "stock_costing"


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure logging for the stock costing engine

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files
        log_to_console: Whether to log to console

    Returns:
        Configured logger instance
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    log_dir = None
    if log_to_file:
        log_dir = settings.LOG_DIR
        log_dir.mkdir(exist_ok=True, parents=True)

        # Main application log (with rotation)
        app_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(detailed_formatter)
        logger.addHandler(app_handler)

        # Error log (only errors and above)
        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.ERROR_LOG_FILE,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        logger.addHandler(error_handler)

    setup_module_loggers(level, detailed_formatter, log_dir)

    return logger


def setup_module_loggers(
    level: int,
    file_formatter: logging.Formatter,
    log_dir: Optional[Path] = None
):
    """Setup loggers for specific areas of the engine"""

    # Ledger postings and reposts get their own file for audit
    ledger_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.ledger")
    ledger_logger.setLevel(level)
    ledger_logger.handlers.clear()
    if log_dir:
        ledger_handler = logging.handlers.RotatingFileHandler(
            log_dir / "ledger.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=10
        )
        ledger_handler.setFormatter(file_formatter)
        ledger_logger.addHandler(ledger_handler)

    costing_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.costing")
    costing_logger.setLevel(level)
    costing_logger.handlers.clear()
    if log_dir:
        costing_handler = logging.handlers.RotatingFileHandler(
            log_dir / "costing.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=3
        )
        costing_handler.setFormatter(file_formatter)
        costing_logger.addHandler(costing_handler)

    api_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.api")
    api_logger.setLevel(level)
    api_logger.handlers.clear()
    if log_dir:
        api_handler = logging.handlers.RotatingFileHandler(
            log_dir / "api.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5
        )
        api_handler.setFormatter(file_formatter)
        api_logger.addHandler(api_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


__all__ = [
    'setup_logging',
    'get_logger',
]
