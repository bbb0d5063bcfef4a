"""
Logging configuration for the campaign runner.
Provides consistent logging across all modules.
"""
import logging
import os
import sys


# Configure root logger
def setup_logging(level: str = "INFO", log_file: str = None):
    """
    Setup logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path to write logs
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Format: timestamp - module - level - message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    return root_logger


def setup_audit_log(log_file: str, name: str = "broadcast.audit") -> logging.Logger:
    """
    Attach an append-only file handler for the outcome audit trail.

    Audit lines carry their own timestamp, so the handler writes the bare
    message. The logger does not propagate: audit lines stay out of the
    console/process log.
    """
    audit_logger = logging.getLogger(name)
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    for handler in audit_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_file):
            return audit_logger

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    return audit_logger
