# utils/logger.py

import logging
import os
import sys

try:
    from config import DEFAULT_LOGGER_NAME, LOG_FILE_PATH, LOG_LEVEL_CONSOLE, LOG_LEVEL_FILE, VERBOSE_LOGGING
except ImportError:
    print("Warning: config.py not found or not accessible, using fallback logger settings.", file=sys.stderr)
    DEFAULT_LOGGER_NAME = "book_scraper_fallback"
    LOG_FILE_PATH = None
    LOG_LEVEL_CONSOLE = "INFO"
    LOG_LEVEL_FILE = "DEBUG"
    VERBOSE_LOGGING = False


def _level_from_str(level_str, default, label):
    try:
        return getattr(logging, level_str.upper(), default)
    except AttributeError:
        print(f"Warning: Invalid {label} log level '{level_str}' in config. Using {logging.getLevelName(default)}.",
              file=sys.stderr)
        return default


def setup_logger(name=None, log_file=None, console_level_str=None, file_level_str=None):
    logger_name = name if name else DEFAULT_LOGGER_NAME
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)

    actual_log_file = log_file if log_file is not None else LOG_FILE_PATH
    actual_console_level_str = console_level_str if console_level_str else LOG_LEVEL_CONSOLE
    if VERBOSE_LOGGING and not console_level_str:
        actual_console_level_str = "DEBUG"
    actual_file_level_str = file_level_str if file_level_str else LOG_LEVEL_FILE

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s (%(filename)s:%(lineno)d)")

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(_level_from_str(actual_console_level_str, logging.INFO, "console"))
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    if actual_log_file:
        try:
            log_dir = os.path.dirname(actual_log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            fh = logging.FileHandler(actual_log_file, encoding='utf-8')
            fh.setLevel(_level_from_str(actual_file_level_str, logging.DEBUG, "file"))
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError as e:
            logger.error(f"Failed to configure file logger for {actual_log_file}: {e}", exc_info=False)

    logger.propagate = False  # To prevent duplicate logs if root logger is also configured

    return logger
