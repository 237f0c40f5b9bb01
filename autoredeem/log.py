"""Console logging with the coloured, timestamped format used across autoredeem."""

import logging
from datetime import datetime

LOGGER_NAME = "autoredeem"

logger = logging.getLogger(LOGGER_NAME)


class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    UNDERLINE = '\033[4m'
    END = '\033[0m'
    GRAY = '\033[90m'


class CustomFormatter(logging.Formatter):
    """Custom formatter for console output"""

    level_colors = {
        logging.DEBUG: Colors.GRAY,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED,
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if not self.use_color:
            return f"[{timestamp}] {message}"

        # Explicit colour passed by the log helpers wins over the level colour
        color = getattr(record, "color", None) or self.level_colors.get(record.levelno, "")
        if color:
            return f"{Colors.GRAY}[{timestamp}]{Colors.END} {color}{message}{Colors.END}"
        return f"{Colors.GRAY}[{timestamp}]{Colors.END} {message}"


def setup_logging(verbose: bool = False, use_color: bool = True) -> logging.Logger:
    """Configure logging system"""
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = True

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(CustomFormatter(use_color=use_color))
    logger.addHandler(console_handler)
    # Avoid double output through the root logger once we own a handler
    logger.propagate = False

    return logger


def log(message: str, color: str = "", level: int = logging.INFO):
    """Log a message, optionally coloured"""
    logger.log(level, message, extra={"color": color})


def log_debug(message: str):
    """Log a debug message (only shown when VERBOSE=1)"""
    log(f"DEBUG: {message}", Colors.GRAY, logging.DEBUG)


def log_success(message: str):
    """Log a success message"""
    log(f"SUCCESS: {message}", Colors.GREEN)


def log_error(message: str):
    """Log an error message"""
    log(f"ERROR: {message}", Colors.RED, logging.ERROR)


def log_warning(message: str):
    """Log a warning message"""
    log(f"WARNING: {message}", Colors.YELLOW, logging.WARNING)


def log_info(message: str):
    """Log an info message"""
    log(f"INFO: {message}", Colors.CYAN)


def log_code(code: str, status: str, details: str = "", color: str = Colors.CYAN):
    """Log code-related information with consistent formatting"""
    log(f"{status}: {Colors.BOLD}{code}{Colors.END}{color} {details}".rstrip(), color)


def log_section(message: str, show_time: bool = False):
    width = 50
    if show_time:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        title = f"{message} - {timestamp}"
    else:
        title = message

    log(f"{'─' * width}", Colors.CYAN)
    log(f"{Colors.BOLD}{title}", Colors.CYAN)
    log(f"{'─' * width}", Colors.CYAN)
