"""Logging configuration for the deepcrawl system."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Dict, Optional


# ANSI color codes for console output
class Colors:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'
    BRIGHT_RED = '\033[91m'


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ColorFormatter(logging.Formatter):
    """Formatter that adds colors to log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.CYAN,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BRIGHT_RED + Colors.BOLD,
    }

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt or LOG_FORMAT)
        self.use_colors = use_colors and hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        # Colour a copy so other handlers see the plain record
        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"
        if record.name.startswith('deepcrawl'):
            record.name = f"{Colors.BLUE}{record.name}{Colors.RESET}"

        return super().format(record)


class CrawlerLogger:
    """Logger configuration for the deepcrawl system."""

    # Third-party loggers that are too chatty at INFO
    EXTERNAL_LEVELS = {
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
        'asyncio': logging.WARNING,
        'uvicorn.access': logging.WARNING,
    }

    def __init__(self):
        self._loggers: Dict[str, logging.Logger] = {}
        self.configured = False

    def _configure_external_loggers(self) -> None:
        for name, level in self.EXTERNAL_LEVELS.items():
            logging.getLogger(name).setLevel(level)

    def setup_logging(
        self,
        level: str = "INFO",
        log_file: Optional[str] = None,
        use_colors: bool = True
    ) -> None:
        """Set up logging configuration.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Optional log file path
            use_colors: Whether to use colors in console output
        """
        log_level = getattr(logging, level.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(ColorFormatter(use_colors=use_colors))
        console_handler.setLevel(log_level)
        root_logger.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
            file_handler.setLevel(log_level)
            root_logger.addHandler(file_handler)

        self._configure_external_loggers()
        self.configured = True

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name

        Returns:
            Logger instance
        """
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(name)
        return self._loggers[name]


# Global logger instance
_crawler_logger: Optional[CrawlerLogger] = None


def get_crawler_logger() -> CrawlerLogger:
    """Get the global CrawlerLogger instance."""
    global _crawler_logger
    if _crawler_logger is None:
        _crawler_logger = CrawlerLogger()
    return _crawler_logger


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """Set up logging from explicit values, falling back to the config manager.

    Args:
        level: Override log level from config
        log_file: Override log file from config
        use_colors: Whether to colour console output
    """
    if level is None or log_file is None:
        from .config import get_config_manager

        config_manager = get_config_manager()
        if level is None:
            level = config_manager.get_setting("global.log_level", "INFO")
        if log_file is None:
            log_file = config_manager.get_setting("global.log_file")

    get_crawler_logger().setup_logging(level=level, log_file=log_file, use_colors=use_colors)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return get_crawler_logger().get_logger(name)
