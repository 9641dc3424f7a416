"""
Logging configuration for the NFT monitor.
Supports normal mode (concise) and debug mode (verbose with file output).
"""
import logging
import sys
import os
from pathlib import Path

# Debug mode: set MONITOR_DEBUG=1 to enable verbose logging to file
MONITOR_DEBUG = os.getenv('MONITOR_DEBUG', '').lower() in ('1', 'true', 'yes')

# Debug log file path
DEBUG_LOG_PATH = Path.cwd() / 'monitor_debug.log'

APP_LOGGER_NAME = 'nft_monitor'


LEVEL_TAGS = {
    logging.DEBUG: ('D', '90'),
    logging.INFO: ('I', '32'),
    logging.WARNING: ('W', '33'),
    logging.ERROR: ('E', '31'),
    logging.CRITICAL: ('!', '31;1'),
}


class ConciseFormatter(logging.Formatter):
    """
    One line per record: a one-letter level tag, then the message.

    INFO and WARNING lines omit the logger name so transfer reports read
    cleanly; the other levels keep it. Colour is only used on a terminal.
    """

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self._formatters = {
            level: logging.Formatter(self._layout(level, tag, color))
            for level, (tag, color) in LEVEL_TAGS.items()
        }

    def _layout(self, level: int, tag: str, color: str) -> str:
        prefix = f"\033[{color}m[{tag}]\033[0m" if self.use_color else f"[{tag}]"
        if level in (logging.INFO, logging.WARNING):
            return f"{prefix} %(message)s"
        return f"{prefix} %(name)s: %(message)s"

    def format(self, record):
        return self._formatters.get(record.levelno, self._formatters[logging.INFO]).format(record)


class VerboseFormatter(logging.Formatter):
    """Debug file format: millisecond timestamps and the emitting source line."""
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s:%(lineno)d %(message)s',
            datefmt='%H:%M:%S'
        )


def stream_supports_color(stream) -> bool:
    """ANSI colour only for an interactive terminal, and never when NO_COLOR is set."""
    if os.getenv('NO_COLOR'):
        return False
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())


def setup_logging(level=logging.INFO, debug: bool = MONITOR_DEBUG):
    """
    Configure logging for the monitor process.
    Call this once at startup, before the monitor connects.

    Set MONITOR_DEBUG=1 to also write verbose logs to monitor_debug.log.
    """
    # Silence noisy third-party loggers
    noisy_loggers = [
        'urllib3', 'websockets', 'asyncio', 'aiohttp',
        'web3', 'web3.providers', 'web3.RequestManager',
        'web3.providers.WebSocketProvider',
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ConciseFormatter(use_color=stream_supports_color(sys.stdout)))
    root.addHandler(handler)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(level)

    if debug:
        setup_debug_file_logging()
        app_logger.info(f"MONITOR_DEBUG enabled - verbose logs written to {DEBUG_LOG_PATH}")

    return app_logger


def setup_debug_file_logging():
    """Attach the verbose file handler to the nft_monitor logger tree."""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(logging.DEBUG)
    if any(getattr(h, 'name', None) == 'monitor_debug_file' for h in app_logger.handlers):
        return

    file_handler = logging.FileHandler(DEBUG_LOG_PATH, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(VerboseFormatter())
    file_handler.name = 'monitor_debug_file'
    app_logger.addHandler(file_handler)
