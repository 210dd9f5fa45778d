"""logging utilities with rich support

console output goes to stderr: stdout carries the MCP stdio protocol.
"""

import asyncio
import functools
import os
from datetime import datetime
from rich.console import Console
from rich.theme import Theme
from codeintel_mcp.utils.singleton_utils import SingletonInstance
from codeintel_mcp.utils.config_utils import get_config_bool, get_config_value


# custom theme for log levels
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "debug": "dim white",
})

LOG_FILE_NAME = "codeintel.log"


class Logger(SingletonInstance):
    """singleton logger class with rich support"""

    def __init__(self, prefix: str = None, log_dir: str = None, debug: bool = None):
        """initialize logger

        Args:
            prefix: log message prefix ([log] prefix in config.ini)
            log_dir: directory for the log file ([log] log_dir in config.ini)
            debug: echo debug messages to the console ([log] debug in config.ini);
                the log file always gets them
        """
        self.prefix = prefix or get_config_value("log", "prefix", "codeintel")
        self.log_dir = log_dir or get_config_value("log", "log_dir", "./logs")
        self.show_debug = get_config_bool("log", "debug", False) if debug is None else debug
        self.console = Console(theme=custom_theme, stderr=True)
        self._ensure_log_dir()

    @property
    def log_path(self) -> str:
        return os.path.join(self.log_dir, LOG_FILE_NAME)

    def _ensure_log_dir(self):
        """create log directory if not exists"""
        if not os.path.exists(self.log_dir):
            os.makedirs(self.log_dir)

    def _format(self, level: str, message: str) -> str:
        """format log message"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return f"[{timestamp}] [{self.prefix}] {level}: {message}"

    def _emit(self, level: str, message: str, style: str, console: bool = True):
        line = self._format(level, message)
        if console:
            # markup off: daemon output may contain "[...]"
            self.console.print(line, style=style, markup=False, highlight=False)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def info(self, message: str):
        """log info level message"""
        self._emit("INFO", message, "info")

    def error(self, message: str):
        """log error level message"""
        self._emit("ERROR", message, "error")

    def warning(self, message: str):
        """log warning level message"""
        self._emit("WARNING", message, "warning")

    def debug(self, message: str):
        """log debug level message"""
        self._emit("DEBUG", message, "debug", console=self.show_debug)


def logging_func(desc: str = ""):
    """decorator for function logging, sync or async

    Args:
        desc: description of the function
    """
    def decorator(function):
        if asyncio.iscoroutinefunction(function):
            @functools.wraps(function)
            async def async_wrapper(*args, **kwargs):
                Logger.instance().debug(f"[start] {function.__name__} - {desc}")
                result = await function(*args, **kwargs)
                Logger.instance().debug(f"[end] {function.__name__}")
                return result
            return async_wrapper

        @functools.wraps(function)
        def wrapper(*args, **kwargs):
            Logger.instance().debug(f"[start] {function.__name__} - {desc}")
            result = function(*args, **kwargs)
            Logger.instance().debug(f"[end] {function.__name__}")
            return result
        return wrapper
    return decorator
