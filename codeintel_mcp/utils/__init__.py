"""utility modules for codeintel-mcp"""

from codeintel_mcp.utils.singleton_utils import SingletonInstance
from codeintel_mcp.utils.logging_utils import Logger, logging_func
from codeintel_mcp.utils.config_utils import (
    load_config_ini,
    get_config_value,
    get_config_int,
    get_config_float,
    get_config_bool,
)

__all__ = [
    "SingletonInstance",
    "Logger",
    "logging_func",
    "load_config_ini",
    "get_config_value",
    "get_config_int",
    "get_config_float",
    "get_config_bool",
]
