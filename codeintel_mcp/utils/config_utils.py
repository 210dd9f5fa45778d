"""configuration management utilities

values come from ./config.ini (loaded on import) and fall back to the
defaults passed by the caller:

    [daemon]
    port = 10881
    launch_command = {python} -m codeintel daemon --port {port}
    idle_kill_minutes = 30
    indexing_notice_delay = 3

    [log]
    prefix = codeintel
    log_dir = ./logs
    debug = false
"""

import os
import configparser

# interpolation off: launch commands may contain "%" and "$"
global_config = configparser.ConfigParser(interpolation=None)


def load_config_ini(config_path: str = "./config.ini") -> bool:
    """load configuration file

    Args:
        config_path: path to config.ini file

    Returns:
        True if the file existed and was read
    """
    if not os.path.exists(config_path):
        return False
    global_config.read(config_path, encoding="utf-8")
    return True


def get_config_value(section: str, key: str, default=None):
    """get configuration value

    Args:
        section: config section name
        key: config key name
        default: default value if not found

    Returns:
        config value or default
    """
    try:
        return global_config.get(section, key)
    except (configparser.NoSectionError, configparser.NoOptionError):
        return default


def get_config_int(section: str, key: str, default: int = 0) -> int:
    """get configuration value as integer"""
    value = get_config_value(section, key)
    if value is None:
        return default
    return int(value)


def get_config_float(section: str, key: str, default: float = 0.0) -> float:
    """get configuration value as float"""
    value = get_config_value(section, key)
    if value is None:
        return default
    return float(value)


def get_config_bool(section: str, key: str, default: bool = False) -> bool:
    """get configuration value as boolean"""
    value = get_config_value(section, key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


# auto-load on import
load_config_ini()
