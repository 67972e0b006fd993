import logging
import logging.config
import yaml
from pathlib import Path
from typing import Optional, Union

from ..config.settings import settings

DEFAULT_LOGGING_CONFIG_PATH = Path(settings.LOGGING_CONFIG_PATH)


def setup_logging(
    config_path: Union[str, Path] = DEFAULT_LOGGING_CONFIG_PATH,
    log_level: Optional[str] = None,
) -> None:
    """
    Set up logging configuration from a YAML file.

    Args:
        config_path: Path to the logging configuration YAML file.
        log_level: Optional level that overrides the root logger and console
            handler levels from the file (e.g. "DEBUG" for verbose runs).
    """
    config_path = Path(config_path)
    if config_path.exists():
        try:
            with open(config_path, 'rt') as f:
                log_config = yaml.safe_load(f.read())
            _ensure_log_dirs(log_config)
            if log_level:
                _apply_level(log_config, log_level.upper())
            logging.config.dictConfig(log_config)
            logging.info(f"Logging configured successfully from {config_path}")
        except Exception as e:
            logging.basicConfig(level=log_level or logging.INFO)
            logging.error(f"Error loading logging configuration from {config_path}: {e}. Using basicConfig.")
    else:
        logging.basicConfig(level=log_level or logging.INFO)
        logging.warning(f"Logging configuration file not found at {config_path}. Using basicConfig.")


def _ensure_log_dirs(log_config: dict) -> None:
    for handler in log_config.get("handlers", {}).values():
        filename = handler.get("filename")
        if filename:
            Path(filename).parent.mkdir(parents=True, exist_ok=True)


def _apply_level(log_config: dict, level: str) -> None:
    root = log_config.setdefault("loggers", {}).setdefault("", {})
    root["level"] = level
    for handler in log_config.get("handlers", {}).values():
        handler["level"] = level


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Render a credential for logs, keeping only its last few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "***"
    return f"***{value[-visible:]}"
