"""Core module initialization."""

from .logging_config import setup_logging, get_logger
from .config_manager import ConfigManager, ProbeConfig
from .runtime import ProbeRuntime, RunReport

__all__ = [
    "setup_logging",
    "get_logger",
    "ConfigManager",
    "ProbeConfig",
    "ProbeRuntime",
    "RunReport",
]
