"""Utilities package for the fulfillment core: configuration, constants, time."""

from .config import Config, get_config, reset_config, set_config

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "set_config",
]
