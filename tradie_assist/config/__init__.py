"""
Configuration and environment setup.

Settings are read from environment variables (or a .env file in the
working directory) through pydantic-settings.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
