"""Configuration management for termproxy.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for the listen address and
the default SSH key path.
"""

from termproxy.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
