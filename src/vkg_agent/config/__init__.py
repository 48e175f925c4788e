"""
Configuration module
"""

from vkg_agent.config.settings import settings, Settings, PROJECT_ROOT

__all__ = ["settings", "Settings", "PROJECT_ROOT"]
