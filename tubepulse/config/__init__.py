"""
Configuration Management.

Settings are loaded with Pydantic Settings. Sources, in order of precedence:
1. Environment variables
2. .env file
3. Default values

Example:
    from tubepulse.config import get_settings

    settings = get_settings()
    queue = RequestQueue(settings.max_concurrent_requests)
"""

from tubepulse.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
