"""
Static configuration, loaded from the environment (and ``.env``) on import.

    from guildwatch.core.config import Config

    if Config.is_production():
        ...
"""

from guildwatch.core.config.config import Config

__all__ = ["Config"]
