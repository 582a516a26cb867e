"""GuildWatch: multi-tenant Tibia guild monitoring service."""

__version__ = "1.0.0"
