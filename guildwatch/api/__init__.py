"""FastAPI application for GuildWatch."""

from .app import create_app
from .state import Services, build_services

__all__ = ["create_app", "Services", "build_services"]
