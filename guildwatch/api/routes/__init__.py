from .admin import router as admin_router
from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .guild import router as guild_router
from .subscription import router as subscription_router

ROUTERS = (
    auth_router,
    guild_router,
    dashboard_router,
    subscription_router,
    admin_router,
)

__all__ = ["ROUTERS"]
