"""
API v1 package.
"""

from supplyhub.api.v1.deliveries import router as deliveries_router
from supplyhub.api.v1.notifications import router as notifications_router
from supplyhub.api.v1.orders import router as orders_router
from supplyhub.api.v1.quotes import router as quotes_router

__all__ = ["deliveries_router", "notifications_router", "orders_router", "quotes_router"]
