from boxoffice.routers.reservations import router as reservations_router
from boxoffice.routers.orders import router as orders_router
from boxoffice.routers.inventory import router as inventory_router
from boxoffice.routers.payments import router as payments_router
from boxoffice.routers.admin import router as admin_router
from boxoffice.routers.cron import router as cron_router

__all__ = [
    "reservations_router",
    "orders_router",
    "inventory_router",
    "payments_router",
    "admin_router",
    "cron_router"
]
