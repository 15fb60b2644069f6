from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from boxoffice.database import init_db
from boxoffice.config import get_settings
from boxoffice.exceptions import DomainError, ErrorCode
from boxoffice.services.scheduler import init_scheduler, shutdown_scheduler
from boxoffice.middleware.security import setup_security_middleware
from boxoffice.routers import (
    reservations_router,
    orders_router,
    inventory_router,
    payments_router,
    admin_router,
    cron_router
)
from boxoffice.routers.reservations import limiter

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TICKET_TYPE_NOT_FOUND: 404,
    ErrorCode.INSUFFICIENT_INVENTORY: 409,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.NOT_ACTIVE: 409,
    ErrorCode.ALREADY_CONVERTED: 409,
    ErrorCode.ALREADY_CANCELLED: 409,
    ErrorCode.RESERVATION_EXPIRED: 409,
    ErrorCode.EVENT_NOT_AVAILABLE: 409,
    ErrorCode.DUPLICATE_RESERVATION: 409,
    ErrorCode.QUANTITY_OUT_OF_RANGE: 422,
    ErrorCode.EXPIRED_HOLD: 410,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if settings.scheduler_enabled:
        init_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="Box Office",
    description="Ticket inventory reservation and expiration engine",
    version="1.0.0",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

setup_security_middleware(app, allowed_hosts=settings.allowed_hosts)

app.include_router(reservations_router)
app.include_router(orders_router)
app.include_router(inventory_router)
app.include_router(payments_router)
app.include_router(admin_router)
app.include_router(cron_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.code == ErrorCode.FORBIDDEN:
        # Another session's record is reported exactly like a missing one
        return JSONResponse(
            status_code=404,
            content={"detail": f"{exc.entity} not found", "code": ErrorCode.NOT_FOUND.value}
        )

    content = {"detail": exc.message, "code": exc.code.value}
    if exc.code == ErrorCode.INSUFFICIENT_INVENTORY:
        content["available"] = exc.available
    return JSONResponse(status_code=ERROR_STATUS.get(exc.code, 400), content=content)


@app.get("/health")
def health():
    return {"status": "ok"}
