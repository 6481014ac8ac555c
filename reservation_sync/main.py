# reservation_sync/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reservation_sync.config import ALLOWED_ORIGINS
from reservation_sync.logging_config import setup_logging
from reservation_sync.middleware import RequestIDMiddleware
from reservation_sync.routes.connections import router as connections_router
from reservation_sync.routes.health import router as health_router
from reservation_sync.routes.metrics import router as metrics_router
from reservation_sync.routes.reservations import router as reservations_router
from reservation_sync.routes.scheduler import router as scheduler_router
from reservation_sync.routes.webhook import router as webhook_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

app = FastAPI(
    title="Reservation Sync API",
    description="Reservation lifecycle, guest follow-up emails and channel-manager sync",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(reservations_router, prefix=API_PREFIX, tags=["Reservations"])
app.include_router(connections_router, prefix=API_PREFIX, tags=["Connections"])
app.include_router(webhook_router, prefix=API_PREFIX, tags=["Webhooks"])
app.include_router(scheduler_router, prefix=API_PREFIX, tags=["Scheduler"])
