import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request

from starlette.middleware.base import BaseHTTPMiddleware
from circulation.config import settings
from circulation.database import init_db
from circulation.dependencies import cache, catalog_manager, events, store
from circulation.error_handlers import register_error_handlers
from circulation.routes import library, book, loan, mqtt
from circulation.seed import seed_demo_data
from circulation.services.events import audit_log_handler
from circulation.services.mqtt_service import mqtt_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        actor_header = request.headers.get("X-User-Id")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Actor: {'Present' if actor_header else 'Missing'}")

        response = await call_next(request)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, warm the cache and attach event sinks for the app's lifetime."""
    init_db()
    if settings.seed_demo_data:
        seed_demo_data(catalog_manager, settings.default_actor_id)
    cache.rebuild(store)

    unsubscribers = [events.subscribe(audit_log_handler)]
    if settings.mqtt_enabled:
        logger.info("Starting MQTT service...")
        mqtt_service.connect()
        unsubscribers.append(events.subscribe(mqtt_service.handle_event))

    yield

    for unsubscribe in unsubscribers:
        unsubscribe()
    if settings.mqtt_enabled:
        logger.info("Stopping MQTT service...")
        mqtt_service.disconnect()


app = FastAPI(
    title="Library Circulation API",
    description="Circulation core for libraries, books and loans",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(LoggingMiddleware)

register_error_handlers(app)

# Include routers
app.include_router(library.router)
app.include_router(book.router)
app.include_router(loan.router)
app.include_router(mqtt.router)

@app.get("/")
async def root():
    return {"message": "Library Circulation API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "cacheVersion": cache.version}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "circulation.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
