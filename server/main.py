"""
Motor relay backend.

Relays motor commands and telemetry between web observers and a single
embedded device over WebSocket, with a REST fallback.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.exceptions import StorageError
from core.health import set_startup_time, get_health_status
from core.logging import configure_logging, get_logger
from routers import motor, websocket

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

VERSION = "3.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting motor relay")
    set_startup_time()

    database = container.database()
    try:
        await database.startup()
        await container.state_store().ensure_initialized()
    except Exception as e:
        logger.critical("Storage unavailable, aborting startup", error=str(e))
        await database.shutdown()
        raise

    logger.info("Services started successfully")
    yield

    await database.shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Motor Relay",
    version=VERSION,
    description="Realtime motor control and telemetry relay",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc), "detail": "Storage error"}
    )


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Add CORS middleware (must be AFTER exception middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(motor.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check():
    """Relay health: storage reachability and connected peers."""
    return await get_health_status(container.database(), container.registry())


@app.get("/")
async def root(request: Request):
    """Service description."""
    host = request.headers.get("host", f"localhost:{settings.port}")
    return {
        "message": "Motor Relay Backend API with WebSocket",
        "version": VERSION,
        "websocket": f"ws://{host}/ws",
        "endpoints": {
            "websocket": {
                "Device": 'Send {"type": "esp32_register"} or {"type": "device_register"}',
                "Web": 'Send {"type": "web_register"} or {"type": "observer_register"}',
                "Control": 'Send {"type": "motor_control", "motor": "A"|"B", "state": true|false}',
                "Telemetry": 'Device sends {"type": "state_update", "motorA", "motorB", "voltage", "current", "power"}',
            },
            "rest": {
                "GET /status": "Get current motor state",
                "POST /motor/{id}": "Switch motor A or B (optional body {\"state\": bool}, toggles otherwise)",
                "GET /health": "Health check",
                "GET /ws/info": "WebSocket connection info",
            },
        },
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting motor relay",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1
    )
