import logging
import os
import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ALLOWED_ORIGINS
from db import db_manager, init_database
from zones.api import router as zones_api_router
from zones.session import session_registry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Local map front-ends (vite, create-react-app) when nothing is configured.
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

app = FastAPI(title="Tractage", description="Street and segment zone assignment")

cors_origins = list(CORS_ALLOWED_ORIGINS) or DEV_ORIGINS
if not CORS_ALLOWED_ORIGINS:
    logger.warning("CORS_ALLOWED_ORIGINS not set, allowing %s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(zones_api_router)


@app.get("/api/health")
async def health():
    database_ok = await db_manager.ping()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
        "map_sessions": len(session_registry),
    }


@app.on_event("startup")
async def startup_event():
    try:
        await init_database()
    except Exception:
        logger.critical(
            "Database initialization failed, refusing to start",
            exc_info=True,
        )
        raise
    logger.info("Tractage zone service started")


@app.on_event("shutdown")
async def shutdown_event():
    """Drop open map sessions (pending cuts are lost) and the Mongo client."""
    closed = session_registry.close_all()
    if closed:
        logger.info("Discarded %d open map sessions", closed)
    await db_manager.cleanup_connections()


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    logger.warning("404 on %s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Not found", "detail": exc.detail},
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    error_id = uuid.uuid4().hex
    logger.error(
        "Unhandled error %s on %s %s",
        error_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "error_id": error_id},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
        reload=True,
    )
