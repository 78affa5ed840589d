"""
FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import purchase as purchase_routes
from api.routes import razorpay as razorpay_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger
from core.response import error_response, success_response
from infrastructure.database import AsyncSessionLocal, create_tables, engine
from shared.codes import BusinessCode


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tables are auto-created only in development; production runs alembic
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_migrations_required", message="Run `alembic upgrade head` before starting")
    yield
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Course purchase and enrollment service",
)

# Added last runs first: RequestID -> Logging -> CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(purchase_routes.router, prefix="/api/v1")
app.include_router(razorpay_routes.router, prefix="/api/v1")


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus a database round trip"""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_check_failed", error=str(exc))
        response = error_response(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Database unavailable",
            error_type="ServiceUnavailable",
        )
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return success_response(data={"status": "healthy", "database": "connected"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
