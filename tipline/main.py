"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tipline.api.middleware import RequestLoggingMiddleware
from tipline.api.routes import router
from tipline.config import get_settings
from tipline.database import Base, SessionLocal, engine
from tipline.logging_config import setup_logging
# Import models to register them with SQLAlchemy Base
from tipline.models import audit, domain  # noqa: F401
from tipline.services.defaults import seed_defaults

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    # Create database tables and the sentinel category/agency
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()

    logger.info("Tipline started", extra={"case_prefix": settings.case_prefix})
    yield


app = FastAPI(
    title="Tipline - Incident Reporting",
    description="Anonymous and confidential incident reports, followed up with a one-time case password.",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(RequestLoggingMiddleware)

# Include API routes
app.include_router(router, prefix="/api", tags=["Reports"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Tipline"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
