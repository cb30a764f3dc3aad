import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from eventhub.core.config import CORS_ORIGINS, RATE_LIMIT_ENABLED, is_production
from eventhub.core.errors import AppError, InfrastructureError
from eventhub.core.logging_config import configure_logging
from eventhub.core.rate_limit import RateLimitMiddleware, build_rate_limit_store
from eventhub.database.db import Base, engine
from eventhub.routes import catalog, events, participants, reports, users

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables (in production, use migrations such as Alembic)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
    yield


app = FastAPI(title="Event Management API", version="1.0.0", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware, store=build_rate_limit_store())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        content = {"detail": InfrastructureError.default_message, "kind": exc.kind}
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
        content = {"detail": exc.message, "kind": exc.kind}
        if exc.data is not None and exc.status_code == 400:
            content["data"] = exc.data
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    content = {"detail": InfrastructureError.default_message, "kind": InfrastructureError.kind}
    if not is_production():
        content["error"] = exc.__class__.__name__
    return JSONResponse(status_code=500, content=content)


# Include the routers
app.include_router(events.router)
app.include_router(participants.router)
app.include_router(catalog.categories_router)
app.include_router(catalog.tags_router)
app.include_router(users.router)
app.include_router(reports.router)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
