"""
Ollama Chat - Backend
Main Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import init_db
from app.errors import register_exception_handlers
from app.routes import (
    conversations_router,
    folders_router,
    share_router,
    tags_router,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    logger.info(f"{settings.app_name} started, database ready")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Chat history organized in nested folders and tags",
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(conversations_router, prefix="/api/conversations", tags=["conversations"])
app.include_router(folders_router, prefix="/api/folders", tags=["folders"])
app.include_router(tags_router, prefix="/api/tags", tags=["tags"])
app.include_router(share_router, prefix="/api/share", tags=["share"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.version,
        "features": [
            "conversations",
            "nested_folders",
            "tags",
            "sharing",
        ]
    }


@app.get("/api/health")
async def api_health_check():
    """API health check endpoint."""
    return await health_check()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
