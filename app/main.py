from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import conversations
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import create_db_and_tables
from loguru import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app."""
    configure_logging()
    try:
        logger.info("Starting up database...")
        create_db_and_tables()
        logger.info("Database startup completed")
        yield
    except Exception as e:
        logger.error(f"Error during startup: {str(e)}")
        raise
    finally:
        logger.info("Shutting down...")


app = FastAPI(
    title="Direct Conversation API",
    description="Resolves the single direct conversation between two users",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(conversations.router)


@app.get("/health")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"status": "ok"}


def serve(reload: bool = False) -> None:
    """Run the API with uvicorn on the configured host and port."""
    settings = get_settings()
    logger.info(f"Serving on {settings.SERVER_HOST}:{settings.SERVER_PORT}")
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=reload,
    )


if __name__ == "__main__":
    serve()
