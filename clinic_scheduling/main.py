"""
Clinic Scheduling API
Slot availability for the booking calendar and waiting-list backfill.
"""
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinic_scheduling.api import scheduling_api, waitlist_api
from clinic_scheduling.startup import lifespan
from clinic_scheduling.utils.logging_config import configure_logging

load_dotenv()
configure_logging()

logger = logging.getLogger(__name__)


def configure_cors(app: FastAPI):
    """Configure CORS middleware for the booking frontends."""
    origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
        if origin.strip()
    ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        use_lifespan: Build services on startup. Tests pass False and
            provide services through dependency overrides.
    """
    app = FastAPI(
        title="Clinic Scheduling",
        description="Appointment slot availability and waiting-list backfill.",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
        redirect_slashes=False,
    )

    configure_cors(app)

    app.include_router(scheduling_api.router)
    app.include_router(waitlist_api.router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "healthy", "service": "clinic-scheduling"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
