# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ballotbox.config import Settings, load_settings
from ballotbox.lifecycle import BallotLifecycle
from ballotbox.routes.election_routes import router as election_router
from ballotbox.routes.receipt_routes import receipt_router
from ballotbox.routes.vote_routes import vote_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

origins = [
    "http://localhost:3000",  # For Create React App
    "http://localhost:5173",  # For Vite
]


def create_app(settings: Optional[Settings] = None, lifecycle: Optional[BallotLifecycle] = None) -> FastAPI:
    """
    Settings are read once at startup; a bad ENCRYPTION_KEY raises
    ConfigError here and the server does not start.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "settings", None) is None:
            app.state.settings = load_settings()
        if getattr(app.state, "lifecycle", None) is None:
            app.state.lifecycle = BallotLifecycle.from_settings(app.state.settings)
        logger.info(f"Ballot service started with {app.state.settings!r}")
        yield

    app = FastAPI(title="ballotbox - ballot lifecycle API", lifespan=lifespan)
    app.state.settings = settings
    app.state.lifecycle = lifecycle

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(election_router)
    app.include_router(vote_router)
    app.include_router(receipt_router)

    @app.get("/health", tags=["Root"])
    def health_check():
        backend = app.state.settings.storage_backend if app.state.settings else "unconfigured"
        return {"status": "healthy", "storage": backend}

    return app


app = create_app()
