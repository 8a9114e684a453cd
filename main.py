"""
Credential & token authentication API — application entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.routes import router as api_router
from auth.dispatcher import build_dispatcher
from auth.routes import router as auth_router
from auth.store import CredentialStore
from auth.tokens import SigningKey, TokenIssuer
from config.settings import Settings, get_settings
from database.session import build_engine, build_session_factory, create_schema

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_schema(app.state.engine)
    logger.info("Application ready to accept requests.")
    yield
    await app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application. Settings and the signing key are resolved here,
    so a missing or weak ``JWT_SECRET`` stops the process before it serves
    anything.
    """
    settings = settings or get_settings()
    configure_logging(settings.debug)

    signing_key = SigningKey.from_settings(settings)
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    store = CredentialStore(session_factory, bcrypt_rounds=settings.bcrypt_rounds)

    app = FastAPI(
        title="Credential & Token Auth API",
        version="1.0.0",
        description="User registration, JWT login and pluggable request authentication.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.credential_store = store
    app.state.token_issuer = TokenIssuer(
        signing_key, default_ttl=timedelta(seconds=settings.jwt_expiry_seconds)
    )
    app.state.auth_dispatcher = build_dispatcher(settings, signing_key, store)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(api_router)

    return app


if __name__ == "__main__":
    config = get_settings()
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
