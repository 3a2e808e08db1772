"""Application factory wiring the feed collaborators into FastAPI."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI

from .api import install_error_handlers, register_api_routes
from .config import Settings, load_settings
from .credentials import PasswordHasher, TokenService
from .database import Database
from .events import PostEventBroadcaster
from .feed import FeedService
from .images import ImageStore
from .schema import create_graphql_router
from .security import BearerAuth

logger = logging.getLogger("feedserver.service")


def create_app(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    images: Optional[ImageStore] = None,
    events: Optional[PostEventBroadcaster] = None,
    hasher: Optional[PasswordHasher] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application exposing the REST and GraphQL surfaces."""

    app_settings = settings or load_settings()

    db = database or Database.from_uri(app_settings.mongo_uri, app_settings.database_name)
    if initialize_database:
        db.initialize()

    tokens = TokenService(app_settings.token_secret, ttl=timedelta(seconds=app_settings.token_ttl_seconds))
    broadcaster = events or PostEventBroadcaster()
    feed = FeedService(
        db,
        hasher=hasher or PasswordHasher(rounds=app_settings.password_rounds),
        tokens=tokens,
        images=images or ImageStore(app_settings.image_dir),
        events=broadcaster,
        posts_per_page=app_settings.posts_per_page,
    )
    current_auth = BearerAuth(tokens)

    app = FastAPI(
        title="Feed Service",
        version="0.1.0",
        description="Posts, accounts and live updates over REST and GraphQL.",
    )
    app.state.settings = app_settings
    app.state.database = db
    app.state.events = broadcaster
    app.state.feed = feed

    install_error_handlers(app)
    register_api_routes(app, feed, broadcaster, current_auth=current_auth)
    app.include_router(create_graphql_router(feed, current_auth=current_auth), prefix="/graphql")

    logger.info("Feed service configured for database %s", app_settings.database_name)
    return app


__all__ = ["create_app"]
