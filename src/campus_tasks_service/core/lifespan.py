"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from campus_tasks_service.clients.delivery_client import DeliveryClient
from campus_tasks_service.clients.identity_client import IdentityClient
from campus_tasks_service.config import get_settings
from campus_tasks_service.core.state import init_app_state
from campus_tasks_service.logging import get_logger, setup_logging
from campus_tasks_service.services.application_manager import ApplicationManager
from campus_tasks_service.services.message_store import MessageStore
from campus_tasks_service.services.message_thread import MessageThread
from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
from campus_tasks_service.services.notification_store import NotificationStore
from campus_tasks_service.services.rating_aggregator import RatingAggregator
from campus_tasks_service.services.review_store import ReviewStore
from campus_tasks_service.services.session_resolver import SessionResolver
from campus_tasks_service.services.task_cache import TaskCache
from campus_tasks_service.services.task_lifecycle import TaskLifecycleController
from campus_tasks_service.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    # All stores share one SQLite file, each with its own connection
    db_path = settings.database.path
    task_store = TaskStore(db_path=db_path)
    message_store = MessageStore(db_path=db_path)
    review_store = ReviewStore(db_path=db_path)
    notification_store = NotificationStore(db_path=db_path)
    state.task_store = task_store
    state.message_store = message_store
    state.review_store = review_store
    state.notification_store = notification_store

    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        resolve_session_path=settings.identity.resolve_session_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client

    # Delivery is optional; without a configured channel notifications stay in the inbox
    delivery_client: DeliveryClient | None = None
    if settings.notifications.delivery_base_url is not None:
        delivery_client = DeliveryClient(
            base_url=settings.notifications.delivery_base_url,
            delivery_path=settings.notifications.delivery_path,
            timeout_seconds=settings.notifications.timeout_seconds,
        )
    state.delivery_client = delivery_client

    cache = TaskCache(
        ttl_seconds=settings.cache.ttl_seconds,
        max_entries=settings.cache.max_entries,
    )
    state.cache = cache

    dispatcher = NotificationDispatcher(store=notification_store, delivery_client=delivery_client)
    state.dispatcher = dispatcher
    state.session_resolver = SessionResolver(identity_client=identity_client)
    state.application_manager = ApplicationManager(
        store=task_store,
        dispatcher=dispatcher,
        cache=cache,
    )
    state.lifecycle = TaskLifecycleController(
        store=task_store,
        review_store=review_store,
        rating_aggregator=RatingAggregator(review_store=review_store),
        dispatcher=dispatcher,
        cache=cache,
    )
    state.message_thread = MessageThread(
        task_store=task_store,
        message_store=message_store,
        dispatcher=dispatcher,
        allow_after_completion=settings.messaging.allow_after_completion,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": db_path,
            "identity_base_url": settings.identity.base_url,
            "delivery_base_url": settings.notifications.delivery_base_url,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    task_store.close()
    message_store.close()
    review_store.close()
    notification_store.close()

    await identity_client.close()
    if delivery_client is not None:
        await delivery_client.close()
