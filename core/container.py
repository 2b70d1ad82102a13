"""
Container — builds and owns every long-lived component from Settings.

    container = Container.from_settings(load_settings())
    await container.startup()      # create tables, auto-start the sender job
    ...
    await container.shutdown()     # stop the job, close clients and engine

Tests pass their own store / transport / cache to the constructor.
"""
from __future__ import annotations

import structlog
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from cache.message_cache import MessageCache, create_message_cache
from channels.base import MessageTransport
from channels.webhook import create_webhook_client
from config.settings import Settings
from database.session import create_engine_for_url, init_db, make_session_factory
from database.store_base import BaseMessageStore
from database.store_factory import create_store
from jobs.message_sender_job import MessageSenderJob
from scheduler.scheduler import NotRunningError
from services.message_service import MessageService
from services.sender import MessageSenderService

logger = structlog.get_logger()


class Container:

    def __init__(
        self,
        settings: Settings,
        store: BaseMessageStore,
        transport: MessageTransport,
        cache: Optional[MessageCache] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings
        self.store = store
        self.transport = transport
        self.cache = cache
        self.engine = engine

        self.message_service = MessageService(store)
        self.sender = MessageSenderService(
            self.message_service,
            transport,
            batch_size=settings.sender.batch_size,
            cache=cache,
            failure_policy=settings.sender.failure_policy,
            max_attempts=settings.sender.max_attempts,
            aggregate_policy=settings.sender.aggregate_policy,
        )
        self.job = MessageSenderJob(
            self.sender,
            interval=settings.sender.interval_seconds,
            stop_timeout=settings.sender.stop_timeout_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Container:
        engine = None
        session_factory = None
        if settings.database.store_backend == "sql":
            engine = create_engine_for_url(settings.database.url, settings.debug)
            session_factory = make_session_factory(engine)

        return cls(
            settings,
            store=create_store(settings.database, session_factory=session_factory),
            transport=create_webhook_client(settings.webhook),
            cache=create_message_cache(settings.cache),
            engine=engine,
        )

    async def startup(self) -> None:
        if self.engine is not None:
            await init_db(self.engine)
        if self.settings.sender.auto_start:
            await self.job.start()
        logger.info("container_started",
                    store=type(self.store).__name__,
                    transport=self.transport.name,
                    cache=type(self.cache).__name__ if self.cache else None,
                    sender_running=self.job.is_running())

    async def shutdown(self) -> None:
        if self.job.is_running():
            try:
                await self.job.stop()
            except NotRunningError:
                pass
        await self.transport.close()
        if self.cache is not None:
            await self.cache.close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("container_stopped")
