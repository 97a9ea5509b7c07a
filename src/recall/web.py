from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI

from recall import config
from recall.db import init_db
from recall.jobs import register_jobs
from recall.routes import ai, entries, reminders, users
from recall.services.notifier import Notifier
from recall.services.reminders import build_reminder_service
from recall.store import EntryStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = app.state.reminder_service
    service.load_upcoming()
    if app.state.enable_jobs:
        register_jobs(service.scheduler.jobs, service, app.state.entries)
    service.scheduler.start()

    yield

    service.scheduler.cancel_all()
    await service.scheduler.drain()
    service.scheduler.shutdown()
    logger.info("Reminder scheduler stopped")


def create_app(
    db_path: Path | None = None,
    notifier: Notifier | None = None,
    enable_jobs: bool | None = None,
) -> FastAPI:
    init_db(db_path)

    app = FastAPI(title="Recall", lifespan=lifespan)
    service = build_reminder_service(
        db_path, notifier, immediate_delay=config.immediate_delay()
    )
    app.state.reminder_service = service
    app.state.users = service.users
    app.state.entries = EntryStore(db_path)
    app.state.enable_jobs = config.jobs_enabled() if enable_jobs is None else enable_jobs

    app.include_router(users.router)
    app.include_router(reminders.router)
    app.include_router(entries.router)
    app.include_router(ai.router)

    @app.get("/")
    async def index():
        return {"name": "Recall", "status": "ok"}

    return app
