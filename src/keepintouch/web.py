from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.templating import Jinja2Templates

from keepintouch.config import Settings
from keepintouch.db import init_db
from keepintouch.routes import auth, contacts, index, notes
from keepintouch.services.calendar_export import ics_property
from keepintouch.services.schedule import utcnow

BASE_DIR = Path(__file__).resolve().parent


def create_app(
    settings: Settings | None = None, clock: Callable[[], datetime] | None = None
) -> FastAPI:
    settings = settings or Settings.from_env()
    init_db(settings.db_path)

    app = FastAPI(title="KeepInTouch")
    app.state.settings = settings
    app.state.clock = clock or utcnow

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    templates = Jinja2Templates(directory=BASE_DIR / "templates")
    templates.env.filters["ics_property"] = ics_property
    templates.env.newline_sequence = "\r\n"
    app.state.templates = templates

    app.include_router(auth.router)
    app.include_router(contacts.router)
    app.include_router(notes.router)
    app.include_router(index.router)

    return app
