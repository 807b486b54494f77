"""Entry point for the phone companion call webhook service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from api.twilio_routes import router as twilio_router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Phone Companion",
    description="Connects inbound calls to the realtime media stream server.",
)
app.include_router(twilio_router, prefix="/api")
