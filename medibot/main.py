# medibot/main.py
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from medibot import crud
from medibot.config import get_settings
from medibot.core.logging import setup_logging
from medibot.database import SessionLocal, create_tables
from medibot.exception_handlers import register_exception_handlers
from medibot.limiter import limiter
from medibot.routers import appointments, chat, doctors, notifications

settings = get_settings()

logger = setup_logging(json_logs=settings.log_json, level=logging.DEBUG if settings.debug else logging.INFO)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)


@app.on_event("startup")
def on_startup():
    create_tables()
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            created = crud.seed_doctors(db)
        finally:
            db.close()
        logger.info("demo_doctors_seeded", created=created)
    logger.info("startup_complete", environment=settings.environment, email_enabled=settings.email_enabled)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(doctors.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(chat.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


@app.get("/api/v1/health", tags=["Health Checks"])
def health():
    return {"status": "ok", "version": settings.app_version}


if __name__ == "__main__":
    uvicorn.run("medibot.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
