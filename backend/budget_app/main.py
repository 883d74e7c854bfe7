import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .db import Base, engine
from .migrations import run_migrations
from .routers import auth, diagnostics, profile, whatsapp

settings = get_settings()

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


app = FastAPI(title="Budget Tracker WhatsApp API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(profile.router, prefix=settings.api_prefix)
app.include_router(whatsapp.router, prefix=settings.api_prefix)
app.include_router(diagnostics.router, prefix=settings.api_prefix)


@app.on_event("startup")
def on_startup() -> None:
    """Ensure database tables exist and are up to date."""
    configure_logging()
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    if not settings.whatsapp_access_token or not settings.whatsapp_phone_number_id:
        logger.warning("WhatsApp credentials are not configured; replies and media downloads will fail.")
    if not settings.whatsapp_verify_token:
        logger.warning("WHATSAPP_VERIFY_TOKEN is not set; webhook verification will be rejected.")


@app.get("/")
def health_check() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run("budget_app.main:app", host="0.0.0.0", port=8000)
