import os
import pathlib
import sys
import tempfile
from datetime import timedelta

import pytest


BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.append(str(BACKEND_ROOT))


def pytest_configure():
    if not os.getenv("DATABASE_URL"):
        temp_dir = tempfile.mkdtemp(prefix="budget-tracker-tests-")
        db_path = pathlib.Path(temp_dir) / "pytest.db"
        os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")
    os.environ.setdefault("DEBUG_ENDPOINTS_ENABLED", "true")
    os.environ.setdefault("JWT_SECRET", "test-secret")


class FakeWhatsApp:
    """Records outbound replies and serves media from memory."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.media: dict[str, tuple[bytes, str]] = {}
        self.fail_media = False

    def send_text(self, to, body):
        self.sent.append((to, body))
        return f"wamid.out.{len(self.sent)}"

    def fetch_media(self, media_id):
        from budget_app.errors import WhatsAppAPIError
        from budget_app.whatsapp.client import MediaContent

        if self.fail_media or media_id not in self.media:
            raise WhatsAppAPIError(f"media {media_id} unavailable", status_code=404)
        content, mime_type = self.media[media_id]
        return MediaContent(content=content, mime_type=mime_type)

    def bodies_for(self, address):
        return [body for to, body in self.sent if to == address]


class FakeEngine:
    """Recognition engine that returns queued field mappings."""

    name = "fake"

    def __init__(self):
        self.results: list[object] = []
        self.calls: list[tuple[bytes, str]] = []

    def queue(self, *results):
        self.results.extend(results)

    def extract_fields(self, image, mime_type):
        self.calls.append((image, mime_type))
        result = self.results.pop(0) if self.results else None
        if isinstance(result, Exception):
            raise result
        return result


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class BrokenSession:
    """Session stand-in whose every statement fails."""

    def __init__(self):
        self.rolled_back = False

    def _fail(self, *args, **kwargs):
        from sqlalchemy.exc import OperationalError

        raise OperationalError("SELECT 1", {}, Exception("database is unavailable"))

    scalars = scalar = execute = commit = _fail

    def add(self, obj):
        pass

    def rollback(self):
        self.rolled_back = True


@pytest.fixture()
def db_session():
    from budget_app.db import Base, SessionLocal, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def broken_session():
    return BrokenSession()


@pytest.fixture()
def make_user(db_session):
    from budget_app.models import UserModel

    def _make_user(username="dorji", phone_number=None, whatsapp_enabled=True):
        user = UserModel(
            name=username.title(),
            username=username,
            password_hash="not-a-real-hash",
            phone_number=phone_number,
            whatsapp_enabled=whatsapp_enabled,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def resolver():
    from budget_app.pipeline.identity import PhoneNumberResolver

    return PhoneNumberResolver(
        country_code="975",
        local_length=8,
        mobile_prefixes=["17", "77"],
        default_country_code="1",
        default_national_length=10,
    )


@pytest.fixture()
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture()
def engine_stub():
    return FakeEngine()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def handler(db_session, whatsapp, engine_stub, resolver, clock):
    from budget_app.db import SessionLocal
    from budget_app.pipeline.dedup import InMemoryMessageStore
    from budget_app.pipeline.notifications import MessageTemplates, Notifier
    from budget_app.pipeline.recognition import TransactionRecognizer
    from budget_app.pipeline.webhook import WebhookHandler

    return WebhookHandler(
        session_factory=SessionLocal,
        notifier=Notifier(whatsapp, MessageTemplates("Nu.")),
        media_source=whatsapp,
        recognizer=TransactionRecognizer(engine_stub),
        resolver=resolver,
        message_store=InMemoryMessageStore(max_size=1000),
        duplicate_window=timedelta(hours=24),
        duplicate_scan_limit=10,
        image_window_seconds=10,
        clock=clock,
    )


@pytest.fixture()
def api_client(db_session, handler):
    from fastapi.testclient import TestClient

    from budget_app.main import app
    from budget_app.routers.whatsapp import get_webhook_handler

    app.dependency_overrides[get_webhook_handler] = lambda: handler
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_webhook_handler, None)
