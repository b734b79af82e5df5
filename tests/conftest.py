import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from funnelbot.config import Settings
from funnelbot.database import build_engine, init_db
from funnelbot.services.catalog_service import CatalogStore
from funnelbot.services.contact_state_service import ContactStateStore
from funnelbot.services.dispatcher import ContentDispatcher
from funnelbot.services.funnel_engine import EngineSession, FunnelEngine
from funnelbot.services.media_service import MediaFetcher, MediaFile
from funnelbot.services.permission_service import PermissionSet
from funnelbot.services.result import MEDIA_FETCH_FAILED, MEDIA_UNREACHABLE, Result
from funnelbot.services.transport import MessagingTransport


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingTransport(MessagingTransport):
    def __init__(self, fail_after: int | None = None):
        self.sent: list[tuple[str, str, str]] = []
        self.fail_after = fail_after

    def _ok(self) -> bool:
        return self.fail_after is None or len(self.sent) <= self.fail_after

    async def send_text(self, contact_id: str, text: str) -> bool:
        self.sent.append((contact_id, "text", text))
        return self._ok()

    async def send_media(self, contact_id: str, media: MediaFile) -> bool:
        self.sent.append((contact_id, "media", media.filename))
        return self._ok()

    def texts(self) -> list[str]:
        return [payload for _, kind, payload in self.sent if kind == "text"]


class FakeMedia(MediaFetcher):
    def __init__(self, missing: set[str] | None = None, broken: set[str] | None = None):
        super().__init__("https://cdn.test")
        self.missing = missing or set()
        self.broken = broken or set()

    async def resolve(self, ref: str) -> Result[MediaFile]:
        if ref in self.missing:
            return Result.failure(f"missing {ref}", MEDIA_UNREACHABLE)
        if ref in self.broken:
            return Result.failure(f"download failed {ref}", MEDIA_FETCH_FAILED)
        return Result.success(MediaFile(data=b"bytes", mime="image/png", filename=ref.rsplit("/", 1)[-1]))


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite:///:memory:")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seed(session_factory):
    def _seed(*rows):
        db = session_factory()
        try:
            db.add_all(rows)
            db.commit()
            for row in rows:
                db.refresh(row)
            db.expunge_all()
        finally:
            db.close()
        return rows

    return _seed


@pytest.fixture
def catalog(session_factory):
    return CatalogStore(session_factory)


@pytest.fixture
def state_store(session_factory):
    return ContactStateStore(session_factory)


@pytest.fixture
def clock():
    # Monday 10:00 at UTC-5
    return FrozenClock(datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def dispatcher(transport, media):
    async def no_sleep(_seconds):
        return None

    return ContentDispatcher(transport, media, delay_seconds=0.5, sleep_func=no_sleep, alert_func=None)


@pytest.fixture
def make_engine(catalog, state_store, dispatcher, clock):
    def _make(permissions="all", **overrides):
        config = Settings(**overrides)
        session = EngineSession(permissions=PermissionSet.from_values("tester", permissions))
        return FunnelEngine(catalog, state_store, dispatcher, session, config=config, now_func=clock)

    return _make
