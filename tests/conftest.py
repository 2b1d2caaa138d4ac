import pytest
import os
import warnings
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

# Set environment variables BEFORE importing app modules
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///file:tableside_tests?mode=memory&cache=shared&uri=true"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["LOCAL_STORE_REDIS_ENABLED"] = "false"
os.environ["SEED_MENU"] = "false"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tableside.api.deps import get_local_store, get_store
from tableside.core.config import settings
from tableside.core.rate_limit import limiter
from tableside.db.session import Base, get_db
from tableside.main import app
from tableside.realtime.feed import ChangeFeed
from tableside.storage.local import LocalStore
from tableside.store.documents import DocumentStore


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


@pytest.fixture(scope="session", autouse=True)
def disable_rate_limiting():
    """Disable rate limiting for all tests."""
    original = settings.rate_limit_enabled
    settings.rate_limit_enabled = False
    yield
    settings.rate_limit_enabled = original


@pytest.fixture
def anyio_backend():
    return "asyncio"


class VirtualTimers:
    """``call_later`` stand-in that only fires when the test advances time."""

    class Handle:
        def __init__(self, due: float, callback) -> None:
            self.due = due
            self.callback = callback
            self.cancelled = False

        def cancel(self) -> None:
            self.cancelled = True

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[VirtualTimers.Handle] = []

    def __call__(self, delay_s: float, callback):
        handle = VirtualTimers.Handle(self.now + delay_s, callback)
        self._handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self._handles.remove(handle)
            self.now = handle.due
            handle.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)


@pytest.fixture
def timers() -> VirtualTimers:
    return VirtualTimers()


@pytest.fixture
def local_store() -> LocalStore:
    return LocalStore(enabled=False)


@pytest.fixture(autouse=True)
def store(tmp_path, local_store):
    db_path = tmp_path / "sync-test.db"
    from tableside.models import models as models_module
    _ = models_module
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    async_session = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    document_store = DocumentStore(async_session, ChangeFeed())

    async def override_get_db():
        async with async_session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: document_store
    app.dependency_overrides[get_local_store] = lambda: local_store
    limiter.reset()
    yield document_store
    app.dependency_overrides.clear()
    engine.sync_engine.dispose()


@pytest.fixture
async def async_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def test_client():
    """Synchronous test client; startup hooks are not run."""
    from fastapi.testclient import TestClient

    return TestClient(app)
