"""Shared fixtures: a fresh SQLite database per test and wired-up services."""

import pytest
import pytest_asyncio
from sqlalchemy import select

from roadbook_auth.core.config import Settings
from roadbook_auth.core.login_attempts import InMemoryLoginAttemptTracker
from roadbook_auth.core.security import PasswordHasher, TokenCodec
from roadbook_auth.db.session import init_db, make_engine, make_session_factory
from roadbook_auth.models import PasswordResetToken, RefreshToken
from roadbook_auth.services.auth_service import AuthService
from roadbook_auth.services.credential_store import SQLAlchemyCredentialStore
from roadbook_auth.services.password_reset_service import PasswordResetService

TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "CorrectHorse1!"


class FakeClock:
    """Manually advanced clock for the attempt tracker."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    async def send_reset_link(self, to_email: str, reset_link: str) -> bool:
        self.messages.append((to_email, reset_link))
        return True


@pytest.fixture
def settings():
    return Settings(
        debug=False,
        access_token_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        bcrypt_rounds=4,
        store_timeout_seconds=5.0,
        allowed_hosts="*",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hasher(settings):
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def codec(settings):
    return TokenCodec(algorithm=settings.jwt_algorithm)


@pytest.fixture
def tracker(settings, clock):
    return InMemoryLoginAttemptTracker(
        max_attempts=settings.max_login_attempts,
        lockout_seconds=settings.lockout_seconds,
        clock=clock,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory, settings):
    return SQLAlchemyCredentialStore(session_factory, timeout=settings.store_timeout_seconds)


@pytest.fixture
def auth_service(store, settings, hasher, codec, tracker):
    return AuthService(store, settings, hasher=hasher, codec=codec, tracker=tracker)


@pytest.fixture
def reset_service(store, settings, hasher):
    return PasswordResetService(store, settings, hasher=hasher)


@pytest_asyncio.fixture
async def user(auth_service):
    """A registered apprentice with TEST_PASSWORD."""
    return await auth_service.register(TEST_EMAIL, TEST_PASSWORD, display_name="Alex Driver")


async def fetch_refresh_records(session_factory, user_id):
    async with session_factory() as db:
        result = await db.execute(
            select(RefreshToken).where(RefreshToken.user_id == user_id).order_by(RefreshToken.created_at)
        )
        return list(result.scalars().all())


async def fetch_reset_records(session_factory, user_id):
    async with session_factory() as db:
        result = await db.execute(
            select(PasswordResetToken).where(PasswordResetToken.user_id == user_id)
        )
        return list(result.scalars().all())
