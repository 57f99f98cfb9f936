"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from flora_backend.app.main import app
from flora_backend.app.core.dependencies import get_geocoder
from flora_backend.app.core.exceptions import UpstreamGeocodeError
from flora_backend.app.core.jwt import issue_user_token
from flora_backend.app.core.reliability import FixedDelayRateLimiter
from flora_backend.app.db.session import get_db, Base
from flora_backend.app.models.enums import UserRole
from flora_backend.app.models.order import Order
from flora_backend.app.models.order_enums import OrderStatus
from flora_backend.app.models.organization import Organization
from flora_backend.app.models.user import User
from flora_backend.app.services.cache import InMemoryRouteCache
from flora_backend.app.services.geocoding import GeoPoint

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockRedis:
    """In-memory stand-in for the redis.asyncio client used by the route cache."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key):
        self.expiry.pop(key, None)
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self.store = {}
        self.expiry = {}


class FakeGeocoder:
    """Geocoder double: ``known`` addresses resolve, ``failing`` ones raise."""

    def __init__(self, known=None, failing=()):
        self.known = dict(known or {})
        self.failing = set(failing)
        self.calls = []

    async def geocode(self, address):
        self.calls.append(address)
        if address in self.failing:
            raise UpstreamGeocodeError("provider timeout")
        point = self.known.get(address)
        return GeoPoint(*point) if point else None

    async def aclose(self):
        pass


async def no_sleep(seconds):
    return None


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder()


@pytest.fixture(autouse=True)
def apply_overrides(fake_geocoder):
    """Route the app at the in-memory database and fresh per-test collaborators."""
    original_state = (app.state.route_cache, app.state.geocode_limiter)

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_geocoder] = lambda: fake_geocoder
    app.state.route_cache = InMemoryRouteCache(ttl_seconds=45)
    app.state.geocode_limiter = FixedDelayRateLimiter(0, sleep=no_sleep)
    yield

    app.dependency_overrides = {}
    app.state.route_cache, app.state.geocode_limiter = original_state


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session



@pytest.fixture
async def organization(db_session):
    org = Organization(name="Flora Test")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest.fixture
def make_user(db_session):
    """Factory for users in a given organization."""
    async def _make(organization, role, name, email=None, phone=None, is_active=True):
        user = User(
            organization_id=organization.id,
            email=email or f"{name.lower().replace(' ', '.')}@flora.test",
            name=name,
            phone=phone,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_order(db_session):
    """Factory for orders, by default assembled and assigned to ``courier``."""
    async def _make(organization, courier=None, address="", status=OrderStatus.ASSEMBLED,
                    lat=None, lon=None, client_name="Client"):
        order = Order(
            organization_id=organization.id,
            courier_id=courier.id if courier else None,
            client_name=client_name,
            address=address,
            status=status,
            latitude=lat,
            longitude=lon,
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


@pytest.fixture
def auth_headers():
    """Build a bearer header for a user; ``expires_delta`` allows expired tokens."""
    def _headers(user, expires_delta=None):
        return {"Authorization": f"Bearer {issue_user_token(user, expires_delta)}"}

    return _headers


@pytest.fixture
async def courier(make_user, organization):
    return await make_user(organization, UserRole.COURIER, "Courier One", phone="+70000000001")


@pytest.fixture
async def manager(make_user, organization):
    return await make_user(organization, UserRole.MANAGER, "Manager One")


@pytest.fixture
async def owner(make_user, organization):
    return await make_user(organization, UserRole.OWNER, "Owner One")
