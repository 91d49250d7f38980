"""
Shared test fixtures for the storekeeper test suite.

Key fixtures:
- make_token / make_auth_header: factories for JWTs with arbitrary claims
- store: parametrized over both backends (MemoryStore and RedisStore on fakeredis),
  so every test that requests it runs once per backend
- api: an httpx.AsyncClient wired to the Starlette app in-process (no network)
"""

import datetime

import fakeredis
import httpx
import jwt
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from storekeeper.auth import Authenticator
from storekeeper.server import create_app
from storekeeper.store import MemoryStore, RedisStore

TEST_SECRET = "test-secret-do-not-use"
TEST_ALGORITHM = "HS512"


@pytest.fixture
def authenticator():
    return Authenticator(secret=TEST_SECRET, algorithm=TEST_ALGORITHM)


# ---------------------------------------------------------------------------
# Token factory fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Usage in tests:
        token = make_token(sub="feeder", scope="state:write")
    """

    def _make_token(
        sub: str = "test-user",
        scope: str | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        """
        Args:
            scope: Raw scope claim (None omits the claim entirely)
            exp_hours: Hours until expiration (negative = already expired)
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now}

        if include_sub:
            payload["sub"] = sub
        if scope is not None:
            payload["scope"] = scope
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Same as make_token but returns the full "Bearer <token>" value."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------
def make_redis_store() -> RedisStore:
    # A private FakeServer per store, so stores never see each other's keys.
    return RedisStore(fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True))


@pytest.fixture
async def redis_store():
    store = make_redis_store()
    yield store
    await store.close()


@pytest.fixture(params=["memory", "redis"])
async def store(request):
    store = MemoryStore() if request.param == "memory" else make_redis_store()
    yield store
    await store.close()


# ---------------------------------------------------------------------------
# API client fixture
# ---------------------------------------------------------------------------
@pytest.fixture
async def api(store, authenticator):
    """httpx client talking to an app built around the parametrized store."""
    app = create_app(store, authenticator)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class UnreachableRedis:
    """Stands in for a redis client whose server has gone away."""

    async def scan_iter(self, match=None):
        raise RedisConnectionError("Connection refused")
        yield  # makes this an async generator, like the real scan_iter

    async def mget(self, keys):
        raise RedisConnectionError("Connection refused")

    async def mset(self, mapping):
        raise RedisConnectionError("Connection refused")

    async def ping(self):
        raise RedisConnectionError("Connection refused")

    async def aclose(self):
        pass
