"""
Storekeeper HTTP API built on Starlette.

Routes:
    GET  /parking-lot/metadata   metadata:read    -> store.get_metadatas()
    POST /parking-lot/metadata   metadata:write   -> store.update_metadatas(body)
    GET  /parking-lot/state      state:read       -> store.get_states()
    POST /parking-lot/state      state:write      -> store.update_states(body)
    GET  /health-check           (no auth)
    GET  /ready                  (no auth, pings the store)

Every parking-lot request follows the same pipeline:

    1. AccessGuard validates the Bearer token (signature, expiry, claims)
    2. AccessGuard checks the decoded scope for the route's capability
    3. Exactly one store operation runs
    4. The result is serialized as JSON

A failure in step 1 or 2 raises AuthError, which the exception handler turns
into a 401 before the store is touched. The app holds nothing but the store
and the authenticator it was built with.

Running the server:
    STOREKEEPER_JWT_SECRET=... python -m storekeeper.server
"""

import contextlib
import json
import logging
import sys
import uuid
from typing import Any, Callable

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from storekeeper.access import AccessType
from storekeeper.auth import Authenticator, AuthError, TokenInfo
from storekeeper.config import load_settings
from storekeeper.models import parse_metadatas, parse_states, to_wire_map
from storekeeper.store import Store, StoreError, create_store

logger = logging.getLogger("storekeeper")


# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO", "logger": "storekeeper",
         "message": "Access allowed", "subject": "feeder-krakow", "access": "WriteState"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in ("auth_data", "store_data"):
            if hasattr(record, field):
                log_entry.update(getattr(record, field))
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "info") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )


# ---------------------------------------------------------------------------
# Authentication & Authorization
# ---------------------------------------------------------------------------


class AccessDenied(AuthError):
    """Valid credential, but its scope lacks the capability the route needs."""

    def __init__(self, access: AccessType, token_info: TokenInfo):
        self.access = access
        super().__init__(f"missing access {access.name} in scope {token_info.raw_scope!r}")


class AccessGuard:
    """
    Authenticates a request and checks one capability against its scope.

    Stateless apart from the authenticator: every request is verified
    independently.
    """

    def __init__(self, authenticator: Authenticator):
        self._authenticator = authenticator

    def _authenticate(self, request: Request, request_id: str) -> TokenInfo:
        try:
            token_info = self._authenticator.validate_token(request.headers.get("authorization"))
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "path": request.url.path,
                        "decision": "rejected",
                        "reason": e.message,
                    }
                },
            )
            raise
        return token_info

    def authorize(self, request: Request, access: AccessType) -> TokenInfo:
        """
        Return the caller's token info if its scope grants `access`.

        Raises:
            AuthError: Missing or invalid credential
            AccessDenied: Valid credential without the capability
        """
        request_id = str(uuid.uuid4())[:8]
        token_info = self._authenticate(request, request_id)

        if not token_info.scope.contains(access):
            logger.warning(
                "Access denied: insufficient scope",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "subject": token_info.subject,
                        "path": request.url.path,
                        "required_access": access.name,
                        "token_scope": token_info.raw_scope,
                        "decision": "denied",
                    }
                },
            )
            raise AccessDenied(access, token_info)

        logger.info(
            "Access allowed",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "path": request.url.path,
                    "required_access": access.name,
                    "decision": "allowed",
                }
            },
        )
        return token_info


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------


class PayloadError(Exception):
    """The request body is not a JSON map of ID to the expected entry shape."""


async def _auth_error(request: Request, exc: AuthError) -> Response:
    return JSONResponse(
        {"detail": exc.message},
        status_code=exc.status_code,
        headers={"WWW-Authenticate": 'Bearer realm="storekeeper"'},
    )


async def _payload_error(request: Request, exc: PayloadError) -> Response:
    return JSONResponse({"detail": str(exc)}, status_code=400)


async def _store_error(request: Request, exc: StoreError) -> Response:
    logger.error("Store operation failed on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": "store unavailable"}, status_code=503)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be served back out.
    raise ValueError(f"{name} is not a valid JSON number")


async def _read_updates(request: Request, parse: Callable[[Any], dict]) -> dict:
    try:
        body = json.loads(await request.body(), parse_constant=_reject_constant)
        return parse(body)
    except (ValueError, RecursionError) as e:
        # json.JSONDecodeError, UnicodeDecodeError and pydantic's ValidationError
        # are all ValueErrors. RecursionError comes from absurdly nested bodies.
        raise PayloadError(f"Malformed payload: {e}") from e


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(store: Store, authenticator: Authenticator) -> Starlette:
    """Build the API around an explicitly owned store."""
    guard = AccessGuard(authenticator)

    async def get_metadatas(request: Request) -> Response:
        guard.authorize(request, AccessType.ReadMetadata)
        return JSONResponse(to_wire_map(await store.get_metadatas()))

    async def post_metadatas(request: Request) -> Response:
        guard.authorize(request, AccessType.WriteMetadata)
        updates = await _read_updates(request, parse_metadatas)
        await store.update_metadatas(updates)
        logger.info(
            "Metadata updated",
            extra={"store_data": {"updated": len(updates), "ids": sorted(updates)}},
        )
        return JSONResponse({"updated": len(updates)}, status_code=202)

    async def get_states(request: Request) -> Response:
        guard.authorize(request, AccessType.ReadState)
        return JSONResponse(to_wire_map(await store.get_states()))

    async def post_states(request: Request) -> Response:
        guard.authorize(request, AccessType.WriteState)
        updates = await _read_updates(request, parse_states)
        await store.update_states(updates)
        logger.info(
            "State updated",
            extra={"store_data": {"updated": len(updates), "ids": sorted(updates)}},
        )
        return JSONResponse({"updated": len(updates)}, status_code=202)

    async def health_check(request: Request) -> Response:
        """Liveness probe: is the process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    async def readiness_check(request: Request) -> Response:
        """Readiness probe: can this instance reach its store?"""
        if not await store.ping():
            return JSONResponse(
                {"status": "not_ready", "reason": "store unreachable"},
                status_code=503,
            )
        return JSONResponse({"status": "ready"})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        yield
        await store.close()

    return Starlette(
        routes=[
            Route("/parking-lot/metadata", get_metadatas, methods=["GET"]),
            Route("/parking-lot/metadata", post_metadatas, methods=["POST"]),
            Route("/parking-lot/state", get_states, methods=["GET"]),
            Route("/parking-lot/state", post_states, methods=["POST"]),
            Route("/health-check", health_check, methods=["GET"]),
            Route("/ready", readiness_check, methods=["GET"]),
        ],
        exception_handlers={
            AuthError: _auth_error,
            PayloadError: _payload_error,
            StoreError: _store_error,
        },
        lifespan=lifespan,
    )


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    # ConfigError propagates: no partial startup.
    settings = load_settings()
    configure_logging(settings.log_level)
    store = create_store(settings.store_uri)
    app = create_app(store, Authenticator(settings.jwt_secret, settings.jwt_algorithm))

    logger.info(
        "Starting storekeeper on %s:%d (store=%s)",
        settings.host,
        settings.port,
        type(store).__name__,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
