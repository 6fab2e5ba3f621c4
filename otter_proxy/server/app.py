"""FastAPI proxy exposing Otter login, speech listing and transcripts.

WHY: Front-end tools need a small HTTP API over an Otter account without
handling Otter cookies, CSRF tokens or the undocumented endpoints
themselves. The proxy logs in once, parks the logged-in OtterClient in a
session store, and hands the caller an opaque session token.

HOW: One FastAPI app. POST /api/auth/login creates an OtterClient, logs in
and stores it under a new session token. GET /api/speech-ids and
GET /api/transcript/{speech_id} look the client up from the ``session-id``
header and forward to it. POST /api/auth/logout drops the session.
HTTP middlewares add request logging, security headers, a body size limit
and per-address rate limiting; CORS uses Starlette's CORSMiddleware.

RULES:
- Error bodies are always {"error": ..., "message": ...}
- Missing, unknown or expired sessions → 401
- Otter transport errors → 500; Otter non-2xx on a transcript → 404/502
- The login route has its own, much tighter rate limit
- Exception details are hidden from callers in production
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otter_proxy import __version__
from otter_proxy.api.client import OtterClient
from otter_proxy.api.errors import OtterError
from otter_proxy.config import (
    ALLOWED_ORIGINS,
    API_RATE_LIMIT,
    AUTH_RATE_LIMIT,
    HOST,
    IS_PRODUCTION,
    MAX_BODY_BYTES,
    PORT,
    RATE_LIMIT_WINDOW_S,
    SESSION_CLEANUP_INTERVAL_S,
    configure_logging,
)
from otter_proxy.server.models import (
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    LogoutResponse,
    SpeechIdsResponse,
    SpeechSummaryModel,
    TranscriptResponse,
)
from otter_proxy.server.ratelimit import RateLimiter
from otter_proxy.server.sessions import SessionError, SessionStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()
api_limiter = RateLimiter(API_RATE_LIMIT, RATE_LIMIT_WINDOW_S)
auth_limiter = RateLimiter(AUTH_RATE_LIMIT, RATE_LIMIT_WINDOW_S)

_DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")

_SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Opener-Policy": "same-origin",
}


async def _close_sessions(sessions: List[Any]) -> None:
    for session in sessions:
        try:
            await session.client.aclose()
        except Exception:
            logger.warning("Failed to close client for session %s", session.id)


async def _periodic_cleanup() -> None:
    """Sweep expired sessions and stale rate-limit windows every hour."""
    while True:
        await asyncio.sleep(SESSION_CLEANUP_INTERVAL_S)
        await _close_sessions(session_store.cleanup_expired())
        api_limiter.prune()
        auth_limiter.prune()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup; close every client on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    await _close_sessions(session_store.clear())


app = FastAPI(
    lifespan=lifespan,
    title="Otter.ai API Proxy",
    description=(
        "Thin HTTP proxy over an Otter.ai account. Log in with Otter "
        "credentials to get a session token, then list speeches and fetch "
        "transcripts with the session-id header."
    ),
    version=__version__,
    docs_url=None if IS_PRODUCTION else "/docs",
    redoc_url=None if IS_PRODUCTION else "/redoc",
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class APIError(Exception):
    """An error response with the proxy's {error, message} body."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.message = message
        self.headers = headers
        super().__init__(message)


def _error_response(
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
        headers=headers,
    )


@app.exception_handler(APIError)
async def _api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return _error_response(exc.status_code, exc.error, exc.message, exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = []
    for err in exc.errors():
        field = str(err.get("loc", ["body"])[-1])
        if err.get("type") == "string_too_long":
            problems.append("{} too long".format(field))
        elif err.get("type") in ("missing", "string_too_short"):
            problems.append("{} is required".format(field))
        else:
            problems.append("{}: {}".format(field, err.get("msg", "invalid")))
    return _error_response(400, "Validation Error", "; ".join(problems))


# Router 404s raise Starlette's HTTPException, which FastAPI's subclass does not match.
@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        return _error_response(404, "Not Found", "The requested endpoint does not exist")
    return _error_response(exc.status_code, str(exc.detail), str(exc.detail))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if IS_PRODUCTION else str(exc)
    return _error_response(500, "Something went wrong!", message)


# ---------------------------------------------------------------------------
# Middleware (registered inner-most first)
# ---------------------------------------------------------------------------


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@app.middleware("http")
async def _limit_body_size(request: Request, call_next):
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > MAX_BODY_BYTES:
        return _error_response(413, "Payload Too Large", "Request body exceeds 10mb")
    return await call_next(request)


@app.middleware("http")
async def _rate_limit(request: Request, call_next):
    result = api_limiter.hit(_client_key(request))
    if not result.allowed:
        return _error_response(
            429,
            "Too many requests",
            "Rate limit exceeded. Please try again later.",
            headers=result.headers(),
        )
    response = await call_next(request)
    response.headers.update(result.headers())
    return response


@app.middleware("http")
async def _security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in _SECURITY_HEADERS.items():
        if name == "Content-Security-Policy" and request.url.path.startswith(_DOCS_PATHS):
            continue
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def _log_requests(request: Request, call_next):
    start = time.monotonic()
    response = await call_next(request)
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.monotonic() - start) * 1000,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=None if ALLOWED_ORIGINS else ".*",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _auth_rate_limit(request: Request) -> None:
    result = auth_limiter.hit(_client_key(request))
    if not result.allowed:
        raise APIError(
            429,
            "Too many authentication attempts",
            "Please try again later.",
            headers=result.headers(),
        )


def _client_for(session_id: Optional[str]) -> OtterClient:
    if not session_id:
        raise APIError(401, "Session ID required", "Please provide session-id in headers")
    try:
        return session_store.get_client(session_id)
    except SessionError as exc:
        raise APIError(401, "Invalid session", str(exc))


SessionHeader = Annotated[
    Optional[str],
    Header(alias="session-id", description="Session token returned by /api/auth/login."),
]


# ---------------------------------------------------------------------------
# Endpoints: service
# ---------------------------------------------------------------------------


@app.get("/", tags=["service"], summary="Service information")
async def index() -> Dict[str, Any]:
    info: Dict[str, Any] = {
        "name": "Otter.ai API",
        "version": __version__,
        "status": "running",
    }
    if not IS_PRODUCTION:
        info["endpoints"] = {
            "login": "POST /api/auth/login",
            "speechIds": "GET /api/speech-ids",
            "transcript": "GET /api/transcript/:speechId",
            "logout": "POST /api/auth/logout",
            "health": "GET /health",
        }
    return info


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["service"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# Endpoints: auth
# ---------------------------------------------------------------------------


@app.post(
    "/api/auth/login",
    response_model=LoginResponse,
    tags=["auth"],
    summary="Log in with Otter credentials",
    description=(
        "Authenticates against Otter.ai and returns a session token. Send the "
        "token as the session-id header on subsequent requests."
    ),
    dependencies=[Depends(_auth_rate_limit)],
    responses={
        400: {"model": ErrorResponse, "description": "Missing or oversized credentials"},
        401: {"model": ErrorResponse, "description": "Otter rejected the credentials"},
        429: {"model": ErrorResponse, "description": "Too many login attempts"},
        500: {"model": ErrorResponse, "description": "Otter unreachable"},
    },
)
async def login(body: LoginRequest) -> LoginResponse:
    logger.info("Authentication attempt for user: %s", body.username)
    client = OtterClient()
    try:
        envelope = await client.login(body.username, body.password)
    except OtterError as exc:
        await client.aclose()
        logger.error("Authentication error for user %s: %s", body.username, exc)
        message = "Authentication service unavailable" if IS_PRODUCTION else str(exc)
        raise APIError(500, "Authentication Error", message)

    if envelope.status_code != 200 or not client.user_id:
        await client.aclose()
        logger.info(
            "Login failed for user %s (status %s)", body.username, envelope.status_code
        )
        raise APIError(401, "Authentication Failed", "Invalid username or password")

    session = session_store.create_session(client, body.username)
    user: Dict[str, Any] = {"userid": client.user_id}
    if isinstance(envelope.data, dict):
        user.update(envelope.data)

    logger.info("Login successful for user: %s, session: %s", body.username, session.id)
    return LoginResponse(
        success=True,
        sessionId=session.id,
        user=user,
        expiresIn=session_store.timeout_seconds * 1000,
    )


@app.post(
    "/api/auth/logout",
    response_model=LogoutResponse,
    tags=["auth"],
    summary="Discard a session",
    description="Removes the session and its Otter client. Always succeeds.",
)
async def logout(
    session_id: SessionHeader = None,
    body: Optional[LogoutRequest] = None,
) -> LogoutResponse:
    token = session_id or (body.sessionId if body else None)
    if token:
        session = session_store.delete_session(token)
        if session is not None:
            session.client.logout()
            await session.client.aclose()
    return LogoutResponse(success=True, message="Logged out successfully")


# ---------------------------------------------------------------------------
# Endpoints: speeches
# ---------------------------------------------------------------------------


@app.get(
    "/api/speech-ids",
    response_model=SpeechIdsResponse,
    tags=["speeches"],
    summary="List every speech of the account",
    description=(
        "Lists owned and shared speeches (owned first). A source that fails "
        "to load contributes no speeches instead of failing the request."
    ),
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid session"},
        500: {"model": ErrorResponse, "description": "Otter unreachable"},
    },
)
async def speech_ids(session_id: SessionHeader = None) -> SpeechIdsResponse:
    client = _client_for(session_id)
    try:
        envelope = await client.get_all_speeches_from_all_sources()
    except OtterError as exc:
        logger.error("Error in /api/speech-ids: %s", exc)
        raise APIError(500, "Failed to get speech IDs", str(exc))

    result = envelope.data
    summaries = [SpeechSummaryModel(**s.to_dict()) for s in result.summaries()]
    return SpeechIdsResponse(total_count=result.total_count, speech_ids=summaries)


def _speech_record(data: Any) -> Optional[Dict[str, Any]]:
    """The speech object of a /speech response (wrapped in "speech" or bare)."""
    if not isinstance(data, dict):
        return None
    speech = data.get("speech")
    return speech if isinstance(speech, dict) else data


def _transcript_from_speech(speech_id: str, speech: Dict[str, Any]) -> TranscriptResponse:
    segments = speech.get("transcripts")
    if isinstance(segments, list):
        text = "\n".join(
            str(seg.get("transcript", "")) for seg in segments if isinstance(seg, dict)
        )
        structured = segments  # type: Optional[List[Any]]
    else:
        text = str(speech.get("transcript") or "")
        structured = speech.get("structured_transcript")

    return TranscriptResponse(
        speech_id=speech_id,
        title=speech.get("title") or "Untitled",
        duration=speech.get("duration") or 0,
        created_at=speech.get("created_at"),
        transcript_text=text,
        speakers=speech.get("speakers") or [],
        structured_transcript=structured,
    )


@app.get(
    "/api/transcript/{speech_id}",
    response_model=TranscriptResponse,
    tags=["speeches"],
    summary="Get the transcript of one speech",
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid session"},
        404: {"model": ErrorResponse, "description": "Speech not found"},
        500: {"model": ErrorResponse, "description": "Otter unreachable"},
        502: {"model": ErrorResponse, "description": "Otter returned an error"},
    },
)
async def transcript(speech_id: str, session_id: SessionHeader = None) -> TranscriptResponse:
    client = _client_for(session_id)
    logger.info("Fetching transcript for speech ID: %s", speech_id)
    try:
        envelope = await client.get_speech(speech_id)
    except OtterError as exc:
        logger.error("Error in /api/transcript/%s: %s", speech_id, exc)
        raise APIError(500, "Failed to get transcript", str(exc))

    if envelope.status_code == 404:
        raise APIError(404, "Speech not found", "No speech found with ID: {}".format(speech_id))
    if not envelope.ok:
        raise APIError(
            502,
            "Failed to get transcript",
            "Otter returned status {}".format(envelope.status_code),
        )

    speech = _speech_record(envelope.data)
    if speech is None:
        raise APIError(502, "Failed to get transcript", "Unexpected response from Otter")
    return _transcript_from_speech(speech_id, speech)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Entry point for the otter-proxy-api console script."""
    import uvicorn

    configure_logging()
    logger.info("Otter.ai API proxy starting on port %s", port or PORT)
    uvicorn.run(app, host=host or HOST, port=port or PORT)
