"""Async HTTP client for the (unofficial) Otter.ai web API.

WHY: The proxy and the CLI need to log in with Otter credentials, list and
fetch speeches, upload recordings, and export transcripts. This module
encapsulates the cookie-based session, the per-operation error taxonomy,
and every endpoint behind a single OtterClient class so callers never deal
with HTTP details.

HOW: Wraps httpx.AsyncClient. login() performs the Basic-auth credential
exchange and stores the resulting user id and cookies as one AuthState
value. Every other call goes through _request(), which reads the AuthState
once the lock is held, adds the Cookie header (and the CSRF header for
state-mutating calls), converts transport failures into the operation's
domain error, and returns a uniform Envelope. Aggregation and upload are
delegated to aggregate.py and upload.py.

RULES:
- One OtterClient = one identity; use as ``async with OtterClient() as c:``
- Identity-gated calls raise NotAuthenticatedError before any network call
- Identity-gated calls always send ``userid`` as a query parameter
- Non-2xx responses are returned as Envelopes, never raised
- Transport errors are raised as the operation's OperationError subclass
- A per-instance asyncio.Lock serializes every exchange with the API, so a
  login never interleaves with an in-flight request
- Identity-gated calls read the AuthState under that lock: a call queued
  behind a login carries the new identity
- Download writes the export with blocking file I/O on the event loop
- No automatic retries; one fixed timeout per request (30s by default)
"""

from __future__ import annotations

import asyncio
import http.cookiejar
import logging
from pathlib import Path
from typing import Any

import httpx

from otter_proxy.api import aggregate
from otter_proxy.api.cookies import CookieJar
from otter_proxy.api.errors import (
    AuthError,
    CreateSpeakerFailed,
    DownloadSpeechFailed,
    GetFoldersFailed,
    GetNotificationSettingsFailed,
    GetSpeakersFailed,
    GetSpeechesFailed,
    GetSpeechFailed,
    GetUserFailed,
    ListGroupsFailed,
    MoveToTrashBinFailed,
    NotAuthenticatedError,
    OperationError,
    QuerySpeechFailed,
    RealtimeNotImplementedError,
    TRANSPORT_ERRORS,
)
from otter_proxy.api.models import AuthState, Envelope, ResponseKind
from otter_proxy.api.upload import UploadPipeline
from otter_proxy.config import (
    OTTER_API_BASE_URL,
    OTTER_S3_BASE_URL,
    OTTER_UPLOAD_BUCKET,
    OTTER_WEB_ORIGIN,
    REQUEST_TIMEOUT_S,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_FORMATS = "txt,pdf,mp3,docx,srt"


def _non_persistent_cookies() -> http.cookiejar.CookieJar:
    """A jar that refuses every cookie.

    Set-Cookie handling belongs to CookieJar/AuthState; httpx must not keep
    a second copy that would leak cookies across logins.
    """
    policy = http.cookiejar.DefaultCookiePolicy(allowed_domains=[])
    return http.cookiejar.CookieJar(policy=policy)


def export_filename(speech_id: str, name: str | None, file_format: str) -> str:
    """Local filename for a bulk export.

    Several comma-separated formats are delivered as a zip archive.
    """
    extension = "zip" if "," in file_format else file_format
    return f"{name or speech_id}.{extension}"


class OtterClient:
    """Async client for one Otter.ai identity.

    WHY: Otter's web API is session-cookie based. Keeping the identity,
    cookies and connection pool in one object makes "one login = one
    client" explicit and lets the proxy park a logged-in client per
    session token.

    HOW: Wraps httpx.AsyncClient. The current AuthState is swapped as a
    whole by login()/logout(); requests read a snapshot of it.

    RULES:
    - base_url / s3_base_url default to the values from config
    - transport is injectable (httpx.MockTransport in tests)
    - Call aclose() (or use ``async with``) to release the connection pool
    """

    # Browser-like headers expected by the Otter web API
    DEFAULT_HEADERS = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Referer": OTTER_WEB_ORIGIN + "/",
        "Origin": OTTER_WEB_ORIGIN,
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(
        self,
        base_url: str | None = None,
        s3_base_url: str | None = None,
        upload_bucket: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or OTTER_API_BASE_URL).rstrip("/") + "/"
        self._s3_base_url = (s3_base_url or OTTER_S3_BASE_URL).rstrip("/") + "/"
        self._upload_bucket = upload_bucket or OTTER_UPLOAD_BUCKET
        self._auth = AuthState()
        self._lock = asyncio.Lock()
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or REQUEST_TIMEOUT_S),
            transport=transport,
            cookies=_non_persistent_cookies(),
        )

    async def __aenter__(self) -> OtterClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def auth_state(self) -> AuthState:
        return self._auth

    @property
    def user_id(self) -> str | None:
        return self._auth.user_id

    @property
    def cookies(self) -> CookieJar:
        return self._auth.cookies

    @property
    def upload_url(self) -> str:
        return self._s3_base_url + self._upload_bucket

    def require_auth(self, operation: str) -> AuthState:
        """Return the current AuthState, or raise if nobody is logged in."""
        auth = self._auth
        if not auth.authenticated:
            raise NotAuthenticatedError(operation)
        return auth

    async def login(self, username: str, password: str) -> Envelope:
        """Exchange credentials for a user id and session cookies.

        WHY: Every identity-gated endpoint needs the user id and the cookies
        set by this call.

        HOW: GET /login with HTTP Basic auth and ``username`` repeated as a
        query parameter (the API expects both). On 200 the user id and the
        response cookies replace the current AuthState.

        RULES:
        - Non-200 responses are returned unchanged; AuthState is untouched
        - Previous cookies are never sent on, or merged into, a new login
        - Transport errors raise AuthError
        """
        async with self._lock:
            try:
                response = await self._http.get(
                    self._base_url + "login",
                    params={"username": username},
                    auth=(username, password),
                    headers=self.DEFAULT_HEADERS,
                )
            except TRANSPORT_ERRORS as exc:
                raise AuthError(exc) from exc

            envelope = Envelope(response.status_code, self._decode(response))
            if response.status_code != 200:
                logger.info("Login rejected with status %s", response.status_code)
                return envelope

            body = envelope.data if isinstance(envelope.data, dict) else {}
            self._auth = AuthState(
                user_id=body.get("userid"),
                cookies=CookieJar.from_response(response),
            )

        logger.info("Logged in as user %s", self._auth.user_id)
        return envelope

    def logout(self) -> None:
        """Forget the identity and cookies of the current login."""
        self._auth = AuthState()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _headers(
        self,
        auth: AuthState,
        csrf: bool = False,
        extra: dict[str, str] | None = None,
    ) -> dict[str, str]:
        headers = dict(self.DEFAULT_HEADERS)
        cookie = auth.cookies.header_value()
        if cookie:
            headers["Cookie"] = cookie
        if csrf and auth.cookies.csrf_token:
            headers["x-csrftoken"] = auth.cookies.csrf_token
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _decode(
        response: httpx.Response,
        response_kind: ResponseKind = ResponseKind.JSON,
    ) -> Any:
        if response_kind is ResponseKind.BYTES:
            return response.content
        try:
            return response.json()
        except ValueError:
            return response.text

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error: type[OperationError],
        gated: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        csrf: bool = False,
        response_kind: ResponseKind = ResponseKind.JSON,
    ) -> Envelope:
        """Send one request to the Otter API and wrap the result.

        ``gated`` names an identity-gated operation: the identity check and
        the ``userid`` param then use the AuthState current once the lock
        is held, so a request queued behind a login carries that login's
        identity.
        """
        async with self._lock:
            auth = self._auth
            if gated is not None:
                auth = self.require_auth(gated)
                params = {"userid": auth.user_id, **(params or {})}
            try:
                response = await self._http.request(
                    method,
                    self._base_url + path,
                    params=params,
                    json=json,
                    headers=self._headers(auth, csrf=csrf, extra=headers),
                )
            except TRANSPORT_ERRORS as exc:
                logger.warning("%s %s failed: %s", method, path, exc)
                raise error(exc) from exc

        logger.debug("%s %s -> %s", method, path, response.status_code)
        return Envelope(response.status_code, self._decode(response, response_kind))

    async def _object_store_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request straight to the object store, without cookies.

        Transport errors propagate unwrapped; the upload pipeline records
        them against the step that raised them.
        """
        return await self._http.request(method, url, **kwargs)

    # ------------------------------------------------------------------
    # Users, speakers, folders, groups
    # ------------------------------------------------------------------

    async def get_user(self) -> Envelope:
        return await self._request("GET", "user", error=GetUserFailed)

    async def get_speakers(self) -> Envelope:
        return await self._request(
            "GET",
            "speakers",
            error=GetSpeakersFailed,
            gated="Get speakers",
        )

    async def create_speaker(self, speaker_name: str) -> Envelope:
        return await self._request(
            "POST",
            "create_speaker",
            error=CreateSpeakerFailed,
            gated="Create speaker",
            json={"speaker_name": speaker_name},
            csrf=True,
        )

    async def get_notification_settings(self) -> Envelope:
        return await self._request(
            "GET", "get_notification_settings", error=GetNotificationSettingsFailed
        )

    async def list_groups(self) -> Envelope:
        return await self._request(
            "GET",
            "list_groups",
            error=ListGroupsFailed,
            gated="List groups",
        )

    async def get_folders(self) -> Envelope:
        return await self._request(
            "GET",
            "folders",
            error=GetFoldersFailed,
            gated="Get folders",
        )

    # ------------------------------------------------------------------
    # Speeches
    # ------------------------------------------------------------------

    async def get_speeches(
        self,
        folder: int = 0,
        page_size: int = 45,
        source: str = "owned",
    ) -> Envelope:
        return await self._request(
            "GET",
            "speeches",
            error=GetSpeechesFailed,
            gated="Get speeches",
            params={
                "folder": folder,
                "page_size": page_size,
                "source": source,
            },
        )

    async def get_all_speeches(
        self,
        folder: int = 0,
        source: str = "owned",
        max_speeches: int = 1000,
    ) -> Envelope:
        """Fetch up to ``max_speeches`` speeches in one request.

        See aggregate.get_all_speeches.
        """
        return await aggregate.get_all_speeches(self, folder, source, max_speeches)

    async def get_all_speeches_from_all_sources(
        self,
        folder: int = 0,
        max_per_source: int = 500,
    ) -> Envelope:
        """Fetch owned and shared speeches; see aggregate.get_all_speeches_from_all_sources."""
        return await aggregate.get_all_speeches_from_all_sources(
            self, folder, max_per_source
        )

    async def get_speech(self, speech_id: str) -> Envelope:
        return await self._request(
            "GET",
            "speech",
            error=GetSpeechFailed,
            gated="Get speech",
            params={"otid": speech_id},
        )

    async def query_speech(self, query: str, speech_id: str, size: int = 500) -> Envelope:
        return await self._request(
            "GET",
            "advanced_search",
            error=QuerySpeechFailed,
            params={"query": query, "size": size, "otid": speech_id},
        )

    async def move_to_trash_bin(self, speech_id: str) -> Envelope:
        return await self._request(
            "POST",
            "move_to_trash_bin",
            error=MoveToTrashBinFailed,
            gated="Move to trash bin",
            json={"otid": speech_id},
            csrf=True,
        )

    # ------------------------------------------------------------------
    # Upload / download
    # ------------------------------------------------------------------

    async def upload_speech(
        self,
        file_name: str | Path,
        content_type: str = "audio/mp4",
    ) -> Envelope:
        """Upload a local recording and register it for transcription.

        Runs the four-step UploadPipeline. Returns the finish call's
        Envelope, or the raw Envelope of the first step that did not
        succeed. Transport errors raise UploadSpeechFailed.
        """
        pipeline = UploadPipeline(self, file_name, content_type)
        await pipeline.run()
        return pipeline.result()

    async def download_speech(
        self,
        speech_id: str,
        name: str | None = None,
        file_format: str = DEFAULT_EXPORT_FORMATS,
        output_dir: str | Path | None = None,
    ) -> Envelope:
        """Export a speech and write it to ``output_dir``.

        WHY: Otter exports transcripts through a bulk-export endpoint that
        returns the file body directly.

        HOW: POST /bulk_export with the CSRF header and a binary response.
        On 200 the bytes are written to ``output_dir / filename`` where the
        filename comes from export_filename().

        RULES:
        - Non-200 responses are returned unchanged and nothing is written
        - The Envelope data on success is {"filename", "path"}
        - Transport and file-system errors raise DownloadSpeechFailed
        """
        envelope = await self._request(
            "POST",
            "bulk_export",
            error=DownloadSpeechFailed,
            gated="Download speech",
            json={"formats": file_format, "speech_otid_list": [speech_id]},
            csrf=True,
            response_kind=ResponseKind.BYTES,
        )
        if envelope.status_code != 200:
            logger.warning(
                "Download of %s returned status %s", speech_id, envelope.status_code
            )
            return envelope

        filename = export_filename(speech_id, name, file_format)
        path = Path(output_dir or ".") / filename
        try:
            path.write_bytes(envelope.data)
        except OSError as exc:
            raise DownloadSpeechFailed(exc) from exc

        logger.info("Downloaded %s to %s", speech_id, path)
        return Envelope(envelope.status_code, {"filename": filename, "path": str(path)})

    # ------------------------------------------------------------------
    # Real-time transcription
    # ------------------------------------------------------------------

    async def speech_start(self) -> Envelope:
        # The web app opens a websocket to the speech streaming service with
        # a token returned by speech_start.
        raise RealtimeNotImplementedError("Speech start is not implemented")

    async def speech_stop(self) -> Envelope:
        raise RealtimeNotImplementedError("Speech stop is not implemented")
