"""Four-step upload handshake: Otter presigned POST → S3 → Otter finish.

WHY: Otter does not accept recordings directly. The web app asks Otter for
presigned S3 POST parameters, preflights the S3 endpoint like a browser
would, posts the file straight to S3, and finally tells Otter where the
object landed. Each step depends on the previous one, and a failure at any
point must stop the whole upload.

HOW: UploadPipeline walks an explicit state machine:

    ParamsFetched → Preflighted → Uploaded → Finished
                 ↘ Failed(step, response | cause)

Every state reached is appended to ``history`` so callers (and tests) can
see exactly where progress stopped. run() returns the terminal state;
result() turns it into the Envelope/exception contract of
OtterClient.upload_speech.

RULES:
- Steps run strictly in order; a step starts only after the previous
  response has been fully received
- Nothing is retried; the first non-success status ends the pipeline and
  its raw response becomes the result
- S3 success is 201 only (the presigned policy asks for it)
- ``form_action`` is not a form field and is dropped; every form value is
  sent as a string, ``success_action_status`` included
- The file is streamed from disk by httpx, never read whole into memory;
  the reads are blocking file I/O on the event loop
- The Otter API steps (params, finish) check the identity under the
  client lock, each with the AuthState current at that step
- S3 requests carry no Otter cookies
- No compensation: an object uploaded to S3 whose finish call never runs
  (or fails) stays orphaned in the bucket
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from bs4 import BeautifulSoup

from otter_proxy.api.errors import TRANSPORT_ERRORS, OperationError, UploadSpeechFailed
from otter_proxy.api.models import Envelope
from otter_proxy.config import OTTER_WEB_ORIGIN

if TYPE_CHECKING:
    from otter_proxy.api.client import OtterClient

logger = logging.getLogger(__name__)

_FILE_OR_TRANSPORT_ERRORS = TRANSPORT_ERRORS + (OSError,)

UPLOAD_LANGUAGE = "en"
UPLOAD_COUNTRY = "us"


class UploadStep(str, enum.Enum):
    """The four steps of the upload handshake."""

    PARAMS = "params"
    PREFLIGHT = "preflight"
    UPLOAD = "upload"
    FINISH = "finish"


@dataclass(frozen=True)
class ParamsFetched:
    """Step 1 done: presigned POST form fields, ready to send."""

    form: Dict[str, str]


@dataclass(frozen=True)
class Preflighted:
    """Step 2 done: S3 accepted the CORS preflight."""

    form: Dict[str, str]
    response: Envelope


@dataclass(frozen=True)
class Uploaded:
    """Step 3 done: S3 stored the object and reported where."""

    location: str
    bucket: str
    key: str


@dataclass(frozen=True)
class Finished:
    """Step 4 done: Otter's finish call returned."""

    response: Envelope


@dataclass(frozen=True)
class Failed:
    """The pipeline stopped at ``step``.

    Exactly one of ``response`` (a non-success status) or ``cause`` (a
    transport, file or parse error) is set.
    """

    step: UploadStep
    response: Optional[Envelope] = None
    cause: Optional[BaseException] = None


UploadState = Union[ParamsFetched, Preflighted, Uploaded, Finished, Failed]


def build_upload_form(params: Dict[str, Any]) -> Dict[str, str]:
    """Turn Otter's presigned POST parameters into multipart form fields.

    Otter returns ``success_action_status`` as a number and includes a
    ``form_action`` entry that is the target URL, not a field.
    """
    form: Dict[str, str] = {}
    for name, value in params.items():
        if name == "form_action" or value is None:
            continue
        form[name] = value if isinstance(value, str) else str(value)
    if "success_action_status" in params:
        form["success_action_status"] = str(params["success_action_status"])
    return form


def parse_post_response(body: Union[str, bytes]) -> Uploaded:
    """Extract Location, Bucket and Key from an S3 PostResponse document.

    The lxml XML parser recovers from broken markup, so a truncated
    document surfaces as missing fields. Raises ValueError when the root
    element or a field is missing.
    """
    soup = BeautifulSoup(body, "xml")
    root = soup.find("PostResponse")
    if root is None:
        raise ValueError("S3 response is not a PostResponse document")

    fields: Dict[str, str] = {}
    for name in ("Location", "Bucket", "Key"):
        tag = root.find(name)
        fields[name] = tag.get_text(strip=True) if tag is not None else ""

    missing = [name for name in ("Location", "Bucket", "Key") if not fields.get(name)]
    if missing:
        raise ValueError(
            "S3 PostResponse is missing {}".format(", ".join(missing))
        )
    return Uploaded(location=fields["Location"], bucket=fields["Bucket"], key=fields["Key"])


class UploadPipeline:
    """Drives one file through the upload handshake.

    Args:
        client: The logged-in OtterClient that owns the session.
        file_name: Path to the local recording.
        content_type: MIME type sent with the file part.
    """

    def __init__(
        self,
        client: OtterClient,
        file_name: Union[str, Path],
        content_type: str = "audio/mp4",
    ) -> None:
        self._client = client
        self.file_path = Path(file_name)
        self.content_type = content_type
        self.history: List[UploadState] = []

    @property
    def state(self) -> Optional[UploadState]:
        return self.history[-1] if self.history else None

    def _advance(self, state: UploadState) -> UploadState:
        self.history.append(state)
        if isinstance(state, Failed):
            logger.warning(
                "Upload of %s stopped at %s step (%s)",
                self.file_path.name,
                state.step.value,
                state.cause if state.cause is not None else state.response.status_code,
            )
        else:
            logger.debug("Upload of %s: %s", self.file_path.name, type(state).__name__)
        return state

    async def run(self) -> UploadState:
        """Run every step in order and return the terminal state.

        Raises NotAuthenticatedError before any request when nobody is
        logged in.
        """
        self._client.require_auth("Upload speech")

        state = await self._fetch_params()
        if isinstance(state, ParamsFetched):
            state = await self._preflight(state)
        if isinstance(state, Preflighted):
            state = await self._upload(state)
        if isinstance(state, Uploaded):
            state = await self._finish(state)
        return state

    def result(self) -> Envelope:
        """Map the terminal state onto upload_speech's return contract."""
        state = self.state
        if isinstance(state, Finished):
            return state.response
        if isinstance(state, Failed):
            if state.response is not None:
                return state.response
            cause = state.cause
            if isinstance(cause, UploadSpeechFailed):
                raise cause
            raise UploadSpeechFailed(cause) from cause
        raise UploadSpeechFailed("upload pipeline has not run")

    # ------------------------------------------------------------------
    # Step 1: presigned POST parameters from Otter
    # ------------------------------------------------------------------

    async def _fetch_params(self) -> UploadState:
        try:
            response = await self._client._request(
                "GET",
                "speech_upload_params",
                error=UploadSpeechFailed,
                gated="Upload speech",
            )
        except OperationError as exc:
            return self._advance(Failed(UploadStep.PARAMS, cause=exc))

        if response.status_code != 200:
            return self._advance(Failed(UploadStep.PARAMS, response=response))

        body = response.data if isinstance(response.data, dict) else {}
        params = body.get("data")
        if not isinstance(params, dict):
            return self._advance(Failed(
                UploadStep.PARAMS,
                cause=ValueError("speech_upload_params response has no data object"),
            ))
        return self._advance(ParamsFetched(form=build_upload_form(params)))

    # ------------------------------------------------------------------
    # Step 2: CORS preflight against S3
    # ------------------------------------------------------------------

    async def _preflight(self, state: ParamsFetched) -> UploadState:
        try:
            response = await self._client._object_store_request(
                "OPTIONS",
                self._client.upload_url,
                headers={
                    "Accept": "*/*",
                    "Origin": OTTER_WEB_ORIGIN,
                    "Referer": OTTER_WEB_ORIGIN + "/",
                    "Access-Control-Request-Method": "POST",
                },
            )
        except TRANSPORT_ERRORS as exc:
            return self._advance(Failed(UploadStep.PREFLIGHT, cause=exc))

        envelope = Envelope(response.status_code, self._client._decode(response))
        if response.status_code != 200:
            return self._advance(Failed(UploadStep.PREFLIGHT, response=envelope))
        return self._advance(Preflighted(form=state.form, response=envelope))

    # ------------------------------------------------------------------
    # Step 3: multipart POST of the file to S3
    # ------------------------------------------------------------------

    async def _upload(self, state: Preflighted) -> UploadState:
        try:
            with open(self.file_path, "rb") as f:
                response = await self._client._object_store_request(
                    "POST",
                    self._client.upload_url,
                    data=state.form,
                    files={"file": (self.file_path.name, f, self.content_type)},
                )
        except _FILE_OR_TRANSPORT_ERRORS as exc:
            return self._advance(Failed(UploadStep.UPLOAD, cause=exc))

        if response.status_code != 201:
            envelope = Envelope(response.status_code, self._client._decode(response))
            return self._advance(Failed(UploadStep.UPLOAD, response=envelope))

        # Reading the PostResponse is the first half of the finish step.
        try:
            uploaded = parse_post_response(response.content)
        except ValueError as exc:
            return self._advance(Failed(UploadStep.FINISH, cause=exc))

        logger.info("Uploaded %s to %s", self.file_path.name, uploaded.location)
        return self._advance(uploaded)

    # ------------------------------------------------------------------
    # Step 4: register the object with Otter
    # ------------------------------------------------------------------

    async def _finish(self, state: Uploaded) -> UploadState:
        try:
            response = await self._client._request(
                "GET",
                "finish_speech_upload",
                error=UploadSpeechFailed,
                gated="Upload speech",
                params={
                    "bucket": state.bucket,
                    "key": state.key,
                    "language": UPLOAD_LANGUAGE,
                    "country": UPLOAD_COUNTRY,
                },
            )
        except OperationError as exc:
            return self._advance(Failed(UploadStep.FINISH, cause=exc))
        return self._advance(Finished(response=response))
