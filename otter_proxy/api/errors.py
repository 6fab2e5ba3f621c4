"""Domain errors raised by the Otter client.

WHY: Callers need to tell local and transport failures apart from
remote-originated ones. Remote failures are never raised: they come back
as an Envelope with a non-2xx status. Everything in this module signals a
failure that happened on our side of the wire.

HOW: A single OtterError base. OperationError carries the name of the
failed operation and chains the underlying cause; each remote operation
has its own subclass so callers can catch exactly the call they made.

RULES:
- Messages always name the failed operation
- The original exception is chained with ``raise ... from exc``
- NotAuthenticatedError is raised before any network call is made
"""

from __future__ import annotations

import httpx

# Transport-level failures. InvalidURL is not an HTTPError subclass.
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class OtterError(Exception):
    """Base class for every error raised by the Otter client."""


class NotAuthenticatedError(OtterError):
    """Raised when an identity-gated operation runs without a user id."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation}: userid is invalid, login first")


class RealtimeNotImplementedError(OtterError, NotImplementedError):
    """Raised by the real-time transcription start/stop operations.

    Live transcription needs a persistent websocket channel to a separate
    endpoint, which this client does not open.
    """


class OperationError(OtterError):
    """A remote operation failed before a response was received.

    Attributes:
        operation: Human-readable name of the failed operation.
        cause: The underlying exception (also available as __cause__).
    """

    operation = "Operation"

    def __init__(self, cause: BaseException | str) -> None:
        self.cause = cause
        super().__init__(f"{self.operation} failed: {cause}")


class AuthError(OperationError):
    operation = "Login"


class GetUserFailed(OperationError):
    operation = "Get user"


class GetSpeakersFailed(OperationError):
    operation = "Get speakers"


class GetSpeechesFailed(OperationError):
    operation = "Get speeches"


class GetAllSpeechesFailed(OperationError):
    operation = "Get all speeches"


class GetSpeechFailed(OperationError):
    operation = "Get speech"


class QuerySpeechFailed(OperationError):
    operation = "Query speech"


class UploadSpeechFailed(OperationError):
    operation = "Upload speech"


class DownloadSpeechFailed(OperationError):
    operation = "Download speech"


class MoveToTrashBinFailed(OperationError):
    operation = "Move to trash bin"


class CreateSpeakerFailed(OperationError):
    operation = "Create speaker"


class GetNotificationSettingsFailed(OperationError):
    operation = "Get notification settings"


class ListGroupsFailed(OperationError):
    operation = "List groups"


class GetFoldersFailed(OperationError):
    operation = "Get folders"
