"""Otter.ai API client package: async HTTP interface to the Otter web API.

WHY: The proxy and CLI need to log in with Otter credentials, enumerate
speeches across sources, fetch transcripts, upload recordings and export
files. This package keeps all Otter communication behind one client class.

HOW: OtterClient (client.py) wraps httpx.AsyncClient and owns the session
state. Aggregation helpers live in aggregate.py, the upload handshake in
upload.py, the error taxonomy in errors.py and result types in models.py.

RULES:
- All HTTP calls to Otter go through OtterClient
- Remote failures are Envelopes; local/transport failures are OtterErrors
"""

from otter_proxy.api.client import OtterClient
from otter_proxy.api.cookies import CookieJar
from otter_proxy.api.errors import (
    AuthError,
    NotAuthenticatedError,
    OperationError,
    OtterError,
    RealtimeNotImplementedError,
    UploadSpeechFailed,
)
from otter_proxy.api.models import AggregationResult, AuthState, Envelope, SpeechPage, SpeechSummary

__all__ = [
    "AggregationResult",
    "AuthError",
    "AuthState",
    "CookieJar",
    "Envelope",
    "NotAuthenticatedError",
    "OperationError",
    "OtterClient",
    "OtterError",
    "RealtimeNotImplementedError",
    "SpeechPage",
    "SpeechSummary",
    "UploadSpeechFailed",
]
