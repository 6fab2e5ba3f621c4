"""Best-effort "get everything" helpers over the speeches endpoint.

WHY: The speeches endpoint only takes a page size: there is no offset and
no cursor. Listing "all" speeches therefore means asking for one large page
and flagging when it came back full, and listing across owned and shared
speeches means one request per source.

HOW: get_all_speeches() issues a single request for min(max, 200) items
and returns a SpeechPage whose ``truncated`` flag is set when the page is
exactly full. get_all_speeches_from_all_sources() runs it for each source
in turn and collects the results in an AggregationResult.

RULES:
- 200 is the assumed page ceiling of the remote API
- ``truncated`` can be a false positive when the real count equals the
  page size; that is inherent to the API and kept as-is
- A failing source degrades to an empty list; the aggregate never fails
  because one source failed (only the identity check can abort it)
- Sources are fetched sequentially; owned always precedes shared
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from otter_proxy.api.errors import GetAllSpeechesFailed, OtterError
from otter_proxy.api.models import (
    MAX_PAGE_SIZE,
    SOURCES,
    AggregationResult,
    Envelope,
    SpeechPage,
)

if TYPE_CHECKING:
    from otter_proxy.api.client import OtterClient

logger = logging.getLogger(__name__)


async def get_all_speeches(
    client: OtterClient,
    folder: int = 0,
    source: str = "owned",
    max_speeches: int = 1000,
) -> Envelope:
    """Fetch as many speeches of one source as a single page allows.

    Returns Envelope(200, SpeechPage). Raises GetAllSpeechesFailed when the
    page request fails or returns anything but a speeches list.
    """
    client.require_auth("Get all speeches")
    page_size = min(max_speeches, MAX_PAGE_SIZE)
    logger.info("Getting all %s speeches from folder %s", source, folder)

    try:
        response = await client.get_speeches(folder, page_size, source)
    except OtterError as exc:
        raise GetAllSpeechesFailed(exc) from exc

    data = response.data if isinstance(response.data, dict) else {}
    speeches = data.get("speeches")
    if response.status_code != 200 or not isinstance(speeches, list):
        raise GetAllSpeechesFailed(
            f"failed to get speeches: status {response.status_code}"
        )

    page = SpeechPage(speeches=speeches, page_size=page_size)
    if page.truncated:
        logger.warning(
            "Retrieved the maximum page size (%s) of %s speeches; there may be more",
            page_size,
            source,
        )
    else:
        logger.info("Retrieved %s %s speeches", page.total_count, source)
    return Envelope(200, page)


async def get_all_speeches_from_all_sources(
    client: OtterClient,
    folder: int = 0,
    max_per_source: int = 500,
) -> Envelope:
    """Fetch owned and shared speeches and merge them.

    Returns Envelope(200, AggregationResult). Only NotAuthenticatedError is
    raised; per-source failures are logged and produce an empty list.
    """
    client.require_auth("Get all speeches from all sources")
    result = AggregationResult()

    for source in SOURCES:
        try:
            envelope = await get_all_speeches(client, folder, source, max_per_source)
        except OtterError as exc:
            logger.warning("Failed to get %s speeches: %s", source, exc)
            result.by_source[source] = []
            continue
        result.by_source[source] = envelope.data.speeches

    logger.info(
        "Aggregated %s speeches (%s owned, %s shared)",
        result.total_count,
        result.owned_count,
        result.shared_count,
    )
    return Envelope(200, result)
