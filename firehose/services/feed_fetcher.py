import io
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List

import feedparser
import httpx

from firehose.core.config import FEED_FETCH_TIMEOUT_SECONDS, FEED_MAX_BYTES

logger = logging.getLogger(__name__)

USER_AGENT = "firehose-hydrant/1.0 (+feed poller)"


class FetchError(Exception):
    """A feed could not be retrieved or understood"""


class FeedNetworkError(FetchError):
    pass


class FeedParseError(FetchError):
    pass


@dataclass(frozen=True)
class FeedEntry:
    url: str
    title: str | None = None
    published_at: datetime | None = None # naive UTC


def fetch_feed(
    url: str,
    timeout: float = FEED_FETCH_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
    max_bytes: int = FEED_MAX_BYTES,
) -> List[FeedEntry]:
    """Download url and parse it as an RSS/Atom feed.

    timeout bounds the whole download, not just each socket operation.
    No retries; the caller decides what a failure means.
    """
    content = _download(url, timeout, client, max_bytes)
    return parse_feed(content, base_url=url)


def _download(url: str, timeout: float, client: httpx.Client | None, max_bytes: int) -> bytes:
    owns_client = client is None
    if owns_client:
        client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    deadline = time.monotonic() + timeout
    chunks = []
    size = 0
    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes():
                size += len(chunk)
                if size > max_bytes:
                    raise FeedNetworkError(f"feed larger than {max_bytes} bytes: {url}")
                if time.monotonic() > deadline:
                    raise FeedNetworkError(f"timed out after {timeout}s fetching {url}")
                chunks.append(chunk)
    except httpx.TimeoutException as e:
        raise FeedNetworkError(f"timed out after {timeout}s fetching {url}") from e
    except httpx.HTTPStatusError as e:
        raise FeedNetworkError(f"HTTP {e.response.status_code} fetching {url}") from e
    except httpx.HTTPError as e:
        raise FeedNetworkError(f"{type(e).__name__} fetching {url}: {e}") from e
    finally:
        if owns_client:
            client.close()

    return b"".join(chunks)


def parse_feed(content: bytes, base_url: str = "") -> List[FeedEntry]:
    parsed = feedparser.parse(io.BytesIO(content), response_headers={"content-location": base_url})

    # feedparser is lenient: only give up when it found nothing feed-shaped
    if not parsed.get("version") and not parsed.entries:
        reason = parsed.get("bozo_exception") or "not an RSS or Atom document"
        raise FeedParseError(f"could not parse feed: {reason}")
    if parsed.get("bozo"):
        logger.debug("Feed parsed with recoverable errors: %s", parsed.get("bozo_exception"))

    entries = []
    for item in parsed.entries:
        link = (item.get("link") or "").strip()
        if not link:
            continue
        title = (item.get("title") or "").strip() or None
        entries.append(FeedEntry(url=link, title=title, published_at=_entry_date(item)))
    return entries


def _entry_date(item) -> datetime | None:
    struct = item.get("published_parsed") or item.get("updated_parsed")
    if not struct:
        return None
    # feedparser normalizes to a UTC struct_time
    return datetime(*struct[:6])
