"""Listing/detail page retrieval over one shared httpx client."""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from group_harvest.config import Settings
from group_harvest.errors import HTTPStatusError, NetworkError, SessionError
from group_harvest.models import ListingPageRef

logger = logging.getLogger("group_harvest.fetcher")


def page_title(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None:
        return None
    return soup.title.get_text(strip=True)


class PageFetcher:
    """Fetches raw HTML and maps transport/status/session failures to harvest errors.

    No caching. Retrying is off unless ``Settings.fetch_attempts`` is raised
    above 1, and then only transport failures are retried.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=settings.request_timeout_seconds,
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
        )

    def _get_once(self, url: str, page_offset: int | None) -> str:
        try:
            response = self._client.get(url)
        except httpx.RequestError as exc:
            raise NetworkError(f"http get: {exc}", page_offset=page_offset) from exc
        if not response.is_success:
            raise HTTPStatusError(url, response.status_code, page_offset=page_offset)
        html = response.text
        if page_title(html) == self.settings.session_marker:
            raise SessionError(
                f"response html title is '{self.settings.session_marker}', need to login",
                page_offset=page_offset,
            )
        return html

    def fetch_url(self, url: str, *, page_offset: int | None = None) -> str:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.fetch_attempts),
            wait=wait_fixed(self.settings.fetch_retry_delay_seconds),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Attempt %d/%d for %s",
                        attempt.retry_state.attempt_number,
                        self.settings.fetch_attempts,
                        url,
                    )
                html = self._get_once(url, page_offset)
        return html

    def fetch_listing(self, ref: ListingPageRef) -> str:
        logger.debug("Fetching listing page %d: %s", ref.page_offset, ref.url)
        return self.fetch_url(ref.url, page_offset=ref.page_offset)

    def listing_ref(self, page_offset: int) -> ListingPageRef:
        return ListingPageRef(self.settings.forum_id, page_offset, self.settings.host)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> PageFetcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
