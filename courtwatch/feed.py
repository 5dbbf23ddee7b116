"""HTTP client for the court streaming board."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Settings, settings as default_settings
from .errors import FeedError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"


@dataclass(frozen=True)
class RawFeed:
    """The two payloads behind one board refresh.

    ``rows`` is the per-court queue/serial/case-info list; ``markup`` is the
    board page carrying judge, photo, stream and live-indicator detail.
    Both are keyed by the same court code.
    """

    rows: List[Dict[str, Any]]
    markup: str


class FeedClient:
    """Fetches the raw board payloads."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or default_settings
        self.session = session or self._build_session()

    def _build_session(self) -> requests.Session:
        session = requests.Session()

        # Retry strategy for 429, 500, 502, 503, 504
        retry_strategy = Retry(
            total=self.config.http_retries,
            backoff_factor=self.config.http_backoff,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    def fetch(self) -> RawFeed:
        """Fetch both payloads.

        Raises:
            FeedError: On network failure, timeout, HTTP error or an
                undecodable row list.
        """
        timeout = self.config.http_timeout_seconds
        try:
            rows_response = self.session.get(
                self.config.feed_url,
                headers={"Accept": "application/json, text/javascript, */*; q=0.01"},
                timeout=timeout,
            )
            rows_response.raise_for_status()
            page_response = self.session.get(self.config.court_base_url, timeout=timeout)
            page_response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.error(f"Board request timed out: {e}")
            raise FeedError(f"Board request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Board request failed: {e}")
            raise FeedError(f"Board request failed: {e}") from e

        rows = self._decode_rows(rows_response.text)
        logger.debug(f"Fetched {len(rows)} board rows")
        return RawFeed(rows=rows, markup=page_response.text or "")

    @staticmethod
    def _decode_rows(text: str) -> List[Dict[str, Any]]:
        if not text or not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise FeedError(f"Board rows are not valid JSON: {e}") from e
        # Some deployments double-encode the list
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise FeedError(f"Board rows are not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise FeedError(f"Board rows should be a list, got {type(data).__name__}")
        return [row for row in data if isinstance(row, dict)]

    def close(self) -> None:
        self.session.close()
