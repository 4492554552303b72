"""Client for the ConcertCloud events API."""
import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from processor.models import SourceEvent

logger = logging.getLogger(__name__)

QUERY_PARAMS = ('city', 'country', 'limit', 'page', 'radius', 'date')


class ConcertCloudClient:
    """Fetches events from ConcertCloud or from a local scraper output file."""

    BASE_URL = "https://api.concertcloud.live/api/events"
    # defaults to a city which doesn't exist to avoid accidental flooding
    DEFAULT_CITY = "X"

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            session: requests session (default: new session)
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_params(self, **options: Optional[str]) -> Dict[str, str]:
        """
        Build the API query from the non-empty options.

        Args:
            **options: Any of city, country, limit, page, radius, date

        Returns:
            Query parameter dict
        """
        params = {}
        for name in QUERY_PARAMS:
            value = options.get(name)
            if value:
                params[name] = str(value)
        params.setdefault('city', self.DEFAULT_CITY)
        return params

    def fetch_events(self, **options: Optional[str]) -> List[SourceEvent]:
        """
        Fetch events from ConcertCloud.

        Args:
            **options: Query options, see build_params

        Returns:
            List of SourceEvent objects; empty if the response is malformed

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        params = self.build_params(**options)
        logger.info(f"Fetching events from ConcertCloud", extra={'params': params})

        body = self._fetch_json(params)
        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.error(f"Malformed JSON from ConcertCloud: {e}")
            return []

        if not isinstance(payload, dict):
            logger.error("Unexpected ConcertCloud response, expected an object")
            return []

        logger.info(
            f"ConcertCloud page {payload.get('page')}/{payload.get('last_page')}, "
            f"{payload.get('total')} events in total"
        )
        events = self._parse_events(payload.get('data') or [])
        logger.info(f"Successfully fetched {len(events)} events")
        return events

    def load_file(self, path: str) -> List[SourceEvent]:
        """
        Load events from a JSON array written by a scraper.

        Args:
            path: Path of the JSON file

        Returns:
            List of SourceEvent objects; empty if the file is malformed

        Raises:
            OSError: If the file cannot be read
        """
        logger.info(f"Using local file {path}")
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()

        try:
            items = json.loads(content)
        except ValueError as e:
            logger.error(f"Malformed JSON in {path}: {e}")
            return []

        if not isinstance(items, list):
            logger.error(f"Expected a JSON array in {path}")
            return []
        return self._parse_events(items)

    def _fetch_json(self, params: Dict[str, str]) -> str:
        """
        Fetch the events JSON with retry logic.

        Args:
            params: Query parameters

        Returns:
            Response body as string

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching events JSON (attempt {attempt + 1}/{max_retries})")
                response = self.session.get(
                    self.BASE_URL,
                    params=params,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _parse_events(self, items: List[Any]) -> List[SourceEvent]:
        events = []
        for item in items:
            if not isinstance(item, dict):
                logger.warning(f"Skipping non-object event entry: {item!r}")
                continue
            try:
                events.append(SourceEvent.from_dict(item))
            except ValueError as e:
                logger.warning(f"Failed to parse event '{item.get('title')}': {e}")
        return events
