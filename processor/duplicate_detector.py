"""Detect events which were already published to Mobilizon."""
import logging
from typing import Callable, Dict, Optional, Tuple

import requests

from mobilizon.graphql_client import GraphQLError
from mobilizon.transport import RetriesExhaustedError
from processor.event_processor import EventProcessor
from processor.models import PublishedEvent, SourceEvent, format_datetime

logger = logging.getLogger(__name__)

AUTH_ERROR_MARKERS = ('token_expired', '401')


def urls_match(url: str, online_address: str) -> bool:
    """Compare URLs, tolerating a trailing slash on either side."""
    if not url or not online_address:
        return False
    return (
        url == online_address
        or url + '/' == online_address
        or url == online_address + '/'
    )


class DuplicateDetector:
    """
    Decides whether an event already exists, locally or on Mobilizon.

    Title and date searches on Mobilizon are coarse, so remote hits are
    confirmed by comparing the event URL with their online address. This
    doesn't work for venues which don't use a unique URL per event.
    """

    def __init__(
        self,
        api,
        processor: EventProcessor,
        created: Optional[Dict[str, PublishedEvent]] = None,
        existing: Optional[Dict[str, PublishedEvent]] = None,
        reauthorize: Optional[Callable[[], bool]] = None
    ):
        """
        Initialize the detector.

        Args:
            api: MobilizonAPI
            processor: EventProcessor used for event keys
            created: Events published in this run
            existing: Events published in previous runs
            reauthorize: Refreshes the access token on token expiry
        """
        self.api = api
        self.processor = processor
        self.created = created if created is not None else {}
        self.existing = existing if existing is not None else {}
        self.reauthorize = reauthorize

    def find_cached(self, event: SourceEvent) -> Optional[PublishedEvent]:
        """Look the event up in this run's and previous runs' caches."""
        key = self.processor.generate_event_key(event)
        if key in self.created:
            return self.created[key]
        return self.existing.get(key)

    def exists(self, event: SourceEvent) -> Tuple[bool, str]:
        """
        Check the local caches, then Mobilizon.

        Returns:
            Tuple of (found, Mobilizon UUID)
        """
        cached = self.find_cached(event)
        if cached is not None:
            return True, cached.mob_uuid
        return self.exists_remote(event)

    def exists_remote(self, event: SourceEvent) -> Tuple[bool, str]:
        """
        Search Mobilizon for the event by title and date and match its URL.

        Returns:
            Tuple of (found, Mobilizon UUID)
        """
        begins_on = format_datetime(event.date)
        logger.debug(f"Searching for existing events", extra={'title': event.title, 'date': begins_on})

        elements = self._search(event.title, begins_on)
        for element in elements:
            uuid = element.get('uuid')
            if not uuid:
                continue
            try:
                remote = self.api.fetch_event(uuid) or {}
            except RetriesExhaustedError:
                raise
            except (GraphQLError, requests.RequestException) as e:
                logger.debug(f"Failed fetching event by uuid {uuid}: {e}")
                continue

            logger.debug(f"Checking URL for a match: {event.url}")
            if urls_match(event.url, remote.get('onlineAddress') or ''):
                logger.debug(f"Found event matching {event.url}")
                return True, uuid

        logger.info(
            f"Event not found",
            extra={'title': event.title, 'date': begins_on, 'location': event.location}
        )
        return False, ''

    def _search(self, title: str, begins_on: str) -> list:
        try:
            return self.api.search_events(title, begins_on)
        except RetriesExhaustedError:
            raise
        except (GraphQLError, requests.RequestException) as e:
            logger.error(f"Error checking if event exists: {e}")
            if self.reauthorize is None or not any(m in str(e) for m in AUTH_ERROR_MARKERS):
                return []

        self.reauthorize()
        try:
            return self.api.search_events(title, begins_on)
        except RetriesExhaustedError:
            raise
        except (GraphQLError, requests.RequestException) as e:
            logger.error(f"Error checking if event exists after reauthorizing: {e}")
            return []
