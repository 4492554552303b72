"""Resolve event venues to Mobilizon address objects."""
import logging
import time
from typing import Any, Dict, Iterable, Optional

import requests

from mobilizon.graphql_client import GraphQLError
from mobilizon.transport import RetriesExhaustedError
from processor.models import Address, SourceEvent

logger = logging.getLogger(__name__)

# OpenStreetMap place types which are likely concert venues
VENUE_TYPES = ('nightclub', 'bar', 'restaurant', 'theatre', 'cinema', 'arts_centre')


def address_key(event: SourceEvent) -> str:
    """Cache key for an event's venue."""
    return f"{event.location}|{event.city}"


class AddressResolver:
    """
    Turns an event's venue and city into the address object Mobilizon uses.

    OpenStreetMap is asked first to build a precise search term, then
    Mobilizon's own address search is run with it, so that events reuse
    the address objects Mobilizon already knows.
    """

    RETRY_DELAY = 3

    def __init__(self, api, geocoder, addresses: Optional[Dict[str, Address]] = None):
        """
        Initialize the resolver.

        Args:
            api: MobilizonAPI used for searchAddress
            geocoder: NominatimClient
            addresses: Address cache, mutated in place
        """
        self.api = api
        self.geocoder = geocoder
        self.addresses = addresses if addresses is not None else {}

    def get(self, event: SourceEvent) -> Optional[Address]:
        """
        Return the cached address for an event without any lookups.

        Entries keyed by venue name alone are accepted when their locality
        is the event's city.
        """
        address = self.addresses.get(address_key(event))
        if address is not None:
            return address
        legacy = self.addresses.get(event.location)
        if legacy is not None and legacy.locality == event.city:
            return legacy
        return None

    def resolve(self, event: SourceEvent) -> Optional[Address]:
        """
        Resolve and cache the address of an event.

        Args:
            event: Source event

        Returns:
            Address, or None if Mobilizon knows no matching address
        """
        logger.debug(f"Searching for location '{event.location}'")
        cached = self.get(event)
        if cached is not None:
            logger.debug(f"Skipping cached location '{event.location}'")
            return cached

        query = self.build_search_term(event)
        logger.debug(f"Returned from OSM: '{query}'")

        results = self._search_address(query)
        if not results:
            logger.info(f"Address not found for query '{query}'")
            return None

        candidates = [Address.from_dict(item) for item in results]
        for candidate in candidates:
            logger.debug(
                f"Mobilizon returned '{candidate.description} {candidate.street} "
                f"{candidate.locality}' for '{event.location} {event.city}'"
            )
            if candidate.matches(event.location, event.city):
                address = candidate
                break
        else:
            # just use the last one
            address = candidates[-1]

        self.addresses[address_key(event)] = address
        return address

    def resolve_all(self, events: Iterable[SourceEvent]) -> int:
        """
        Resolve the addresses of a batch of events.

        Returns:
            Number of events with an address
        """
        found = 0
        for event in events:
            if self.resolve(event) is not None:
                found += 1
        return found

    def build_search_term(self, event: SourceEvent) -> str:
        """
        Build a Mobilizon address search term from OpenStreetMap data.

        Args:
            event: Source event

        Returns:
            "<location> <road> <city>" or "<location> <city>" if OSM has no match
        """
        try:
            places = self.geocoder.search(event.location, event.city)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"OSM lookup failed for '{event.location}': {e}")
            places = []

        if not places:
            logger.debug(f"OSM place not found: '{event.location}' in '{event.city}'")
            return f"{event.location} {event.city}"

        place = self._choose_place(places)
        details = place.get('address') or {}
        road = details.get('road', '')
        city = details.get('city') or details.get('town') or details.get('village') or event.city
        return f"{event.location} {road} {city}"

    def _choose_place(self, places: list) -> Dict[str, Any]:
        for place in places:
            if place.get('type') in VENUE_TYPES:
                logger.debug(f"Address type: {place.get('type')}")
                return place
        return places[0]

    def _search_address(self, query: str) -> list:
        try:
            return self.api.search_address(query)
        except RetriesExhaustedError:
            raise
        except (GraphQLError, requests.RequestException) as e:
            logger.error(f"Error searching address '{query}': {e}")

        time.sleep(self.RETRY_DELAY)
        try:
            return self.api.search_address(query)
        except RetriesExhaustedError:
            raise
        except (GraphQLError, requests.RequestException) as e:
            logger.error(f"Error searching address '{query}' again: {e}")
            return []
