"""OpenStreetMap Nominatim geocoder client."""
import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

USER_AGENT = 'cc2mob/1.0 (+https://concertcloud.live)'


class NominatimClient:
    """Looks up venues by amenity name and city."""

    BASE_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(self, location: str, city: str) -> List[Dict[str, Any]]:
        """
        Search for an amenity in a city.

        Args:
            location: Venue name
            city: City name

        Returns:
            List of place dicts (name, lat, lon, type, address, display_name)

        Raises:
            requests.RequestException: On network or HTTP errors
            ValueError: If the response is not valid JSON
        """
        params = {
            'amenity': location,
            'city': city,
            'format': 'json',
            'addressdetails': '1'
        }
        logger.debug(f"Doing lookup in OpenStreetMap for '{location}' in '{city}'")
        response = self.session.get(
            self.BASE_URL,
            params=params,
            headers={'User-Agent': USER_AGENT},
            timeout=self.timeout
        )
        response.raise_for_status()
        places = response.json()
        if not isinstance(places, list):
            raise ValueError("expected a JSON array of places")
        return places
