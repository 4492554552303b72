"""Mobilizon GraphQL queries and mutations used by the bot."""
import logging
from typing import Any, Dict, List, Optional

from mobilizon.graphql_client import GraphQLClient

logger = logging.getLogger(__name__)

SEARCH_ADDRESS_QUERY = """
query searchAddress($query: String!) {
  searchAddress(query: $query) {
    id
    description
    locality
    postalCode
    street
    country
    region
    geom
  }
}
"""

SEARCH_EVENTS_QUERY = """
query searchEvents($term: String, $beginsOn: DateTime) {
  searchEvents(term: $term, beginsOn: $beginsOn) {
    total
    elements {
      id
      uuid
      title
      beginsOn
    }
  }
}
"""

FETCH_EVENT_QUERY = """
query event($uuid: UUID!) {
  event(uuid: $uuid) {
    id
    uuid
    onlineAddress
  }
}
"""

_EVENT_VARIABLE_TYPES = (
    "$organizerActorId: ID!, $attributedToId: ID, $title: String!, "
    "$category: EventCategory, $visibility: EventVisibility, "
    "$description: String!, $physicalAddress: AddressInput, "
    "$beginsOn: DateTime!, $endsOn: DateTime, $draft: Boolean, "
    "$onlineAddress: String, $externalParticipationUrl: String, "
    "$tags: [String], $joinOptions: EventJoinOptions, "
    "$options: EventOptionsInput, $picture: MediaInput"
)

_EVENT_ARGUMENTS = (
    "organizerActorId: $organizerActorId, attributedToId: $attributedToId, "
    "title: $title, category: $category, visibility: $visibility, "
    "description: $description, physicalAddress: $physicalAddress, "
    "beginsOn: $beginsOn, endsOn: $endsOn, draft: $draft, "
    "onlineAddress: $onlineAddress, "
    "externalParticipationUrl: $externalParticipationUrl, tags: $tags, "
    "joinOptions: $joinOptions, options: $options, picture: $picture"
)

CREATE_EVENT_MUTATION = f"""
mutation createEvent({_EVENT_VARIABLE_TYPES}) {{
  createEvent({_EVENT_ARGUMENTS}) {{
    id
    uuid
  }}
}}
"""

UPDATE_EVENT_MUTATION = f"""
mutation updateEvent($eventId: ID!, {_EVENT_VARIABLE_TYPES}) {{
  updateEvent(eventId: $eventId, {_EVENT_ARGUMENTS}) {{
    id
    uuid
  }}
}}
"""


class MobilizonAPI:
    """Typed wrappers around the Mobilizon operations the bot needs."""

    def __init__(self, client: GraphQLClient):
        self.client = client

    def search_address(self, query: str) -> List[Dict[str, Any]]:
        data = self.client.execute(SEARCH_ADDRESS_QUERY, {'query': query})
        return data.get('searchAddress') or []

    def search_events(self, term: str, begins_on: str) -> List[Dict[str, Any]]:
        """
        Search events by title starting at the given date.

        Returns:
            List of {id, uuid, title, beginsOn} dicts
        """
        data = self.client.execute(
            SEARCH_EVENTS_QUERY,
            {'term': term, 'beginsOn': begins_on}
        )
        results = data.get('searchEvents') or {}
        return results.get('elements') or []

    def fetch_event(self, uuid: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a single event by UUID.

        Returns:
            {id, uuid, onlineAddress} dict or None if not found
        """
        logger.debug(f"Fetching event by uuid {uuid}")
        data = self.client.execute(FETCH_EVENT_QUERY, {'uuid': uuid})
        return data.get('event')

    def create_event(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the createEvent mutation.

        Returns:
            {id, uuid} of the new event
        """
        data = self.client.execute(CREATE_EVENT_MUTATION, variables)
        return data.get('createEvent') or {}

    def update_event(self, event_id: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the updateEvent mutation with the full variables map.

        Returns:
            {id, uuid} of the updated event
        """
        data = self.client.execute(
            UPDATE_EVENT_MUTATION,
            dict(variables, eventId=event_id)
        )
        return data.get('updateEvent') or {}
