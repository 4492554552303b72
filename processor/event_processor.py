"""Event processor for normalizing events and building Mobilizon variables."""
import dataclasses
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from processor.models import Address, SourceEvent, format_datetime

logger = logging.getLogger(__name__)

# Categories accepted by Mobilizon's EventCategory enum
EVENT_CATEGORIES = frozenset([
    'ARTS',
    'AUTO_BOAT_AIR',
    'BOOK_CLUBS',
    'BUSINESS',
    'CAUSES',
    'COMEDY',
    'COMMUNITY',
    'CRAFTS',
    'FAMILY_EDUCATION',
    'FASHION_BEAUTY',
    'FILM_MEDIA',
    'FOOD_DRINK',
    'GAMES',
    'HEALTH',
    'LANGUAGE_CULTURE',
    'LEARNING',
    'LGBTQ',
    'MEETING',
    'MOVEMENTS_POLITICS',
    'MUSIC',
    'NETWORKING',
    'OUTDOORS_ADVENTURE',
    'PARTY',
    'PERFORMING_VISUAL_ARTS',
    'PETS',
    'PHOTOGRAPHY',
    'SCIENCE_TECH',
    'SPIRITUALITY_RELIGION_BELIEFS',
    'SPORTS',
    'THEATRE',
])

DEFAULT_CATEGORY = 'MUSIC'

VISIBILITY_PUBLIC = 'PUBLIC'
JOIN_OPTIONS_EXTERNAL = 'EXTERNAL'
COMMENT_MODERATION_ALLOW_ALL = 'ALLOW_ALL'

PROMOTIONAL_TAGLINE = (
    "Help promote your favourite venues with: "
    "https://concertcloud.live/contribute"
)


class EventProcessor:
    """Normalizes source events and turns them into createEvent/updateEvent variables."""

    MIN_TITLE_LENGTH = 3
    TITLE_PADDING = ' ...'
    EVENT_DURATION = timedelta(hours=2)
    # Venues which asked not to be imported
    OPT_OUT = ('bejazz.ch',)

    def __init__(
        self,
        actor_id: str = '',
        group_id: str = '',
        timezone: str = 'Europe/Zurich',
        draft: bool = False
    ):
        """
        Initialize the processor.

        Args:
            actor_id: Mobilizon actor ID used as the event organizer
            group_id: Mobilizon group ID the events are attributed to
            timezone: Timezone name sent in the event options
            draft: Create events as drafts
        """
        self.actor_id = actor_id
        self.group_id = group_id
        self.timezone = timezone
        self.draft = draft

    def is_opted_out(self, event: SourceEvent) -> bool:
        return any(domain in event.url for domain in self.OPT_OUT)

    def normalize(self, event: SourceEvent) -> SourceEvent:
        """
        Return a copy of the event with a trimmed, minimum-length title.

        Mobilizon rejects titles shorter than three characters.
        """
        title = event.title.strip()
        if len(title) < self.MIN_TITLE_LENGTH:
            logger.debug(f"Padding short title '{title}'")
            title = title + self.TITLE_PADDING
        return dataclasses.replace(event, title=title)

    def generate_event_key(self, event: SourceEvent) -> str:
        """
        Generate the local cache key for an event from its URL and date.

        Venues don't always use a distinct URL per event, so the start
        date disambiguates.

        Args:
            event: Source event

        Returns:
            URL, separator and RFC 3339 date
        """
        separator = ':' if '#' in event.url else '#'
        return f"{event.url}{separator}{format_datetime(event.date)}"

    def populate_category(self, event: SourceEvent) -> str:
        if event.type in EVENT_CATEGORIES:
            return event.type
        return DEFAULT_CATEGORY

    def populate_tags(self, event: SourceEvent) -> List[str]:
        return [event.location, event.city]

    def populate_options(self) -> Dict[str, Any]:
        return {
            'commentModeration': COMMENT_MODERATION_ALLOW_ALL,
            'showStartTime': True,
            'showEndTime': False,
            'timezone': self.timezone
        }

    def build_variables(
        self,
        event: SourceEvent,
        address: Optional[Address] = None,
        media_uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Build the variables map shared by createEvent and updateEvent.

        Args:
            event: Normalized source event
            address: Canonical address, or None to publish without one
            media_uuid: UUID of the uploaded picture

        Returns:
            GraphQL variables dict
        """
        variables = {
            'organizerActorId': self.actor_id,
            'attributedToId': self.group_id,
            'category': self.populate_category(event),
            'visibility': VISIBILITY_PUBLIC,
            'joinOptions': JOIN_OPTIONS_EXTERNAL,
            'title': event.title,
            'description': f"{event.comment} <p/><p> {PROMOTIONAL_TAGLINE}",
            'physicalAddress': address.to_dict() if address else None,
            'beginsOn': format_datetime(event.date),
            'endsOn': format_datetime(event.date + self.EVENT_DURATION),
            'draft': self.draft,
            'onlineAddress': event.url,
            'externalParticipationUrl': event.url,
            'tags': self.populate_tags(event),
            'options': self.populate_options(),
            'picture': {'mediaUuid': media_uuid} if media_uuid else None
        }
        return variables
