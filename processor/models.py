"""Data models for event reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def format_datetime(value: datetime) -> str:
    """
    Format a datetime as RFC 3339 with seconds precision.

    A zero UTC offset is written as ``Z``.
    """
    text = value.isoformat(timespec='seconds')
    if text.endswith('+00:00'):
        text = text[:-6] + 'Z'
    return text


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO 8601 / RFC 3339 timestamp.

    Naive timestamps are taken to be UTC.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    if not value:
        raise ValueError("empty date")
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _string(data: Dict[str, Any], key: str) -> str:
    """Return a string member of a JSON object, '' when missing or null."""
    value = data.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass
class SourceEvent:
    """Event as published by ConcertCloud, plus the Mobilizon UUID once published."""
    title: str
    location: str
    city: str
    country: str
    url: str
    comment: str
    type: str
    source_url: str
    date: datetime
    image_url: str
    mob_uuid: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceEvent':
        """
        Build an event from its JSON representation.

        Args:
            data: Dict with the upstream camelCase keys

        Returns:
            SourceEvent object

        Raises:
            ValueError: If the date is missing or invalid, or a field is not a string
        """
        return cls(
            title=_string(data, 'title'),
            location=_string(data, 'location'),
            city=_string(data, 'city'),
            country=_string(data, 'country'),
            url=_string(data, 'url'),
            comment=_string(data, 'comment'),
            type=_string(data, 'type'),
            source_url=_string(data, 'sourceUrl'),
            date=parse_datetime(_string(data, 'date')),
            image_url=_string(data, 'imageUrl'),
            mob_uuid=_string(data, 'mobilizonUuid')
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the upstream JSON representation."""
        return {
            'title': self.title,
            'location': self.location,
            'city': self.city,
            'country': self.country,
            'url': self.url,
            'comment': self.comment,
            'type': self.type,
            'sourceUrl': self.source_url,
            'date': format_datetime(self.date),
            'imageUrl': self.image_url,
            'mobilizonUuid': self.mob_uuid
        }


# A SourceEvent whose mob_uuid is set
PublishedEvent = SourceEvent


@dataclass
class Address:
    """Mobilizon address object as returned by searchAddress."""
    description: str
    locality: str
    id: Optional[Any] = None
    postal_code: str = ''
    street: str = ''
    country: str = ''
    region: str = ''
    geom: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Address':
        """Build an address from Mobilizon's camelCase representation."""
        return cls(
            id=data.get('id'),
            description=data.get('description') or '',
            locality=data.get('locality') or '',
            postal_code=data.get('postalCode') or '',
            street=data.get('street') or '',
            country=data.get('country') or '',
            region=data.get('region') or '',
            geom=data.get('geom') or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an AddressInput for GraphQL variables and the cache."""
        return {
            'id': self.id,
            'description': self.description,
            'locality': self.locality,
            'postalCode': self.postal_code,
            'street': self.street,
            'country': self.country,
            'region': self.region,
            'geom': self.geom
        }

    def matches(self, location: str, city: str) -> bool:
        return self.description == location and self.locality == city


@dataclass
class AuthState:
    """OAuth2 token envelope persisted in auth.json."""
    access_token: str = ''
    refresh_token: str = ''
    expires_in: int = 0
    refresh_token_expires_in: int = 0
    scopes: str = ''
    token_type: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthState':
        return cls(
            access_token=data.get('access_token') or '',
            refresh_token=data.get('refresh_token') or '',
            expires_in=int(data.get('expires_in') or 0),
            refresh_token_expires_in=int(data.get('refresh_token_expires_in') or 0),
            scopes=data.get('scopes') or '',
            token_type=data.get('token_type') or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'access_token': self.access_token,
            'expires_in': self.expires_in,
            'refresh_token': self.refresh_token,
            'refresh_token_expires_in': self.refresh_token_expires_in,
            'scopes': self.scopes,
            'token_type': self.token_type
        }


@dataclass
class SyncResult:
    """Result of a reconciliation run."""
    created: int = 0
    updated: int = 0
    existing: int = 0
    skipped: int = 0
    reported: int = 0
    errors: list[str] = field(default_factory=list)
