"""Shared fixtures and fakes for the test suite."""
import json
import re
from datetime import datetime, timedelta, timezone

import pytest
import responses

from processor.models import SourceEvent

MOBILIZON_URL = 'https://mob.example'
MOBILIZON_API = MOBILIZON_URL + '/api'

CEST = timezone(timedelta(hours=2))

_OPERATION_RE = re.compile(r'(?:query|mutation)\s+(\w+)')


class FakeMobilizon:
    """
    Stand-in for Mobilizon's /api endpoint, registered with responses.

    Records every operation with its variables and Authorization header.
    Scripted HTTP statuses can be queued per operation in ``failures``.
    """

    def __init__(self, api_url: str = MOBILIZON_API):
        self.api_url = api_url
        self.addresses = []
        self.search_results = []
        self.events = {}
        self.failures = {}
        self.calls = []
        self._next_id = 100

    @property
    def operations(self):
        return [name for name, _, _ in self.calls]

    def variables_for(self, operation):
        return [variables for name, variables, _ in self.calls if name == operation]

    def register(self, mock):
        mock.add_callback(responses.POST, self.api_url, callback=self.handle)

    def handle(self, request):
        content_type = request.headers.get('Content-Type', '')
        if content_type.startswith('multipart/form-data'):
            name, variables = 'uploadMedia', {}
        else:
            body = json.loads(request.body)
            name = _OPERATION_RE.search(body['query']).group(1)
            variables = body.get('variables') or {}
        self.calls.append((name, variables, request.headers.get('Authorization')))

        queued = self.failures.get(name)
        if queued:
            status = queued.pop(0)
            return status, {}, json.dumps({'errors': [{'message': f'HTTP {status}'}]})

        return 200, {'Content-Type': 'application/json'}, json.dumps({'data': self._data(name, variables)})

    def _data(self, name, variables):
        if name == 'uploadMedia':
            self._next_id += 1
            return {'uploadMedia': {'uuid': f'media-{self._next_id}'}}
        if name == 'searchAddress':
            return {'searchAddress': self.addresses}
        if name == 'searchEvents':
            return {'searchEvents': {'total': len(self.search_results), 'elements': self.search_results}}
        if name == 'event':
            return {'event': self.events.get(variables.get('uuid'))}
        if name == 'createEvent':
            self._next_id += 1
            event = {
                'id': str(self._next_id),
                'uuid': f'uuid-{self._next_id}',
                'onlineAddress': variables.get('onlineAddress')
            }
            self.events[event['uuid']] = event
            return {'createEvent': {'id': event['id'], 'uuid': event['uuid']}}
        if name == 'updateEvent':
            event_id = variables.get('eventId')
            uuid = next((u for u, e in self.events.items() if e['id'] == event_id), '')
            return {'updateEvent': {'id': event_id, 'uuid': uuid}}
        if name == 'refreshToken':
            return {'refreshToken': {'accessToken': 'new-access', 'refreshToken': 'new-refresh'}}
        raise AssertionError(f"unexpected operation {name}")


@pytest.fixture
def http_mock():
    """Active responses mock which doesn't require every response to be used."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


@pytest.fixture
def fake_mobilizon(http_mock):
    """FakeMobilizon registered on the active responses mock."""
    fake = FakeMobilizon()
    fake.register(http_mock)
    return fake


@pytest.fixture
def sample_event():
    """Create a sample SourceEvent for testing."""
    return SourceEvent(
        title='Gig',
        location='Club X',
        city='Bern',
        country='Switzerland',
        url='https://ex.com/e/1',
        comment='<p>Live music</p>',
        type='MUSIC',
        source_url='https://ex.com/',
        date=datetime(2025, 6, 1, 20, 0, tzinfo=CEST),
        image_url=''
    )


@pytest.fixture
def sample_event_dict():
    """Sample event in the ConcertCloud JSON format."""
    return {
        'title': 'Gig',
        'location': 'Club X',
        'city': 'Bern',
        'country': 'Switzerland',
        'url': 'https://ex.com/e/1',
        'comment': '<p>Live music</p>',
        'type': 'MUSIC',
        'sourceUrl': 'https://ex.com/',
        'date': '2025-06-01T20:00:00+02:00',
        'imageUrl': ''
    }
