"""Unit tests for ConcertCloudClient."""
import json
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import RequestException, Timeout

from scraper.concertcloud import ConcertCloudClient

API_URL = ConcertCloudClient.BASE_URL


class TestConcertCloudClient:
    """Test cases for ConcertCloudClient class."""

    @responses.activate
    def test_fetch_events_success(self, sample_event_dict):
        """Test successful event fetching and parsing."""
        responses.add(
            responses.GET,
            API_URL,
            json={
                'data': [sample_event_dict, dict(sample_event_dict, title='Second', url='https://ex.com/e/2')],
                'page': 1,
                'last_page': 1,
                'total': 2
            },
            status=200
        )

        client = ConcertCloudClient(timeout=30)
        events = client.fetch_events(city='Bern', limit='50')

        assert len(events) == 2
        assert events[0].title == 'Gig'
        assert events[0].location == 'Club X'
        assert events[0].source_url == 'https://ex.com/'
        assert events[0].date.isoformat() == '2025-06-01T20:00:00+02:00'
        assert events[0].mob_uuid == ''
        assert events[1].title == 'Second'

        url = responses.calls[0].request.url
        assert 'city=Bern' in url
        assert 'limit=50' in url
        assert 'country' not in url

    @responses.activate
    def test_default_city(self):
        """Test that an unset city falls back to the placeholder city."""
        responses.add(responses.GET, API_URL, json={'data': []}, status=200)

        ConcertCloudClient().fetch_events()

        assert responses.calls[0].request.url.endswith('?city=X')

    def test_build_params(self):
        client = ConcertCloudClient()

        params = client.build_params(city='', country='CH', radius='20', date='2025-06-01', page=None)

        assert params == {'city': 'X', 'country': 'CH', 'radius': '20', 'date': '2025-06-01'}

    @responses.activate
    @patch('scraper.concertcloud.time.sleep')
    def test_fetch_events_with_retry_success(self, mock_sleep, sample_event_dict):
        """Test retry logic succeeds after initial failures."""
        responses.add(responses.GET, API_URL, body='Server Error', status=500)
        responses.add(responses.GET, API_URL, body='Server Error', status=500)
        responses.add(responses.GET, API_URL, json={'data': [sample_event_dict]}, status=200)

        events = ConcertCloudClient().fetch_events()

        assert len(events) == 1
        assert len(responses.calls) == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @responses.activate
    @patch('scraper.concertcloud.time.sleep')
    def test_fetch_events_all_retries_fail(self, mock_sleep):
        """Test that exception is raised when all retries fail."""
        for _ in range(3):
            responses.add(responses.GET, API_URL, body='Server Error', status=500)

        with pytest.raises(RequestException):
            ConcertCloudClient().fetch_events()

        assert len(responses.calls) == 3

    @responses.activate
    @patch('scraper.concertcloud.time.sleep')
    def test_fetch_events_timeout(self, mock_sleep):
        responses.add(responses.GET, API_URL, body=Timeout('Request timed out'))

        with pytest.raises(Timeout):
            ConcertCloudClient().fetch_events()

    @responses.activate
    def test_malformed_json(self):
        """Test that a malformed response yields no events."""
        responses.add(responses.GET, API_URL, body='{"data": [', status=200)

        assert ConcertCloudClient().fetch_events() == []

    @responses.activate
    def test_invalid_entries_are_skipped(self, sample_event_dict):
        responses.add(
            responses.GET,
            API_URL,
            json={'data': [dict(sample_event_dict, date='soon'), 'junk', sample_event_dict]},
            status=200
        )

        events = ConcertCloudClient().fetch_events()

        assert [e.title for e in events] == ['Gig']

    @responses.activate
    def test_non_string_fields_are_skipped(self, sample_event_dict):
        """Test that entries with numbers or objects in text fields are dropped."""
        responses.add(
            responses.GET,
            API_URL,
            json={'data': [
                dict(sample_event_dict, title=2024),
                dict(sample_event_dict, location={'name': 'Club X'}),
                dict(sample_event_dict, title=None, url='https://ex.com/e/2')
            ]},
            status=200
        )

        events = ConcertCloudClient().fetch_events()

        assert [(e.title, e.url) for e in events] == [('', 'https://ex.com/e/2')]

    def test_load_file(self, tmp_path, sample_event_dict):
        path = tmp_path / 'events.json'
        path.write_text(json.dumps([sample_event_dict]))

        events = ConcertCloudClient().load_file(str(path))

        assert len(events) == 1
        assert events[0].url == 'https://ex.com/e/1'

    def test_load_file_malformed(self, tmp_path):
        path = tmp_path / 'events.json'
        path.write_text('not json')

        assert ConcertCloudClient().load_file(str(path)) == []

    def test_load_file_object(self, tmp_path, sample_event_dict):
        path = tmp_path / 'events.json'
        path.write_text(json.dumps({'data': [sample_event_dict]}))

        assert ConcertCloudClient().load_file(str(path)) == []

    def test_load_file_missing(self, tmp_path):
        with pytest.raises(OSError):
            ConcertCloudClient().load_file(str(tmp_path / 'missing.json'))
