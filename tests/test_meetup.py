"""Unit tests for MeetupAdapter."""
from datetime import date, timedelta

import pytest
import responses

from processor.config import Settings
from processor.models import Source, SourceType
from scraper.meetup import MeetupAdapter, venue_location

API_URL = 'https://api.meetup.com/austin-hash/events'


def iso_day(offset):
    return (date.today() + timedelta(days=offset)).isoformat()


def make_source(config=None):
    return Source(id='meetup-1', url='https://www.meetup.com/austin-hash/', type=SourceType.MEETUP,
                  config=config if config is not None else {
                      'groupUrlname': 'austin-hash', 'kennelTag': 'AH3',
                  })


@pytest.fixture
def adapter():
    return MeetupAdapter(settings=Settings())


class TestMeetupAdapter:
    """Test cases for MeetupAdapter.fetch."""

    def test_venue_location(self):
        """Test venue flattening."""
        assert venue_location({'name': 'Pub', 'address_1': '1 Main St', 'city': 'Austin',
                               'state': 'TX'}) == 'Pub, 1 Main St, Austin, TX'
        assert venue_location(None) is None
        assert venue_location({}) is None

    @responses.activate
    def test_fetch_events(self, adapter):
        """Test mapping Meetup events, including a broken item."""
        responses.add(responses.GET, API_URL, json=[
            {
                'id': 'e1',
                'name': 'Trail #900',
                'local_date': iso_day(5),
                'local_time': '18:30',
                'description': '<p>Bring a headlamp</p>',
                'venue': {'name': 'Pub', 'city': 'Austin'},
                'link': 'https://www.meetup.com/austin-hash/events/e1/',
            },
            {'id': 'e2', 'name': 'No date'},
            {'id': 'e3', 'name': 'Long ago', 'local_date': iso_day(-365)},
        ], status=200)

        result = adapter.fetch(make_source())

        assert len(result.events) == 1
        event = result.events[0]
        assert event.kennel_tag == 'AH3'
        assert event.start_time == '18:30'
        assert event.location == 'Pub, Austin'
        assert event.description == 'Bring a headlamp'
        assert result.error_details.parse[0].row == 1
        assert 'e2' in result.error_details.parse[0].error
        assert result.diagnostic_context['skippedDateRange'] == 1

    @responses.activate
    def test_non_list_response(self, adapter):
        """Test that an error object from the API is a fetch error."""
        responses.add(responses.GET, API_URL, json={'errors': [{'code': 'group_error'}]}, status=200)

        result = adapter.fetch(make_source())

        assert result.errors == ['Meetup API returned a non-list response']

    @responses.activate
    def test_http_error(self, adapter):
        """Test that an HTTP error names the group."""
        responses.add(responses.GET, API_URL, status=404)

        result = adapter.fetch(make_source())

        assert result.errors == ['Meetup API error for group "austin-hash": HTTP 404: Not Found']

    def test_missing_config(self, adapter):
        """Test that groupUrlname is required."""
        result = adapter.fetch(make_source({'kennelTag': 'AH3'}))

        assert result.errors == ['MeetupAdapter: missing required config field "groupUrlname"']
