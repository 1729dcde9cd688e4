"""Unit tests for data models."""
from datetime import datetime, timezone

import pytest

from processor.models import (
    ErrorDetails,
    ExternalLink,
    ParseError,
    RawEvent,
    ScrapeResult,
    Source,
    SourceType,
    has_any_errors,
)


class TestSource:
    """Test cases for Source.from_dict."""

    def test_camel_case_payload(self):
        """Test building a source from a camelCase payload."""
        source = Source.from_dict({
            'id': 42,
            'url': 'https://example.com/calendar.ics',
            'type': 'ICAL_FEED',
            'config': {'defaultKennelTag': 'NYCH3'},
            'trustLevel': 8,
            'scrapeFreq': 'hourly',
            'lastScrapeAt': '2026-03-01T12:00:00Z',
            'scrapeDays': 30,
        })

        assert source.id == '42'
        assert source.type == SourceType.ICAL_FEED
        assert source.trust_level == 8
        assert source.scrape_freq == 'hourly'
        assert source.scrape_days == 30
        assert source.last_scrape_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert source.enabled is True

    def test_snake_case_payload_and_defaults(self):
        """Test snake_case keys and default values."""
        source = Source.from_dict({'id': 's1', 'url': 'https://x.test', 'source_type': 'MEETUP'})

        assert source.type == SourceType.MEETUP
        assert source.config is None
        assert source.scrape_freq == 'daily'
        assert source.scrape_days == 90
        assert source.health_status == 'UNKNOWN'
        assert source.last_scrape_at is None

    def test_unknown_type_kept_as_string(self):
        """Test that an unknown type is preserved for the registry to reject."""
        source = Source.from_dict({'id': 's2', 'url': 'https://x.test', 'type': 'CARRIER_PIGEON'})

        assert source.type == 'CARRIER_PIGEON'


class TestRawEvent:
    """Test cases for RawEvent."""

    def test_minimal_event(self):
        """Test that date and kennel tag are enough."""
        event = RawEvent(date='2026-03-14', kennel_tag='NYCH3')

        assert event.to_dict() == {'date': '2026-03-14', 'kennelTag': 'NYCH3'}

    @pytest.mark.parametrize('value', ['2026-3-14', '03/14/2026', '2026-02-30', '', None])
    def test_invalid_date_rejected(self, value):
        """Test that malformed or impossible dates raise ValueError."""
        with pytest.raises(ValueError):
            RawEvent(date=value, kennel_tag='NYCH3')

    @pytest.mark.parametrize('value', ['7:00', '24:00', '19:60', '7pm'])
    def test_invalid_start_time_rejected(self, value):
        """Test that start times must be zero-padded 24-hour HH:MM."""
        with pytest.raises(ValueError):
            RawEvent(date='2026-03-14', kennel_tag='NYCH3', start_time=value)

    def test_to_dict_camel_case(self):
        """Test the serialized shape of a full event."""
        event = RawEvent(
            date='2026-03-14',
            kennel_tag='NYCH3',
            run_number=2100,
            title='Pi Day Trail',
            hares='Just Mike',
            location='Central Park',
            location_url='https://maps.example/central-park',
            start_time='15:00',
            source_url='https://example.com/run/2100',
            external_links=[ExternalLink(url='https://hashrego.com/events/x', label='Hash Rego')],
            series_id='x',
        )

        data = event.to_dict()

        assert data['kennelTag'] == 'NYCH3'
        assert data['runNumber'] == 2100
        assert data['locationUrl'] == 'https://maps.example/central-park'
        assert data['startTime'] == '15:00'
        assert data['seriesId'] == 'x'
        assert data['externalLinks'] == [{'url': 'https://hashrego.com/events/x', 'label': 'Hash Rego'}]
        assert 'description' not in data


class TestErrorDetails:
    """Test cases for the error envelope."""

    def test_empty_envelope(self):
        """Test that an empty envelope reports no errors."""
        assert has_any_errors(None) is False
        assert has_any_errors(ErrorDetails()) is False

    def test_fetch_and_parse_errors(self):
        """Test recording both kinds of errors."""
        details = ErrorDetails()
        details.add_fetch('HTTP 503: Service Unavailable', url='https://x.test', status=503)
        details.add_parse(3, 'Could not parse date', section='hareline', field='date',
                          partial_data={'title': 'Trail'})

        assert has_any_errors(details) is True
        assert details.to_dict() == {
            'fetch': [{'url': 'https://x.test', 'status': 503,
                       'message': 'HTTP 503: Service Unavailable'}],
            'parse': [{'row': 3, 'section': 'hareline', 'field': 'date',
                       'error': 'Could not parse date', 'partialData': {'title': 'Trail'}}],
        }

    def test_raw_text_capped(self):
        """Test that raw text excerpts are capped at 2000 characters."""
        error = ParseError(row=0, error='bad', raw_text='x' * 5000)

        assert len(error.raw_text) == 2000


class TestScrapeResult:
    """Test cases for ScrapeResult serialization."""

    def test_to_dict_omits_empty_optionals(self):
        """Test that empty error details and absent fields are left out."""
        result = ScrapeResult(events=[RawEvent(date='2026-01-01', kennel_tag='EH3')],
                              error_details=ErrorDetails())

        data = result.to_dict()

        assert data == {'events': [{'date': '2026-01-01', 'kennelTag': 'EH3'}], 'errors': []}

    def test_to_dict_full(self):
        """Test a result carrying every optional part."""
        details = ErrorDetails()
        details.add_fetch('Fetch failed: timeout')
        result = ScrapeResult(errors=['Fetch failed: timeout'], error_details=details,
                              structure_hash='a' * 64, diagnostic_context={'itemsFound': 0})

        data = result.to_dict()

        assert data['errorDetails'] == {'fetch': [{'message': 'Fetch failed: timeout'}]}
        assert data['structureHash'] == 'a' * 64
        assert data['diagnosticContext'] == {'itemsFound': 0}
