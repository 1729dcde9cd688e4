"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
import responses

from lambda_function import JsonFormatter, lambda_handler, scrape_source, setup_logging
from processor.config import Settings
from processor.models import RawEvent, ScrapeResult


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'LOG_LEVEL': 'INFO',
        'SCRAPE_DAYS': '90',
        'TIMEOUT_SECONDS': '30'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 512
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def static_source():
    """A schedule source that needs no network access."""
    return {
        'id': 'static-1',
        'url': 'https://kennel.example/',
        'type': 'STATIC_SCHEDULE',
        'scrapeFreq': 'daily',
        'config': {'kennelTag': 'RH3', 'rrule': 'FREQ=WEEKLY;BYDAY=SA', 'startTime': '14:00'},
    }


@pytest.fixture
def rss_source():
    return {
        'id': 'rss-1',
        'url': 'https://kennel.example/feed/',
        'type': 'RSS_FEED',
        'config': {'kennelTag': 'KH3'},
    }


class TestScrapeSource:
    """Test cases for per-source dispatch."""

    def test_scrapes_due_source(self, static_source):
        """Test a never-scraped source is scraped."""
        entry = scrape_source(static_source, 14, False, Settings())

        assert entry['statusCode'] == 200
        assert entry['sourceId'] == 'static-1'
        assert entry['adapter'] == 'StaticScheduleAdapter'
        assert len(entry['result']['events']) >= 4
        assert entry['result']['events'][0]['kennelTag'] == 'RH3'

    def test_skips_source_not_due(self, static_source):
        """Test that a recently scraped source is skipped."""
        static_source['lastScrapeAt'] = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()

        entry = scrape_source(static_source, None, False, Settings())

        assert entry == {'sourceId': 'static-1', 'statusCode': 200, 'skipped': 'not-due'}

    def test_force_overrides_schedule(self, static_source):
        """Test that force scrapes a source that is not due."""
        static_source['lastScrapeAt'] = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()

        entry = scrape_source(static_source, 14, True, Settings())

        assert 'result' in entry

    def test_disabled_source(self, static_source):
        """Test that a disabled source is skipped even when forced."""
        static_source['enabled'] = False

        entry = scrape_source(static_source, None, True, Settings())

        assert entry['skipped'] == 'disabled'

    def test_unknown_source_type(self, static_source):
        """Test that an unknown type is reported per source."""
        static_source['type'] = 'CARRIER_PIGEON'

        entry = scrape_source(static_source, None, False, Settings())

        assert entry['statusCode'] == 400
        assert entry['error'] == 'Unknown source type: CARRIER_PIGEON'

    def test_invalid_timestamp(self, static_source):
        """Test that a malformed payload is a configuration error."""
        static_source['lastScrapeAt'] = 'yesterday-ish'

        entry = scrape_source(static_source, None, False, Settings())

        assert entry['statusCode'] == 400


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @responses.activate
    def test_successful_scrape(self, mock_env, mock_context, static_source, rss_source):
        """Test a run over several sources with totals."""
        responses.add(responses.GET, 'https://kennel.example/feed/', status=500)
        disabled = dict(static_source, id='static-2', enabled=False)
        event = {'sources': [static_source, rss_source, disabled], 'days': 14}

        response = lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Scrape completed'
        assert [entry['sourceId'] for entry in body['results']] == ['static-1', 'rss-1', 'static-2']
        assert body['skipped'] == ['static-2']
        assert body['totals']['sources'] == 3
        assert body['totals']['scraped'] == 2
        assert body['totals']['skipped'] == 1
        assert body['totals']['errors'] == 1
        assert body['totals']['withErrorDetails'] == 1
        assert body['totals']['events'] >= 4
        assert 'duration_seconds' in body

        rss_result = body['results'][1]['result']
        assert rss_result['errorDetails']['fetch'][0]['status'] == 500

    def test_missing_sources(self, mock_env, mock_context):
        """Test that an event without a sources list is rejected."""
        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 400
        assert 'sources' in json.loads(response['body'])['message']

    def test_invalid_source_does_not_stop_run(self, mock_env, mock_context, static_source):
        """Test that one bad source is reported while the rest are scraped."""
        bad = {'id': 'bad-1', 'url': 'https://kennel.example/', 'type': 'FAX'}

        response = lambda_handler({'sources': [bad, static_source], 'days': 7}, mock_context)

        body = json.loads(response['body'])
        assert response['statusCode'] == 200
        assert body['results'][0]['statusCode'] == 400
        assert body['totals']['invalid'] == 1
        assert body['totals']['scraped'] == 1

    @patch('lambda_function.get_adapter')
    def test_adapter_exception_does_not_stop_run(self, mock_get_adapter, mock_env, mock_context,
                                                 static_source, rss_source):
        """Test that an adapter raising is reported per source and the batch continues."""
        broken = Mock()
        broken.name = 'RssFeedAdapter'
        broken.fetch.side_effect = RuntimeError('adapter exploded')
        working = Mock()
        working.name = 'StaticScheduleAdapter'
        working.fetch.return_value = ScrapeResult(events=[RawEvent(date='2026-03-14', kennel_tag='RH3')])
        mock_get_adapter.side_effect = [broken, working]

        response = lambda_handler({'sources': [rss_source, static_source]}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['results'][0] == {'sourceId': 'rss-1', 'statusCode': 500,
                                      'adapter': 'RssFeedAdapter', 'error': 'adapter exploded'}
        assert body['results'][1]['statusCode'] == 200
        assert body['totals']['failed'] == 1
        assert body['totals']['scraped'] == 1
        assert body['totals']['events'] == 1

    @responses.activate
    def test_invalid_regex_does_not_stop_run(self, mock_env, mock_context, static_source):
        """Test that a source with a broken regex config reports a fetch error."""
        ical = {'id': 'ics-1', 'url': 'https://kennel.example/cal.ics', 'type': 'ICAL_FEED',
                'config': {'kennelPatterns': [['(unclosed', 'X']]}}

        response = lambda_handler({'sources': [ical, static_source], 'days': 7}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        ical_result = body['results'][0]['result']
        assert ical_result['events'] == []
        assert 'kennelPatterns[0]: invalid regex' in ical_result['errors'][0]
        assert body['totals']['scraped'] == 2
        assert len(responses.calls) == 0

    @patch('lambda_function.scrape_source')
    def test_unexpected_failure(self, mock_scrape_source, mock_env, mock_context, static_source):
        """Test that an unexpected exception returns 500 with partial results."""
        mock_scrape_source.side_effect = [
            {'sourceId': 'static-1', 'statusCode': 200, 'skipped': 'not-due'},
            RuntimeError('worker exploded'),
        ]

        response = lambda_handler({'sources': [static_source, static_source]}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Scrape failed'
        assert 'worker exploded' in body['error']
        assert body['error_type'] == 'RuntimeError'
        assert len(body['results']) == 1

    @patch('lambda_function.setup_logging')
    def test_logging_output(self, mock_setup_logging, mock_env, mock_context, static_source, caplog):
        """Test that logging output is generated correctly."""
        with caplog.at_level(logging.INFO, logger='lambda_function'):
            response = lambda_handler({'sources': [static_source], 'days': 7}, mock_context)

        assert response['statusCode'] == 200
        log_messages = [record.message for record in caplog.records]
        assert any('Worker started with 1 sources' in msg for msg in log_messages)
        assert any('Scraped source static-1 with StaticScheduleAdapter' in msg for msg in log_messages)
        assert any('Worker completed' in msg for msg in log_messages)


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        """Test logging setup with default INFO level."""
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        """Test logging setup with DEBUG level."""
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_unknown_level(self):
        """Test that an unknown level falls back to INFO."""
        setup_logging('CHATTY')
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_extra_fields(self):
        """Test that structured extras are emitted as JSON keys."""
        record = logging.LogRecord('lambda_function', logging.INFO, __file__, 1,
                                   'Scraped source %s', ('s1',), None)
        record.source_id = 's1'
        record.events = 3

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'Scraped source s1'
        assert data['level'] == 'INFO'
        assert data['source_id'] == 's1'
        assert data['events'] == 3
        assert 'adapter' not in data
