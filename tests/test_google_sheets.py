"""Unit tests for GoogleSheetsAdapter."""
from datetime import date, timedelta

import pytest
import responses

from processor.config import Settings
from processor.models import Source, SourceType
from scraper.google_sheets import (
    GoogleSheetsAdapter,
    infer_start_time,
    parse_csv,
    parse_sheet_date,
)

SHEET_ID = 'sheet-abc'
CSV_URL = f'https://docs.google.com/spreadsheets/d/{SHEET_ID}/gviz/tq'
META_URL = f'https://sheets.googleapis.com/v4/spreadsheets/{SHEET_ID}'

CONFIG = {
    'sheetId': SHEET_ID,
    'tabs': ['2026'],
    'columns': {'runNumber': 0, 'specialRun': 1, 'date': 2, 'hares': 3, 'location': 4, 'title': 5},
    'kennelTagRules': {
        'default': 'SH3',
        'specialRunMap': {'FM': 'SH3-FM'},
        'numericSpecialTag': 'SH3-SPECIAL',
    },
    'startTimeRules': {'byDayOfWeek': {'Mon': '18:30'}, 'default': '14:00'},
}


def sheet_date(offset):
    day = date.today() + timedelta(days=offset)
    return f"{day.month}/{day.day}/{day.year}"


def make_source(config=CONFIG):
    return Source(id='sheets-1', url='https://docs.google.com/spreadsheets/d/sheet-abc',
                  type=SourceType.GOOGLE_SHEETS, config=config)


@pytest.fixture
def adapter():
    return GoogleSheetsAdapter(settings=Settings(google_api_key='test-key'))


class TestSheetHelpers:
    """Test cases for sheet parsing helpers."""

    @pytest.mark.parametrize('text,expected', [
        ('6-15-25', '2025-06-15'),
        ('7/1/2024', '2024-07-01'),
        ('6/13/22', '2022-06-13'),
        ('12/31/99', '1999-12-31'),
        ('13/1/2024', None),
        ('TBD', None),
        ('', None),
    ])
    def test_parse_sheet_date(self, text, expected):
        """Test the date formats found in hareline sheets."""
        assert parse_sheet_date(text) == expected

    def test_infer_start_time(self):
        """Test weekday-based start times."""
        rules = {'byDayOfWeek': {'Mon': '18:30'}, 'default': '14:00'}

        assert infer_start_time('2026-03-02', rules) == '18:30'
        assert infer_start_time('2026-03-07', rules) == '14:00'
        assert infer_start_time('2026-03-07', None) is None

    def test_parse_csv_drops_blank_rows(self):
        """Test CSV parsing with quoted fields and blank lines."""
        rows = parse_csv('a,b\n"x, y",z\n,\n\n1,2\n')

        assert rows == [['a', 'b'], ['x, y', 'z'], ['1', '2']]


class TestGoogleSheetsAdapter:
    """Test cases for GoogleSheetsAdapter.fetch."""

    @responses.activate
    def test_ten_rows_and_one_malformed(self, adapter):
        """Test that one bad row does not stop the other ten."""
        lines = ['Run,Special,Date,Hares,Location,Title']
        for i in range(10):
            lines.append(f'{500 + i},,{sheet_date(i * 5)},Hare {i},Park {i},Trail {i}')
        lines.append('510,,32/45/2026,Hare X,Nowhere,Broken Trail')
        responses.add(responses.GET, CSV_URL, body='\n'.join(lines), status=200)

        result = adapter.fetch(make_source())

        assert len(result.events) == 10
        assert len(result.error_details.parse) == 1
        parse_error = result.error_details.parse[0]
        assert parse_error.row == 11
        assert parse_error.section == '2026'
        assert '32/45/2026' in parse_error.error
        assert '32/45/2026' in parse_error.raw_text
        assert result.error_details.fetch == []
        assert result.events[0].kennel_tag == 'SH3'
        assert result.events[0].run_number == 500
        assert result.events[0].location_url.startswith('https://www.google.com/maps/search/')
        assert result.diagnostic_context['tabsProcessed'] == ['2026']

    @responses.activate
    def test_kennel_rules(self, adapter):
        """Test special-run mapping, numeric specials and non-run rows."""
        body = '\n'.join([
            'Run,Special,Date,Hares,Location,Title',
            f'600,FM,{sheet_date(3)},A,B,Full Moon',
            f',7,{sheet_date(4)},A,B,Special Seven',
            f',,{sheet_date(5)},,,Social (no run)',
        ])
        responses.add(responses.GET, CSV_URL, body=body, status=200)

        result = adapter.fetch(make_source())

        assert [(event.kennel_tag, event.run_number) for event in result.events] == [
            ('SH3-FM', 600),
            ('SH3-SPECIAL', 7),
        ]
        assert result.errors == []

    @responses.activate
    def test_rows_outside_window_skipped(self, adapter):
        """Test that the date window applies."""
        body = '\n'.join([
            'Run,Special,Date,Hares,Location,Title',
            f'1,,{sheet_date(-400)},A,B,Old',
            f'2,,{sheet_date(1)},A,B,New',
        ])
        responses.add(responses.GET, CSV_URL, body=body, status=200)

        result = adapter.fetch(make_source(), days=90)

        assert [event.title for event in result.events] == ['New']
        assert result.diagnostic_context['skippedDateRange'] == 1

    @responses.activate
    def test_tab_discovery(self, adapter):
        """Test that year tabs are discovered newest first when none are configured."""
        config = dict(CONFIG)
        del config['tabs']
        responses.add(responses.GET, META_URL, json={'sheets': [
            {'properties': {'title': 'Instructions'}},
            {'properties': {'title': '2025'}},
            {'properties': {'title': '2026'}},
        ]}, status=200)
        # Exports are served in request order: 2026, then 2025
        responses.add(responses.GET, CSV_URL,
                      body=f'Run,Special,Date,Hares,Location,Title\n1,,{sheet_date(2)},A,B,T',
                      status=200)
        responses.add(responses.GET, CSV_URL,
                      body='Run,Special,Date,Hares,Location,Title',
                      status=200)

        result = adapter.fetch(make_source(config))

        assert result.diagnostic_context['tabsDiscovered'] == ['2026', '2025']
        assert result.diagnostic_context['tabsProcessed'] == ['2026', '2025']
        assert len(result.events) == 1
        assert 'sheet=2025' in responses.calls[2].request.url

    def test_missing_config_field(self, adapter):
        """Test that a missing required field is reported as a fetch error."""
        result = adapter.fetch(make_source({'sheetId': SHEET_ID}))

        assert result.events == []
        assert result.errors == ['GoogleSheetsAdapter: missing required config field "columns"']

    def test_missing_default_kennel(self, adapter):
        """Test that kennelTagRules must name a default tag."""
        config = dict(CONFIG, kennelTagRules={'specialRunMap': {}})

        result = adapter.fetch(make_source(config))

        assert 'kennelTagRules.default' in result.errors[0]

    def test_discovery_needs_api_key(self):
        """Test that tab discovery without an API key fails cleanly."""
        config = dict(CONFIG)
        del config['tabs']
        adapter = GoogleSheetsAdapter(settings=Settings(google_api_key=None))

        result = adapter.fetch(make_source(config))

        assert result.errors == ['Missing GOOGLE_API_KEY environment variable']

    @responses.activate
    def test_failed_tab_recorded(self, adapter):
        """Test that a failed tab export is a fetch error, not a crash."""
        responses.add(responses.GET, CSV_URL, status=500)

        result = adapter.fetch(make_source())

        assert result.events == []
        assert result.error_details.fetch[0].status == 500
        assert result.errors[0].startswith('Failed to fetch tab "2026"')
