"""Google Sheets adapter: hareline spreadsheets exported tab by tab as CSV."""
import csv
import io
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from processor.config import SourceConfigError
from processor.models import ErrorDetails, RawEvent, ScrapeResult, Source, SourceType
from processor.normalize import build_date_window, google_maps_search_url, truncate
from scraper.base import AdapterFetchError, SourceAdapter, build_result, record_parse_error

logger = logging.getLogger(__name__)

SHEETS_API_BASE = 'https://sheets.googleapis.com/v4/spreadsheets'
CSV_EXPORT_BASE = 'https://docs.google.com/spreadsheets/d'

REQUIRED_FIELDS = {
    'sheetId': 'string',
    'columns': 'object',
    'kennelTagRules': 'object',
}

_DATE_SPLIT_RE = re.compile(r'[/\-]')


def parse_sheet_date(text: str) -> Optional[str]:
    """
    Parse the date formats found in hareline sheets.

    Accepts "6-15-25", "7/1/2024" and "6/13/22". Two-digit years below 50
    are 20xx, the rest 19xx.

    Args:
        text: Date cell

    Returns:
        YYYY-MM-DD, or None if the cell is not a date
    """
    text = (text or '').strip()
    if not text:
        return None
    parts = _DATE_SPLIT_RE.split(text)
    if len(parts) != 3 or not all(part.strip().isdigit() for part in parts):
        return None

    month, day, year = (int(part) for part in parts)
    if month < 1 or month > 12 or day < 1 or day > 31:
        return None
    if year < 50:
        year += 2000
    elif year < 100:
        year += 1900
    return f"{year:04d}-{month:02d}-{day:02d}"


def infer_start_time(date_str: str, rules: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Pick a start time from weekday rules, e.g. {"byDayOfWeek": {"Mon": "19:00"},
    "default": "15:00"}.
    """
    if not rules:
        return None
    weekday = datetime.strptime(date_str, '%Y-%m-%d').strftime('%a')
    return (rules.get('byDayOfWeek') or {}).get(weekday, rules.get('default'))


def parse_csv(text: str) -> List[List[str]]:
    """Parse CSV export text, dropping blank lines."""
    reader = csv.reader(io.StringIO(text))
    return [row for row in reader if any(cell != '' for cell in row)]


def _cell(row: List[str], index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(row):
        return None
    return row[index].strip() or None


class GoogleSheetsAdapter(SourceAdapter):
    """Reads a kennel's hareline from a public Google Sheet."""

    source_type = SourceType.GOOGLE_SHEETS

    def fetch(self, source: Source, days: Optional[int] = None) -> ScrapeResult:
        try:
            config = self.load_config(source, REQUIRED_FIELDS)
        except SourceConfigError as e:
            return self.fetch_failure(str(e), url=source.url)

        window = build_date_window(self.window_days(source, days))
        sheet_id = config['sheetId']

        if config.get('tabs'):
            tab_names = list(config['tabs'])
        else:
            api_key = self.settings.google_api_key
            if not api_key:
                return self.fetch_failure('Missing GOOGLE_API_KEY environment variable')
            try:
                tab_names = self.discover_tabs(sheet_id, api_key)
            except AdapterFetchError as e:
                return self.fetch_failure(f"Sheets API: {e.message}", url=e.url, status=e.status)

        events: List[RawEvent] = []
        errors: List[str] = []
        error_details = ErrorDetails()
        tabs_processed = []
        rows_per_tab = {}
        skipped_date_range = 0

        for tab_name in tab_names:
            csv_url = (
                f"{CSV_EXPORT_BASE}/{sheet_id}/gviz/tq?tqx=out:csv"
                f"&sheet={quote(tab_name, safe='')}"
            )
            try:
                response = self.fetch_page(csv_url)
            except AdapterFetchError as e:
                message = f'Failed to fetch tab "{tab_name}": {e.message}'
                errors.append(message)
                error_details.add_fetch(message, url=csv_url, status=e.status)
                continue

            tabs_processed.append(tab_name)
            rows = parse_csv(response.text)
            rows_per_tab[tab_name] = len(rows)
            tab_has_events_in_window = False

            # First row is the header
            for row_index, row in enumerate(rows[1:], start=1):
                try:
                    parsed = self._parse_row(row, config, source.url)
                except ValueError as e:
                    record_parse_error(
                        errors, error_details, row_index, str(e),
                        section=tab_name,
                        raw_text=','.join(row),
                    )
                    continue
                if parsed is None:
                    continue
                if not window.contains(parsed.date):
                    skipped_date_range += 1
                    continue
                tab_has_events_in_window = True
                events.append(parsed)

            # Tabs are newest first; an older tab with nothing in the window ends the scan
            if not tab_has_events_in_window and events:
                break

        logger.info(f"Parsed {len(events)} events from {len(tabs_processed)} sheet tabs")
        return build_result(
            events, errors, error_details,
            diagnostic_context={
                'tabsDiscovered': tab_names,
                'tabsProcessed': tabs_processed,
                'rowsPerTab': rows_per_tab,
                'eventsParsed': len(events),
                'skippedDateRange': skipped_date_range,
            },
        )

    def discover_tabs(self, sheet_id: str, api_key: str) -> List[str]:
        """List year-prefixed tabs of a spreadsheet, newest first."""
        response = self.fetch_page(
            f"{SHEETS_API_BASE}/{sheet_id}",
            params={'fields': 'sheets.properties.title', 'key': api_key},
        )
        try:
            sheets = response.json().get('sheets') or []
        except ValueError as e:
            raise AdapterFetchError(f"invalid JSON from Sheets API: {e}", url=response.url)
        titles = [sheet.get('properties', {}).get('title', '') for sheet in sheets]
        return sorted((title for title in titles if title[:1].isdigit()), reverse=True)

    def _parse_row(self, row: List[str], config: Dict[str, Any],
                   source_url: str) -> Optional[RawEvent]:
        """
        Turn one sheet row into an event.

        Returns None for rows that are not runs (blank date, no run number).
        Raises ValueError for rows that look like runs but cannot be read.
        """
        columns = config['columns']
        rules = config['kennelTagRules']

        date_cell = _cell(row, columns.get('date'))
        if not date_cell:
            return None

        kennel_tag, run_number = self._resolve_kennel(row, columns, rules)
        if kennel_tag is None:
            return None

        date_str = parse_sheet_date(date_cell)
        if date_str is None:
            raise ValueError(f'Unparseable date "{date_cell}"')

        location = _cell(row, columns.get('location'))
        return RawEvent(
            date=date_str,
            kennel_tag=kennel_tag,
            run_number=run_number,
            title=_cell(row, columns.get('title')),
            description=truncate(_cell(row, columns.get('description'))),
            hares=_cell(row, columns.get('hares')),
            location=location,
            location_url=google_maps_search_url(location) if location else None,
            start_time=infer_start_time(date_str, config.get('startTimeRules')),
            source_url=source_url,
        )

    @staticmethod
    def _resolve_kennel(row: List[str], columns: Dict[str, Any],
                        rules: Dict[str, Any]) -> Tuple[Optional[str], Optional[int]]:
        run_cell = _cell(row, columns.get('runNumber'))
        special_cell = _cell(row, columns.get('specialRun'))
        special_map = rules.get('specialRunMap') or {}

        if special_cell and special_cell in special_map:
            run_number = int(run_cell) if run_cell and run_cell.isdigit() else None
            return special_map[special_cell], run_number
        if special_cell and special_cell.isdigit() and rules.get('numericSpecialTag'):
            return rules['numericSpecialTag'], int(special_cell)
        if run_cell and run_cell.isdigit():
            return rules['default'], int(run_cell)
        return None, None
