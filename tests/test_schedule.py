"""Unit tests for the scrape-due policy."""
from datetime import datetime, timedelta, timezone

import pytest

from processor.schedule import BUFFER, FREQ_INTERVALS, should_scrape

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestShouldScrape:
    """Test cases for should_scrape."""

    def test_never_scraped(self):
        """Test that a source that was never scraped is due."""
        assert should_scrape('weekly', None, now=NOW) is True

    @pytest.mark.parametrize('freq', ['hourly', 'every_6h', 'daily', 'weekly'])
    def test_due_exactly_at_buffer_edge(self, freq):
        """Test that elapsed == interval - buffer is due."""
        last = NOW - (FREQ_INTERVALS[freq] - BUFFER)

        assert should_scrape(freq, last, now=NOW) is True

    @pytest.mark.parametrize('freq', ['hourly', 'every_6h', 'daily', 'weekly'])
    def test_not_due_just_inside_buffer(self, freq):
        """Test that one second short of the buffered interval is not due."""
        last = NOW - (FREQ_INTERVALS[freq] - BUFFER) + timedelta(seconds=1)

        assert should_scrape(freq, last, now=NOW) is False

    def test_daily_after_23_hours_55_minutes(self):
        """Test that the buffer absorbs scheduler jitter."""
        last = NOW - timedelta(hours=23, minutes=55)

        assert should_scrape('daily', last, now=NOW) is True

    def test_daily_after_24_hours_1_minute(self):
        """Test that a daily source a day and a minute old is due."""
        assert should_scrape('daily', NOW - timedelta(hours=24, minutes=1), now=NOW) is True

    def test_weekly_after_2_days(self):
        """Test that a weekly source two days old is not due."""
        assert should_scrape('weekly', NOW - timedelta(days=2), now=NOW) is False

    def test_hourly_after_30_minutes(self):
        """Test that a recently scraped hourly source is not due."""
        assert should_scrape('hourly', NOW - timedelta(minutes=30), now=NOW) is False

    def test_unknown_frequency_treated_as_daily(self):
        """Test the fallback for unrecognized frequency tags."""
        assert should_scrape('fortnightly', NOW - timedelta(hours=12), now=NOW) is False
        assert should_scrape('fortnightly', NOW - timedelta(hours=24), now=NOW) is True

    def test_now_defaults_to_current_time(self):
        """Test that omitting now compares against the current time."""
        assert should_scrape('hourly', datetime.now(timezone.utc) - timedelta(hours=2)) is True
        assert should_scrape('hourly', datetime.now() - timedelta(minutes=5)) is False
