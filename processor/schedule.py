"""Scrape-due policy for sources."""
from datetime import datetime, timedelta
from typing import Optional

# Minimum interval between scrapes per frequency tag
FREQ_INTERVALS = {
    'hourly': timedelta(hours=1),
    'every_6h': timedelta(hours=6),
    'daily': timedelta(hours=24),
    'weekly': timedelta(days=7),
}

# Absorbs scheduler-tick jitter near interval boundaries
BUFFER = timedelta(minutes=10)


def should_scrape(scrape_freq: str, last_scrape_at: Optional[datetime],
                  now: Optional[datetime] = None) -> bool:
    """
    Decide whether a source is due for scraping.

    Args:
        scrape_freq: Frequency tag (hourly, every_6h, daily, weekly);
            unrecognized tags are treated as daily
        last_scrape_at: Time of the last scrape, or None if never scraped
        now: Reference time (default: current time in last_scrape_at's zone)

    Returns:
        True if the source has never been scraped or enough time has elapsed
    """
    if last_scrape_at is None:
        return True
    interval = FREQ_INTERVALS.get(scrape_freq, FREQ_INTERVALS['daily'])
    if now is None:
        now = datetime.now(last_scrape_at.tzinfo)
    elapsed = now - last_scrape_at
    return elapsed >= interval - BUFFER
