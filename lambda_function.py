"""AWS Lambda handler for hash-run event ingestion."""
import json
import logging
import time
from typing import Dict, Any, List

from processor.config import Settings
from processor.models import Source
from processor.schedule import should_scrape
from scraper.registry import UnknownSourceTypeError, get_adapter


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }
        for key in ('source_id', 'adapter', 'events', 'errors', 'duration_seconds', 'error_type'):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure the root logger with a single JSON handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def scrape_source(payload: Dict[str, Any], days: Any, force: bool,
                  settings: Settings) -> Dict[str, Any]:
    """
    Run one source through its adapter.

    Returns:
        Per-source entry: statusCode, sourceId, adapter, and either the
        serialized ScrapeResult, a skip marker, a configuration error (400)
        or an adapter failure (500)
    """
    logger = logging.getLogger(__name__)
    source_id = str(payload.get('id', ''))

    try:
        source = Source.from_dict(payload)
        adapter = get_adapter(source.type, source.url, settings=settings)
    except (UnknownSourceTypeError, ValueError) as e:
        logger.error(f"Invalid source {source_id}: {e}",
                     extra={'source_id': source_id, 'error_type': type(e).__name__})
        return {'sourceId': source_id, 'statusCode': 400, 'error': str(e)}

    if not source.enabled:
        return {'sourceId': source_id, 'statusCode': 200, 'skipped': 'disabled'}
    if not force and not should_scrape(source.scrape_freq, source.last_scrape_at):
        logger.info(f"Source {source_id} not due ({source.scrape_freq})",
                    extra={'source_id': source_id})
        return {'sourceId': source_id, 'statusCode': 200, 'skipped': 'not-due'}

    start_time = time.time()
    try:
        result = adapter.fetch(source, days=days)
    except Exception as e:
        logger.error(
            f"Adapter {adapter.name} failed for source {source_id}: {e}",
            extra={'source_id': source_id, 'adapter': adapter.name,
                   'error_type': type(e).__name__},
            exc_info=True
        )
        return {'sourceId': source_id, 'statusCode': 500, 'adapter': adapter.name, 'error': str(e)}
    duration = time.time() - start_time
    logger.info(
        f"Scraped source {source_id} with {adapter.name}",
        extra={
            'source_id': source_id,
            'adapter': adapter.name,
            'events': len(result.events),
            'errors': len(result.errors),
            'duration_seconds': round(duration, 2)
        }
    )
    return {
        'sourceId': source_id,
        'statusCode': 200,
        'adapter': adapter.name,
        'result': result.to_dict(),
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Scrape the sources handed to this worker.

    Args:
        event: {"sources": [Source JSON, ...], "days": optional int, "force": optional bool}
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body of per-source results
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    sources = (event or {}).get('sources')
    if not isinstance(sources, list):
        logger.error("Event payload has no sources list")
        return {
            'statusCode': 400,
            'body': json.dumps({'message': 'Event must contain a "sources" list'})
        }

    days = event.get('days')
    force = bool(event.get('force', False))
    logger.info(f"Worker started with {len(sources)} sources",
                extra={'events': len(sources)})

    results: List[Dict[str, Any]] = []
    try:
        for payload in sources:
            results.append(scrape_source(payload or {}, days, force, settings))
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Worker failed: {str(e)}",
            extra={'duration_seconds': round(duration, 2), 'error_type': type(e).__name__},
            exc_info=True
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Scrape failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'results': results,
                'duration_seconds': round(duration, 2)
            })
        }

    scraped = [entry for entry in results if 'result' in entry]
    totals = {
        'sources': len(results),
        'scraped': len(scraped),
        'skipped': sum(1 for entry in results if 'skipped' in entry),
        'invalid': sum(1 for entry in results if entry['statusCode'] == 400),
        'failed': sum(1 for entry in results if entry['statusCode'] == 500),
        'events': sum(len(entry['result']['events']) for entry in scraped),
        'errors': sum(len(entry['result']['errors']) for entry in scraped),
        'withErrorDetails': sum(1 for entry in scraped if 'errorDetails' in entry['result']),
    }
    duration = time.time() - start_time
    logger.info("Worker completed",
                extra={'events': totals['events'], 'errors': totals['errors'],
                       'duration_seconds': round(duration, 2)})

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Scrape completed',
            'results': results,
            'skipped': [entry['sourceId'] for entry in results if 'skipped' in entry],
            'totals': totals,
            'duration_seconds': round(duration, 2)
        })
    }
