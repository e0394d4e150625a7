"""Invocation handler that fetches calendar sources and returns display rows."""
import json
import logging
import os
import time
from typing import Dict, Any

from fetcher.calendar_fetcher import CalendarFetcher
from processor.calendar_module import CalendarModule
from processor.config import ConfigError, load_config, load_config_file
from processor.time_utils import now_millis


class JsonFormatter(logging.Formatter):
    """Renders records as one JSON object per line, tagged with the calendar id when known."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        calendar_id = getattr(record, 'calendar_id', None)
        if calendar_id is not None:
            log_data['calendar_id'] = calendar_id

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Route all calendar logging through a single JSON stream handler.

    Args:
        log_level: Level name; unknown names fall back to INFO
    """
    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    stream = logging.StreamHandler()
    stream.setFormatter(JsonFormatter())
    root_logger.addHandler(stream)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def calendar_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one register, fetch and rebuild cycle.

    Args:
        event: Invocation payload; an optional ``config`` key holds the
            calendar configuration inline
        context: Invocation context object (unused)

    Returns:
        Response dict with statusCode and the display rows
    """
    config_path = os.environ.get('CALENDAR_CONFIG', 'calendar_config.json')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    language = os.environ.get('LANGUAGE')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info("Calendar invocation started")

    try:
        try:
            if event and 'config' in event:
                raw_config = dict(event['config'])
                if language and 'language' not in raw_config:
                    raw_config['language'] = language
                config = load_config(raw_config)
            else:
                config = load_config_file(config_path)
                if language:
                    config.language = language
        except (ConfigError, OSError) as e:
            logger.error(
                f"Invalid calendar configuration: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            duration = time.time() - start_time
            return {
                'statusCode': 500,
                'body': json.dumps({
                    'message': 'Invalid calendar configuration',
                    'error': str(e),
                    'error_type': type(e).__name__,
                    'duration_seconds': round(duration, 2)
                })
            }

        broadcasts = []
        module = CalendarModule(
            config,
            send_socket_notification=lambda kind, payload: fetcher.register(payload),
            send_notification=lambda kind, payload: broadcasts.append(payload)
        )
        fetcher = CalendarFetcher(
            notify=module.socket_notification_received,
            timeout=timeout_seconds
        )

        now = now_millis(config.builder.timezone)

        logger.info("Registering calendar sources")
        module.start(now)

        logger.info("Fetching calendar sources")
        fetched = fetcher.poll(now)

        logger.info("Building event list")
        rows = module.display_rows(now)

        duration = time.time() - start_time

        logger.info(
            "Calendar invocation completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'sources_fetched': fetched,
                'events_displayed': len(rows)
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Calendar built successfully',
                'loaded': module.loaded,
                'status': module.status_text() if not rows else None,
                'rows': [row.to_dict() for row in rows],
                'broadcast': broadcasts[-1] if broadcasts else [],
                'statistics': {
                    'sources': len(config.sources),
                    'sources_fetched': fetched,
                    'events_stored': module.store.event_count(),
                    'events_displayed': len(rows),
                    'duration_seconds': round(duration, 2)
                }
            })
        }

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Calendar invocation failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Calendar build failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
