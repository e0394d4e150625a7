"""Calendar module configuration parsing."""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from processor.models import BuilderConfig, EventSource, SourceAuth
from processor.title_transformer import parse_title_replace

logger = logging.getLogger(__name__)

TIME_FORMATS = ('relative', 'absolute', 'dateheaders')

# configuration key -> BuilderConfig attribute
BUILDER_OPTIONS = {
    'maximumEntries': 'maximum_entries',
    'maximumNumberOfDays': 'maximum_number_of_days',
    'hidePrivate': 'hide_private',
    'hideOngoing': 'hide_ongoing',
    'sliceMultiDayEvents': 'slice_multi_day_events',
    'fadePoint': 'fade_point',
    'urgency': 'urgency',
    'getRelative': 'get_relative',
    'timeFormat': 'time_format',
    'dateFormat': 'date_format',
    'dateEndFormat': 'date_end_format',
    'fullDayEventDateFormat': 'full_day_event_date_format',
    'showEnd': 'show_end',
    'nextDaysRelative': 'next_days_relative',
    'maxTitleLength': 'max_title_length',
    'wrapEvents': 'wrap_events',
    'maxTitleLines': 'max_title_lines',
    'timezone': 'timezone',
}

DEFAULT_TITLE_REPLACE = {
    "De verjaardag van ": "",
    "'s birthday": "",
}


class ConfigError(ValueError):
    """Raised for structurally invalid calendar configuration."""


@dataclass
class CalendarConfig:
    """Module configuration with the source lookup table resolved."""
    builder: BuilderConfig = field(default_factory=BuilderConfig)
    sources: Dict[str, EventSource] = field(default_factory=dict)
    default_symbol: str = 'calendar'
    display_symbol: bool = True
    show_location: bool = True
    display_repeating_count_title: bool = True
    default_repeating_count_title: str = ''
    fetch_interval: int = 60 * 1000
    fade: bool = True
    colored: bool = False
    colored_symbol_only: bool = False
    broadcast_events: bool = True
    excluded_events: List[str] = field(default_factory=list)
    broadcast_past_events: bool = False
    language: str = 'en'
    clock: Optional[int] = None

    def source(self, source_id: str) -> EventSource:
        """Configured source for ``source_id``, or one carrying the defaults."""
        source = self.sources.get(source_id)
        if source is None:
            return EventSource(
                id=source_id,
                symbol=self.default_symbol,
                repeating_count_title=self.default_repeating_count_title
            )
        return source

    def has_source(self, source_id: str) -> bool:
        return source_id in self.sources


def load_config(raw: Dict[str, Any]) -> CalendarConfig:
    """
    Parse a calendar module configuration mapping.

    Args:
        raw: camelCase configuration (as written in the config file)

    Returns:
        CalendarConfig

    Raises:
        ConfigError: If the configuration is structurally invalid
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"Calendar configuration must be a mapping, got {type(raw).__name__}")

    builder = BuilderConfig()
    for key, attribute in BUILDER_OPTIONS.items():
        if key in raw:
            setattr(builder, attribute, raw[key])

    if builder.time_format not in TIME_FORMATS:
        logger.warning(
            f"Unknown timeFormat '{builder.time_format}', using 'relative'"
        )
        builder.time_format = 'relative'

    title_replace = raw.get('titleReplace', DEFAULT_TITLE_REPLACE)
    if not isinstance(title_replace, dict):
        raise ConfigError("titleReplace must be a mapping of needle to replacement")
    try:
        builder.title_replace = parse_title_replace(title_replace)
    except re.error as e:
        raise ConfigError(f"Invalid titleReplace pattern: {e}") from e

    config = CalendarConfig(builder=builder)
    for key, attribute in (
        ('defaultSymbol', 'default_symbol'),
        ('displaySymbol', 'display_symbol'),
        ('showLocation', 'show_location'),
        ('displayRepeatingCountTitle', 'display_repeating_count_title'),
        ('defaultRepeatingCountTitle', 'default_repeating_count_title'),
        ('fetchInterval', 'fetch_interval'),
        ('fade', 'fade'),
        ('colored', 'colored'),
        ('coloredSymbolOnly', 'colored_symbol_only'),
        ('broadcastEvents', 'broadcast_events'),
        ('excludedEvents', 'excluded_events'),
        ('broadcastPastEvents', 'broadcast_past_events'),
        ('language', 'language'),
        ('clock', 'clock'),
    ):
        if key in raw:
            setattr(config, attribute, raw[key])

    calendars = raw.get('calendars', [])
    if not isinstance(calendars, list):
        raise ConfigError("calendars must be a list")

    for index, calendar in enumerate(calendars):
        source = _parse_source(calendar, index, config)
        if source.id in config.sources:
            logger.warning(f"Duplicate calendar url {source.id}, keeping the first entry")
            continue
        config.sources[source.id] = source

    logger.info(f"Loaded calendar configuration with {len(config.sources)} sources")
    return config


def _parse_source(calendar: Any, index: int, config: CalendarConfig) -> EventSource:
    if not isinstance(calendar, dict) or not calendar.get('url'):
        raise ConfigError(f"Calendar #{index} has no url")

    url = calendar['url'].replace('webcal://', 'http://')

    auth = None
    if calendar.get('user') and calendar.get('pass'):
        logger.warning("Deprecation warning: Please update your calendar authentication configuration.")
        logger.warning(f"Calendar {url} uses legacy user/pass keys; move them into an 'auth' object.")
        auth = SourceAuth(user=calendar['user'], password=calendar['pass'])
    elif isinstance(calendar.get('auth'), dict):
        raw_auth = calendar['auth']
        auth = SourceAuth(
            user=raw_auth.get('user'),
            password=raw_auth.get('pass'),
            method=raw_auth.get('method', 'basic')
        )

    return EventSource(
        id=url,
        auth=auth,
        symbol=calendar.get('symbol', config.default_symbol),
        symbol_class=calendar.get('symbolClass') or '',
        title_class=calendar.get('titleClass') or '',
        time_class=calendar.get('timeClass') or '',
        color=calendar.get('color', '#fff'),
        calendar_name=calendar.get('name', ''),
        repeating_count_title=calendar.get(
            'repeatingCountTitle', config.default_repeating_count_title
        ),
        maximum_entries=calendar.get('maximumEntries'),
        maximum_number_of_days=calendar.get('maximumNumberOfDays'),
        excluded_events=calendar.get('excludedEvents'),
        broadcast_past_events=calendar.get('broadcastPastEvents')
    )


def load_config_file(path: str) -> CalendarConfig:
    """Load configuration from a JSON file."""
    logger.info(f"Reading calendar configuration from {path}")
    try:
        with open(path, encoding='utf-8') as config_file:
            raw = json.load(config_file)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    return load_config(raw)
