"""Relative time labels ("Today", "In 3 hours", "Jan 5th") for events."""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pendulum
from pendulum import DateTime

from processor.models import BuilderConfig, CalendarEvent
from processor.time_utils import (
    ONE_DAY,
    ONE_HOUR,
    ONE_SECOND,
    TimezoneLike,
    from_millis,
    start_of_day,
)

logger = logging.getLogger(__name__)

TRANSLATIONS = {
    'en': {
        'TODAY': 'Today',
        'TOMORROW': 'Tomorrow',
        'DAYAFTERTOMORROW': 'Day after tomorrow',
        'RUNNING': 'Ends in',
        'AT': 'at',
        'EMPTY': 'No upcoming events.',
        'LOADING': 'Loading …',
    },
    'de': {
        'TODAY': 'Heute',
        'TOMORROW': 'Morgen',
        'DAYAFTERTOMORROW': 'Übermorgen',
        'RUNNING': 'noch',
        'AT': 'um',
        'EMPTY': 'Keine Termine.',
        'LOADING': 'Lade …',
    },
    'nl': {
        'TODAY': 'Vandaag',
        'TOMORROW': 'Morgen',
        'DAYAFTERTOMORROW': 'Overmorgen',
        'RUNNING': 'Eindigt over',
        'AT': 'om',
        'EMPTY': 'Geen geplande afspraken.',
        'LOADING': 'Bezig met laden …',
    },
}

CLOCK_FORMATS = {
    12: 'h:mm A',
    24: 'HH:mm',
}

LT_TOKEN = re.compile(r'(?<![A-Za-z])LT(?![A-Za-z])')
PLACEHOLDER = re.compile(r'\{(\w+)\}')


class Translator:
    """Fixed-phrase lookup; unknown keys translate to themselves."""

    def __init__(self, language: str = 'en', translations: Optional[Dict[str, Dict[str, str]]] = None):
        tables = translations if translations is not None else TRANSLATIONS
        if language not in tables:
            logger.warning(f"No translations for language '{language}', using English")
        self.language = language
        self.phrases = dict(tables.get('en', {}))
        self.phrases.update(tables.get(language, {}))

    def has(self, key: str) -> bool:
        return key in self.phrases

    def translate(self, key: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """
        Look up ``key`` and substitute ``{name}`` placeholders.

        A ``fallback`` variable replaces templates without placeholders.
        """
        variables = variables or {}
        template = self.phrases.get(key, key)
        if 'fallback' in variables and not PLACEHOLDER.search(template):
            template = variables['fallback']

        def substitute(match):
            name = match.group(1)
            return str(variables[name]) if name in variables else match.group(0)

        return PLACEHOLDER.sub(substitute, template)


@dataclass(frozen=True)
class DisplayLocale:
    """Language, timezone and clock used for formatting labels."""
    language: str = 'en'
    timezone: TimezoneLike = None
    clock: Optional[int] = None

    def to_datetime(self, millis: int) -> DateTime:
        return from_millis(millis, self.timezone)

    def format(self, millis: int, fmt: str) -> str:
        """Format with moment-style tokens, honouring the 12/24h clock for ``LT``."""
        if self.clock in CLOCK_FORMATS:
            fmt = LT_TOKEN.sub(CLOCK_FORMATS[self.clock], fmt)
        return self.to_datetime(millis).format(fmt, locale=self.language)


def cap_first(text: str) -> str:
    return text[:1].upper() + text[1:]


class RelativeTimeLabeler:
    """Produces the "when" label of an event relative to now."""

    def __init__(self, translator: Optional[Translator] = None, locale: Optional[DisplayLocale] = None):
        self.locale = locale or DisplayLocale()
        self.translator = translator or Translator(self.locale.language)

    def label(self, event: CalendarEvent, now: int, config: BuilderConfig) -> str:
        """
        Build the time label for ``event``.

        Args:
            event: Event as returned by the list builder (``today`` stamped)
            now: Current time in epoch milliseconds
            config: Display policy

        Returns:
            Capitalized label, with ``-<end>`` appended when ``show_end``
        """
        if event.full_day_event:
            return self._full_day_label(event, now, config)
        return self._timed_label(event, now, config)

    def _full_day_label(self, event: CalendarEvent, now: int, config: BuilderConfig) -> str:
        # full day events end at 23:59:59 of their last day
        end_date = event.end_date - ONE_SECOND
        until_start = event.start_date - now

        if event.today:
            text = cap_first(self.translator.translate('TODAY'))
        elif 0 < until_start < ONE_DAY:
            text = cap_first(self.translator.translate('TOMORROW'))
        elif 0 < until_start < 2 * ONE_DAY:
            if self.translator.has('DAYAFTERTOMORROW'):
                text = cap_first(self.translator.translate('DAYAFTERTOMORROW'))
            else:
                text = cap_first(self.from_reference(event.start_date, now))
        else:
            text = self.relative_or_absolute(
                event.start_date,
                now,
                config,
                absolute_format=config.full_day_event_date_format,
                reference=start_of_day(now, self.locale.timezone)
            )

        if config.show_end:
            text += '-' + cap_first(self.locale.format(end_date, config.full_day_event_date_format))
        return text

    def _timed_label(self, event: CalendarEvent, now: int, config: BuilderConfig) -> str:
        until_start = event.start_date - now

        if event.start_date >= now:
            if until_start < 2 * ONE_DAY:
                if until_start < config.get_relative * ONE_HOUR:
                    text = cap_first(self.from_reference(event.start_date, now))
                elif config.time_format == 'absolute' and not config.next_days_relative:
                    text = cap_first(self.locale.format(event.start_date, config.date_format))
                else:
                    text = cap_first(self.calendar_phrase(event.start_date, now))
            else:
                text = self.relative_or_absolute(
                    event.start_date,
                    now,
                    config,
                    absolute_format=config.date_format,
                    reference=now
                )
        else:
            text = cap_first(self.translator.translate('RUNNING', {
                'fallback': self.translator.translate('RUNNING') + ' {timeUntilEnd}',
                'timeUntilEnd': self.from_reference(event.end_date, now, absolute=True),
            }))

        if config.show_end:
            text += '-' + cap_first(self.locale.format(event.end_date, config.date_end_format))
        return text

    def relative_or_absolute(
        self,
        start_date: int,
        now: int,
        config: BuilderConfig,
        absolute_format: str,
        reference: int
    ) -> str:
        """
        Urgency-aware choice between "in N" and an absolute date.

        Absolute dates are only used with ``time_format == 'absolute'``, and
        even then events within ``urgency`` days (urgency > 1) stay relative.
        """
        if config.time_format == 'absolute':
            if config.urgency > 1 and start_date - now < config.urgency * ONE_DAY:
                return cap_first(self.from_reference(start_date, reference))
            return cap_first(self.locale.format(start_date, absolute_format))
        return cap_first(self.from_reference(start_date, reference))

    def from_reference(self, target: int, reference: int, absolute: bool = False) -> str:
        """Humanized distance from ``reference`` to ``target`` ("in 3 hours")."""
        diff = self.locale.to_datetime(target).diff(self.locale.to_datetime(reference))
        return pendulum.format_diff(diff, is_now=True, absolute=absolute, locale=self.locale.language)

    def calendar_phrase(self, target: int, now: int) -> str:
        """Calendar phrasing: Today at 5:00 PM, Tomorrow at 9:30 AM, Friday at 8:00 AM."""
        days_ahead = (
            start_of_day(target, self.locale.timezone) - start_of_day(now, self.locale.timezone)
        ) // ONE_DAY
        at_time = self.translator.translate('AT') + ' ' + self.locale.format(target, 'LT')

        if days_ahead == 0:
            return self.translator.translate('TODAY') + ' ' + at_time
        if days_ahead == 1:
            return self.translator.translate('TOMORROW') + ' ' + at_time
        return self.locale.format(target, 'dddd') + ' ' + at_time
